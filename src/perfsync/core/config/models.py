"""
Configuration data models for perfsync.

These models define the structure of .perfsync.json and
~/.config/perfsync/config.json files, with validation via Pydantic.
"""

from pydantic import BaseModel, ConfigDict, Field


class DatabaseConfig(BaseModel):
    """Location of the SQLite store."""

    path: str = Field(
        default="perfsync.db",
        description="Path to the SQLite database file"
    )


class BuildbotSettings(BaseModel):
    """
    Buildbot synchronization settings.

    ``config_path`` points at the sync configuration (builders, platforms,
    tests and trigger arguments); the other fields control polling.
    """
    url: str | None = Field(
        default=None,
        description="Buildbot base URL; overrides buildbotUrl in the sync configuration"
    )
    config_path: str | None = Field(
        default=None,
        description="Path to the JSON sync configuration"
    )
    triggerable: str | None = Field(
        default=None,
        description="Name of the triggerable to sync"
    )
    recent_build_count: int = Field(
        default=10,
        ge=0,
        description="Number of recent builds to fetch per builder on each pass"
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="HTTP timeout in seconds for buildbot requests"
    )
    interval: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds between sync passes when running continuously"
    )


class ServerConfig(BaseModel):
    """HTTP API server settings."""
    host: str = Field(default="127.0.0.1", description="Interface to bind")
    port: int = Field(default=8080, ge=1, le=65535, description="Port to listen on")


class PerfSyncConfig(BaseModel):
    """
    Top-level perfsync configuration.

    Example:
        >>> config = PerfSyncConfig(buildbot={"triggerable": "build-webkit"})
        >>> config.buildbot.recent_build_count
        10
    """
    model_config = ConfigDict(extra="ignore")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    buildbot: BuildbotSettings = Field(default_factory=BuildbotSettings)
    server: ServerConfig = Field(default_factory=ServerConfig)
