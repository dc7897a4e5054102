"""
Buildbot sync configuration loading.

A sync configuration describes which buildbot builder runs which test on
which platform, and which build properties to send when triggering a build:

    {
        "buildbotUrl": "http://build.webkit.org",
        "shared": {
            "arguments": {"desired_image": {"root": "iOS"}},
            "slaveArgument": "slavename",
            "buildRequestArgument": "build_request_id"
        },
        "types": {
            "speedometer": {"test": ["Speedometer"], "arguments": {"test_name": "speedometer"}}
        },
        "builders": {
            "iPhone-bench": {"builder": "ABTest-iPhone-RunBenchmark-Tests"}
        },
        "configurations": [
            {"type": "speedometer", "builder": "iPhone-bench", "platform": "iPhone"}
        ]
    }

Each configuration entry is assembled from four layers, lowest precedence
first: ``shared``, the entry itself, ``types[entry.type]`` and
``builders[entry.builder]``. Every layer is validated against the same
fixed schema; ``arguments`` are parsed once, here, into typed property
arguments.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from perfsync.core.exceptions import (
    BuildbotConfigError,
    InvalidParameter,
    MissingRequiredField,
    UnrecognizedNamedArgument,
    UnrecognizedParameter,
    UnrecognizedType,
)

if TYPE_CHECKING:
    from perfsync.core.buildbot.syncer import BuildbotSyncer

logger = logging.getLogger(__name__)


class ArgumentKind(str, Enum):
    """Kinds of build property arguments."""

    LITERAL = "literal"
    ROOT = "root"
    ROOTS_EXCLUDING = "rootsExcluding"


@dataclass(frozen=True)
class LiteralArgument:
    """A property sent as-is."""

    value: str
    kind: ArgumentKind = ArgumentKind.LITERAL


@dataclass(frozen=True)
class RootArgument:
    """A property set to the revision of one repository of the root set."""

    repository: str
    kind: ArgumentKind = ArgumentKind.ROOT


@dataclass(frozen=True)
class RootsExcludingArgument:
    """A property set to a JSON revision set of the root set minus some repositories."""

    excluded: tuple[str, ...]
    kind: ArgumentKind = ArgumentKind.ROOTS_EXCLUDING


PropertyArgument = Union[LiteralArgument, RootArgument, RootsExcludingArgument]


class ConfigLayer(BaseModel):
    """
    Schema shared by every configuration layer.

    Unknown keys are rejected; all keys are optional at this level.
    """

    model_config = ConfigDict(extra="forbid", strict=True)

    type: str | None = None
    platform: str | None = None
    test: list[str] | None = None
    builder: str | None = None
    slave_argument: str | None = Field(default=None, alias="slaveArgument")
    build_request_argument: str | None = Field(default=None, alias="buildRequestArgument")
    arguments: dict[str, Any] | None = None


class SyncConfigFile(BaseModel):
    """Top-level structure of a sync configuration."""

    model_config = ConfigDict(populate_by_name=True)

    buildbot_url: str | None = Field(default=None, alias="buildbotUrl")
    shared: dict[str, Any] = Field(default_factory=dict)
    types: dict[str, dict[str, Any]] = Field(default_factory=dict)
    builders: dict[str, dict[str, Any]] = Field(default_factory=dict)
    configurations: list[dict[str, Any]]


# Merged key -> name used in configuration files and error messages
REQUIRED_FIELDS = {
    "platform": "platform",
    "test": "test",
    "builder": "builder",
    "properties": "properties",
    "build_request_argument": "buildRequestArgument",
}


def parse_argument(name: str, value: Any) -> PropertyArgument:
    """
    Parse one entry of an ``arguments`` mapping.

    Example:
        >>> parse_argument("os", {"root": "iOS"})
        RootArgument(repository='iOS', kind=<ArgumentKind.ROOT: 'root'>)

    Raises:
        UnrecognizedNamedArgument: If a directive key is neither root nor rootsExcluding
        InvalidParameter: If the value has the wrong shape
    """
    if isinstance(value, str):
        return LiteralArgument(value)
    if not isinstance(value, dict):
        raise InvalidParameter(name, "an argument value must be either a string or a dictionary")
    if len(value) != 1:
        raise InvalidParameter(name, "an argument value cannot contain more than one key")

    ((directive, named_value),) = value.items()
    if directive == ArgumentKind.ROOT.value:
        if not isinstance(named_value, str):
            raise InvalidParameter(name, "root name must be a string")
        return RootArgument(named_value)
    if directive == ArgumentKind.ROOTS_EXCLUDING.value:
        if not isinstance(named_value, list) or not all(
            isinstance(excluded, str) for excluded in named_value
        ):
            raise InvalidParameter(name, "rootsExcluding must specify an array of strings")
        return RootsExcludingArgument(tuple(named_value))
    raise UnrecognizedNamedArgument(directive, name)


def validate_layer(raw: Any, source: str) -> ConfigLayer:
    """
    Validate one configuration layer.

    Raises:
        UnrecognizedParameter: For an unknown key
        InvalidParameter: For a known key with a value of the wrong type
    """
    if not isinstance(raw, dict):
        raise InvalidParameter(source, "a configuration must be a dictionary")
    try:
        return ConfigLayer.model_validate(raw)
    except ValidationError as e:
        first = e.errors()[0]
        name = str(first["loc"][0]) if first.get("loc") else source
        if first["type"] == "extra_forbidden":
            raise UnrecognizedParameter(name) from e
        raise InvalidParameter(name, first["msg"]) from e


def merge_layer(merged: dict[str, Any], layer: ConfigLayer) -> None:
    """Merge the keys set in ``layer`` into ``merged``; arguments merge key by key."""
    for key in layer.model_fields_set:
        value = getattr(layer, key)
        if key == "arguments":
            properties = merged.setdefault("properties", {})
            for name, argument in (value or {}).items():
                properties[name] = parse_argument(name, argument)
        elif key == "test":
            merged[key] = list(value) if value is not None else None
        else:
            merged[key] = value


def merge_configuration(
    entry: dict[str, Any],
    shared: dict[str, Any],
    types: dict[str, dict[str, Any]],
    builders: dict[str, dict[str, Any]],
) -> dict[str, Any]:
    """
    Assemble one configuration entry from its layers and check required fields.

    Returns:
        Merged configuration keyed by the snake_case field names

    Raises:
        BuildbotConfigError: If any layer is invalid or a required field is missing
    """
    entry_layer = validate_layer(entry, "configuration")
    layers = [validate_layer(shared, "shared"), entry_layer]

    if entry_layer.type is not None:
        if entry_layer.type not in types:
            raise UnrecognizedType(entry_layer.type)
        layers.append(validate_layer(types[entry_layer.type], entry_layer.type))

    if entry_layer.builder is not None and entry_layer.builder in builders:
        layers.append(validate_layer(builders[entry_layer.builder], entry_layer.builder))

    merged: dict[str, Any] = {}
    for layer in layers:
        merge_layer(merged, layer)

    for key, name in REQUIRED_FIELDS.items():
        if merged.get(key) is None:
            raise MissingRequiredField(name)

    return merged


def load_syncers(base_url: str, raw_config: dict[str, Any]) -> list[BuildbotSyncer]:
    """
    Build one syncer per configuration entry.

    Args:
        base_url: Buildbot base URL, e.g. ``http://build.webkit.org``
        raw_config: Parsed sync configuration

    Returns:
        Syncers in configuration order

    Raises:
        BuildbotConfigError: If the configuration is malformed
    """
    from perfsync.core.buildbot.syncer import BuildbotSyncer

    try:
        config = SyncConfigFile.model_validate(raw_config)
    except ValidationError as e:
        first = e.errors()[0]
        name = str(first["loc"][0]) if first.get("loc") else "configuration"
        if first["type"] == "missing":
            raise MissingRequiredField(name) from e
        raise InvalidParameter(name, first["msg"]) from e

    syncers = []
    for entry in config.configurations:
        merged = merge_configuration(entry, config.shared, config.types, config.builders)
        syncers.append(
            BuildbotSyncer(
                base_url,
                builder=merged["builder"],
                platform=merged["platform"],
                test_path=merged["test"],
                properties=merged["properties"],
                build_request_argument=merged["build_request_argument"],
                slave_argument=merged.get("slave_argument"),
            )
        )

    logger.info("Loaded %d buildbot syncers for %s", len(syncers), base_url)
    return syncers


def load_syncers_file(path: Path | str, base_url: str | None = None) -> list[BuildbotSyncer]:
    """
    Load syncers from a JSON sync configuration file.

    Args:
        path: Path to the configuration file
        base_url: Buildbot base URL; defaults to the file's ``buildbotUrl``

    Raises:
        BuildbotConfigError: If the file can't be read or is malformed
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise BuildbotConfigError(f"Failed to read sync configuration {path}: {e}") from e
    if not isinstance(raw, dict):
        raise BuildbotConfigError(f"Sync configuration {path} must be a JSON object")

    url = base_url or raw.get("buildbotUrl")
    if not url:
        raise MissingRequiredField("buildbotUrl")
    return load_syncers(url.rstrip("/"), raw)
