"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import PerfSyncConfig

logger = logging.getLogger(__name__)

# Global cache to avoid reloading config multiple times per process
_config_cache: PerfSyncConfig | None = None

# Environment variable -> (section, key, converter)
ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "PERFSYNC_DB_PATH": ("database", "path", str),
    "PERFSYNC_BUILDBOT_URL": ("buildbot", "url", str),
    "PERFSYNC_BUILDBOT_CONFIG": ("buildbot", "config_path", str),
    "PERFSYNC_TRIGGERABLE": ("buildbot", "triggerable", str),
    "PERFSYNC_RECENT_BUILD_COUNT": ("buildbot", "recent_build_count", int),
    "PERFSYNC_PORT": ("server", "port", int),
}


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """Path to ~/.config/perfsync/config.json (or XDG equivalent)."""
    return get_xdg_config_home() / "perfsync" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """Path to .perfsync.json in the given (or current) directory."""
    if cwd is None:
        cwd = Path.cwd()
    return cwd / ".perfsync.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`.
    Nested dicts are merged, not replaced.

    Example:
        >>> base = {"a": 1, "b": {"x": 10, "y": 20}}
        >>> override = {"b": {"y": 30, "z": 40}, "c": 3}
        >>> deep_merge(base, override)
        {'a': 1, 'b': {'x': 10, 'y': 30, 'z': 40}, 'c': 3}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON as dict, or None if file doesn't exist or can't be parsed
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            return None
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Env vars have the highest precedence and override all config files.
    Values that fail to convert are ignored with a warning.

    Supported env vars:
        PERFSYNC_DB_PATH - overrides database.path
        PERFSYNC_BUILDBOT_URL - overrides buildbot.url
        PERFSYNC_BUILDBOT_CONFIG - overrides buildbot.config_path
        PERFSYNC_TRIGGERABLE - overrides buildbot.triggerable
        PERFSYNC_RECENT_BUILD_COUNT - overrides buildbot.recent_build_count
        PERFSYNC_PORT - overrides server.port
    """
    result = config_dict.copy()

    for env_name, (section, key, convert) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if not raw:
            continue
        try:
            value = convert(raw)
        except ValueError:
            logger.warning("Invalid %s value '%s', ignoring", env_name, raw)
            continue
        result[section] = {**result.get(section, {}), key: value}

    return result


def get_default_config() -> dict[str, Any]:
    """Hardcoded default configuration."""
    return {
        "database": {"path": "perfsync.db"},
        "buildbot": {"recent_build_count": 10, "timeout": 30.0, "interval": 60.0},
        "server": {"host": "127.0.0.1", "port": 8080},
    }


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> PerfSyncConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (PERFSYNC_*)
        2. Project config (.perfsync.json)
        3. User config (~/.config/perfsync/config.json)
        4. Hardcoded defaults

    Args:
        project_dir: Directory to load .perfsync.json from (defaults to cwd)
        use_cache: If True, return cached config from previous load

    Returns:
        Validated PerfSyncConfig instance

    Raises:
        ValidationError: If the merged config fails Pydantic validation
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_config := load_json_file(get_project_config_path(project_dir)):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    config = PerfSyncConfig(**merged)
    _config_cache = config
    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    global _config_cache
    _config_cache = None
