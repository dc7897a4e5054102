"""Environment file loading.

PERFSYNC_* settings (database path, buildbot URL, triggerable) are often
kept in a ``.env`` file next to the deployment rather than exported in the
shell. Two files are read:

- user: $XDG_CONFIG_HOME/perfsync/.env
- project: ./.env

Precedence:
  os.environ (pre-existing) > project .env > user .env

Variables already present in the process environment are never replaced.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import dotenv_values


def read_env_file(path: Path) -> dict[str, str]:
    """Read a .env file, dropping keys without a value."""
    if not path.exists():
        return {}
    return {str(k): str(v) for k, v in dotenv_values(path).items() if k and v is not None}


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_path: Path | None = None,
) -> list[str]:
    """Load user and project .env files into ``os.environ``.

    Args:
        project_dir: directory holding the project .env (defaults to cwd)
        user_env_path: explicit user .env path

    Returns:
        Names of the variables that were set
    """
    if project_dir is None:
        project_dir = Path.cwd()
    if user_env_path is None:
        xdg_home = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
        user_env_path = xdg_home / "perfsync" / ".env"

    preexisting = set(os.environ)
    loaded: list[str] = []
    for path in (user_env_path, project_dir / ".env"):
        for key, value in read_env_file(path).items():
            if key in preexisting:
                continue
            os.environ[key] = value
            if key not in loaded:
                loaded.append(key)
    return loaded
