"""Shared filesystem paths for chatstore."""

from __future__ import annotations

import os
from pathlib import Path


def _xdg_path(env_var: str, fallback: Path) -> Path:
    raw = os.environ.get(env_var)
    if raw:
        return Path(raw).expanduser()
    return fallback


def config_home() -> Path:
    """Return ``$XDG_CONFIG_HOME/chatstore``, read at call time for test isolation."""
    return _xdg_path("XDG_CONFIG_HOME", Path.home() / ".config") / "chatstore"


def data_home() -> Path:
    """Return ``$XDG_DATA_HOME/chatstore``, the default embedded database root."""
    return _xdg_path("XDG_DATA_HOME", Path.home() / ".local/share") / "chatstore"


__all__ = ["config_home", "data_home"]
