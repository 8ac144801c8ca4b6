import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def data_path(tmp_path: Path) -> Path:
    """Data directory for an embedded database, isolated per test."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def xdg_env(tmp_path, monkeypatch):
    """Point XDG config/data homes into tmp_path."""
    config_root = tmp_path / "config"
    data_root = tmp_path / "share"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_root))
    monkeypatch.setenv("XDG_DATA_HOME", str(data_root))
    monkeypatch.delenv("CHATSTORE_CONFIG", raising=False)
    monkeypatch.delenv("CHATSTORE_BACKEND", raising=False)
    return {"config_root": config_root, "data_root": data_root}
