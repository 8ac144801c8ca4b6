"""Storage configuration.

A storage instance is described by the owning account id, the backend kind
and one of two mutually exclusive connection shapes: ``{dataPath}`` for the
embedded backend or ``{host, user, password, database}`` for the server
backends.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .lib.json import JSONDecodeError, loads
from .paths import config_home, data_home
from .types import BackendKind

DEFAULT_CONFIG_NAME = "config.json"


class SQLiteOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    data_path: Path = Field(alias="dataPath")


class ServerOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    host: str
    user: str
    password: str
    database: str
    port: int | None = None

    @field_validator("host", "user", "database")
    @classmethod
    def non_empty_string(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip()


ConnectOptions = SQLiteOptions | ServerOptions


def parse_options(kind: BackendKind, raw: ConnectOptions | dict[str, Any]) -> ConnectOptions:
    """Validate connection options against the backend kind.

    Raises ValueError when the shape does not fit the kind.
    """
    expected = SQLiteOptions if kind.is_embedded else ServerOptions
    if isinstance(raw, (SQLiteOptions, ServerOptions)):
        if not isinstance(raw, expected):
            raise ValueError(f"{kind} expects {expected.__name__}, got {type(raw).__name__}")
        return raw
    try:
        return expected.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"invalid connection options for {kind}: {exc}") from exc


class StorageConfig(BaseModel):
    account_id: str
    kind: BackendKind = BackendKind.SQLITE
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("account_id", mode="before")
    @classmethod
    def account_to_string(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v: Any) -> Any:
        try:
            return BackendKind.from_string(v)
        except ValueError as exc:
            raise ValueError(f"unknown backend {v!r}") from exc

    def connect_options(self) -> ConnectOptions:
        options = dict(self.options)
        if self.kind.is_embedded and "dataPath" not in options and "data_path" not in options:
            options["dataPath"] = data_home()
        try:
            return parse_options(self.kind, options)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc


def _config_path(explicit: Path | None = None) -> Path:
    if explicit is not None:
        return explicit
    env_path = os.environ.get("CHATSTORE_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return config_home() / DEFAULT_CONFIG_NAME


def load_config(path: Path | None = None) -> StorageConfig:
    """Load the storage configuration from JSON.

    ``CHATSTORE_BACKEND`` overrides the ``kind`` stored in the file.
    """
    cfg_path = _config_path(path)
    if not cfg_path.exists():
        raise ConfigError(f"Config file not found: {cfg_path}")
    try:
        data = loads(cfg_path.read_bytes())
    except JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {cfg_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be an object: {cfg_path}")

    backend = os.environ.get("CHATSTORE_BACKEND")
    if backend:
        data["kind"] = backend
    data.setdefault("account_id", data.pop("accountId", None))
    try:
        return StorageConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config {cfg_path}: {exc}") from exc


__all__ = [
    "ConnectOptions",
    "SQLiteOptions",
    "ServerOptions",
    "StorageConfig",
    "load_config",
    "parse_options",
]
