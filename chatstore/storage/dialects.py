"""Dialect connector: build an AsyncEngine for a backend kind.

Three backends are supported and can be swapped without touching the
repositories:

- ``sqlite3``: an embedded database file per account under
  ``<dataPath>/databases``
- ``mysql``: MySQL/MariaDB via aiomysql
- ``pg``: PostgreSQL via asyncpg, with every table scoped to a schema named
  after the account so several accounts can share one server
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import URL
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql.dml import Insert

from chatstore.config import ConnectOptions, SQLiteOptions, parse_options
from chatstore.errors import DatabaseConnectionError
from chatstore.lib.log import get_logger
from chatstore.types import BackendKind

logger = get_logger(__name__)

DB_NAME_PREFIX = "eqq"
DATABASES_DIR = "databases"

# Seconds to wait on a locked SQLite file before failing the statement
SQLITE_TIMEOUT = 30

_DRIVERS = {
    BackendKind.MYSQL: "mysql+aiomysql",
    BackendKind.POSTGRES: "postgresql+asyncpg",
}


def qualified_id(account_id: str) -> str:
    """Return the namespaced identity used for file and schema names."""
    return f"{DB_NAME_PREFIX}{account_id}"


def namespace_for(kind: BackendKind, account_id: str) -> str | None:
    """Return the schema that scopes this account's tables, if the backend uses one."""
    if kind is BackendKind.POSTGRES:
        return qualified_id(account_id)
    return None


def sqlite_path(data_path: Path, account_id: str) -> Path:
    return Path(data_path) / DATABASES_DIR / f"{qualified_id(account_id)}.db"


def build_url(kind: BackendKind, options: ConnectOptions, account_id: str) -> URL:
    if isinstance(options, SQLiteOptions):
        return URL.create("sqlite+aiosqlite", database=str(sqlite_path(options.data_path, account_id)))
    return URL.create(
        _DRIVERS[kind],
        username=options.user,
        password=options.password,
        host=options.host,
        port=options.port,
        database=options.database,
    )


def open_engine(
    kind: BackendKind | str,
    options: ConnectOptions | dict[str, Any],
    account_id: str | int,
    *,
    echo: bool = False,
) -> AsyncEngine:
    """Create the engine for one storage instance.

    No connection is made here; the first ``connect()`` does that. For the
    embedded backend the ``databases`` directory is created if missing.

    Raises:
        DatabaseConnectionError: unknown kind, or options that do not fit it.
    """
    try:
        kind = BackendKind.from_string(kind)
    except ValueError as exc:
        raise DatabaseConnectionError(f"Unknown database type {kind!r}") from exc
    account_id = str(account_id)
    if not account_id:
        raise DatabaseConnectionError("account id cannot be empty")
    try:
        parsed = parse_options(kind, options)
    except ValueError as exc:
        raise DatabaseConnectionError(str(exc)) from exc

    url = build_url(kind, parsed, account_id)
    engine_kwargs: dict[str, Any] = {"echo": echo}
    if isinstance(parsed, SQLiteOptions):
        db_file = sqlite_path(parsed.data_path, account_id)
        try:
            db_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DatabaseConnectionError(f"Cannot create {db_file.parent}: {exc}") from exc
        engine_kwargs["connect_args"] = {"timeout": SQLITE_TIMEOUT}
    else:
        engine_kwargs["pool_pre_ping"] = True

    try:
        engine = create_async_engine(url, **engine_kwargs)
    except (ArgumentError, ImportError) as exc:
        raise DatabaseConnectionError(f"Cannot create {kind} engine: {exc}") from exc
    logger.debug("Engine created for %s (%s)", kind, url.render_as_string(hide_password=True))
    return engine


def insert_ignore(dialect_name: str, table: Table) -> Insert:
    """Return an INSERT that silently skips rows whose primary key already exists."""
    if dialect_name == "sqlite":
        return sqlite.insert(table).on_conflict_do_nothing()
    if dialect_name == "postgresql":
        return postgresql.insert(table).on_conflict_do_nothing()
    if dialect_name in ("mysql", "mariadb"):
        return mysql.insert(table).prefix_with("IGNORE")
    raise ValueError(f"insert-ignore not supported for dialect {dialect_name!r}")


__all__ = [
    "DB_NAME_PREFIX",
    "build_url",
    "insert_ignore",
    "namespace_for",
    "open_engine",
    "qualified_id",
    "sqlite_path",
]
