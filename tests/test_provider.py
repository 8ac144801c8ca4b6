"""Storage provider lifecycle, error reporting and dialect connector tests."""

from __future__ import annotations

import pytest
from sqlalchemy.dialects import mysql, postgresql, sqlite

from chatstore.config import ServerOptions, SQLiteOptions
from chatstore.errors import (
    ChatStoreError,
    DatabaseConnectionError,
    DuplicateKeyError,
    MigrationError,
    StorageNotReadyError,
)
from chatstore.storage import SQLStorageProvider
from chatstore.storage.dialects import build_url, insert_ignore, namespace_for, open_engine, sqlite_path
from chatstore.storage.schema import SCHEMA_VERSION, StorageTables
from chatstore.types import BackendKind
from tests.helpers import ACCOUNT_ID, build_legacy_database, make_room, open_store


# =============================================================================
# LIFECYCLE
# =============================================================================


@pytest.mark.asyncio
async def test_operations_before_connect_are_refused(data_path):
    reported: list[BaseException] = []
    store = SQLStorageProvider(ACCOUNT_ID, "sqlite3", {"dataPath": data_path}, report_error=reported.append)
    try:
        assert store.ready is False
        with pytest.raises(StorageNotReadyError):
            await store.get_all_rooms()
    finally:
        await store.close()

    assert len(reported) == 1
    assert isinstance(reported[0], StorageNotReadyError)


@pytest.mark.asyncio
async def test_close_makes_provider_unusable(data_path):
    store = SQLStorageProvider(ACCOUNT_ID, "sqlite3", {"dataPath": data_path})
    await store.connect()
    assert store.ready is True
    await store.close()

    assert store.ready is False
    with pytest.raises(StorageNotReadyError):
        await store.get_room(1)


@pytest.mark.asyncio
async def test_context_manager_connects_and_closes(data_path):
    async with SQLStorageProvider(int(ACCOUNT_ID), "sqlite", {"dataPath": str(data_path)}) as store:
        assert store.ready
        assert store.id == ACCOUNT_ID
        assert store.kind is BackendKind.SQLITE
        assert await store.schema_version() == SCHEMA_VERSION
    assert not store.ready


@pytest.mark.asyncio
async def test_accounts_get_separate_files(data_path):
    async with open_store(data_path, "1") as first, open_store(data_path, "2") as second:
        await first.add_room(make_room(5))
        assert await second.get_room(5) is None

    assert sqlite_path(data_path, "1").exists()
    assert sqlite_path(data_path, "2").exists()


@pytest.mark.asyncio
async def test_failures_are_reported_then_raised(data_path):
    reported: list[BaseException] = []
    async with open_store(data_path, report_error=reported.append) as store:
        await store.add_room(make_room(1))
        with pytest.raises(DuplicateKeyError):
            await store.add_room(make_room(1))

    assert len(reported) == 1
    assert isinstance(reported[0], DuplicateKeyError)


@pytest.mark.asyncio
async def test_unsupported_version_fails_connect(data_path):
    build_legacy_database(data_path, version=SCHEMA_VERSION + 1)
    reported: list[BaseException] = []
    store = SQLStorageProvider(ACCOUNT_ID, "sqlite3", {"dataPath": data_path}, report_error=reported.append)
    try:
        with pytest.raises(MigrationError, match="Unsupported DB schema version"):
            await store.connect()
        assert store.ready is False
    finally:
        await store.close()

    assert isinstance(reported[0], MigrationError)


@pytest.mark.asyncio
async def test_unreachable_server_raises_connection_error():
    store = SQLStorageProvider(
        ACCOUNT_ID,
        "pg",
        {"host": "127.0.0.1", "port": 1, "user": "chat", "password": "secret", "database": "chat"},
    )
    try:
        with pytest.raises(DatabaseConnectionError):
            await store.connect()
    finally:
        await store.close()


# =============================================================================
# DIALECT CONNECTOR
# =============================================================================


def test_unknown_backend_is_rejected(tmp_path):
    with pytest.raises(DatabaseConnectionError, match="Unknown database type"):
        open_engine("oracle", {"dataPath": tmp_path}, ACCOUNT_ID)


@pytest.mark.parametrize(
    ("kind", "options"),
    [
        ("sqlite3", {"host": "db", "user": "u", "password": "p", "database": "chat"}),
        ("mysql", {"dataPath": "/tmp/data"}),
        ("pg", {"host": "db", "user": "u", "password": "p"}),
    ],
)
def test_options_must_fit_backend(kind, options):
    with pytest.raises(DatabaseConnectionError):
        open_engine(kind, options, ACCOUNT_ID)


def test_empty_account_id_is_rejected(tmp_path):
    with pytest.raises(DatabaseConnectionError):
        open_engine("sqlite3", {"dataPath": tmp_path}, "")


def test_provider_errors_share_base_class(tmp_path):
    with pytest.raises(ChatStoreError):
        SQLStorageProvider(ACCOUNT_ID, "oracle", {"dataPath": tmp_path})


@pytest.mark.asyncio
async def test_embedded_engine_creates_database_directory(tmp_path):
    data_path = tmp_path / "fresh"
    engine = open_engine("sqlite3", {"dataPath": data_path}, ACCOUNT_ID)
    try:
        assert (data_path / "databases").is_dir()
        assert engine.dialect.name == "sqlite"
        assert engine.url.database.endswith(f"databases/eqq{ACCOUNT_ID}.db")
    finally:
        await engine.dispose()


def test_server_urls():
    options = ServerOptions(host="db.local", user="chat", password="s3cret", database="chat", port=5433)

    pg = build_url(BackendKind.POSTGRES, options, ACCOUNT_ID)
    assert pg.drivername == "postgresql+asyncpg"
    assert (pg.host, pg.port, pg.database, pg.username) == ("db.local", 5433, "chat", "chat")

    my = build_url(BackendKind.MYSQL, options, ACCOUNT_ID)
    assert my.drivername == "mysql+aiomysql"
    assert "s3cret" not in my.render_as_string(hide_password=True)


def test_embedded_url_points_at_account_file(tmp_path):
    url = build_url(BackendKind.SQLITE, SQLiteOptions(dataPath=tmp_path), "42")
    assert url.drivername == "sqlite+aiosqlite"
    assert url.database == str(tmp_path / "databases" / "eqq42.db")


def test_only_postgres_scopes_tables_to_a_schema():
    assert namespace_for(BackendKind.POSTGRES, "42") == "eqq42"
    assert namespace_for(BackendKind.MYSQL, "42") is None
    assert namespace_for(BackendKind.SQLITE, "42") is None

    tables = StorageTables(schema="eqq42")
    assert tables.rooms.fullname == "eqq42.rooms"
    assert tables.message_table("msg-1").fullname == "eqq42.msg-1"


@pytest.mark.parametrize(
    ("dialect_name", "dialect", "fragment"),
    [
        ("sqlite", sqlite.dialect(), "ON CONFLICT DO NOTHING"),
        ("postgresql", postgresql.dialect(), "ON CONFLICT DO NOTHING"),
        ("mysql", mysql.dialect(), "INSERT IGNORE"),
    ],
)
def test_insert_ignore_per_dialect(dialect_name, dialect, fragment):
    table = StorageTables().message_table("msg1")
    statement = insert_ignore(dialect_name, table)
    assert fragment in str(statement.compile(dialect=dialect))


def test_insert_ignore_unknown_dialect():
    with pytest.raises(ValueError):
        insert_ignore("oracle", StorageTables().message_table("msg1"))
