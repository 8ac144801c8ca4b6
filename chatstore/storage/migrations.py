"""Schema version tracking and forward-only migrations.

The database keeps its schema version in the single-row ``dbVersion`` table.
``MIGRATIONS[v]`` upgrades version ``v`` to ``v + 1``; a database that is
several releases behind walks every step from its stored version up to
``SCHEMA_VERSION`` in one pass. The stored version is only overwritten after
the last step succeeds, so a failed run leaves the database at its original
version and the next ``connect()`` retries from there. Each step inspects
the catalog before changing it, which makes re-running it from the same
version safe.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from sqlalchemy import Column, Table, delete, inspect, insert, select, text, update
from sqlalchemy.ext.asyncio import AsyncConnection

from chatstore.errors import MigrationError
from chatstore.lib.log import get_logger
from chatstore.storage.schema import MESSAGE_TABLE_PREFIX, ROOMS_TABLE, SCHEMA_VERSION, StorageTables

logger = get_logger(__name__)

StepFunc = Callable[[AsyncConnection, StorageTables], Awaitable[None]]


@dataclass(frozen=True)
class MigrationStep:
    from_version: int
    description: str
    apply: StepFunc

    @property
    def to_version(self) -> int:
        return self.from_version + 1


# ---------------------------------------------------------------------------
# Version row
# ---------------------------------------------------------------------------


async def read_version(conn: AsyncConnection, tables: StorageTables) -> int | None:
    """Return the stored schema version, or None if the row is missing."""
    result = await conn.execute(select(tables.version.c.dbVersion))
    row = result.first()
    return int(row[0]) if row is not None else None


async def write_version(conn: AsyncConnection, tables: StorageTables, version: int) -> None:
    """Replace the singleton version row."""
    await conn.execute(delete(tables.version))
    await conn.execute(insert(tables.version).values(dbVersion=version))


# ---------------------------------------------------------------------------
# Catalog helpers
# ---------------------------------------------------------------------------


async def _table_names(conn: AsyncConnection, schema: str | None) -> list[str]:
    return await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names(schema=schema))


async def _column_names(conn: AsyncConnection, table_name: str, schema: str | None) -> set[str]:
    columns = await conn.run_sync(
        lambda sync_conn: inspect(sync_conn).get_columns(table_name, schema=schema)
    )
    return {col["name"] for col in columns}


def _qualified(conn: AsyncConnection, table_name: str, schema: str | None) -> str:
    preparer = conn.dialect.identifier_preparer
    if schema:
        return f"{preparer.quote_schema(schema)}.{preparer.quote(table_name)}"
    return preparer.quote(table_name)


async def _add_missing_columns(conn: AsyncConnection, table: Table, names: Sequence[str]) -> list[str]:
    """ALTER TABLE ... ADD COLUMN for each named column the table lacks."""
    present = await _column_names(conn, table.name, table.schema)
    added: list[str] = []
    for name in names:
        if name in present:
            continue
        column: Column = table.c[name]
        col_type = column.type.compile(dialect=conn.dialect)
        col_name = conn.dialect.identifier_preparer.quote(name)
        await conn.execute(
            text(f"ALTER TABLE {_qualified(conn, table.name, table.schema)} ADD COLUMN {col_name} {col_type}")
        )
        added.append(name)
    if added:
        logger.info("Added columns %s to %s", ", ".join(added), table.name)
    return added


async def registered_tables(conn: AsyncConnection, tables: StorageTables) -> list[str]:
    result = await conn.execute(select(tables.registry.c.tableName).order_by(tables.registry.c.id))
    return [row[0] for row in result]


def _is_message_table(name: str) -> bool:
    suffix = name[len(MESSAGE_TABLE_PREFIX):]
    if not name.startswith(MESSAGE_TABLE_PREFIX) or not suffix:
        return False
    try:
        int(suffix)
    except ValueError:
        return False
    return True


async def _add_to_message_tables(conn: AsyncConnection, tables: StorageTables, names: Sequence[str]) -> None:
    existing = set(await _table_names(conn, tables.schema))
    for table_name in await registered_tables(conn, tables):
        if table_name not in existing:
            logger.warning("Registered message table %s is missing, skipping", table_name)
            continue
        await _add_missing_columns(conn, tables.message_table(table_name), names)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


async def _migrate_v0_to_v1(conn: AsyncConnection, tables: StorageTables) -> None:
    """Add per-room download settings and seed the message table registry.

    Message tables created before the registry existed are discovered from
    the catalog once, here; later steps enumerate the registry instead.
    """
    await _add_missing_columns(conn, tables.rooms, ["autoDownload", "downloadPath"])

    known = set(await registered_tables(conn, tables))
    found = sorted(
        name for name in await _table_names(conn, tables.schema) if _is_message_table(name) and name not in known
    )
    for name in found:
        await conn.execute(insert(tables.registry).values(tableName=name))
    if found:
        logger.info("Registered %d existing message tables", len(found))


async def _migrate_v1_to_v2(conn: AsyncConnection, tables: StorageTables) -> None:
    """Add the mirai extension payload column to every message table."""
    await _add_to_message_tables(conn, tables, ["mirai"])


async def _migrate_v2_to_v3(conn: AsyncConnection, tables: StorageTables) -> None:
    """Add the reveal and flash flags to every message table."""
    await _add_to_message_tables(conn, tables, ["reveal", "flash"])


async def _migrate_v3_to_v4(conn: AsyncConnection, tables: StorageTables) -> None:
    """Add the short title label to every message table."""
    await _add_to_message_tables(conn, tables, ["title"])


async def _migrate_v4_to_v5(conn: AsyncConnection, tables: StorageTables) -> None:
    """Backfill room defaults: empty participant list and last message, NULL mentions."""
    rooms = tables.rooms
    await conn.execute(update(rooms).where(rooms.c.users.is_(None)).values(users="[]"))
    await conn.execute(update(rooms).where(rooms.c.lastMessage.is_(None)).values(lastMessage="{}"))
    await conn.execute(update(rooms).where(rooms.c.at == "").values(at=None))


MIGRATIONS: list[MigrationStep] = [
    MigrationStep(0, "room download settings, message table registry", _migrate_v0_to_v1),
    MigrationStep(1, "message mirai payload", _migrate_v1_to_v2),
    MigrationStep(2, "message reveal/flash flags", _migrate_v2_to_v3),
    MigrationStep(3, "message title", _migrate_v3_to_v4),
    MigrationStep(4, f"{ROOMS_TABLE} defaults backfill", _migrate_v4_to_v5),
]


async def run_migrations(
    conn: AsyncConnection,
    tables: StorageTables,
    current_version: int,
    target_version: int = SCHEMA_VERSION,
    steps: Sequence[MigrationStep] = MIGRATIONS,
) -> list[int]:
    """Run every step from current_version up to target_version, in order.

    Returns the from-versions of the applied steps.

    Raises:
        MigrationError: if the stored version is newer than target_version,
            a step is missing, or any step fails. The stored version is not
            touched in that case.
    """
    if current_version > target_version:
        raise MigrationError(
            f"Unsupported DB schema version {current_version} (expected {target_version})"
        )
    if current_version == target_version:
        return []
    if current_version < 0:
        raise MigrationError(f"Invalid DB schema version {current_version}")

    selected = list(steps[current_version:target_version])
    expected = list(range(current_version, target_version))
    if [step.from_version for step in selected] != expected:
        raise MigrationError(f"No migration path from v{current_version} to v{target_version}")

    logger.info("Upgrading database from v%d to v%d", current_version, target_version)
    applied: list[int] = []
    for step in selected:
        logger.info("Running migration v%d -> v%d: %s", step.from_version, step.to_version, step.description)
        try:
            await step.apply(conn, tables)
        except Exception as exc:
            logger.error("Migration v%d -> v%d failed: %s", step.from_version, step.to_version, exc)
            raise MigrationError(
                f"Migration from v{step.from_version} to v{step.to_version} failed. "
                f"Database remains at v{current_version}. Error: {exc}"
            ) from exc
        applied.append(step.from_version)

    await write_version(conn, tables, target_version)
    logger.info("Database upgraded to v%d", target_version)
    return applied


__all__ = [
    "MIGRATIONS",
    "MigrationStep",
    "read_version",
    "registered_tables",
    "run_migrations",
    "write_version",
]
