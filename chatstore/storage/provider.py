"""SQL storage provider: one storage instance per chat account.

The provider owns the engine for its backend, provisions the fixed tables,
brings the schema up to date on ``connect()`` and then exposes room, message
and ignore-list operations.

Example:
    async with SQLStorageProvider("10001", "sqlite3", {"dataPath": "/data"}) as store:
        await store.add_room(room)
        history = await store.fetch_messages(room.room_id, 0, 20)

Failures raise chatstore errors. Each one is also logged and handed to the
``report_error`` callback before it propagates, so a UI can surface it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.schema import CreateSchema

from chatstore.config import ConnectOptions
from chatstore.errors import (
    ChatStoreError,
    DatabaseConnectionError,
    DatabaseError,
    StorageNotReadyError,
)
from chatstore.lib.log import get_logger
from chatstore.models import IgnoredChat, Message, Room
from chatstore.storage.dialects import namespace_for, open_engine
from chatstore.storage.ignored import IgnoreListRepository
from chatstore.storage.messages import MessageRepository
from chatstore.storage.migrations import read_version, run_migrations, write_version
from chatstore.storage.registry import ConversationTableRegistry
from chatstore.storage.rooms import RoomRepository
from chatstore.storage.schema import SCHEMA_VERSION, VERSION_TABLE, StorageTables
from chatstore.types import BackendKind

logger = get_logger(__name__)

ErrorReporter = Callable[[BaseException], None]


class SQLStorageProvider:
    """Rooms, messages and the ignore-list of one account in a SQL database."""

    def __init__(
        self,
        account_id: str | int,
        kind: BackendKind | str,
        options: ConnectOptions | dict[str, Any],
        *,
        report_error: ErrorReporter | None = None,
        echo: bool = False,
    ) -> None:
        self.id = str(account_id)
        self.engine = open_engine(kind, options, self.id, echo=echo)
        self.kind = BackendKind.from_string(kind)
        self.tables = StorageTables(schema=namespace_for(self.kind, self.id))
        self.registry = ConversationTableRegistry(self.engine, self.tables)
        self.rooms = RoomRepository(self.engine, self.tables, self.registry)
        self.ignored = IgnoreListRepository(self.engine, self.tables)
        self.messages = MessageRepository(self.engine, self.registry)
        self._report_error = report_error
        self._ready = False

    async def __aenter__(self) -> SQLStorageProvider:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    @property
    def ready(self) -> bool:
        return self._ready

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the database, provision fixed tables and migrate if stale.

        Raises:
            DatabaseConnectionError: the database cannot be reached.
            MigrationError: an upgrade step failed; the stored version is kept.
        """
        self._ready = False
        with self._reporting("connect", require_ready=False):
            await self._probe()
            try:
                async with self.engine.begin() as conn:
                    await self._provision(conn)
            except SQLAlchemyError as exc:
                raise DatabaseError(f"connect: {exc}") from exc
        self._ready = True
        logger.info("Storage ready for %s on %s", self.id, self.kind)

    async def close(self) -> None:
        self._ready = False
        self.registry.forget()
        await self.engine.dispose()

    async def _probe(self) -> None:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (DBAPIError, OSError) as exc:
            raise DatabaseConnectionError(f"Cannot connect to {self.kind} database: {exc}") from exc

    async def _provision(self, conn: AsyncConnection) -> None:
        tables = self.tables
        if tables.schema:
            await conn.execute(CreateSchema(tables.schema, if_not_exists=True))

        fresh = not await conn.run_sync(
            lambda sync_conn: inspect(sync_conn).has_table(VERSION_TABLE, schema=tables.schema)
        )
        await conn.run_sync(lambda sync_conn: tables.metadata.create_all(sync_conn, tables=tables.fixed))
        if fresh:
            await write_version(conn, tables, SCHEMA_VERSION)
            logger.info("Initialized new database at v%d", SCHEMA_VERSION)
            return

        version = await read_version(conn, tables)
        if version is None:
            logger.warning("%s table is empty, assuming v0", VERSION_TABLE)
            version = 0
        await run_migrations(conn, tables, version, SCHEMA_VERSION)

    @contextmanager
    def _reporting(self, operation: str, *, require_ready: bool = True) -> Iterator[None]:
        try:
            if require_ready and not self._ready:
                raise StorageNotReadyError(f"{operation}: storage for {self.id} is not connected")
            yield
        except Exception as exc:
            logger.error("%s failed: %s", operation, exc)
            if self._report_error is not None:
                self._report_error(exc)
            if isinstance(exc, ChatStoreError):
                raise
            if isinstance(exc, SQLAlchemyError):
                raise DatabaseError(f"{operation}: {exc}") from exc
            raise

    async def schema_version(self) -> int | None:
        with self._reporting("schema_version"):
            async with self.engine.connect() as conn:
                return await read_version(conn, self.tables)

    async def message_tables(self) -> list[str]:
        with self._reporting("message_tables"):
            return await self.registry.registered_tables()

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def add_room(self, room: Room | Mapping[str, Any]) -> None:
        with self._reporting("add_room"):
            await self.rooms.add(room)

    async def update_room(self, room_id: int, room: Room | Mapping[str, Any]) -> None:
        with self._reporting("update_room"):
            await self.rooms.update(room_id, room)

    async def remove_room(self, room_id: int) -> None:
        with self._reporting("remove_room"):
            await self.rooms.remove(room_id)

    async def get_all_rooms(self) -> list[Room]:
        with self._reporting("get_all_rooms"):
            return await self.rooms.get_all()

    async def get_room(self, room_id: int) -> Room | None:
        with self._reporting("get_room"):
            return await self.rooms.get(room_id)

    async def get_unread_count(self, priority: int) -> int:
        with self._reporting("get_unread_count"):
            return await self.rooms.count_unread(priority)

    async def get_first_unread_room(self, priority: int) -> Room | None:
        with self._reporting("get_first_unread_room"):
            return await self.rooms.first_unread(priority)

    # ------------------------------------------------------------------
    # Ignore-list
    # ------------------------------------------------------------------

    async def get_ignored_chats(self) -> list[IgnoredChat]:
        with self._reporting("get_ignored_chats"):
            return await self.ignored.get_all()

    async def is_chat_ignored(self, chat_id: int) -> bool:
        with self._reporting("is_chat_ignored"):
            return await self.ignored.is_ignored(chat_id)

    async def add_ignored_chat(self, info: IgnoredChat | Mapping[str, Any]) -> None:
        with self._reporting("add_ignored_chat"):
            await self.ignored.add(info)

    async def remove_ignored_chat(self, chat_id: int) -> None:
        with self._reporting("remove_ignored_chat"):
            await self.ignored.remove(chat_id)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_message(self, room_id: int, message: Message | Mapping[str, Any]) -> None:
        with self._reporting("add_message"):
            await self.messages.add(room_id, message)

    async def update_message(
        self,
        room_id: int,
        message_id: str | int,
        message: Message | Mapping[str, Any],
    ) -> None:
        with self._reporting("update_message"):
            await self.messages.update(room_id, message_id, message)

    async def fetch_messages(self, room_id: int, skip: int, limit: int) -> list[Message]:
        with self._reporting("fetch_messages"):
            return await self.messages.fetch_page(room_id, skip, limit)

    async def get_message(self, room_id: int, message_id: str | int) -> Message | None:
        with self._reporting("get_message"):
            return await self.messages.get(room_id, message_id)

    async def add_messages(self, room_id: int, messages: Sequence[Message | Mapping[str, Any]]) -> None:
        with self._reporting("add_messages"):
            await self.messages.add_many(room_id, messages)


__all__ = ["ErrorReporter", "SQLStorageProvider"]
