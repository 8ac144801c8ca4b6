"""Conversation table registry.

Every conversation gets its own message table, created lazily the first
time the conversation is written to or read from. Each table is recorded in
``msgTableName`` so migrations can enumerate message tables without
scanning the database catalog. The physical table is created before its
registry row, inside one transaction on engines with transactional DDL.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict

from sqlalchemy import Table, inspect, insert
from sqlalchemy.ext.asyncio import AsyncEngine

from chatstore.lib.log import get_logger
from chatstore.storage.migrations import registered_tables
from chatstore.storage.schema import StorageTables, message_table_name

logger = get_logger(__name__)


class ConversationTableRegistry:
    """Maps conversation ids to their message table handles.

    ``ensure_table`` is single-flighted per conversation id: concurrent
    first writes to a new conversation wait on the same lock, and the second
    one finds the table already ensured.
    """

    def __init__(self, engine: AsyncEngine, tables: StorageTables) -> None:
        self._engine = engine
        self._tables = tables
        self._ensured: dict[int, Table] = {}
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def table_for(self, conversation_id: int) -> Table:
        """Return the message table handle without touching the database."""
        return self._tables.message_table(message_table_name(conversation_id))

    async def ensure_table(self, conversation_id: int) -> Table:
        """Create the conversation's message table and registry row if absent."""
        cached = self._ensured.get(conversation_id)
        if cached is not None:
            return cached
        table = self.table_for(conversation_id)
        async with self._locks[conversation_id]:
            if conversation_id in self._ensured:
                return self._ensured[conversation_id]
            async with self._engine.begin() as conn:
                exists = await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).has_table(table.name, schema=table.schema)
                )
                if not exists:
                    await conn.run_sync(lambda sync_conn: table.create(sync_conn, checkfirst=True))
                    await conn.execute(insert(self._tables.registry).values(tableName=table.name))
                    logger.info("Created message table %s", table.name)
            self._ensured[conversation_id] = table
        # Later calls take the cached path; waiters still hold the lock object
        self._locks.pop(conversation_id, None)
        return table

    async def registered_tables(self) -> list[str]:
        """Return the registered message table names in creation order."""
        async with self._engine.connect() as conn:
            return await registered_tables(conn, self._tables)

    def forget(self) -> None:
        """Drop cached handles, e.g. after the engine is disposed."""
        self._ensured.clear()
        self._locks.clear()


__all__ = ["ConversationTableRegistry"]
