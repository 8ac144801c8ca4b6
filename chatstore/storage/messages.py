"""Message repository over the per-conversation ``msg<id>`` tables."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Mapping, Sequence
from typing import Any

from sqlalchemy import Table, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from chatstore.errors import TranscodeError
from chatstore.lib.log import get_logger
from chatstore.models import Message
from chatstore.storage.base import translate_errors
from chatstore.storage.dialects import insert_ignore
from chatstore.storage.registry import ConversationTableRegistry
from chatstore.storage.transcode import message_from_persisted, message_patch_to_persisted, message_to_persisted

logger = get_logger(__name__)

BATCH_SIZE = 200


def _chunks(items: Sequence[dict[str, Any]], size: int) -> Iterator[Sequence[dict[str, Any]]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _message_id(message: Message | Mapping[str, Any]) -> Any:
    if isinstance(message, Message):
        return message.id
    if isinstance(message, Mapping):
        return message.get("_id", message.get("id"))
    return None


class MessageRepository:
    def __init__(self, engine: AsyncEngine, registry: ConversationTableRegistry) -> None:
        self._engine = engine
        self._registry = registry

    async def add(self, conversation_id: int, message: Message | Mapping[str, Any]) -> None:
        """Insert one message.

        Raises:
            DuplicateKeyError: a message with the same ``_id`` exists.
        """
        row = message_to_persisted(message)
        if row is None:
            raise TranscodeError("message is required")
        table = await self._registry.ensure_table(conversation_id)
        with translate_errors(f"add message {row['_id']} to {table.name}"):
            async with self._engine.begin() as conn:
                await conn.execute(insert(table).values(**row))

    async def update(
        self,
        conversation_id: int,
        message_id: str | int,
        patch: Message | Mapping[str, Any],
    ) -> int:
        """Patch a known message by ``_id``. Returns the number of rows changed.

        The table is not created here: updates only target messages that were
        stored earlier. A Message patch contributes only the fields it was
        built with, and the message id is never rewritten.
        """
        if isinstance(patch, Message):
            patch = patch.model_dump(by_alias=True, exclude_unset=True)
        values = message_patch_to_persisted(patch)
        values.pop("_id", None)
        if not values:
            return 0
        table = self._registry.table_for(conversation_id)
        with translate_errors(f"update message {message_id} in {table.name}"):
            async with self._engine.begin() as conn:
                result = await conn.execute(
                    update(table).where(table.c["_id"] == str(message_id)).values(**values)
                )
        return result.rowcount

    async def get(self, conversation_id: int, message_id: str | int) -> Message | None:
        table = await self._registry.ensure_table(conversation_id)
        with translate_errors(f"get message {message_id} from {table.name}"):
            async with self._engine.connect() as conn:
                result = await conn.execute(select(table).where(table.c["_id"] == str(message_id)))
                row = result.mappings().first()
        return message_from_persisted(row)

    async def fetch_page(self, conversation_id: int, skip: int, limit: int) -> list[Message]:
        """Return one page of history in chronological order.

        ``skip=0`` selects the ``limit`` most recent messages; larger offsets
        walk further back. Within the page the oldest message comes first.
        """
        table = await self._registry.ensure_table(conversation_id)
        with translate_errors(f"fetch messages from {table.name}"):
            async with self._engine.connect() as conn:
                result = await conn.execute(
                    select(table).order_by(table.c.time.desc()).limit(limit).offset(skip)
                )
                rows = result.mappings().all()
        messages: list[Message] = []
        for row in reversed(rows):
            try:
                message = message_from_persisted(row)
            except TranscodeError as exc:
                logger.warning("Skipping unreadable message in %s: %s", table.name, exc)
                continue
            if message is not None:
                messages.append(message)
        return messages

    async def add_many(self, conversation_id: int, messages: Sequence[Message | Mapping[str, Any]]) -> None:
        """Bulk insert history. Messages whose ``_id`` is already stored are skipped.

        Messages that fail to transcode are logged and left out. Rows go out in
        batches of BATCH_SIZE, issued concurrently.
        """
        table = await self._registry.ensure_table(conversation_id)
        rows: list[dict[str, Any]] = []
        for message in messages:
            try:
                row = message_to_persisted(message)
            except TranscodeError as exc:
                logger.warning("Skipping unwritable message %s for %s: %s", _message_id(message), table.name, exc)
                continue
            if row is not None:
                rows.append(row)
        if not rows:
            return
        await asyncio.gather(*(self._insert_batch(table, batch) for batch in _chunks(rows, BATCH_SIZE)))
        logger.debug("Stored %d messages in %s", len(rows), table.name)

    async def _insert_batch(self, table: Table, batch: Sequence[dict[str, Any]]) -> None:
        with translate_errors(f"add messages to {table.name}"):
            async with self._engine.begin() as conn:
                await conn.execute(insert_ignore(conn.dialect.name, table), list(batch))


__all__ = ["BATCH_SIZE", "MessageRepository"]
