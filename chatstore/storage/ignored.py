"""Ignore-list repository over the ``ignoredChats`` table."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncEngine

from chatstore.errors import TranscodeError
from chatstore.models import IgnoredChat
from chatstore.storage.base import translate_errors
from chatstore.storage.schema import StorageTables
from chatstore.storage.transcode import ignored_chat_from_persisted, ignored_chat_to_persisted


class IgnoreListRepository:
    def __init__(self, engine: AsyncEngine, tables: StorageTables) -> None:
        self._engine = engine
        self._ignored = tables.ignored_chats

    async def get_all(self) -> list[IgnoredChat]:
        with translate_errors("get ignored chats"):
            async with self._engine.connect() as conn:
                result = await conn.execute(select(self._ignored).order_by(self._ignored.c.id))
                rows = result.mappings().all()
        return [chat for chat in map(ignored_chat_from_persisted, rows) if chat is not None]

    async def is_ignored(self, chat_id: int) -> bool:
        with translate_errors(f"check ignored chat {chat_id}"):
            async with self._engine.connect() as conn:
                result = await conn.execute(
                    select(self._ignored.c.id).where(self._ignored.c.id == chat_id).limit(1)
                )
                return result.first() is not None

    async def add(self, info: IgnoredChat | Mapping[str, Any]) -> None:
        """Raises DuplicateKeyError if the chat is already ignored."""
        row = ignored_chat_to_persisted(info)
        if row is None:
            raise TranscodeError("ignored chat info is required")
        with translate_errors(f"add ignored chat {row['id']}"):
            async with self._engine.begin() as conn:
                await conn.execute(insert(self._ignored).values(**row))

    async def remove(self, chat_id: int) -> None:
        with translate_errors(f"remove ignored chat {chat_id}"):
            async with self._engine.begin() as conn:
                await conn.execute(delete(self._ignored).where(self._ignored.c.id == chat_id))


__all__ = ["IgnoreListRepository"]
