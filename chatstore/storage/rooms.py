"""Room repository: CRUD and unread aggregates over the ``rooms`` table."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from chatstore.errors import TranscodeError
from chatstore.lib.log import get_logger
from chatstore.models import Room
from chatstore.storage.base import translate_errors
from chatstore.storage.registry import ConversationTableRegistry
from chatstore.storage.schema import StorageTables
from chatstore.storage.transcode import room_from_persisted, room_patch_to_persisted, room_to_persisted

logger = get_logger(__name__)


class RoomRepository:
    def __init__(
        self,
        engine: AsyncEngine,
        tables: StorageTables,
        registry: ConversationTableRegistry,
    ) -> None:
        self._engine = engine
        self._rooms = tables.rooms
        self._registry = registry

    async def add(self, room: Room | Mapping[str, Any]) -> None:
        """Insert a room, creating its message table first.

        Raises:
            DuplicateKeyError: a room with the same id exists.
        """
        row = room_to_persisted(room)
        if row is None:
            raise TranscodeError("room is required")
        await self._registry.ensure_table(int(row["roomId"]))
        with translate_errors(f"add room {row['roomId']}"):
            async with self._engine.begin() as conn:
                await conn.execute(insert(self._rooms).values(**row))

    async def update(self, room_id: int, patch: Room | Mapping[str, Any]) -> int:
        """Patch the named fields of a room. Returns the number of rows changed.

        A Room patch contributes only the fields it was built with. The room id
        is never rewritten.
        """
        if isinstance(patch, Room):
            patch = patch.model_dump(by_alias=True, exclude_unset=True)
        values = room_patch_to_persisted(patch)
        values.pop("roomId", None)
        if not values:
            return 0
        with translate_errors(f"update room {room_id}"):
            async with self._engine.begin() as conn:
                result = await conn.execute(
                    update(self._rooms).where(self._rooms.c.roomId == str(room_id)).values(**values)
                )
        return result.rowcount

    async def remove(self, room_id: int) -> None:
        """Delete a room. Its message table is kept."""
        with translate_errors(f"remove room {room_id}"):
            async with self._engine.begin() as conn:
                await conn.execute(delete(self._rooms).where(self._rooms.c.roomId == str(room_id)))

    async def get_all(self) -> list[Room]:
        """Return every room, most recent activity first.

        Rows that fail to transcode are logged and left out.
        """
        with translate_errors("get all rooms"):
            async with self._engine.connect() as conn:
                result = await conn.execute(select(self._rooms).order_by(self._rooms.c.utime.desc()))
                rows = result.mappings().all()
        return _transcode_rows(rows)

    async def get(self, room_id: int) -> Room | None:
        with translate_errors(f"get room {room_id}"):
            async with self._engine.connect() as conn:
                result = await conn.execute(select(self._rooms).where(self._rooms.c.roomId == str(room_id)))
                row = result.mappings().first()
        return room_from_persisted(row)

    async def count_unread(self, min_priority: int) -> int:
        """Count rooms with unread messages at or above a notification priority."""
        rooms = self._rooms
        with translate_errors("count unread rooms"):
            async with self._engine.connect() as conn:
                result = await conn.execute(
                    select(func.count(rooms.c.roomId))
                    .where(rooms.c.unreadCount > 0)
                    .where(rooms.c.priority >= min_priority)
                )
                count = result.scalar_one()
        return int(count)

    async def first_unread(self, priority: int) -> Room | None:
        """Return the most recently active unread room with exactly this priority."""
        rooms = self._rooms
        with translate_errors("get first unread room"):
            async with self._engine.connect() as conn:
                result = await conn.execute(
                    select(rooms)
                    .where(rooms.c.unreadCount > 0)
                    .where(rooms.c.priority == priority)
                    .order_by(rooms.c.utime.desc())
                    .limit(1)
                )
                row = result.mappings().first()
        return room_from_persisted(row)


def _transcode_rows(rows: list[Any]) -> list[Room]:
    out: list[Room] = []
    for row in rows:
        try:
            room = room_from_persisted(row)
        except TranscodeError as exc:
            logger.warning("Skipping unreadable room row: %s", exc)
            continue
        if room is not None:
            out.append(room)
    return out


__all__ = ["RoomRepository"]
