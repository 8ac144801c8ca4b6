"""Canonical in-memory records.

Field names are snake_case; each field's alias is the camelCase column name
used by the chat client and by the database, so ``model_dump(by_alias=True)``
yields the persisted column set. Either spelling is accepted on construction.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

TITLE_MAX_LENGTH = 24


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """Return the record keyed by its camelCase column names."""
        return self.model_dump(by_alias=True)


class Room(_Record):
    room_id: int = Field(alias="roomId")
    room_name: str = Field("", alias="roomName")
    avatar: str = ""
    index: int = 0
    unread_count: int = Field(0, alias="unreadCount", ge=0)
    priority: int = 0
    utime: int = 0
    users: list[Any] = Field(default_factory=list)
    last_message: dict[str, Any] = Field(default_factory=dict, alias="lastMessage")
    at: list[Any] | None = None
    auto_download: bool | None = Field(None, alias="autoDownload")
    download_path: str = Field("", alias="downloadPath")

    @field_validator("download_path", mode="before")
    @classmethod
    def absent_path_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def is_group(self) -> bool:
        return self.room_id < 0


class Message(_Record):
    id: str = Field(alias="_id")
    sender_id: int = Field(0, alias="senderId")
    username: str = ""
    content: str | None = None
    code: str | None = None
    timestamp: str = ""
    date: str = ""
    role: str = ""
    file: dict[str, Any] | None = None
    time: int = 0
    reply_message: dict[str, Any] | None = Field(None, alias="replyMessage")
    at: list[Any] | None = None
    deleted: bool | None = None
    system: bool | None = None
    reveal: bool | None = None
    flash: bool | None = None
    mirai: dict[str, Any] | None = None
    title: str | None = Field(None, max_length=TITLE_MAX_LENGTH)

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> Any:
        # Protocol message ids arrive as ints for some message kinds
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("id")
    @classmethod
    def non_empty_id(cls, v: str) -> str:
        if not v:
            raise ValueError("_id cannot be empty")
        return v


class IgnoredChat(_Record):
    id: int
    name: str = ""


__all__ = ["IgnoredChat", "Message", "Room", "TITLE_MAX_LENGTH"]
