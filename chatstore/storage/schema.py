"""Table definitions: the fixed tables and the per-conversation message table."""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

from chatstore.models import TITLE_MAX_LENGTH

SCHEMA_VERSION = 5

VERSION_TABLE = "dbVersion"
REGISTRY_TABLE = "msgTableName"
ROOMS_TABLE = "rooms"
IGNORED_TABLE = "ignoredChats"
MESSAGE_TABLE_PREFIX = "msg"

# MySQL needs an explicit VARCHAR length
STRING_LENGTH = 255


def _string(name: str, **kwargs: object) -> Column:
    return Column(name, String(STRING_LENGTH), **kwargs)


def message_table_name(conversation_id: int) -> str:
    """Return the message table name for a conversation.

    The sign is kept so that direct chat ``114514`` and group ``-114514``
    map to ``msg114514`` and ``msg-114514``.
    """
    if isinstance(conversation_id, bool) or not isinstance(conversation_id, int):
        raise ValueError(f"conversation id must be an integer, got {conversation_id!r}")
    return f"{MESSAGE_TABLE_PREFIX}{conversation_id}"


class StorageTables:
    """The table set for one database, optionally scoped to a schema."""

    def __init__(self, schema: str | None = None) -> None:
        self.schema = schema
        self.metadata = MetaData(schema=schema)

        self.version = Table(
            VERSION_TABLE,
            self.metadata,
            Column("dbVersion", Integer, primary_key=True, autoincrement=False),
        )
        self.registry = Table(
            REGISTRY_TABLE,
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            _string("tableName"),
        )
        self.rooms = Table(
            ROOMS_TABLE,
            self.metadata,
            _string("roomId", primary_key=True, unique=True, index=True),
            _string("roomName"),
            _string("avatar"),
            Column("index", Integer),
            Column("unreadCount", Integer),
            Column("priority", Integer),
            Column("utime", BigInteger, index=True),
            Column("users", Text),
            Column("lastMessage", Text),
            _string("at", nullable=True),
            Column("autoDownload", Boolean, nullable=True),
            _string("downloadPath", nullable=True),
        )
        self.ignored_chats = Table(
            IGNORED_TABLE,
            self.metadata,
            Column("id", BigInteger, primary_key=True, unique=True, index=True, autoincrement=False),
            _string("name"),
        )

    @property
    def fixed(self) -> list[Table]:
        return [self.version, self.registry, self.rooms, self.ignored_chats]

    def message_table(self, name: str) -> Table:
        """Return the Table handle for a message table, defining it on first use."""
        key = f"{self.schema}.{name}" if self.schema else name
        existing = self.metadata.tables.get(key)
        if existing is not None:
            return existing
        return Table(
            name,
            self.metadata,
            _string("_id", primary_key=True, unique=True, index=True),
            _string("senderId"),
            _string("username"),
            Column("content", Text, nullable=True),
            Column("code", Text, nullable=True),
            _string("timestamp"),
            _string("date"),
            _string("role"),
            Column("file", Text, nullable=True),
            Column("time", BigInteger),
            Column("replyMessage", Text, nullable=True),
            _string("at", nullable=True),
            Column("deleted", Boolean, nullable=True),
            Column("system", Boolean, nullable=True),
            Column("mirai", Text, nullable=True),
            Column("reveal", Boolean, nullable=True),
            Column("flash", Boolean, nullable=True),
            Column("title", String(TITLE_MAX_LENGTH), nullable=True),
        )


__all__ = [
    "IGNORED_TABLE",
    "MESSAGE_TABLE_PREFIX",
    "REGISTRY_TABLE",
    "ROOMS_TABLE",
    "SCHEMA_VERSION",
    "StorageTables",
    "VERSION_TABLE",
    "message_table_name",
]
