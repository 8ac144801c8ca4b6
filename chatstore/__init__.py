"""chatstore: SQL persistence for a chat client's rooms, messages and ignore-list."""

from __future__ import annotations

from chatstore.errors import (
    ChatStoreError,
    DatabaseConnectionError,
    DuplicateKeyError,
    MigrationError,
    TranscodeError,
)
from chatstore.models import IgnoredChat, Message, Room
from chatstore.storage import SCHEMA_VERSION, SQLStorageProvider
from chatstore.types import BackendKind

__version__ = "0.1.0"

__all__ = [
    "BackendKind",
    "ChatStoreError",
    "DatabaseConnectionError",
    "DuplicateKeyError",
    "IgnoredChat",
    "Message",
    "MigrationError",
    "Room",
    "SCHEMA_VERSION",
    "SQLStorageProvider",
    "TranscodeError",
]
