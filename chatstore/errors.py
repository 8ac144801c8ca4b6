"""chatstore error hierarchy.

All project exceptions inherit from ChatStoreError, so callers can guard a
whole storage instance with a single ``except ChatStoreError``.

Hierarchy:
    ChatStoreError
    ├── ConfigError
    ├── TranscodeError
    └── DatabaseError
        ├── DatabaseConnectionError
        ├── DuplicateKeyError
        ├── MigrationError
        └── StorageNotReadyError
"""

from __future__ import annotations


class ChatStoreError(Exception):
    """Base class for all chatstore errors."""


class ConfigError(ChatStoreError):
    """Configuration file or environment is missing or invalid."""


class TranscodeError(ChatStoreError):
    """A record could not be converted to or from its persisted form."""


class DatabaseError(ChatStoreError):
    """Base class for database errors."""


class DatabaseConnectionError(DatabaseError):
    """The database cannot be opened or reached, or its parameters are invalid."""


class DuplicateKeyError(DatabaseError):
    """An insert hit a unique constraint."""


class MigrationError(DatabaseError):
    """A schema upgrade step failed, or the stored version is unsupported."""


class StorageNotReadyError(DatabaseError):
    """The provider was used before a successful connect()."""


__all__ = [
    "ChatStoreError",
    "ConfigError",
    "DatabaseConnectionError",
    "DatabaseError",
    "DuplicateKeyError",
    "MigrationError",
    "StorageNotReadyError",
    "TranscodeError",
]
