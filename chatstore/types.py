"""Enums for chatstore."""
from __future__ import annotations

from enum import Enum


class BackendKind(str, Enum):
    """Supported relational backends."""
    SQLITE = "sqlite3"
    MYSQL = "mysql"
    POSTGRES = "pg"

    @classmethod
    def from_string(cls, value: str | BackendKind) -> BackendKind:
        """Normalize a backend name, accepting a few common aliases.

        Raises ValueError for unknown names.
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).lower().strip()
        if normalized in ("sqlite", "sqlite3"):
            return cls.SQLITE
        if normalized in ("mysql", "mariadb"):
            return cls.MYSQL
        if normalized in ("pg", "postgres", "postgresql"):
            return cls.POSTGRES
        return cls(normalized)

    @property
    def is_embedded(self) -> bool:
        return self is BackendKind.SQLITE

    def __str__(self) -> str:
        return self.value
