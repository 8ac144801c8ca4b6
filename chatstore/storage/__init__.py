"""SQL persistence for rooms, messages and the ignore-list.

The storage layer is split into small pieces that the provider wires
together:

- dialects: builds the AsyncEngine for sqlite3, mysql or pg
- schema: fixed tables plus the per-conversation message table factory
- transcode: canonical models <-> flat persisted rows
- migrations: forward-only schema upgrades gated by ``dbVersion``
- registry: lazy per-conversation message tables
- rooms / ignored / messages: repositories
- provider: SQLStorageProvider, the facade used by the client
"""

from __future__ import annotations

from chatstore.storage.provider import SQLStorageProvider
from chatstore.storage.schema import SCHEMA_VERSION

__all__ = [
    "SCHEMA_VERSION",
    "SQLStorageProvider",
]
