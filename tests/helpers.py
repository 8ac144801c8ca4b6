"""Builders and setup helpers shared by the chatstore tests."""

from __future__ import annotations

import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from chatstore.models import Message, Room
from chatstore.storage import SQLStorageProvider
from chatstore.storage.dialects import sqlite_path

ACCOUNT_ID = "10001"


def make_room(room_id: int = 114514, **overrides: Any) -> Room:
    data: dict[str, Any] = {
        "roomId": room_id,
        "roomName": f"room {room_id}",
        "avatar": f"https://example.invalid/avatar/{abs(room_id)}",
        "index": 0,
        "unreadCount": 0,
        "priority": 1,
        "utime": 1000,
        "users": [[room_id, "someone"]],
        "lastMessage": {"content": "hi", "username": "someone", "timestamp": "12:00"},
        "at": [],
    }
    data.update(overrides)
    return Room.model_validate(data)


def make_message(message_id: str = "m1", time: int = 1000, **overrides: Any) -> Message:
    data: dict[str, Any] = {
        "_id": message_id,
        "senderId": 350000001,
        "username": "someone",
        "content": f"content of {message_id}",
        "timestamp": "12:00:00",
        "date": "2026/10/17",
        "role": "member",
        "time": time,
    }
    data.update(overrides)
    return Message.model_validate(data)


@asynccontextmanager
async def open_store(data_path: Path, account_id: str = ACCOUNT_ID, **kwargs: Any) -> AsyncIterator[SQLStorageProvider]:
    """Connected sqlite provider, closed on exit."""
    store = SQLStorageProvider(account_id, "sqlite3", {"dataPath": data_path}, **kwargs)
    await store.connect()
    try:
        yield store
    finally:
        await store.close()


def db_file(data_path: Path, account_id: str = ACCOUNT_ID) -> Path:
    return sqlite_path(data_path, account_id)


def raw_connection(data_path: Path, account_id: str = ACCOUNT_ID) -> sqlite3.Connection:
    """Plain sqlite3 connection to a provider's database file."""
    path = db_file(data_path, account_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    return conn


def table_names(data_path: Path, account_id: str = ACCOUNT_ID) -> set[str]:
    conn = raw_connection(data_path, account_id)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        return {row[0] for row in rows}
    finally:
        conn.close()


def column_names(data_path: Path, table: str, account_id: str = ACCOUNT_ID) -> set[str]:
    conn = raw_connection(data_path, account_id)
    try:
        return {row[1] for row in conn.execute(f'PRAGMA table_info("{table}")').fetchall()}
    finally:
        conn.close()


def registry_rows(data_path: Path, account_id: str = ACCOUNT_ID) -> list[str]:
    conn = raw_connection(data_path, account_id)
    try:
        return [row[0] for row in conn.execute('SELECT "tableName" FROM "msgTableName" ORDER BY id').fetchall()]
    finally:
        conn.close()


def stored_version(data_path: Path, account_id: str = ACCOUNT_ID) -> list[int]:
    conn = raw_connection(data_path, account_id)
    try:
        return [row[0] for row in conn.execute('SELECT "dbVersion" FROM "dbVersion"').fetchall()]
    finally:
        conn.close()


# Schema as it looked before any upgrade step ran
LEGACY_V0_DDL = """
CREATE TABLE "dbVersion" ("dbVersion" INTEGER NOT NULL, PRIMARY KEY ("dbVersion"));
INSERT INTO "dbVersion" VALUES (0);
CREATE TABLE rooms (
    "roomId" VARCHAR(255) NOT NULL PRIMARY KEY,
    "roomName" VARCHAR(255),
    avatar VARCHAR(255),
    "index" INTEGER,
    "unreadCount" INTEGER,
    priority INTEGER,
    utime BIGINT,
    users TEXT,
    "lastMessage" TEXT,
    at VARCHAR(255)
);
CREATE TABLE "ignoredChats" (id BIGINT NOT NULL PRIMARY KEY, name VARCHAR(255));
CREATE TABLE "msg-42" (
    "_id" VARCHAR(255) NOT NULL PRIMARY KEY,
    "senderId" VARCHAR(255),
    username VARCHAR(255),
    content TEXT,
    code TEXT,
    timestamp VARCHAR(255),
    date VARCHAR(255),
    role VARCHAR(255),
    file TEXT,
    time BIGINT,
    "replyMessage" TEXT,
    at VARCHAR(255),
    deleted BOOLEAN,
    system BOOLEAN
);
INSERT INTO "msg-42" ("_id", "senderId", username, content, timestamp, date, role, time)
VALUES ('old-1', '777', 'veteran', 'from an old release', '09:00', '2020/01/01', 'member', 1577840400);
INSERT INTO rooms ("roomId", "roomName", avatar, "index", "unreadCount", priority, utime, users, "lastMessage", at)
VALUES ('-42', 'old group', '', 0, 2, 5, 1577840400, NULL, NULL, '');
"""


def build_legacy_database(data_path: Path, version: int = 0, account_id: str = ACCOUNT_ID) -> Path:
    """Create a database file laid out like a v0 deployment, stamped with ``version``."""
    conn = raw_connection(data_path, account_id)
    try:
        conn.executescript(LEGACY_V0_DDL)
        conn.execute('UPDATE "dbVersion" SET "dbVersion" = ?', (version,))
        conn.commit()
    finally:
        conn.close()
    return db_file(data_path, account_id)
