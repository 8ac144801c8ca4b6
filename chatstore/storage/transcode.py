"""Record transcoder: canonical models <-> flat persisted rows.

Persisted rows keep nested values (participants, embedded messages,
attachments, mention lists, extension payloads) as JSON text and identifiers
as strings. Some drivers hand big integers back as strings, so reads coerce
identifiers and timestamps back to ``int``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from chatstore.errors import TranscodeError
from chatstore.lib.json import JSONDecodeError
from chatstore.lib.json import dumps as json_dumps
from chatstore.lib.json import loads as json_loads
from chatstore.models import IgnoredChat, Message, Room

ROOM_JSON_FIELDS = ("users", "lastMessage", "at")
MESSAGE_JSON_FIELDS = ("file", "replyMessage", "at", "mirai")


def _json_or_none(value: Any, *, field: str = "") -> str | None:
    if value is None:
        return None
    try:
        return json_dumps(value)
    except TypeError as exc:
        raise TranscodeError(f"Cannot serialize {field}: {exc}") from exc


def _parse_json(raw: Any, *, field: str, record_id: Any) -> Any:
    """Parse a JSON column with diagnostic context on failure."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        return json_loads(raw)
    except JSONDecodeError as exc:
        raise TranscodeError(
            f"Corrupt JSON in {field} for {record_id}: {exc} (value starts: {str(raw)[:80]!r})"
        ) from exc


def _to_int(value: Any, *, field: str, record_id: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise TranscodeError(f"Non-numeric {field} for {record_id}: {value!r}") from exc


def _validate(model: type[BaseModel], data: Mapping[str, Any], record_id: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise TranscodeError(f"Invalid {model.__name__} {record_id}: {exc}") from exc


def _coerce(model: type[BaseModel], record: Any) -> Any:
    if isinstance(record, model):
        return record
    if isinstance(record, Mapping):
        return _validate(model, record, record.get("_id", record.get("roomId", record.get("id"))))
    raise TranscodeError(f"Cannot transcode {type(record).__name__} as {model.__name__}")


def _column_names(model: type[BaseModel]) -> dict[str, str]:
    """Map both the field name and its alias to the column name."""
    names: dict[str, str] = {}
    for field_name, info in model.model_fields.items():
        column = info.alias or field_name
        names[field_name] = column
        names[column] = column
    return names


_ROOM_COLUMNS = _column_names(Room)
_MESSAGE_COLUMNS = _column_names(Message)


def _patch_columns(
    model: type[BaseModel],
    patch: Mapping[str, Any],
    columns: Mapping[str, str],
    required: Mapping[str, Any],
) -> dict[str, Any]:
    """Validate the patched fields against the model and return them by column.

    Fields the patch leaves out are filled from ``required`` only so the
    model validates; they are not part of the result.
    """
    kind = model.__name__.lower()
    out: dict[str, Any] = {}
    for key, value in patch.items():
        column = columns.get(key)
        if column is None:
            raise TranscodeError(f"Unknown {kind} field {key!r}")
        out[column] = value
    record = _validate(model, {**required, **out}, f"{kind} patch")
    dumped = record.to_dict()
    return {column: dumped[column] for column in out}


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------


def room_to_persisted(room: Room | Mapping[str, Any] | None) -> dict[str, Any] | None:
    if room is None:
        return None
    row = _coerce(Room, room).to_dict()
    row["roomId"] = str(row["roomId"])
    for field in ROOM_JSON_FIELDS:
        row[field] = _json_or_none(row[field], field=field)
    return row


def room_patch_to_persisted(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Transcode only the fields present in a partial room update."""
    row = _patch_columns(Room, patch, _ROOM_COLUMNS, {"roomId": 0})
    if row.get("roomId") is not None:
        row["roomId"] = str(row["roomId"])
    for field in ROOM_JSON_FIELDS:
        if field in row:
            row[field] = _json_or_none(row[field], field=field)
    return row


def room_from_persisted(row: Mapping[str, Any] | None) -> Room | None:
    if row is None:
        return None
    data = dict(row)
    record_id = data.get("roomId")
    data["roomId"] = _to_int(record_id, field="roomId", record_id=record_id)
    data["utime"] = _to_int(data.get("utime"), field="utime", record_id=record_id) or 0
    for field in ROOM_JSON_FIELDS:
        data[field] = _parse_json(data.get(field), field=field, record_id=record_id)
    if data["users"] is None:
        data["users"] = []
    if data["lastMessage"] is None:
        data["lastMessage"] = {}
    if not data.get("downloadPath"):
        data["downloadPath"] = ""
    # Columns left NULL by older schema versions fall back to model defaults
    for column in ("roomName", "avatar", "index", "unreadCount", "priority"):
        if data.get(column) is None:
            data.pop(column, None)
    return _validate(Room, data, record_id)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def message_to_persisted(message: Message | Mapping[str, Any] | None) -> dict[str, Any] | None:
    if message is None:
        return None
    row = _coerce(Message, message).to_dict()
    row["_id"] = str(row["_id"])
    row["senderId"] = str(row["senderId"])
    for field in MESSAGE_JSON_FIELDS:
        row[field] = _json_or_none(row[field], field=field)
    return row


def message_patch_to_persisted(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Transcode only the fields present in a partial message update."""
    row = _patch_columns(Message, patch, _MESSAGE_COLUMNS, {"_id": "patch"})
    for field in ("_id", "senderId"):
        if row.get(field) is not None:
            row[field] = str(row[field])
    for field in MESSAGE_JSON_FIELDS:
        if field in row:
            row[field] = _json_or_none(row[field], field=field)
    return row


def message_from_persisted(row: Mapping[str, Any] | None) -> Message | None:
    if row is None:
        return None
    data = dict(row)
    record_id = data.get("_id")
    data["senderId"] = _to_int(data.get("senderId"), field="senderId", record_id=record_id) or 0
    data["time"] = _to_int(data.get("time"), field="time", record_id=record_id) or 0
    for field in MESSAGE_JSON_FIELDS:
        data[field] = _parse_json(data.get(field), field=field, record_id=record_id)
    for column in ("username", "timestamp", "date", "role"):
        if data.get(column) is None:
            data.pop(column, None)
    return _validate(Message, data, record_id)


# ---------------------------------------------------------------------------
# Ignored chats
# ---------------------------------------------------------------------------


def ignored_chat_to_persisted(info: IgnoredChat | Mapping[str, Any] | None) -> dict[str, Any] | None:
    if info is None:
        return None
    return _coerce(IgnoredChat, info).to_dict()


def ignored_chat_from_persisted(row: Mapping[str, Any] | None) -> IgnoredChat | None:
    if row is None:
        return None
    data = dict(row)
    record_id = data.get("id")
    data["id"] = _to_int(record_id, field="id", record_id=record_id)
    if data.get("name") is None:
        data["name"] = ""
    return _validate(IgnoredChat, data, record_id)


__all__ = [
    "ignored_chat_from_persisted",
    "ignored_chat_to_persisted",
    "message_from_persisted",
    "message_patch_to_persisted",
    "message_to_persisted",
    "room_from_persisted",
    "room_patch_to_persisted",
    "room_to_persisted",
]
