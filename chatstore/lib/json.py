"""Central JSON utilities using orjson.

Nested record fields are stored as JSON text. orjson emits compact UTF-8
without escaping non-ASCII characters, which keeps stored nicknames and
message bodies readable in the database.
"""

from __future__ import annotations

from typing import Any

import orjson

# orjson raises a ValueError subclass on malformed input
JSONDecodeError = ValueError


def dumps(obj: Any) -> str:
    """Dump object to JSON string.

    Raises TypeError for values orjson cannot serialize.
    """
    return orjson.dumps(obj).decode("utf-8")


def loads(obj: str | bytes) -> Any:
    """Load object from JSON string or bytes."""
    return orjson.loads(obj)
