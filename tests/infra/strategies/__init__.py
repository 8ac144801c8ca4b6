"""Hypothesis strategies for chatstore records."""

from tests.infra.strategies.records import (
    ignored_chat_strategy,
    json_value_strategy,
    message_strategy,
    room_strategy,
)

__all__ = [
    "ignored_chat_strategy",
    "json_value_strategy",
    "message_strategy",
    "room_strategy",
]
