from __future__ import annotations

from calltrail.models.records import (
    CallRequestRecord,
    CallResponseRecord,
    ChatMessage,
    RecordMetadata,
    parse_timestamp,
    utc_now_iso,
)

__all__ = [
    "CallRequestRecord",
    "CallResponseRecord",
    "ChatMessage",
    "RecordMetadata",
    "parse_timestamp",
    "utc_now_iso",
]
