from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None or parsed.tzinfo.utcoffset(parsed) is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _validate_iso(value: str) -> str:
    try:
        parse_timestamp(value)
    except ValueError as exc:
        raise ValueError(f"timestamp must be ISO-8601, got {value!r}") from exc
    return value


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str
    content: str


class CallRequestRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    messages: list[ChatMessage] = Field(default_factory=list)
    options: dict[str, Any] | None = None
    timestamp: str = Field(default_factory=utc_now_iso)

    @field_validator("timestamp")
    @classmethod
    def _ensure_iso(cls, value: str) -> str:
        return _validate_iso(value)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class CallResponseRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str | None
    provider: str
    model: str
    timestamp: str = Field(default_factory=utc_now_iso)
    duration_ms: int | None = None
    truncated: bool | None = None
    error: str | None = None

    @field_validator("timestamp")
    @classmethod
    def _ensure_iso(cls, value: str) -> str:
        return _validate_iso(value)

    def to_json_dict(self) -> dict[str, Any]:
        # Optional flags are only serialized when set; content stays even when null.
        unset = {name for name in ("truncated", "error") if getattr(self, name) is None}
        return self.model_dump(mode="json", exclude=unset)


class RecordMetadata(BaseModel):
    """Header fields written at the top of every call record."""

    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    timestamp: str
    timestamp_local: str
    timestamp_utc: str
    duration_ms: int | None = None
    truncated: bool | None = None
    redacted: bool = False
    error: bool = False
    size_bytes: int | None = None

    def header_lines(self) -> list[str]:
        lines = [
            f"provider: {self.provider}",
            f"model: {self.model}",
            f"timestamp: {self.timestamp}",
            f"timestamp_local: {self.timestamp_local}",
            f"timestamp_utc: {self.timestamp_utc}",
            f"duration_ms: {'' if self.duration_ms is None else self.duration_ms}",
        ]
        if self.truncated is not None:
            lines.append(f"truncated: {str(self.truncated).lower()}")
        lines.append(f"redacted: {str(self.redacted).lower()}")
        if self.error:
            lines.append("error: true")
        if self.size_bytes is not None:
            lines.append(f"size_bytes: {self.size_bytes}")
        return lines


__all__ = [
    "CallRequestRecord",
    "CallResponseRecord",
    "ChatMessage",
    "RecordMetadata",
    "parse_timestamp",
    "utc_now_iso",
]
