"""One immutable text file per request/response exchange.

Layout of a record::

    ---
    provider: openai
    model: gpt-4.1
    timestamp: 2025-08-29T10:15:02.120Z
    ...
    size_bytes: 1234
    ---

    # AI Call

    ## Request

    ```json
    {...}
    ```

    ## Response

    ```json
    {...}
    ```

The fence grows (or switches to tildes) whenever the serialized JSON
already contains it, so both blocks can always be cut back out verbatim.
"""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from calltrail.models.records import (
    CallRequestRecord,
    CallResponseRecord,
    RecordMetadata,
    parse_timestamp,
)
from calltrail.protocols.storage import FileWriter
from calltrail.redaction import SecretRedactor
from calltrail.storage.atomic import AtomicWriter
from calltrail.storage.naming import sanitize_segment

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "ai-call"
RECORD_EXTENSION = ".txt"
HEADER_DELIMITER = "---"

_FENCE_CHARS = ("`", "~")
_MIN_FENCE = 3
_MAX_FENCE = 8
_MAX_NAME_ATTEMPTS = 5
_FENCED_JSON = re.compile(
    r"^(?P<fence>`{3,}|~{3,})json\n(?P<body>.*?)\n(?P=fence)$",
    re.MULTILINE | re.DOTALL,
)


class RecordFormatError(ValueError):
    """Raised when a file does not parse as a call record."""


@dataclass(frozen=True, slots=True)
class RecordResult:
    file_path: Path | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.file_path is not None and self.error is None


@dataclass(frozen=True, slots=True)
class ParsedCallRecord:
    header: dict[str, str]
    request: CallRequestRecord
    response: CallResponseRecord


def choose_fence(*blocks: str) -> str:
    for char in _FENCE_CHARS:
        for length in range(_MIN_FENCE, _MAX_FENCE + 1):
            fence = char * length
            if all(fence not in block for block in blocks):
                return fence
    return _FENCE_CHARS[-1] * (_MAX_FENCE + 1)


def format_utc_stamp(moment: datetime) -> str:
    return moment.astimezone(UTC).strftime("%Y%m%d-%H%M%S")


def format_local_with_offset(moment: datetime) -> str:
    """``2025-08-19 13:58:57 +02:00`` in the machine's local timezone."""
    local = moment.astimezone()
    offset = local.strftime("%z")
    return f"{local.strftime('%Y-%m-%d %H:%M:%S')} {offset[:3]}:{offset[3:]}"


def _single_line(value: str) -> str:
    return " ".join(value.splitlines())


def _ensure_lf(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


class CallRecorder:
    """Persist one exchange per file under a destination directory.

    Recording never raises: write failures and unexpected errors are logged
    and returned as ``RecordResult.error`` so the calling request path is
    unaffected.  Names stay unique within a process through a per-millisecond
    sequence, and across processes through a random suffix plus an
    existence check.
    """

    def __init__(
        self,
        writer: FileWriter | None = None,
        prefix: str = DEFAULT_PREFIX,
        max_segment_length: int = 32,
        redactor: SecretRedactor | None = None,
        ms_clock: Callable[[], int] | None = None,
    ) -> None:
        self._writer = writer or AtomicWriter()
        self._prefix = sanitize_segment(prefix, max_length=0)
        self._max_segment_length = max_segment_length
        self._redactor = redactor or SecretRedactor()
        self._ms_clock = ms_clock or _epoch_ms
        self._last_ms: int | None = None
        self._sequence = 0

    @property
    def prefix(self) -> str:
        return self._prefix

    def record(
        self,
        destination_dir: str | Path,
        provider: str,
        model: str,
        request: CallRequestRecord,
        response: CallResponseRecord,
        redacted: bool = False,
    ) -> RecordResult:
        """Write one call record; failures come back as ``RecordResult.error``."""
        try:
            started = parse_timestamp(request.timestamp)
            path = self._unique_path(Path(destination_dir), started, provider, model)
            body = self.render(provider, model, request, response, redacted=redacted)
            result = self._writer.write(path, body)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to record call for %s/%s", provider, model)
            return RecordResult(error=str(exc) or type(exc).__name__)

        if not result.ok:
            logger.error("Call record not written to %s: %s", path, result.error)
            return RecordResult(error=result.error or "write failed")
        logger.debug("Recorded call %s", path.name)
        return RecordResult(file_path=path)

    def record_exchange(
        self,
        destination_dir: str | Path,
        request: CallRequestRecord,
        response: CallResponseRecord,
        extra_secrets: Iterable[str] = (),
    ) -> RecordResult:
        """Redact the exchange, then record it under the request's provider/model."""
        secrets = tuple(extra_secrets)
        try:
            messages, messages_redacted = self._redactor.redact_messages(request.messages, secrets)
            options, options_redacted = self._redact_value(request.options, secrets)
            content, content_redacted = self._redact_value(response.content, secrets)
            error, error_redacted = self._redact_value(response.error, secrets)
            safe_request = request.model_copy(update={"messages": messages, "options": options})
            safe_response = response.model_copy(update={"content": content, "error": error})
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to redact call for %s/%s", request.provider, request.model)
            return RecordResult(error=str(exc) or type(exc).__name__)

        redacted = messages_redacted or options_redacted or content_redacted or error_redacted
        return self.record(
            destination_dir,
            request.provider,
            request.model,
            safe_request,
            safe_response,
            redacted=redacted,
        )

    def build_filename(self, started: datetime, provider: str, model: str) -> str:
        """``<prefix>-<UTC stamp>-<provider>-<model>-<token>.txt``; each call draws a new token."""
        provider_safe = sanitize_segment(provider, self._max_segment_length)
        model_safe = sanitize_segment(model, self._max_segment_length)
        return (
            f"{self._prefix}-{format_utc_stamp(started)}-{provider_safe}-{model_safe}-"
            f"{self._next_token()}{RECORD_EXTENSION}"
        )

    def render(
        self,
        provider: str,
        model: str,
        request: CallRequestRecord,
        response: CallResponseRecord,
        redacted: bool = False,
    ) -> str:
        """Full record text with LF line endings and a fence neither JSON block contains."""
        request_json = json.dumps(request.to_json_dict(), indent=2, ensure_ascii=False)
        response_json = json.dumps(response.to_json_dict(), indent=2, ensure_ascii=False)
        fence = choose_fence(request_json, response_json)
        started = parse_timestamp(request.timestamp)
        metadata = RecordMetadata(
            provider=_single_line(provider),
            model=_single_line(model),
            timestamp=request.timestamp,
            timestamp_local=format_local_with_offset(started),
            timestamp_utc=started.astimezone(UTC).isoformat(),
            duration_ms=response.duration_ms,
            truncated=response.truncated,
            redacted=redacted,
            error=response.error is not None,
        )

        # size_bytes is the UTF-8 length of the body rendered without its own line.
        draft = _render_body(metadata, fence, request_json, response_json)
        size = len(draft.encode("utf-8"))
        return _render_body(
            metadata.model_copy(update={"size_bytes": size}),
            fence,
            request_json,
            response_json,
        )

    def _unique_path(self, destination: Path, started: datetime, provider: str, model: str) -> Path:
        path = destination / self.build_filename(started, provider, model)
        attempts = 1
        while path.exists() and attempts < _MAX_NAME_ATTEMPTS:
            path = destination / self.build_filename(started, provider, model)
            attempts += 1
        return path

    def _next_token(self) -> str:
        now_ms = self._ms_clock()
        if now_ms == self._last_ms:
            self._sequence += 1
        else:
            self._last_ms = now_ms
            self._sequence = 0
        return f"{now_ms:x}{self._sequence:02x}{uuid.uuid4().hex[:4]}"

    def _redact_value(self, value: Any, secrets: tuple[str, ...]) -> tuple[Any, bool]:
        if isinstance(value, str):
            return self._redactor.redact(value, secrets)
        if isinstance(value, dict):
            redacted = False
            cleaned: dict[str, Any] = {}
            for key, item in value.items():
                cleaned[key], item_redacted = self._redact_value(item, secrets)
                redacted = redacted or item_redacted
            return cleaned, redacted
        if isinstance(value, list):
            redacted = False
            items: list[Any] = []
            for item in value:
                cleaned_item, item_redacted = self._redact_value(item, secrets)
                items.append(cleaned_item)
                redacted = redacted or item_redacted
            return items, redacted
        return value, False


def _render_body(metadata: RecordMetadata, fence: str, request_json: str, response_json: str) -> str:
    parts = [
        HEADER_DELIMITER,
        *metadata.header_lines(),
        HEADER_DELIMITER,
        "",
        "# AI Call",
        "",
        "## Request",
        "",
        f"{fence}json",
        request_json,
        fence,
        "",
        "## Response",
        "",
        f"{fence}json",
        response_json,
        fence,
        "",
    ]
    return _ensure_lf("\n".join(parts))


def read_call_record(path: str | Path) -> ParsedCallRecord:
    """Parse a record back into its header and models; raises ``RecordFormatError``."""
    text = Path(path).read_text(encoding="utf-8")
    lines = text.split("\n")
    if not lines or lines[0] != HEADER_DELIMITER:
        raise RecordFormatError(f"{path}: missing header delimiter")
    try:
        header_end = lines.index(HEADER_DELIMITER, 1)
    except ValueError as exc:
        raise RecordFormatError(f"{path}: unterminated header") from exc

    header: dict[str, str] = {}
    for line in lines[1:header_end]:
        key, sep, value = line.partition(":")
        if not sep:
            raise RecordFormatError(f"{path}: malformed header line {line!r}")
        header[key.strip()] = value.strip()

    body = "\n".join(lines[header_end + 1 :])
    blocks = [match.group("body") for match in _FENCED_JSON.finditer(body)]
    if len(blocks) != 2:
        raise RecordFormatError(f"{path}: expected 2 fenced JSON blocks, found {len(blocks)}")
    try:
        request = CallRequestRecord.model_validate(json.loads(blocks[0]))
        response = CallResponseRecord.model_validate(json.loads(blocks[1]))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise RecordFormatError(f"{path}: invalid JSON block: {exc}") from exc
    return ParsedCallRecord(header=header, request=request, response=response)


__all__ = [
    "CallRecorder",
    "ParsedCallRecord",
    "RecordFormatError",
    "RecordResult",
    "choose_fence",
    "read_call_record",
]
