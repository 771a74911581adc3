"""Credential masking for text that is about to be persisted.

Pure functions only: the same input always yields the same output and
nothing touches disk or the network.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import NamedTuple

from calltrail.models.records import ChatMessage

REDACTED = "[REDACTED]"
REDACTED_KEY = "[REDACTED_KEY]"
REDACTED_TOKEN = "[REDACTED_TOKEN]"

_API_KEY_PATTERN = re.compile(r"sk-[A-Za-z0-9_-]{16,}")
_BEARER_PATTERN = re.compile(r"Bearer\s+[A-Za-z0-9._-]{20,}", re.IGNORECASE)
_OPAQUE_TOKEN_PATTERN = re.compile(r"[A-Za-z0-9+/=_-]{32,}")
_QUERY_SECRET_PATTERN = re.compile(
    r"([?&](?:api[_-]?key|key|token|secret)=)([^&#\s]+)",
    re.IGNORECASE,
)
_HAS_LETTER = re.compile(r"[A-Za-z]")
_HAS_DIGIT = re.compile(r"\d")


class RedactionResult(NamedTuple):
    text: str
    redacted: bool


class SecretRedactor:
    def __init__(self, extra_secrets: Iterable[str] = ()) -> None:
        self._extra_secrets = tuple(secret for secret in extra_secrets if secret)

    def redact(self, text: str | None, extra_secrets: Iterable[str] = ()) -> RedactionResult:
        out = "" if text is None else str(text)
        redacted = False

        secrets = {*self._extra_secrets, *(secret for secret in extra_secrets if secret)}
        for secret in sorted(secrets, key=len, reverse=True):
            if secret in out:
                out = out.replace(secret, REDACTED)
                redacted = True

        out, count = _API_KEY_PATTERN.subn(REDACTED_KEY, out)
        redacted = redacted or count > 0

        out, count = _BEARER_PATTERN.subn(f"Bearer {REDACTED_TOKEN}", out)
        redacted = redacted or count > 0

        masked = 0

        def _mask_opaque_run(match: re.Match[str]) -> str:
            nonlocal masked
            run = match.group(0)
            if not _looks_like_token(run):
                return run
            masked += 1
            return REDACTED_TOKEN

        out = _OPAQUE_TOKEN_PATTERN.sub(_mask_opaque_run, out)
        redacted = redacted or masked > 0

        out, count = _QUERY_SECRET_PATTERN.subn(lambda m: m.group(1) + REDACTED, out)
        redacted = redacted or count > 0

        return RedactionResult(text=out, redacted=redacted)

    def redact_messages(
        self,
        messages: Sequence[ChatMessage],
        extra_secrets: Iterable[str] = (),
    ) -> tuple[list[ChatMessage], bool]:
        secrets = tuple(extra_secrets)
        any_redacted = False
        result: list[ChatMessage] = []
        for message in messages:
            text, redacted = self.redact(message.content, secrets)
            any_redacted = any_redacted or redacted
            result.append(message if not redacted else message.model_copy(update={"content": text}))
        return result, any_redacted


def _looks_like_token(run: str) -> bool:
    # Long plain words and separator rules are not credentials.
    return bool(_HAS_LETTER.search(run) and _HAS_DIGIT.search(run))


_DEFAULT_REDACTOR = SecretRedactor()


def redact_text(text: str | None, extra_secrets: Iterable[str] = ()) -> RedactionResult:
    return _DEFAULT_REDACTOR.redact(text, extra_secrets)


def redact_messages(
    messages: Sequence[ChatMessage],
    extra_secrets: Iterable[str] = (),
) -> tuple[list[ChatMessage], bool]:
    return _DEFAULT_REDACTOR.redact_messages(messages, extra_secrets)


__all__ = [
    "REDACTED",
    "REDACTED_KEY",
    "REDACTED_TOKEN",
    "RedactionResult",
    "SecretRedactor",
    "redact_messages",
    "redact_text",
]
