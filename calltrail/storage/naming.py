from __future__ import annotations

import re
import time
from collections.abc import Callable, Container
from pathlib import PurePath

_UNSAFE_RUN = re.compile(r"[^a-z0-9]+")

DEFAULT_MAX_ATTEMPTS = 1000


def sanitize_segment(value: str, max_length: int = 32) -> str:
    """Lowercase ``value`` and collapse anything outside ``[a-z0-9]`` into ``-``."""
    cleaned = _UNSAFE_RUN.sub("-", value.lower()).strip("-")
    if max_length > 0:
        cleaned = cleaned[:max_length].rstrip("-")
    return cleaned or "unknown"


def unique_name(
    basename: str,
    existing: Container[str],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ms_clock: Callable[[], int] | None = None,
) -> str:
    """Return ``basename`` or ``<stem>_<n><suffix>`` not present in ``existing``.

    Falls back to a millisecond timestamp suffix once ``max_attempts`` numbered
    candidates are taken.
    """
    if basename not in existing:
        return basename
    path = PurePath(basename)
    stem, suffix = path.stem, path.suffix
    for counter in range(2, max_attempts):
        candidate = f"{stem}_{counter}{suffix}"
        if candidate not in existing:
            return candidate
    now_ms = ms_clock() if ms_clock is not None else time.time_ns() // 1_000_000
    return f"{stem}_{now_ms}{suffix}"


__all__ = ["DEFAULT_MAX_ATTEMPTS", "sanitize_segment", "unique_name"]
