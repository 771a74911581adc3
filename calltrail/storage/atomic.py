"""Durable single-file writes: temp file, fsync, atomic rename.

A rename can fail transiently when a sync client (OneDrive, Dropbox) holds
the destination open, so the rename is retried with a linear backoff.  When
retries run out the temp file is kept under a ``.partial-`` name instead of
being deleted, and the caller gets a failed ``WriteResult``.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

TEMP_MARKER = ".tmp-"
PARTIAL_MARKER = ".partial-"


@dataclass(frozen=True, slots=True)
class WriteResult:
    ok: bool
    path: Path
    error: str | None = None
    partial_path: Path | None = None


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


class AtomicWriter:
    """Crash-safe replacement of a single file.

    Readers only ever see the old file or the complete new one.  Failures
    are returned as ``WriteResult`` values rather than raised, so callers
    on a request path can log and move on.
    """

    def __init__(
        self,
        max_retries: int = 3,
        backoff_seconds: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if backoff_seconds < 0:
            raise ValueError("backoff_seconds must be >= 0")
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def temp_path_for(self, path: str | Path) -> Path:
        """Sibling temp name; the marker keeps it out of archive sweeps."""
        destination = Path(path)
        suffix = f"{TEMP_MARKER}{_epoch_ms()}-{uuid.uuid4().hex[:6]}"
        return destination.with_name(destination.name + suffix)

    def write(self, path: str | Path, contents: str | bytes) -> WriteResult:
        """Create parent directories, write and fsync a temp file, then ``commit`` it."""
        destination = Path(path)
        data = contents.encode("utf-8") if isinstance(contents, str) else contents
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Cannot create directory %s: %s", destination.parent, exc)
            return WriteResult(ok=False, path=destination, error=str(exc))

        tmp = self.temp_path_for(destination)
        try:
            with tmp.open("wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
        except OSError as exc:
            logger.error("Failed writing temp file %s: %s", tmp, exc)
            tmp.unlink(missing_ok=True)
            return WriteResult(ok=False, path=destination, error=str(exc))

        return self.commit(tmp, destination)

    def commit(self, tmp: str | Path, path: str | Path) -> WriteResult:
        """Rename a fully written temp file onto its final path."""
        source = Path(tmp)
        destination = Path(path)
        attempt = 0
        while True:
            try:
                os.replace(source, destination)
                return WriteResult(ok=True, path=destination)
            except OSError as exc:
                attempt += 1
                if attempt > self._max_retries:
                    partial = self._keep_partial(source, destination)
                    logger.error(
                        "Rename %s -> %s failed after %d attempts: %s (partial kept at %s)",
                        source.name,
                        destination,
                        attempt,
                        exc,
                        partial,
                    )
                    return WriteResult(
                        ok=False,
                        path=destination,
                        error=str(exc),
                        partial_path=partial,
                    )
                delay = self._backoff_seconds * attempt
                logger.warning(
                    "Rename %s -> %s failed (attempt %d/%d), retrying in %.2fs: %s",
                    source.name,
                    destination.name,
                    attempt,
                    self._max_retries,
                    delay,
                    exc,
                )
                self._sleep(delay)

    def _keep_partial(self, source: Path, destination: Path) -> Path | None:
        partial = destination.with_name(f"{destination.name}{PARTIAL_MARKER}{_epoch_ms()}")
        try:
            os.replace(source, partial)
        except OSError as exc:
            logger.error("Could not move %s aside to %s: %s", source, partial, exc)
            return source if source.exists() else None
        return partial


__all__ = ["PARTIAL_MARKER", "TEMP_MARKER", "AtomicWriter", "WriteResult"]
