"""Age loose call records into day folders and compact finished days.

A run has two phases:

1. Sweep: every loose file not dated today moves into a ``YYYY-MM-DD``
   folder next to it.  Temp/partial files, dotfiles and existing archives
   are never touched.
2. Compact: each non-today folder is handed to the compressor as one
   input, producing a solid ``ai-calls_<date>.7z`` whose root entry is the
   folder.  The folder is deleted only after the archive sits at its final
   path; on any failure it is left exactly as it was and retried next run.

There is deliberately no fallback container format.
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from calltrail.archive.dates import infer_date_key, is_date_folder, today_key
from calltrail.core.logging import correlation_scope
from calltrail.protocols.archive import Compressor
from calltrail.storage.atomic import PARTIAL_MARKER, TEMP_MARKER
from calltrail.storage.naming import DEFAULT_MAX_ATTEMPTS, unique_name

logger = logging.getLogger(__name__)

ARCHIVED_EXTENSIONS = (".7z", ".zip")


@dataclass(slots=True)
class ArchiveRunReport:
    target_dir: Path
    today: str
    moved: list[Path] = field(default_factory=list)
    archives: list[Path] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped_today: int = 0


def _is_ignored(name: str, archive_extension: str) -> bool:
    return (
        name.startswith(".")
        or name.endswith(ARCHIVED_EXTENSIONS)
        or bool(archive_extension and name.endswith(archive_extension))
        or TEMP_MARKER in name
        or PARTIAL_MARKER in name
    )


class DayBucketArchiver:
    """Sweep loose records into day folders, then compact each finished day.

    One instance can be reused across runs; all per-run state lives in the
    returned ``ArchiveRunReport``.  Archives using ``archive_extension`` are
    never swept back into a bucket, whatever the extension is configured to.
    """

    def __init__(
        self,
        compressor: Compressor,
        archive_prefix: str = "ai-calls",
        archive_extension: str = ".7z",
        max_name_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._compressor = compressor
        self._archive_prefix = archive_prefix
        self._archive_extension = archive_extension
        self._max_name_attempts = max_name_attempts

    def run(self, target_dir: str | Path, now: datetime | None = None) -> ArchiveRunReport:
        """Archive everything in ``target_dir`` that is not dated on ``now``'s day.

        A missing directory is not an error.  Buckets are compacted in date
        order; a bucket that fails is left as-is and listed in ``failed``.
        """
        target = Path(target_dir)
        reference = now or datetime.now().astimezone()
        report = ArchiveRunReport(target_dir=target, today=today_key(reference))

        if not target.is_dir():
            logger.debug("Calls directory %s does not exist yet; nothing to archive", target)
            return report

        with correlation_scope(run_id=uuid.uuid4().hex[:12]):
            pending = self._sweep(target, reference, report)
            for key in sorted(pending):
                with correlation_scope(date_key=key):
                    self._compact(target, key, report)

        logger.info(
            "Archive run finished: moved=%d archived=%d failed=%s",
            len(report.moved),
            len(report.archives),
            ",".join(sorted(report.failed)) or "none",
        )
        return report

    def _sweep(self, target: Path, now: datetime, report: ArchiveRunReport) -> set[str]:
        pending: set[str] = set()
        try:
            names = sorted(os.listdir(target))
        except OSError as exc:
            logger.error("Cannot list %s: %s", target, exc)
            return pending

        for name in names:
            if _is_ignored(name, self._archive_extension):
                continue
            path = target / name
            try:
                is_dir = path.is_dir()
                stat = None if is_dir else path.stat()
            except OSError:
                continue

            if is_dir:
                if is_date_folder(name) and name != report.today:
                    pending.add(name)
                continue

            match = infer_date_key(name, stat.st_mtime, now)
            if match.date_key == report.today:
                report.skipped_today += 1
                continue

            destination = self._move_into_bucket(target, path, match.date_key)
            if destination is not None:
                logger.debug("Moved %s into %s (%s)", name, match.date_key, match.source)
                report.moved.append(destination)
                pending.add(match.date_key)
        return pending

    def _move_into_bucket(self, target: Path, source: Path, key: str) -> Path | None:
        bucket = target / key
        try:
            bucket.mkdir(exist_ok=True)
            final_name = unique_name(source.name, set(os.listdir(bucket)), self._max_name_attempts)
            destination = bucket / final_name
            os.rename(source, destination)
        except OSError as exc:
            logger.warning("Could not move %s into %s: %s", source.name, key, exc)
            return None
        return destination

    def archive_path_for(self, target: Path, key: str) -> Path | None:
        """First unused ``<prefix>_<date>[_N]<ext>`` path, or None when the bound is hit."""
        base = f"{self._archive_prefix}_{key}"
        candidate = target / f"{base}{self._archive_extension}"
        counter = 2
        while candidate.exists():
            if counter > self._max_name_attempts:
                return None
            candidate = target / f"{base}_{counter}{self._archive_extension}"
            counter += 1
        return candidate

    def _compact(self, target: Path, key: str, report: ArchiveRunReport) -> None:
        bucket = target / key
        if not bucket.is_dir():
            return
        try:
            empty = not any(bucket.iterdir())
        except OSError as exc:
            logger.error("Cannot read bucket %s at %s: %s", key, bucket, exc)
            report.failed[key] = str(exc)
            return
        if empty:
            try:
                bucket.rmdir()
            except OSError as exc:
                logger.warning("Could not remove empty bucket %s: %s", key, exc)
            return

        archive_path = self.archive_path_for(target, key)
        if archive_path is None:
            logger.error("No free archive name for %s after %d attempts", key, self._max_name_attempts)
            report.failed[key] = "no free archive name"
            return

        result = self._compressor.compress([bucket], archive_path)
        if not result.ok:
            logger.error(
                "Compression of %s failed, folder kept: %s%s",
                key,
                result.error,
                f" stderr={result.stderr.strip()}" if result.stderr.strip() else "",
            )
            report.failed[key] = result.error or "compression failed"
            return

        report.archives.append(archive_path)
        logger.info("Archived %s to %s", key, archive_path.name)
        try:
            shutil.rmtree(bucket)
        except OSError as exc:
            logger.error(
                "Bucket %s archived to %s but its folder was not removed: %s", key, archive_path.name, exc
            )


__all__ = ["ARCHIVED_EXTENSIONS", "ArchiveRunReport", "DayBucketArchiver"]
