"""Directory layout for recorded calls.

Newer installs keep everything under ``<base>/history``; older ones wrote
records straight into ``<base>/ai-calls``.  The legacy location is used
until a ``history`` directory exists, and ``migrate`` moves it over.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from calltrail.storage.naming import unique_name

logger = logging.getLogger(__name__)

HISTORY_DIRNAME = "history"
AI_CALLS_DIRNAME = "ai-calls"


@dataclass(slots=True)
class MigrationReport:
    moved: list[Path] = field(default_factory=list)
    renamed: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)
    source_removed: bool = False


class HistoryLayout:
    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def history_dir(self) -> Path:
        return self._base_dir / HISTORY_DIRNAME

    @property
    def legacy_ai_calls_dir(self) -> Path:
        return self._base_dir / AI_CALLS_DIRNAME

    @property
    def ai_calls_dir(self) -> Path:
        if self.history_dir.is_dir():
            return self.history_dir / AI_CALLS_DIRNAME
        return self.legacy_ai_calls_dir

    def needs_migration(self) -> bool:
        return not self.history_dir.is_dir() and self.legacy_ai_calls_dir.is_dir()

    def migrate(self) -> MigrationReport:
        """Move the legacy ai-calls tree under ``history`` without overwriting anything."""
        report = MigrationReport()
        legacy = self.legacy_ai_calls_dir
        if not legacy.is_dir():
            return report

        target_root = self.history_dir / AI_CALLS_DIRNAME
        target_root.mkdir(parents=True, exist_ok=True)
        logger.info("Migrating %s to %s", legacy, target_root)

        for source in sorted(path for path in legacy.rglob("*") if path.is_file()):
            dest_dir = target_root / source.parent.relative_to(legacy)
            try:
                dest_dir.mkdir(parents=True, exist_ok=True)
                name = unique_name(source.name, set(os.listdir(dest_dir)))
                destination = dest_dir / name
                shutil.move(str(source), str(destination))
            except OSError as exc:
                logger.error("Failed to migrate %s: %s", source, exc)
                report.failed.append(source)
                continue
            report.moved.append(destination)
            if name != source.name:
                report.renamed.append(destination)

        if not report.failed:
            report.source_removed = self._remove_empty_tree(legacy)
        logger.info(
            "Migration finished: moved=%d renamed=%d failed=%d",
            len(report.moved),
            len(report.renamed),
            len(report.failed),
        )
        return report

    @staticmethod
    def _remove_empty_tree(root: Path) -> bool:
        directories = sorted(
            (path for path in root.rglob("*") if path.is_dir()),
            key=lambda path: len(path.parts),
            reverse=True,
        )
        try:
            for directory in directories:
                directory.rmdir()
            root.rmdir()
        except OSError as exc:
            logger.warning("Legacy directory %s not removed: %s", root, exc)
            return False
        return True


__all__ = ["AI_CALLS_DIRNAME", "HISTORY_DIRNAME", "HistoryLayout", "MigrationReport"]
