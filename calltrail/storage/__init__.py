"""Storage: atomic writes, collision-free naming, on-disk layout."""

from calltrail.storage.atomic import AtomicWriter, WriteResult
from calltrail.storage.naming import sanitize_segment, unique_name
from calltrail.storage.paths import HistoryLayout, MigrationReport

__all__ = [
    "AtomicWriter",
    "HistoryLayout",
    "MigrationReport",
    "WriteResult",
    "sanitize_segment",
    "unique_name",
]
