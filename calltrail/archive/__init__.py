"""Aging and compaction of recorded calls into per-day 7z archives."""

from calltrail.archive.archiver import ArchiveRunReport, DayBucketArchiver
from calltrail.archive.compressor import CandidatePathLocator, CompressResult, SevenZipCompressor
from calltrail.archive.dates import DateKeyMatch, DateSource, infer_date_key

__all__ = [
    "ArchiveRunReport",
    "CandidatePathLocator",
    "CompressResult",
    "DateKeyMatch",
    "DateSource",
    "DayBucketArchiver",
    "SevenZipCompressor",
    "infer_date_key",
]
