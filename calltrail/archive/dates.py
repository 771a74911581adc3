"""Which calendar day a loose file in the calls directory belongs to.

Filenames are tried against a short ordered list of known conventions.
``modern`` names carry a UTC stamp (``ai-call-20250829-101502-...``) that is
converted into the archiver's timezone; ``legacy`` names carry the local
date directly (``vault-bot_20250829_...``, ``vault-bot-local_20250829-...``).
Anything else is dated by its modification time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import StrEnum

DATE_FOLDER_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class DateSource(StrEnum):
    modern = "modern"
    legacy = "legacy"
    mtime = "mtime"


@dataclass(frozen=True, slots=True)
class FilenamePattern:
    name: str
    source: DateSource
    regex: re.Pattern[str]


@dataclass(frozen=True, slots=True)
class DateKeyMatch:
    date_key: str
    source: DateSource
    pattern: str | None = None


FILENAME_PATTERNS: tuple[FilenamePattern, ...] = (
    FilenamePattern(
        name="utc-stamp",
        source=DateSource.modern,
        regex=re.compile(r"^[a-z0-9-]+?-(?P<date>\d{8})-(?P<time>\d{6})-"),
    ),
    FilenamePattern(
        name="underscore-local",
        source=DateSource.legacy,
        regex=re.compile(r"^[a-z0-9-]+?_(?P<date>\d{8})_"),
    ),
    FilenamePattern(
        name="dash-local",
        source=DateSource.legacy,
        regex=re.compile(r"-local_(?P<date>\d{8})-"),
    ),
)


def to_date_key(value: date | datetime) -> str:
    return value.strftime("%Y-%m-%d")


def is_date_folder(name: str) -> bool:
    return DATE_FOLDER_PATTERN.fullmatch(name) is not None


def today_key(now: datetime) -> str:
    return to_date_key(now)


def _in_reference_zone(moment: datetime, now: datetime) -> datetime:
    if now.tzinfo is not None:
        return moment.astimezone(now.tzinfo)
    return moment.astimezone().replace(tzinfo=None)


def match_filename(name: str, now: datetime) -> DateKeyMatch | None:
    for pattern in FILENAME_PATTERNS:
        found = pattern.regex.search(name)
        if found is None:
            continue
        try:
            if pattern.source is DateSource.modern:
                stamp = datetime.strptime(found["date"] + found["time"], "%Y%m%d%H%M%S")
                key = to_date_key(_in_reference_zone(stamp.replace(tzinfo=UTC), now))
            else:
                key = to_date_key(datetime.strptime(found["date"], "%Y%m%d"))
        except ValueError:
            continue
        return DateKeyMatch(date_key=key, source=pattern.source, pattern=pattern.name)
    return None


def infer_date_key(name: str, mtime: float, now: datetime) -> DateKeyMatch:
    matched = match_filename(name, now)
    if matched is not None:
        return matched
    modified = datetime.fromtimestamp(mtime, tz=UTC)
    return DateKeyMatch(date_key=to_date_key(_in_reference_zone(modified, now)), source=DateSource.mtime)


__all__ = [
    "DATE_FOLDER_PATTERN",
    "FILENAME_PATTERNS",
    "DateKeyMatch",
    "DateSource",
    "FilenamePattern",
    "infer_date_key",
    "is_date_folder",
    "match_filename",
    "to_date_key",
    "today_key",
]
