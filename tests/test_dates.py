from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from calltrail.archive.dates import (
    DateSource,
    infer_date_key,
    is_date_folder,
    match_filename,
    today_key,
)


class TestMatchFilename:
    def test_modern_stamp(self, now: datetime) -> None:
        match = match_filename("ai-call-20250829-101502-openai-gpt-4-1-abc.txt", now)
        assert match is not None
        assert match.date_key == "2025-08-29"
        assert match.source is DateSource.modern
        assert match.pattern == "utc-stamp"

    def test_modern_stamp_is_converted_to_reference_zone(self) -> None:
        name = "ai-call-20250829-233000-openai-gpt-abc.txt"
        utc_now = datetime(2025, 8, 30, 12, 0, tzinfo=UTC)
        berlin_now = datetime(2025, 8, 30, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        assert match_filename(name, utc_now).date_key == "2025-08-29"
        assert match_filename(name, berlin_now).date_key == "2025-08-30"

    def test_legacy_underscore(self, now: datetime) -> None:
        match = match_filename("vault-bot_20250827_143000_call.md", now)
        assert match is not None
        assert match.date_key == "2025-08-27"
        assert match.source is DateSource.legacy

    def test_legacy_dash_local(self, now: datetime) -> None:
        match = match_filename("vault-bot-local_20250826-101010.json", now)
        assert match is not None
        assert match.date_key == "2025-08-26"
        assert match.pattern == "dash-local"

    def test_impossible_date_does_not_match(self, now: datetime) -> None:
        assert match_filename("ai-call-20251399-101502-x-y-z.txt", now) is None

    def test_unknown_name(self, now: datetime) -> None:
        assert match_filename("notes.txt", now) is None


def test_mtime_fallback(now: datetime) -> None:
    mtime = datetime(2025, 8, 20, 8, 0, tzinfo=UTC).timestamp()

    match = infer_date_key("notes.txt", mtime, now)

    assert match.date_key == "2025-08-20"
    assert match.source is DateSource.mtime
    assert match.pattern is None


def test_filename_wins_over_mtime(now: datetime) -> None:
    mtime = now.timestamp()
    assert infer_date_key("vault-bot_20250801_x.md", mtime, now).date_key == "2025-08-01"


def test_date_folders_and_today(now: datetime) -> None:
    assert is_date_folder("2025-08-29")
    assert not is_date_folder("2025-8-29")
    assert not is_date_folder("2025-08-29-extra")
    assert today_key(now) == "2025-08-30"
