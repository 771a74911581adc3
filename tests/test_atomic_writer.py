from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import pytest
from calltrail.storage.atomic import AtomicWriter


def _flaky_replace(target: Path, failures: int) -> Callable[[object, object], None]:
    """Fail renames onto ``target`` ``failures`` times (forever when negative)."""
    real_replace = os.replace
    state = {"left": failures}

    def fake(src: object, dst: object) -> None:
        if Path(dst) == target and state["left"] != 0:
            state["left"] -= 1
            raise PermissionError("locked by sync client")
        real_replace(src, dst)

    return fake


def test_write_creates_parents_and_leaves_no_temp(tmp_path: Path, writer: AtomicWriter) -> None:
    target = tmp_path / "a" / "b" / "record.txt"

    result = writer.write(target, "héllo\n")

    assert result.ok is True
    assert result.path == target
    assert target.read_text(encoding="utf-8") == "héllo\n"
    assert sorted(p.name for p in target.parent.iterdir()) == ["record.txt"]


def test_write_accepts_bytes(tmp_path: Path, writer: AtomicWriter) -> None:
    target = tmp_path / "blob.bin"
    assert writer.write(target, b"\x00\x01").ok
    assert target.read_bytes() == b"\x00\x01"


def test_temp_path_is_a_sibling_with_marker(tmp_path: Path, writer: AtomicWriter) -> None:
    tmp = writer.temp_path_for(tmp_path / "record.txt")
    assert tmp.parent == tmp_path
    assert tmp.name.startswith("record.txt.tmp-")


def test_rename_retries_with_linear_backoff(
    tmp_path: Path,
    writer: AtomicWriter,
    sleeps: list[float],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    target = tmp_path / "record.txt"
    monkeypatch.setattr("calltrail.storage.atomic.os.replace", _flaky_replace(target, failures=2))

    result = writer.write(target, "payload")

    assert result.ok is True
    assert target.read_text() == "payload"
    assert sleeps == pytest.approx([0.2, 0.4])


def test_exhausted_retries_keep_partial_file(
    tmp_path: Path,
    writer: AtomicWriter,
    sleeps: list[float],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    target = tmp_path / "record.txt"
    monkeypatch.setattr("calltrail.storage.atomic.os.replace", _flaky_replace(target, failures=-1))

    result = writer.write(target, "payload")

    assert result.ok is False
    assert "locked" in (result.error or "")
    assert not target.exists()
    assert result.partial_path is not None
    assert result.partial_path.name.startswith("record.txt.partial-")
    assert result.partial_path.read_text() == "payload"
    assert not any(".tmp-" in p.name for p in tmp_path.iterdir())
    assert sleeps == pytest.approx([0.2, 0.4, 0.6])


def test_zero_retries_fails_immediately(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    sleeps: list[float] = []
    writer = AtomicWriter(max_retries=0, sleep=sleeps.append)
    target = tmp_path / "record.txt"
    monkeypatch.setattr("calltrail.storage.atomic.os.replace", _flaky_replace(target, failures=-1))

    result = writer.write(target, "payload")

    assert result.ok is False
    assert sleeps == []


def test_unwritable_parent_is_reported_not_raised(tmp_path: Path, writer: AtomicWriter) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("i am a file")

    result = writer.write(blocker / "record.txt", "payload")

    assert result.ok is False
    assert result.error


def test_commit_moves_existing_temp(tmp_path: Path, writer: AtomicWriter) -> None:
    tmp = tmp_path / "archive.7z.tmp-1-abcdef"
    tmp.write_bytes(b"7z")

    result = writer.commit(tmp, tmp_path / "archive.7z")

    assert result.ok
    assert (tmp_path / "archive.7z").read_bytes() == b"7z"
    assert not tmp.exists()


def test_negative_settings_rejected() -> None:
    with pytest.raises(ValueError):
        AtomicWriter(max_retries=-1)
    with pytest.raises(ValueError):
        AtomicWriter(backoff_seconds=-0.1)
