from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest
from calltrail.models.records import CallRequestRecord, CallResponseRecord, ChatMessage
from calltrail.storage.atomic import AtomicWriter


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 8, 30, 12, 0, tzinfo=UTC)


@pytest.fixture
def calls_dir(tmp_path: Path) -> Path:
    path = tmp_path / "plugin" / "ai-calls"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def writer(sleeps: list[float]) -> AtomicWriter:
    return AtomicWriter(max_retries=3, backoff_seconds=0.2, sleep=sleeps.append)


@pytest.fixture
def request_record() -> CallRequestRecord:
    return CallRequestRecord(
        provider="openai",
        model="openai:gpt-4.1",
        messages=[
            ChatMessage(role="system", content="sys"),
            ChatMessage(role="user", content="hello"),
        ],
        options={"temperature": 0},
        timestamp="2025-08-29T10:15:02.120Z",
    )


@pytest.fixture
def response_record() -> CallResponseRecord:
    return CallResponseRecord(
        content="hi",
        provider="openai",
        model="openai:gpt-4.1",
        timestamp="2025-08-29T10:15:03.000Z",
        duration_ms=123,
    )


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, filters, level = list(root.handlers), list(root.filters), root.level
    yield
    root.handlers[:] = handlers
    root.filters[:] = filters
    root.setLevel(level)
