from __future__ import annotations

from pathlib import Path

import pytest
from calltrail.config import CalltrailSettings, load_config
from pydantic import ValidationError


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_reads_section(tmp_path: Path) -> None:
    config = _write(
        tmp_path / "calltrail.yaml",
        "calltrail:\n"
        "  data_dir: /srv/data\n"
        "  writer:\n"
        "    max_retries: 1\n"
        "  archive:\n"
        "    archive_extension: 7z\n",
    )

    settings = load_config(config)

    assert settings.data_dir == Path("/srv/data")
    assert settings.writer.max_retries == 1
    assert settings.writer.backoff_seconds == 0.2
    assert settings.archive.archive_extension == ".7z"
    assert settings.recorder.prefix == "ai-call"


def test_env_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = _write(tmp_path / "calltrail.yaml", "calltrail:\n  writer:\n    max_retries: 1\n")
    monkeypatch.setenv("CALLTRAIL_WRITER__MAX_RETRIES", "5")
    monkeypatch.setenv("CALLTRAIL_LOG_JSON", "true")

    settings = load_config(config)

    assert settings.writer.max_retries == 5
    assert settings.log_json is True


def test_settings_read_env_without_file(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CALLTRAIL_RECORDER__PREFIX", "audit")

    assert CalltrailSettings().recorder.prefix == "audit"


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_non_mapping_file(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_config(_write(tmp_path / "bad.yaml", "- a\n- b\n"))


def test_invalid_values_rejected(tmp_path: Path) -> None:
    config = _write(tmp_path / "bad.yaml", "writer:\n  max_retries: -1\n")
    with pytest.raises(ValidationError):
        load_config(config)


def test_calls_dir_resolution(tmp_path: Path) -> None:
    settings = CalltrailSettings(data_dir=tmp_path)
    assert settings.resolve_calls_dir() == tmp_path / "ai-calls"

    (tmp_path / "history").mkdir()
    assert settings.resolve_calls_dir() == tmp_path / "history" / "ai-calls"

    explicit = CalltrailSettings(data_dir=tmp_path, calls_dir=tmp_path / "elsewhere")
    assert explicit.resolve_calls_dir() == tmp_path / "elsewhere"


def test_builders_wire_settings(tmp_path: Path) -> None:
    settings = CalltrailSettings(data_dir=tmp_path, recorder={"prefix": "Audit Log"})

    assert settings.build_recorder().prefix == "audit-log"
    assert settings.build_archiver() is not None
