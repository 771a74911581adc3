from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from calltrail.archive.archiver import DayBucketArchiver
from calltrail.archive.compressor import CandidatePathLocator, SevenZipCompressor
from calltrail.core.cache import TtlCache
from calltrail.recorder import DEFAULT_PREFIX, CallRecorder
from calltrail.redaction import SecretRedactor
from calltrail.storage.atomic import AtomicWriter
from calltrail.storage.paths import HistoryLayout

_ENV_PREFIX = "CALLTRAIL_"


class WriterConfig(BaseModel):
    max_retries: int = Field(default=3, ge=0)
    backoff_seconds: float = Field(default=0.2, ge=0)


class RecorderConfig(BaseModel):
    prefix: str = DEFAULT_PREFIX
    max_segment_length: int = Field(default=32, ge=1, le=64)
    redact: bool = True
    extra_secrets: list[str] = Field(default_factory=list)

    @field_validator("prefix")
    @classmethod
    def _prefix_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("recorder.prefix must not be blank")
        return value


class CompressorConfig(BaseModel):
    bin_dir: Path | None = None
    executable_name: str | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)
    locator_cache_ttl_s: float = Field(default=300.0, ge=0)


class ArchiveConfig(BaseModel):
    archive_prefix: str = "ai-calls"
    archive_extension: str = ".7z"
    max_name_attempts: int = Field(default=1000, ge=2)

    @field_validator("archive_extension")
    @classmethod
    def _leading_dot(cls, value: str) -> str:
        return value if value.startswith(".") else f".{value}"


class CalltrailSettings(BaseSettings):
    data_dir: Path = Path("./data")
    calls_dir: Path | None = None
    """Explicit calls directory; when unset it is resolved from data_dir."""
    log_level: str = "INFO"
    log_json: bool = False
    writer: WriterConfig = Field(default_factory=WriterConfig)
    recorder: RecorderConfig = Field(default_factory=RecorderConfig)
    compressor: CompressorConfig = Field(default_factory=CompressorConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)

    model_config = SettingsConfigDict(
        env_prefix=_ENV_PREFIX,
        env_nested_delimiter="__",
        extra="ignore",
    )

    def resolve_calls_dir(self) -> Path:
        if self.calls_dir is not None:
            return self.calls_dir
        return HistoryLayout(self.data_dir).ai_calls_dir

    def build_writer(self) -> AtomicWriter:
        return AtomicWriter(
            max_retries=self.writer.max_retries,
            backoff_seconds=self.writer.backoff_seconds,
        )

    def build_recorder(self) -> CallRecorder:
        return CallRecorder(
            writer=self.build_writer(),
            prefix=self.recorder.prefix,
            max_segment_length=self.recorder.max_segment_length,
            redactor=SecretRedactor(self.recorder.extra_secrets),
        )

    def build_compressor(self) -> SevenZipCompressor:
        locator = CandidatePathLocator(
            executable_name=self.compressor.executable_name,
            override_dir=self.compressor.bin_dir,
            cache=TtlCache(self.compressor.locator_cache_ttl_s),
        )
        return SevenZipCompressor(
            locator=locator,
            writer=self.build_writer(),
            timeout_seconds=self.compressor.timeout_seconds,
        )

    def build_archiver(self) -> DayBucketArchiver:
        return DayBucketArchiver(
            self.build_compressor(),
            archive_prefix=self.archive.archive_prefix,
            archive_extension=self.archive.archive_extension,
            max_name_attempts=self.archive.max_name_attempts,
        )


def _coerce_env_value(value: str) -> object:
    parsed = yaml.safe_load(value)
    return value if parsed is None else parsed


def _set_nested(mapping: dict[str, object], path: list[str], value: object) -> None:
    current = mapping
    for key in path[:-1]:
        existing = current.get(key)
        if not isinstance(existing, dict):
            existing = {}
            current[key] = existing
        current = existing
    current[path[-1]] = value


def _apply_env_overrides(data: dict[str, object]) -> dict[str, object]:
    merged = dict(data)
    for key, raw_value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        path = key[len(_ENV_PREFIX) :].lower().split("__")
        _set_nested(merged, path, _coerce_env_value(raw_value))
    return merged


def load_config(path: str | Path = "config/calltrail.yaml") -> CalltrailSettings:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ValueError("config file must contain a top-level mapping")

    raw = loaded.get("calltrail", loaded)
    if not isinstance(raw, dict):
        raise ValueError("calltrail config section must be a mapping")

    return CalltrailSettings.model_validate(_apply_env_overrides(raw))


__all__ = [
    "ArchiveConfig",
    "CalltrailSettings",
    "CompressorConfig",
    "RecorderConfig",
    "WriterConfig",
    "load_config",
]
