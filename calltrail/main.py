"""calltrail CLI entry point."""

from __future__ import annotations

import json
import sys
from datetime import datetime, time
from pathlib import Path

import click
from pydantic import ValidationError

from calltrail.config import CalltrailSettings, load_config
from calltrail.core.logging import setup_logging
from calltrail.models.records import CallRequestRecord, CallResponseRecord
from calltrail.redaction import SecretRedactor
from calltrail.storage.paths import HistoryLayout


def _configure_logging(settings: CalltrailSettings) -> None:
    overrides = click.get_current_context().find_root().obj or {}
    level = overrides.get("log_level") or settings.log_level
    json_logs = overrides.get("json_logs")
    setup_logging(level=level.upper(), json_output=settings.log_json if json_logs is None else json_logs)


def _settings(config_path: str | None) -> CalltrailSettings:
    """Load settings and apply their logging options; CLI flags take precedence."""
    if config_path is None:
        settings = CalltrailSettings()
    else:
        try:
            settings = load_config(config_path)
        except (FileNotFoundError, ValueError) as exc:
            raise click.ClickException(str(exc)) from exc
    _configure_logging(settings)
    return settings


def _calls_dir(settings: CalltrailSettings, override: Path | None) -> Path:
    return override if override is not None else settings.resolve_calls_dir()


def _load_json(path: Path) -> object:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise click.ClickException(f"cannot read {path}: {exc}") from exc


@click.group()
@click.option("--log-level", default=None, help="Override the configured log level.")
@click.option("--json-logs/--text-logs", default=None, help="Emit logs as JSON lines.")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, json_logs: bool | None) -> None:
    """Record AI call exchanges and archive them by day."""
    ctx.obj = {"log_level": log_level, "json_logs": json_logs}


@cli.command("record")
@click.argument("request_json", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.argument("response_json", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--dir", "calls_dir", type=click.Path(path_type=Path, file_okay=False), default=None)
@click.option("--secret", "secrets", multiple=True, help="Extra literal secret to mask.")
@click.option("--no-redact", is_flag=True, default=False, help="Write the exchange verbatim.")
@click.option("--config", "config_path", default=None)
def record_command(
    request_json: Path,
    response_json: Path,
    calls_dir: Path | None,
    secrets: tuple[str, ...],
    no_redact: bool,
    config_path: str | None,
) -> None:
    """Write one call record from a request and a response JSON document."""
    settings = _settings(config_path)
    try:
        request = CallRequestRecord.model_validate(_load_json(request_json))
        response = CallResponseRecord.model_validate(_load_json(response_json))
    except ValidationError as exc:
        raise click.ClickException(str(exc)) from exc

    recorder = settings.build_recorder()
    destination = _calls_dir(settings, calls_dir)
    if no_redact or not settings.recorder.redact:
        result = recorder.record(destination, request.provider, request.model, request, response)
    else:
        result = recorder.record_exchange(destination, request, response, extra_secrets=secrets)

    if not result.ok:
        raise click.ClickException(f"record failed: {result.error}")
    click.echo(str(result.file_path))


@cli.command("archive")
@click.option("--dir", "calls_dir", type=click.Path(path_type=Path, file_okay=False), default=None)
@click.option(
    "--today",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Treat this date as today (files dated on it are left in place).",
)
@click.option("--config", "config_path", default=None)
def archive_command(calls_dir: Path | None, today: datetime | None, config_path: str | None) -> None:
    """Move aged records into day folders and compact each finished day."""
    settings = _settings(config_path)
    now = None
    if today is not None:
        now = datetime.combine(today.date(), time(12, 0)).astimezone()

    report = settings.build_archiver().run(_calls_dir(settings, calls_dir), now=now)
    for archive in report.archives:
        click.echo(f"archived {archive}")
    for key, reason in sorted(report.failed.items()):
        click.echo(f"failed {key}: {reason}", err=True)
    if report.failed:
        sys.exit(1)


@cli.command("redact")
@click.option("--secret", "secrets", multiple=True, help="Extra literal secret to mask.")
def redact_command(secrets: tuple[str, ...]) -> None:
    """Mask credentials in stdin and write the result to stdout."""
    _configure_logging(CalltrailSettings())
    result = SecretRedactor().redact(click.get_text_stream("stdin").read(), secrets)
    click.echo(result.text, nl=False)


@cli.command("migrate")
@click.option("--base-dir", type=click.Path(path_type=Path, file_okay=False), default=None)
@click.option("--config", "config_path", default=None)
def migrate_command(base_dir: Path | None, config_path: str | None) -> None:
    """Move a legacy ai-calls directory under history/."""
    settings = _settings(config_path)
    layout = HistoryLayout(base_dir if base_dir is not None else settings.data_dir)
    if not layout.needs_migration():
        click.echo("Nothing to migrate")
        return
    report = layout.migrate()
    click.echo(f"Migrated {len(report.moved)} files to {layout.ai_calls_dir}")
    if report.failed:
        raise click.ClickException(f"{len(report.failed)} files could not be migrated")


__all__ = ["cli"]


if __name__ == "__main__":
    cli()
