"""Command-line interface for the notification dispatch engine.

Results are printed to stdout as JSON lines; logs go to stderr so the
output stays machine-readable.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Final

import click
import yaml

from notification_dispatch.channels import build_router
from notification_dispatch.core.config import ConfigurationError, MainConfig, load_main_config
from notification_dispatch.core.engine import DispatchEngine
from notification_dispatch.core.exceptions import ValidationError
from notification_dispatch.types import Channel, Notification, NotificationRequest, NotificationResult, Priority
from notification_dispatch.utils.logging import configure_logging

__all__ = ["cli", "main"]

DEFAULT_CONFIG_PATH: Final[Path] = Path("config/notification-dispatch.yaml")

_LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_REQUEST_KEYS: Final[frozenset[str]] = frozenset({"recipient", "message", "channel", "subject", "priority", "metadata"})


def result_to_dict(result: NotificationResult) -> dict[str, object]:
    """Convert a result into a JSON-serializable mapping."""
    return {
        "success": result.success,
        "notification_id": result.notification_id,
        "error_message": result.error_message,
        "error_kind": result.error_kind.value if result.error_kind else None,
        "timestamp": result.timestamp.isoformat(),
    }


def notification_to_dict(notification: Notification) -> dict[str, object]:
    """Convert a record snapshot into a JSON-serializable mapping."""
    return {
        "id": notification.id,
        "recipient": notification.recipient,
        "subject": notification.subject,
        "message": notification.message,
        "channel": notification.channel.value,
        "priority": notification.priority.value,
        "status": notification.status.value,
        "created_at": notification.created_at.isoformat(),
        "sent_at": notification.sent_at.isoformat() if notification.sent_at else None,
        "delivered_at": notification.delivered_at.isoformat() if notification.delivered_at else None,
        "metadata": dict(notification.metadata),
        "error_message": notification.error_message,
        "retry_count": notification.retry_count,
    }


def parse_metadata(
    ctx: click.Context,  # pyright: ignore[reportUnusedParameter] # required by Click callback signature
    param: click.Parameter,  # pyright: ignore[reportUnusedParameter] # required by Click callback signature
    value: tuple[str, ...],
) -> dict[str, str]:
    """Parse repeated ``KEY=VALUE`` options into a metadata mapping.

    Raises:
        click.BadParameter: If an entry has no ``=`` or an empty key
    """
    metadata: dict[str, str] = {}
    for item in value:
        key, sep, val = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected KEY=VALUE, got {item!r}")
        metadata[key.strip()] = val
    return metadata


def request_from_mapping(data: object) -> NotificationRequest | None:
    """Build a request from one YAML entry.

    Entries that are not mappings yield None, which the engine reports as a
    validation failure for that item. Channel and priority names are coerced
    by the engine.
    """
    if not isinstance(data, Mapping):
        return None
    fields = {str(key): val for key, val in data.items() if str(key) in _REQUEST_KEYS}  # pyright: ignore[reportUnknownVariableType, reportUnknownArgumentType]  # YAML boundary
    metadata = fields.get("metadata")
    return NotificationRequest(
        recipient=str(fields.get("recipient") or ""),
        message=str(fields.get("message") or ""),
        channel=fields.get("channel"),  # pyright: ignore[reportArgumentType]  # coerced by the engine
        subject=str(fields.get("subject") or ""),
        priority=fields.get("priority") or Priority.NORMAL,  # pyright: ignore[reportArgumentType]  # coerced by the engine
        metadata={str(k): str(v) for k, v in metadata.items()} if isinstance(metadata, Mapping) else None,  # pyright: ignore[reportUnknownVariableType]  # YAML boundary
    )


def _load_config(config_path: Path | None) -> MainConfig:
    if config_path is not None:
        return load_main_config(config_path)
    if DEFAULT_CONFIG_PATH.is_file():
        return load_main_config(DEFAULT_CONFIG_PATH)
    return MainConfig()


def _emit_json(data: Mapping[str, object]) -> None:
    click.echo(json.dumps(data, ensure_ascii=False, separators=(",", ":")))


def _engine_for(ctx: click.Context) -> DispatchEngine:
    config: MainConfig = ctx.obj  # pyright: ignore[reportAny]  # click boundary
    return DispatchEngine.from_config(config.engine, build_router(config))


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help=f"Path to the YAML configuration file (default: {DEFAULT_CONFIG_PATH} if present).",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)
@click.option(
    "--dry-run",
    "-d",
    is_flag=True,
    help="Simulate every channel instead of sending anything.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None, dry_run: bool) -> None:
    """Dispatch notifications across email, SMS, push and in-app channels."""
    try:
        config = _load_config(config_path)
    except ConfigurationError as exc:
        raise click.ClickException(f"Configuration error:\n{exc}") from exc

    if dry_run:
        config.application.dry_run = True
    if log_level is not None:
        config.application.log_level = log_level.upper()

    configure_logging(
        log_level=config.application.log_level,
        log_format=config.application.log_format,
        enable_syslog=config.application.syslog_enabled,
        stream=sys.stderr,
    )
    ctx.obj = config


@cli.command()
@click.option("--recipient", "-r", required=True, help="Recipient identifier (address, phone, device, user).")
@click.option("--message", "-m", required=True, help="Notification body.")
@click.option(
    "--channel",
    type=click.Choice([channel.value for channel in Channel]),
    default=Channel.EMAIL.value,
    show_default=True,
)
@click.option("--subject", "-s", default="", help="Subject line.")
@click.option(
    "--priority",
    type=click.Choice([priority.value for priority in Priority]),
    default=Priority.NORMAL.value,
    show_default=True,
)
@click.option("--meta", "metadata", multiple=True, callback=parse_metadata, help="Metadata entry as KEY=VALUE.")
@click.option("--correlation-id", default=None, help="Correlation id attached to logs and events.")
@click.pass_context
def send(
    ctx: click.Context,
    recipient: str,
    message: str,
    channel: str,
    subject: str,
    priority: str,
    metadata: dict[str, str],
    correlation_id: str | None,
) -> None:
    """Send a single notification and print its result."""
    engine = _engine_for(ctx)
    request = NotificationRequest(
        recipient=recipient,
        message=message,
        channel=Channel(channel),
        subject=subject,
        priority=Priority(priority),
        metadata=metadata,
    )
    try:
        result = asyncio.run(engine.send_notification(request, correlation_id=correlation_id))
    except ValidationError as exc:
        raise click.ClickException(f"Invalid notification: {exc}") from exc

    _emit_json(result_to_dict(result))
    if not result.success:
        ctx.exit(1)


@cli.command()
@click.argument("file", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--correlation-id", default=None, help="Correlation id attached to logs and events.")
@click.pass_context
def bulk(ctx: click.Context, file: Path, correlation_id: str | None) -> None:
    """Send every notification listed in a YAML FILE.

    Prints one JSON line per result, in file order, followed by a line with
    the final state of every stored notification.
    """
    try:
        with file.open("r", encoding="utf-8") as f:
            entries: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Failed to parse {file}: {exc}") from exc

    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise click.ClickException(f"Expected a YAML list of notifications in {file}")

    engine = _engine_for(ctx)
    requests = [request_from_mapping(entry) for entry in entries]  # pyright: ignore[reportUnknownVariableType]  # YAML boundary
    results = asyncio.run(engine.send_bulk(requests, correlation_id=correlation_id))

    for result in results:
        _emit_json(result_to_dict(result))
    _emit_json({"notifications": [notification_to_dict(n) for n in engine.store.snapshot_all()]})


@cli.command("check-config")
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Validate the configuration and print it with secrets masked."""
    config: MainConfig = ctx.obj  # pyright: ignore[reportAny]  # click boundary
    router = build_router(config)
    _emit_json(
        {
            "valid": True,
            "channels": [channel.value for channel in router.get_channels()],
            "config": config.model_dump(mode="json"),
        }
    )


def main() -> None:
    """Console script entry point."""
    cli(prog_name="notification-dispatch")
