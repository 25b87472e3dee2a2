"""CLI entry point for relaybot.

This module provides the Typer-based CLI with commands:
- relaybot validate: Validate configuration
- relaybot status: Show stored state (startup flag, poll cursor, token)
- relaybot announce: Send the one-time startup notice
- relaybot send: Post a message to the chat channel
- relaybot mark-poll: Store the current time as the poll cursor
- relaybot run: Announce startup, then poll continuously

Exit codes:
- 0: Success
- 1: Configuration error
- 3: Message could not be delivered (or a poll cycle failed)
"""

from __future__ import annotations

import signal
import threading
from datetime import UTC, datetime
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer

from relaybot import __version__
from relaybot.config import load_config
from relaybot.config.loader import ConfigError
from relaybot.logging import configure_logging, get_logger, log_store_fallback
from relaybot.messaging import GroupMeClient
from relaybot.notifier import Notifier, load_alert_source, no_alerts
from relaybot.state import StateStore, Stream
from relaybot.state.connection import mask_url

if TYPE_CHECKING:
    from relaybot.config.schema import Config


class ExitCode(IntEnum):
    """CLI exit codes."""

    SUCCESS = 0
    CONFIG_ERROR = 1
    SEND_FAILURE = 3


app = typer.Typer(
    name="relaybot",
    help="relaybot - polling notification bot with persistent state.",
    add_completion=False,
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to configuration file."),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"relaybot {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """relaybot - polling notification bot with persistent state."""


def _fail(message: str, code: ExitCode) -> typer.Exit:
    typer.echo(typer.style(f"✗ {message}", fg=typer.colors.RED), err=True)
    return typer.Exit(code)


def _load(config: Path | None) -> Config:
    try:
        return load_config(config)
    except ConfigError as e:
        raise _fail(f"Configuration error: {e}", ExitCode.CONFIG_ERROR) from e


def _open_store(cfg: Config, stop_event: threading.Event | None = None) -> StateStore:
    return StateStore(
        cfg.database.get_url(),
        history_cap=cfg.database.history_cap,
        retry_delay=cfg.database.retry_delay,
        stop_event=stop_event,
    )


def _notifier(cfg: Config, store: StateStore) -> Notifier:
    if cfg.groupme is None:
        raise _fail(
            "No GroupMe configuration. Add groupme.bot_id to your config.",
            ExitCode.CONFIG_ERROR,
        )
    client = GroupMeClient(
        cfg.groupme.bot_id,
        api_url=cfg.groupme.api_url,
        max_message_length=cfg.groupme.max_message_length,
    )
    return Notifier(store, client)


def _format_seconds(seconds: int) -> str:
    return datetime.fromtimestamp(seconds, tz=UTC).isoformat()


@app.command()
def validate(config: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """Validate configuration without touching the database."""
    configure_logging(verbose=verbose, json_output=False)

    cfg = _load(config)
    typer.echo(typer.style("✓ Configuration is valid", fg=typer.colors.GREEN))

    if verbose:
        typer.echo("\nConfiguration summary:")
        typer.echo(f"  Version: {cfg.version}")
        typer.echo(f"  Database: {mask_url(cfg.database.get_url(create_dir=False))}")
        typer.echo(f"  History cap: {cfg.database.history_cap}")
        typer.echo(f"  Poll interval: {cfg.poll.interval}s")
        typer.echo(f"  Alert source: {cfg.poll.source or 'none'}")
        typer.echo(f"  GroupMe: {'configured' if cfg.groupme else 'not configured'}")

    raise typer.Exit(ExitCode.SUCCESS)


@app.command()
def status(config: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """Show the stored startup flag, poll cursor and token record."""
    configure_logging(verbose=verbose, json_output=False)
    cfg = _load(config)
    store = _open_store(cfg)

    try:
        notice = store.lookup_startup_notice()
        cursor = store.lookup_poll_cursor()
        token = store.lookup_token_record()

        typer.echo(typer.style("relaybot status", bold=True))
        typer.echo("─" * 40)
        typer.echo(f"Database: {store.connections.safe_url}")
        typer.echo()

        if not notice.found:
            log_store_fallback("was_startup_notice_sent", notice.status.value, False, notice.error)
        typer.echo(f"Startup notice sent: {'yes' if notice.value_or(False) else 'no'}")

        if cursor.found:
            typer.echo(f"Poll cursor: {_format_seconds(cursor.value)}")
        else:
            log_store_fallback("latest_poll_cursor", cursor.status.value, "now", cursor.error)
            typer.echo(f"Poll cursor: (none, {cursor.status.value})")

        if token.found:
            issued_at_ms, record = token.value
            state = "expired" if record.is_expired(issued_at_ms) else "valid"
            typer.echo(
                f"Token: {record.token_type or 'unknown'} issued "
                f"{_format_seconds(issued_at_ms // 1000)} ({state})"
            )
        else:
            log_store_fallback("latest_token_record", token.status.value, None, token.error)
            typer.echo(f"Token: (none, {token.status.value})")

        typer.echo()
        typer.echo(typer.style("Rows:", bold=True))
        for stream in Stream:
            count = store.count_rows(stream)
            typer.echo(f"  {stream.value}: {'?' if count is None else count}")
    finally:
        store.close()

    raise typer.Exit(ExitCode.SUCCESS)


@app.command()
def announce(config: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """Send the startup notice if it has never been delivered."""
    configure_logging(verbose=verbose)
    cfg = _load(config)
    store = _open_store(cfg)

    try:
        notifier = _notifier(cfg, store)
        if store.was_startup_notice_sent():
            typer.echo("Startup notice already sent.")
            raise typer.Exit(ExitCode.SUCCESS)
        if not notifier.announce_startup(cfg.poll.startup_message):
            raise _fail("Startup notice could not be delivered", ExitCode.SEND_FAILURE)
        typer.echo(typer.style("✓ Startup notice sent", fg=typer.colors.GREEN))
    finally:
        store.close()

    raise typer.Exit(ExitCode.SUCCESS)


@app.command()
def send(
    message: Annotated[str, typer.Argument(help="Text to post.")],
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Post a message to the chat channel."""
    configure_logging(verbose=verbose)
    cfg = _load(config)
    store = _open_store(cfg)

    try:
        if not _notifier(cfg, store).send(message):
            raise _fail("Message could not be delivered", ExitCode.SEND_FAILURE)
    finally:
        store.close()

    typer.echo(typer.style("✓ Message sent", fg=typer.colors.GREEN))
    raise typer.Exit(ExitCode.SUCCESS)


@app.command("mark-poll")
def mark_poll(config: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """Store the current time as the poll cursor."""
    configure_logging(verbose=verbose)
    log = get_logger("relaybot.cli")
    cfg = _load(config)
    store = _open_store(cfg)

    try:
        saved = store.save_poll_cursor()
    finally:
        store.close()

    if saved is None:
        log.warning("poll_cursor_not_saved")
        typer.echo(typer.style("Poll cursor was not saved", fg=typer.colors.YELLOW))
    else:
        typer.echo(f"Poll cursor saved: {_format_seconds(saved)}")
    raise typer.Exit(ExitCode.SUCCESS)


def _install_signal_handlers(shutdown: threading.Event) -> dict[int, object]:
    def handler(signum: int, _frame: object) -> None:
        typer.echo(f"\n⚡ Received {signal.Signals(signum).name}, shutting down gracefully...")
        shutdown.set()

    return {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}


@app.command("run")
def run_daemon(
    config: ConfigOption = None,
    verbose: VerboseOption = False,
    once: Annotated[
        bool,
        typer.Option("--once", help="Run one poll cycle and exit."),
    ] = False,
    poll_interval: Annotated[
        int | None,
        typer.Option(
            "--poll-interval",
            help="Override poll interval in seconds (10-3600).",
            min=10,
            max=3600,
        ),
    ] = None,
) -> None:
    """Announce startup, then relay alerts every poll interval.

    Runs until interrupted (Ctrl+C or SIGTERM). Alerts come from the
    configured poll.source; without one only the poll cursor advances.
    """
    configure_logging(verbose=verbose)
    log = get_logger("relaybot.cli")
    cfg = _load(config)

    try:
        source = load_alert_source(cfg.poll.source) if cfg.poll.source else no_alerts
    except (ImportError, ValueError) as e:
        raise _fail(f"Configuration error: {e}", ExitCode.CONFIG_ERROR) from e

    interval = poll_interval or cfg.poll.interval
    shutdown = threading.Event()
    store = _open_store(cfg, stop_event=shutdown)
    notifier = _notifier(cfg, store)

    if not once:
        typer.echo(
            typer.style(
                f"🚀 Starting continuous polling (interval: {interval}s)",
                fg=typer.colors.GREEN,
                bold=True,
            )
        )
        typer.echo("Press Ctrl+C to stop.")

    previous_handlers = _install_signal_handlers(shutdown)
    log.info("daemon_started", interval=interval, database=store.connections.safe_url)
    try:
        summary = notifier.run(
            source,
            interval=interval,
            stop_event=shutdown,
            startup_message=cfg.poll.startup_message,
            max_cycles=1 if once else None,
        )
    finally:
        for sig, previous in previous_handlers.items():
            signal.signal(sig, previous)
        store.close()

    typer.echo()
    typer.echo(typer.style("Polling stopped", bold=True))
    typer.echo(f"  Poll cycles: {summary.cycles}")
    typer.echo(f"  Alerts sent: {summary.alerts_sent}")

    if summary.errors:
        typer.echo(typer.style(f"  Failed cycles: {summary.errors}", fg=typer.colors.YELLOW))
        raise typer.Exit(ExitCode.SEND_FAILURE)

    raise typer.Exit(ExitCode.SUCCESS)
