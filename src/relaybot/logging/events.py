"""Structured JSON logging and bot event helpers.

This module provides:
- structlog configuration for JSON logging to stderr
- Secret redaction for OAuth tokens, GroupMe bot ids and database passwords
- Structured log events for store fallbacks, sent messages and poll cycles
"""

from __future__ import annotations

import logging
import re
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.typing import EventDict, WrappedLogger

# Patterns for secret redaction
SECRET_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # OAuth token fields in JSON bodies or key=value text
    (
        re.compile(r"""((?:access|refresh)_token["']?\s*[=:]\s*["']?)([^\s"',&}]+)"""),
        r"\1[REDACTED]",
    ),
    # GroupMe bot ids
    (re.compile(r"""(bot_id["']?\s*[=:]\s*["']?)([^\s"',&}]+)"""), r"\1[REDACTED]"),
    # Passwords embedded in database URLs
    (re.compile(r"([a-z][a-z0-9+.-]*://[^:/@\s]+:)([^@\s]+)(@)"), r"\1[REDACTED]\3"),
    # Bearer tokens in headers
    (re.compile(r"(Bearer\s+)([A-Za-z0-9._~+/=-]+)", re.IGNORECASE), r"\1[REDACTED]"),
]

# Event dict keys whose values are always secret
SECRET_KEYS = frozenset({"access_token", "refresh_token", "bot_id", "password"})


def redact_secrets(value: Any) -> Any:
    """Redact sensitive values from a string, dict, or list.

    Args:
        value: Value to redact. Can be str, dict, list, or other.

    Returns:
        Value with sensitive data redacted
    """
    if isinstance(value, str):
        result = value
        for pattern, replacement in SECRET_PATTERNS:
            result = pattern.sub(replacement, result)
        return result

    if isinstance(value, dict):
        return {
            k: "[REDACTED]" if k in SECRET_KEYS and v else redact_secrets(v)
            for k, v in value.items()
        }

    if isinstance(value, list):
        return [redact_secrets(item) for item in value]

    return value


def _redact_processor(
    _logger: WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """structlog processor that redacts secrets from log events."""
    return redact_secrets(event_dict)


def configure_logging(
    verbose: bool = False,
    json_output: bool = True,
) -> None:
    """Configure structured logging for the application.

    Sets up stdlib logging (used by the library modules) and structlog
    (used by the CLI and the notifier) to write to stderr.

    Args:
        verbose: If True, enable DEBUG level. Otherwise INFO.
        json_output: If True, output JSON. Otherwise use console format.
    """
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        level=level,
    )
    # Request lines from httpx would leak the bot post URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    processors: list[Callable[..., Any]] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _redact_processor,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured structlog logger."""
    return structlog.get_logger(name)


def log_store_fallback(
    operation: str,
    status: str,
    fallback: Any,
    error: str | None = None,
) -> None:
    """Log that a store read returned its fallback value.

    Absence is expected on a first run and logged at debug; a failed read
    is logged as a warning.

    Args:
        operation: Store operation name (e.g. 'latest_poll_cursor')
        status: Lookup status ('absent' or 'failed')
        fallback: The value returned instead
        error: Error text when the read failed
    """
    log = get_logger("relaybot.state")
    log_func = log.warning if status == "failed" else log.debug
    log_func(
        "store_fallback",
        operation=operation,
        status=status,
        fallback=fallback,
        error=error,
    )


def log_message_sent(
    success: bool,
    attempts: int,
    chunks: int,
    message_preview: str | None = None,
    error: str | None = None,
) -> None:
    """Log the outcome of posting a message to the chat channel.

    Args:
        success: Whether every chunk was delivered
        attempts: Total HTTP attempts across chunks
        chunks: Number of chunks the message was split into
        message_preview: First 100 chars of the message
        error: Error text if delivery failed
    """
    log = get_logger("relaybot.messaging")
    log_func = log.info if success else log.warning
    log_func(
        "message_sent" if success else "message_failed",
        attempts=attempts,
        chunks=chunks,
        message_preview=message_preview,
        error=error,
    )


def log_poll_cycle(
    since: int,
    alerts_fetched: int,
    alerts_sent: int,
    cursor_saved: bool,
    duration_ms: float,
) -> None:
    """Log poll cycle completion.

    Args:
        since: Poll cursor the cycle started from (seconds)
        alerts_fetched: Alerts returned by the source
        alerts_sent: Alerts delivered to the chat channel
        cursor_saved: Whether the new poll cursor was stored
        duration_ms: Cycle duration in milliseconds
    """
    log = get_logger("relaybot.poll")
    log.info(
        "poll_cycle_complete",
        since=since,
        alerts_fetched=alerts_fetched,
        alerts_sent=alerts_sent,
        cursor_saved=cursor_saved,
        duration_ms=round(duration_ms, 2),
    )
