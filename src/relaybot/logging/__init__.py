"""Logging module for relaybot.

This module provides structured JSON logging with:
- structlog configuration for consistent log formatting
- Secret redaction for OAuth tokens, bot ids and database URLs
- Structured log events for store fallbacks, messages and poll cycles

Usage:
    from relaybot.logging import configure_logging, log_poll_cycle

    configure_logging(verbose=True)
    log_poll_cycle(since, alerts_fetched, alerts_sent, cursor_saved, duration_ms)
"""

from relaybot.logging.events import (
    configure_logging,
    get_logger,
    log_message_sent,
    log_poll_cycle,
    log_store_fallback,
    redact_secrets,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "log_message_sent",
    "log_poll_cycle",
    "log_store_fallback",
    "redact_secrets",
]
