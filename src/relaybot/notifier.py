"""Notifier tying the state store to the chat channel.

The notifier sends the one-time startup notice and relays alerts
produced by an upstream source, using the poll cursor to remember how
far the source has been read.
"""

from __future__ import annotations

import importlib
import random
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from relaybot.logging import get_logger, log_message_sent, log_poll_cycle

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from relaybot.messaging import SendResult
    from relaybot.state import StateStore

    # Given the poll cursor (seconds since epoch), return alert texts
    AlertSource = Callable[[int], Iterable[str]]


def no_alerts(_since: int) -> list[str]:
    """Alert source used when none is configured."""
    return []


def load_alert_source(spec: str) -> AlertSource:
    """Resolve a 'package.module:function' reference to an alert source.

    Raises:
        ValueError: If the reference is malformed or not callable
        ImportError: If the module cannot be imported
    """
    module_name, sep, attr_path = spec.partition(":")
    if not sep or not module_name or not attr_path:
        msg = f"Alert source must look like 'package.module:function', got {spec!r}"
        raise ValueError(msg)

    target: object = importlib.import_module(module_name)
    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError as e:
            msg = f"Alert source {spec!r} not found: no attribute {attr!r}"
            raise ValueError(msg) from e

    if not callable(target):
        msg = f"Alert source {spec!r} is not callable"
        raise ValueError(msg)
    return target


@dataclass
class RunSummary:
    """Totals for a run of the polling loop."""

    cycles: int = 0
    alerts_sent: int = 0
    errors: int = 0


class Messenger(Protocol):
    """Anything that can post text to the chat channel."""

    def send(self, message: str) -> SendResult: ...


class Notifier:
    """Relays alerts and the startup notice through a messenger.

    Args:
        store: State store holding the startup flag and poll cursor
        messenger: Chat channel client (e.g. GroupMeClient)
    """

    def __init__(self, store: StateStore, messenger: Messenger) -> None:
        self.store = store
        self.messenger = messenger
        self._log = get_logger("relaybot.notifier")

    def send(self, message: str) -> bool:
        """Post one message and log the outcome."""
        result = self.messenger.send(message)
        log_message_sent(
            success=result.success,
            attempts=result.attempts,
            chunks=result.chunks,
            message_preview=message[:100],
            error=None if result.success else result.message,
        )
        return result.success

    def announce_startup(self, message: str) -> bool:
        """Send the startup notice unless it was already delivered.

        The notice is marked sent only after a successful post, so a
        failed post is retried on the next start.

        Returns:
            True if the notice was sent by this call
        """
        if self.store.was_startup_notice_sent():
            self._log.debug("startup_notice_already_sent")
            return False

        if not self.send(message):
            return False

        if not self.store.mark_startup_notice_sent():
            self._log.warning("startup_notice_not_recorded")
        return True

    def poll_once(self, source: AlertSource) -> int:
        """Run one poll cycle against an alert source.

        Reads the poll cursor, relays every alert the source returns for
        it, then stores a new cursor.

        Args:
            source: Callable taking the cursor (seconds) and returning alerts

        Returns:
            Number of alerts delivered
        """
        started = time.monotonic()
        since = self.store.latest_poll_cursor()

        alerts = list(source(since))
        sent = sum(1 for alert in alerts if self.send(alert))

        cursor_saved = self.store.save_poll_cursor() is not None
        log_poll_cycle(
            since=since,
            alerts_fetched=len(alerts),
            alerts_sent=sent,
            cursor_saved=cursor_saved,
            duration_ms=(time.monotonic() - started) * 1000,
        )
        return sent

    def run(
        self,
        source: AlertSource,
        *,
        interval: float,
        stop_event: threading.Event,
        startup_message: str | None = None,
        jitter: float = 0.1,
        max_cycles: int | None = None,
    ) -> RunSummary:
        """Announce startup, then poll until stop_event is set.

        A failing cycle is logged and counted; the loop keeps going.

        Args:
            source: Alert source passed to poll_once()
            interval: Seconds between cycles
            stop_event: Set to stop; the wait between cycles is interrupted
            startup_message: Startup notice text, or None to skip it
            jitter: Up to this fraction of interval is added to each wait
            max_cycles: Stop after this many cycles (None for no limit)

        Returns:
            Cycle, delivery and error totals
        """
        summary = RunSummary()

        if startup_message is not None:
            self.announce_startup(startup_message)

        while not stop_event.is_set():
            summary.cycles += 1
            try:
                summary.alerts_sent += self.poll_once(source)
            except Exception:
                self._log.exception("poll_cycle_failed", cycle=summary.cycles)
                summary.errors += 1

            if max_cycles is not None and summary.cycles >= max_cycles:
                break

            delay = interval + random.uniform(0, interval * jitter)
            self._log.debug("sleeping_until_next_cycle", sleep_seconds=round(delay, 2))
            if stop_event.wait(delay):
                break

        return summary
