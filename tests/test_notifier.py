"""Tests for the notifier."""

from __future__ import annotations

import json
import os
import threading
from datetime import timedelta

import pytest
from freezegun import freeze_time

from relaybot.messaging import SendResult
from relaybot.notifier import Notifier, RunSummary, load_alert_source, no_alerts
from relaybot.state import StateStore, Stream


class FakeMessenger:
    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.sent: list[str] = []

    def send(self, message: str) -> SendResult:
        self.sent.append(message)
        if self.succeed:
            return SendResult(success=True, message="Message sent", status_code=202)
        return SendResult(success=False, message="HTTP 500", status_code=500, attempts=3)


class TestAnnounceStartup:
    def test_sends_once(self, state_store: StateStore) -> None:
        messenger = FakeMessenger()
        notifier = Notifier(state_store, messenger)

        assert notifier.announce_startup("Bot started") is True
        assert notifier.announce_startup("Bot started") is False

        assert messenger.sent == ["Bot started"]
        assert state_store.was_startup_notice_sent() is True

    def test_failed_send_not_recorded(self, state_store: StateStore) -> None:
        messenger = FakeMessenger(succeed=False)
        notifier = Notifier(state_store, messenger)

        assert notifier.announce_startup("Bot started") is False

        assert state_store.was_startup_notice_sent() is False
        assert state_store.count_rows(Stream.STARTUP_NOTICE) == 0

    def test_retried_after_failure(self, state_store: StateStore) -> None:
        messenger = FakeMessenger(succeed=False)
        notifier = Notifier(state_store, messenger)
        notifier.announce_startup("Bot started")

        messenger.succeed = True

        assert notifier.announce_startup("Bot started") is True
        assert messenger.sent == ["Bot started", "Bot started"]


class TestPollOnce:
    def test_passes_cursor_and_saves_new_one(self, state_store: StateStore) -> None:
        messenger = FakeMessenger()
        notifier = Notifier(state_store, messenger)
        seen: list[int] = []

        def source(since: int) -> list[str]:
            seen.append(since)
            return ["Trade accepted", "Waiver processed"]

        with freeze_time("2026-01-10T15:30:00Z") as frozen:
            state_store.save_poll_cursor()
            frozen.tick(timedelta(seconds=60))

            sent = notifier.poll_once(source)

        assert sent == 2
        assert seen == [1768059000]
        assert messenger.sent == ["Trade accepted", "Waiver processed"]
        assert state_store.latest_poll_cursor() == 1768059060

    def test_counts_only_delivered_alerts(self, state_store: StateStore) -> None:
        notifier = Notifier(state_store, FakeMessenger(succeed=False))

        assert notifier.poll_once(lambda since: ["one", "two"]) == 0
        assert state_store.count_rows(Stream.POLL_CURSOR) == 1

    def test_empty_source_still_advances_cursor(self, state_store: StateStore) -> None:
        notifier = Notifier(state_store, FakeMessenger())

        with freeze_time("2026-01-10T15:30:00Z"):
            assert notifier.poll_once(lambda since: []) == 0

        assert state_store.latest_poll_cursor() == 1768059000


class StopAfter(threading.Event):
    """Stop event that sets itself after a number of waits, recording delays."""

    def __init__(self, waits: int) -> None:
        super().__init__()
        self.remaining = waits
        self.delays: list[float] = []

    def wait(self, timeout: float | None = None) -> bool:
        self.delays.append(timeout)
        self.remaining -= 1
        if self.remaining <= 0:
            self.set()
        return self.is_set()


class TestRun:
    def test_announces_then_polls_until_stopped(self, state_store: StateStore) -> None:
        messenger = FakeMessenger()
        notifier = Notifier(state_store, messenger)
        stop = StopAfter(waits=2)
        cursors: list[int] = []

        def source(since: int) -> list[str]:
            cursors.append(since)
            return [f"alert {len(cursors)}"]

        summary = notifier.run(
            source, interval=60, stop_event=stop, startup_message="Bot started", jitter=0
        )

        assert summary == RunSummary(cycles=2, alerts_sent=2, errors=0)
        assert messenger.sent == ["Bot started", "alert 1", "alert 2"]
        assert stop.delays == [60, 60]
        assert len(cursors) == 2
        assert state_store.was_startup_notice_sent() is True

    def test_startup_notice_not_repeated(self, state_store: StateStore) -> None:
        state_store.mark_startup_notice_sent()
        messenger = FakeMessenger()

        Notifier(state_store, messenger).run(
            no_alerts,
            interval=60,
            stop_event=threading.Event(),
            startup_message="Bot started",
            max_cycles=1,
        )

        assert messenger.sent == []

    def test_failed_cycle_is_counted_and_loop_continues(
        self, state_store: StateStore
    ) -> None:
        calls: list[int] = []

        def flaky(since: int) -> list[str]:
            calls.append(since)
            if len(calls) == 1:
                raise RuntimeError("upstream unavailable")
            return ["recovered"]

        messenger = FakeMessenger()
        summary = Notifier(state_store, messenger).run(
            flaky, interval=30, stop_event=StopAfter(waits=5), jitter=0, max_cycles=2
        )

        assert summary == RunSummary(cycles=2, alerts_sent=1, errors=1)
        assert messenger.sent == ["recovered"]

    def test_jitter_bounds_wait(self, state_store: StateStore) -> None:
        stop = StopAfter(waits=1)

        Notifier(state_store, FakeMessenger()).run(
            no_alerts, interval=100, stop_event=stop, jitter=0.1
        )

        (delay,) = stop.delays
        assert 100 <= delay <= 110

    def test_already_stopped_runs_no_cycle(self, state_store: StateStore) -> None:
        stop = threading.Event()
        stop.set()

        summary = Notifier(state_store, FakeMessenger()).run(
            no_alerts, interval=60, stop_event=stop
        )

        assert summary.cycles == 0
        assert state_store.count_rows(Stream.POLL_CURSOR) == 0


class TestLoadAlertSource:
    def test_resolves_function(self) -> None:
        assert load_alert_source("json:dumps") is json.dumps

    def test_resolves_nested_attribute(self) -> None:
        assert load_alert_source("os:path.basename") is os.path.basename

    def test_malformed_reference(self) -> None:
        with pytest.raises(ValueError, match="package.module:function"):
            load_alert_source("json.dumps")

    def test_missing_attribute(self) -> None:
        with pytest.raises(ValueError, match="no attribute"):
            load_alert_source("json:nope")

    def test_not_callable(self) -> None:
        with pytest.raises(ValueError, match="not callable"):
            load_alert_source("os:sep")

    def test_missing_module(self) -> None:
        with pytest.raises(ImportError):
            load_alert_source("relaybot_no_such_module:alerts")
