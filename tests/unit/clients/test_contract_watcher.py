"""Unit tests for ContractWatcher.

Polling runs on real daemon threads with a tiny interval; tests wait on
events instead of sleeping.
"""

from __future__ import annotations

import threading

import pytest

from clients.storefront.api import ApiError, OfflineError
from clients.storefront.contract_watcher import ContractWatcher

pytestmark = pytest.mark.unit

WAIT = 2.0


class StatusFeed:
    """Reports ``pending`` for the first ``pending_polls`` fetches."""

    def __init__(self, pack="agreement", pending_polls=2, errors=()):
        self.pack = pack
        self.pending_polls = pending_polls
        self.errors = list(errors)
        self.calls = 0
        self.lock = threading.Lock()

    def __call__(self, build_id):
        with self.lock:
            self.calls += 1
            if self.errors:
                raise self.errors.pop(0)
            status = "completed" if self.calls > self.pending_polls else "in_progress"
        return {"build_id": build_id, "packs": {self.pack: status}}


class Completions:
    def __init__(self):
        self.events: list[tuple[str, str]] = []
        self.done = threading.Event()

    def __call__(self, pack, source):
        self.events.append((pack, source))
        self.done.set()


@pytest.fixture()
def completions():
    return Completions()


def test_poll_detects_completion(completions):
    feed = StatusFeed(pending_polls=2)
    with ContractWatcher(feed, "b-1", completions, interval=0.01) as watcher:
        assert watcher.watch("agreement") is True
        assert completions.done.wait(WAIT)

    assert completions.events == [("agreement", "poll")]
    assert watcher.completed == {"agreement"}


def test_message_then_poll_completes_once(completions):
    feed = StatusFeed(pending_polls=0)
    watcher = ContractWatcher(feed, "b-1", completions, interval=0.05)

    assert watcher.notify_message("agreement") is True
    assert watcher.watch("agreement") is False
    assert watcher.notify_message("agreement") is False
    watcher.close()

    assert completions.events == [("agreement", "message")]
    assert feed.calls == 0


def test_message_stops_running_poll(completions):
    feed = StatusFeed(pending_polls=10_000)
    watcher = ContractWatcher(feed, "b-1", completions, interval=0.01)
    watcher.watch("agreement")

    assert watcher.notify_message("agreement") is True
    watcher.close()

    assert completions.events == [("agreement", "message")]


def test_poll_errors_are_retried(completions):
    feed = StatusFeed(
        pending_polls=0,
        errors=[OfflineError("down"), ApiError(502, {"errors": []})],
    )
    with ContractWatcher(feed, "b-1", completions, interval=0.01) as watcher:
        watcher.watch("agreement")
        assert completions.done.wait(WAIT)

    assert feed.calls == 3
    assert completions.events == [("agreement", "poll")]


def test_timeout_stops_polling(completions):
    timed_out = threading.Event()
    seen = []

    def on_timeout(pack):
        seen.append(pack)
        timed_out.set()

    feed = StatusFeed(pending_polls=10_000)
    watcher = ContractWatcher(
        feed, "b-1", completions, interval=0.01, timeout=0.05, on_timeout=on_timeout
    )
    watcher.watch("agreement")

    assert timed_out.wait(WAIT)
    watcher.close()
    assert seen == ["agreement"]
    assert completions.events == []
    assert watcher.completed == set()


def test_watch_twice_is_ignored(completions):
    feed = StatusFeed(pending_polls=10_000)
    with ContractWatcher(feed, "b-1", completions, interval=0.01) as watcher:
        assert watcher.watch("agreement") is True
        assert watcher.watch("agreement") is False


def test_closed_watcher_does_not_start(completions):
    watcher = ContractWatcher(StatusFeed(), "b-1", completions, interval=0.01)
    watcher.close()
    assert watcher.watch("agreement") is False
