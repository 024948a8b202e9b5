from __future__ import annotations

import asyncio

import pytest

from anchorr.coalescer import NotificationCoalescer

from .conftest import FakeClock, settle

pytestmark = pytest.mark.anyio

QUIET = 10.0


class Recorder:
    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def __call__(self, key: str, payload: str) -> None:
        self.published.append((key, payload))


def make(clock: FakeClock, publish=None) -> tuple[NotificationCoalescer[str, str], Recorder]:
    recorder = Recorder()
    coalescer: NotificationCoalescer[str, str] = NotificationCoalescer(
        publish or recorder, quiet_period=QUIET, sleep=clock.sleep, clock=clock
    )
    return coalescer, recorder


async def test_burst_publishes_last_event_once(clock: FakeClock) -> None:
    coalescer, recorder = make(clock)

    coalescer.ingest("series-s", "S01E01")
    await settle()
    clock.advance(3)
    await settle()
    coalescer.ingest("series-s", "S01E02")
    await settle()
    clock.advance(1)
    await settle()
    coalescer.ingest("series-s", "S01E03 - Finale")
    await settle()

    clock.advance(9)
    await settle()
    assert recorder.published == []
    assert "series-s" in coalescer

    clock.advance(1)
    await settle()
    assert clock.now == 14
    assert recorder.published == [("series-s", "S01E03 - Finale")]
    assert "series-s" not in coalescer

    clock.advance(60)
    await settle()
    assert len(recorder.published) == 1


async def test_single_event_fires_after_quiet_period(clock: FakeClock) -> None:
    coalescer, recorder = make(clock)

    coalescer.ingest("movie-1", "movie")
    await settle()
    entry = coalescer.pending("movie-1")
    assert entry is not None
    assert entry.scheduled_at == 0

    clock.advance(QUIET)
    await settle()
    assert recorder.published == [("movie-1", "movie")]
    assert len(coalescer) == 0


async def test_distinct_keys_do_not_interfere(clock: FakeClock) -> None:
    coalescer, recorder = make(clock)

    coalescer.ingest("a", "a1")
    await settle()
    clock.advance(2)
    coalescer.ingest("b", "b1")
    await settle()
    clock.advance(2)
    coalescer.ingest("a", "a2")
    await settle()
    clock.advance(2)
    coalescer.ingest("b", "b2")
    await settle()
    assert len(coalescer) == 2

    # a was last touched at t=4, b at t=6.
    clock.advance(8)
    await settle()
    assert recorder.published == [("a", "a2")]

    clock.advance(2)
    await settle()
    assert recorder.published == [("a", "a2"), ("b", "b2")]


async def test_event_at_exact_threshold_supersedes(clock: FakeClock) -> None:
    coalescer, recorder = make(clock)

    coalescer.ingest("k", "first")
    await settle()
    # The timer becomes due, but the new event arrives before it runs.
    clock.advance(QUIET)
    coalescer.ingest("k", "second")
    await settle()
    assert recorder.published == []

    clock.advance(QUIET)
    await settle()
    assert recorder.published == [("k", "second")]


async def test_publish_failure_is_contained(clock: FakeClock) -> None:
    calls: list[str] = []

    async def explode(key: str, payload: str) -> None:
        calls.append(payload)
        raise RuntimeError("channel not found")

    coalescer, _ = make(clock, publish=explode)
    coalescer.ingest("k", "one")
    await settle()
    clock.advance(QUIET)
    await settle()
    assert calls == ["one"]
    assert "k" not in coalescer

    coalescer.ingest("k", "two")
    await settle()
    clock.advance(QUIET)
    await settle()
    assert calls == ["one", "two"]


async def test_slow_publish_does_not_block_next_burst(clock: FakeClock) -> None:
    release = asyncio.Event()
    published: list[str] = []

    async def slow(key: str, payload: str) -> None:
        await release.wait()
        published.append(payload)

    coalescer, _ = make(clock, publish=slow)
    coalescer.ingest("k", "first")
    await settle()
    clock.advance(QUIET)
    await settle()
    # First publish is still in flight; the key is free again.
    assert "k" not in coalescer

    coalescer.ingest("k", "second")
    await settle()
    assert coalescer.pending("k") is not None

    clock.advance(QUIET)
    await settle()
    release.set()
    await settle()
    assert sorted(published) == ["first", "second"]


async def test_aclose_cancels_pending_timers(clock: FakeClock) -> None:
    coalescer, recorder = make(clock)
    coalescer.ingest("a", "a1")
    coalescer.ingest("b", "b1")
    await settle()

    await coalescer.aclose()
    clock.advance(QUIET * 2)
    await settle()

    assert recorder.published == []
    assert len(coalescer) == 0
    with pytest.raises(RuntimeError):
        coalescer.ingest("a", "a2")


async def test_real_timers() -> None:
    recorder = Recorder()
    coalescer: NotificationCoalescer[str, str] = NotificationCoalescer(recorder, quiet_period=0.05)

    for episode in ("e1", "e2", "e3"):
        coalescer.ingest("show", episode)
        await asyncio.sleep(0.01)

    await asyncio.sleep(0.3)
    assert recorder.published == [("show", "e3")]
