"""Keyed debounce buffer for ingestion events.

Each key has at most one pending entry. A new event for a key cancels the
entry's timer and replaces it (last event wins); when a key stays quiet for
the full quiet period its entry is removed and published exactly once.

All table mutation happens synchronously on the event loop thread, so
lookup, cancel and insert cannot interleave with another arrival.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from .log import get_logger

logger = get_logger(__name__)

__all__ = ["QUIET_PERIOD_SECONDS", "NotificationCoalescer", "PendingNotification"]

QUIET_PERIOD_SECONDS = 10.0

K = TypeVar("K", bound=Hashable)
P = TypeVar("P")


@dataclass(slots=True, eq=False)
class PendingNotification(Generic[K, P]):
    """The single live entry for a key."""

    key: K
    payload: P
    scheduled_at: float
    timer: asyncio.Task[None] | None = field(default=None, repr=False)


class NotificationCoalescer(Generic[K, P]):
    """Collapse bursts of events per key into one delayed publish call."""

    def __init__(
        self,
        publish: Callable[[K, P], Awaitable[None]],
        *,
        quiet_period: float = QUIET_PERIOD_SECONDS,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._publish = publish
        self._quiet_period = quiet_period
        self._sleep = sleep
        self._clock = clock
        self._pending: dict[K, PendingNotification[K, P]] = {}
        self._firing: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def quiet_period(self) -> float:
        return self._quiet_period

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def pending(self, key: K) -> PendingNotification[K, P] | None:
        return self._pending.get(key)

    def ingest(self, key: K, payload: P) -> None:
        """Record an event for ``key`` and (re)start its quiet-period clock.

        Never blocks: must be called from within the running event loop.
        """
        if self._closed:
            raise RuntimeError("coalescer is closed")
        previous = self._pending.get(key)
        if previous is not None and previous.timer is not None:
            previous.timer.cancel()

        entry: PendingNotification[K, P] = PendingNotification(
            key=key, payload=payload, scheduled_at=self._clock()
        )
        entry.timer = asyncio.create_task(self._wait_and_fire(entry), name=f"coalesce:{key}")
        self._pending[key] = entry
        logger.debug(
            "coalescer.superseded" if previous is not None else "coalescer.scheduled",
            key=str(key),
            quiet_period=self._quiet_period,
        )

    async def _wait_and_fire(self, entry: PendingNotification[K, P]) -> None:
        await self._sleep(self._quiet_period)
        if self._pending.get(entry.key) is not entry:
            return
        # Remove before publishing so a slow publish never blocks the next burst.
        del self._pending[entry.key]
        task = asyncio.current_task()
        if task is not None:
            self._firing.add(task)
        try:
            logger.info(
                "coalescer.fired",
                key=str(entry.key),
                waited=round(self._clock() - entry.scheduled_at, 3),
            )
            await self._publish(entry.key, entry.payload)
        except Exception:
            logger.exception("coalescer.publish_failed", key=str(entry.key))
        finally:
            if task is not None:
                self._firing.discard(task)

    async def aclose(self) -> None:
        """Drop pending entries and wait for publishes already under way."""
        self._closed = True
        pending = list(self._pending.values())
        self._pending.clear()
        for entry in pending:
            if entry.timer is not None:
                entry.timer.cancel()
        timers = [entry.timer for entry in pending if entry.timer is not None]
        for timer in timers:
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        if self._firing:
            await asyncio.gather(*list(self._firing), return_exceptions=True)
        if pending:
            logger.info("coalescer.closed", dropped=len(pending))
