# utils/scheduler.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

log = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[object]]


class Ticket:
    """
    Handle for one recurring task. `revoke()` suppresses future ticks only;
    a tick already running is left to finish. Ticks never overlap: if the
    previous one is still running when the next is due, the new one is skipped.
    """

    def __init__(self, name: str, interval: float, callback: TickCallback, immediate: bool = False):
        self.name = name
        self.interval = interval
        self._callback = callback
        self._immediate = immediate
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._tick: asyncio.Task | None = None
        self.ticks = 0
        self.skipped = 0

    @property
    def active(self) -> bool:
        return self._task is not None and not self._stop.is_set()

    @property
    def in_flight(self) -> bool:
        return self._tick is not None and not self._tick.done()

    def start(self) -> "Ticket":
        if self._task and not self._task.done():
            return self
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name=f"ticket:{self.name}")
        return self

    def revoke(self) -> None:
        self._stop.set()

    async def wait_idle(self) -> None:
        """Wait for the scheduling loop and any in-flight tick to finish."""
        if self._task:
            await asyncio.gather(self._task, return_exceptions=True)
        if self._tick:
            await asyncio.gather(self._tick, return_exceptions=True)

    async def _run(self) -> None:
        if self._immediate:
            self._fire()
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                break  # revoked
            except asyncio.TimeoutError:
                pass
            self._fire()
        log.debug("[scheduler] %s stopped after %d tick(s)", self.name, self.ticks)

    def _fire(self) -> None:
        if self.in_flight:
            self.skipped += 1
            log.warning("[scheduler] %s: previous tick still running; skipping this one", self.name)
            return
        self.ticks += 1
        self._tick = asyncio.create_task(self._guarded(), name=f"tick:{self.name}")

    async def _guarded(self) -> None:
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("[scheduler] %s: tick failed; will retry next interval", self.name)


class Scheduler:
    """Creates and tracks tickets so they can all be revoked at shutdown."""

    def __init__(self):
        self._tickets: set[Ticket] = set()

    def every(self, interval: float, callback: TickCallback, *, name: str, immediate: bool = False) -> Ticket:
        ticket = Ticket(name, interval, callback, immediate=immediate).start()
        self._tickets.add(ticket)
        return ticket

    def revoke_all(self) -> None:
        for t in list(self._tickets):
            t.revoke()
        self._tickets.clear()

    def forget(self, ticket: Ticket) -> None:
        self._tickets.discard(ticket)
