"""Injected clock plus the periodic sweeper for process-wide session state."""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Tuple

from .rate_limit import Clock, wall_clock_ms

logger = logging.getLogger(__name__)

SweepFn = Callable[[], int]


class SessionClock:
    """
    Owns the time source shared by the rate limiter, result cache and trigger
    engine, and runs their ``cleanup()`` on an interval.

    Start it from the app lifespan; tests call ``sweep()`` directly.
    """

    def __init__(self, clock: Optional[Clock] = None, interval_sec: float = 300.0):
        self._clock = clock or wall_clock_ms
        self.interval_sec = interval_sec
        self._sweepers: List[Tuple[str, SweepFn]] = []
        self._task: Optional[asyncio.Task] = None

    def now(self) -> float:
        return self._clock()

    __call__ = now

    def register(self, name: str, sweep: SweepFn) -> None:
        self._sweepers.append((name, sweep))

    def sweep(self) -> Dict[str, int]:
        removed: Dict[str, int] = {}
        for name, fn in self._sweepers:
            try:
                removed[name] = fn()
            except Exception:
                logger.exception("Sweep failed for %s", name)
                removed[name] = 0
        if any(removed.values()):
            logger.info("Session sweep", extra={"context": removed})
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            self.sweep()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
