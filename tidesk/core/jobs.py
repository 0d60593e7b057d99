"""
Background periodic jobs.
Each job runs its coroutine on a fixed interval inside the application's event
loop until cancelled at shutdown. A failing run is logged and the next run is
still scheduled.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Union[Awaitable[object], object]]


class PeriodicJob:
    """Run ``func`` every ``interval`` seconds in an asyncio task."""

    def __init__(self, name: str, interval: float, func: JobFunc, run_immediately: bool = False):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.func = func
        self.run_immediately = run_immediately
        self.runs = 0
        self.failures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> None:
        try:
            result = self.func()
            if asyncio.iscoroutine(result):
                await result
            self.runs += 1
        except asyncio.CancelledError:
            raise
        except Exception:
            self.failures += 1
            logger.exception("Periodic job '%s' failed", self.name)

    async def _loop(self) -> None:
        if self.run_immediately:
            await self.run_once()
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"job:{self.name}")
        logger.info("Started periodic job '%s' (every %ss)", self.name, self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped periodic job '%s'", self.name)
