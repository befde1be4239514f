# fleetcron/core/scheduler/ticker.py
from __future__ import annotations
import asyncio
from typing import Awaitable, Callable, Optional
from fleetcron.core.logging import get_logger

logger = get_logger('ticker')


class Ticker:
    """
    Invokes an async callback every `interval_seconds` until stopped.

    Ticks never overlap: the next wait starts after the callback returns.
    Callback errors are logged and the loop keeps going. stop() lets an
    in-progress callback finish and prevents any further tick.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        *,
        fire_immediately: bool = False,
    ):
        self.name = name
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.fire_immediately = fire_immediately
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name=f'ticker-{self.name}')

    async def stop(self) -> None:
        self._stop.set()
        if self._task is None:
            return
        try:
            await self._task
        finally:
            self._task = None

    async def _tick(self) -> None:
        try:
            await self.callback()
        except Exception as e:
            logger.error(f"Error in '{self.name}' tick: {e}", exc_info=True)

    async def _run(self) -> None:
        if self.fire_immediately and not self._stop.is_set():
            await self._tick()

        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
                break  # Stop signal received
            except asyncio.TimeoutError:
                pass
            await self._tick()
