from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from lingaplink_csrf.utils.log import logger


async def _sweep_loop(tick: Callable[[], Awaitable[None]], *, interval_s: float) -> None:
    try:
        while True:
            await asyncio.sleep(float(interval_s))
            try:
                await tick()
            except Exception as ex:
                logger.warning("csrf_sweep_tick_failed", error=str(ex))
    except asyncio.CancelledError:
        logger.info("task stopped", task="csrf.sweep")
        raise


@dataclass(slots=True)
class SweepHandle:
    """
    Owner-held handle for the periodic refresh task.

    `cancel()` is synchronous and idempotent; `stop()` also waits for the task.
    """

    interval_s: float
    task: asyncio.Task | None = field(default=None)

    @classmethod
    def start(cls, tick: Callable[[], Awaitable[None]], *, interval_s: float) -> SweepHandle:
        if float(interval_s) <= 0:
            raise ValueError("sweep interval must be positive")
        task = asyncio.get_running_loop().create_task(
            _sweep_loop(tick, interval_s=interval_s), name="csrf.sweep"
        )
        logger.info("csrf_sweep_started", interval_s=float(interval_s))
        return cls(interval_s=float(interval_s), task=task)

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    def cancel(self) -> None:
        t = self.task
        if t is not None and not t.done():
            t.cancel()

    async def stop(self) -> None:
        t = self.task
        if t is None:
            return
        self.cancel()
        try:
            await t
        except asyncio.CancelledError:
            pass
        self.task = None
