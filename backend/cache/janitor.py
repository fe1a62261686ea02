"""
Background Janitor
后台清理任务

Runs each registered sweep on its own schedule in its own task:
- hourly: rate limiter windows, anti-forgery tokens
- daily: profile cache, screenshot cache, disk assets

A failing sweep is logged and retried on its next tick; it never
stops the other sweeps.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

SweepFn = Callable[[], Union[int, Awaitable[int]]]


@dataclass
class Sweep:
    """One periodic cleanup job"""
    name: str
    interval: float          # Seconds between runs
    fn: SweepFn
    runs: int = 0
    failures: int = 0
    last_removed: int = 0
    last_error: Optional[str] = None


class BackgroundJanitor:
    """
    Independent periodic sweeps
    """

    def __init__(self):
        self._sweeps: Dict[str, Sweep] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def register(self, name: str, interval: float, fn: SweepFn) -> None:
        if name in self._sweeps:
            raise ValueError(f"Sweep already registered: {name}")
        self._sweeps[name] = Sweep(name=name, interval=interval, fn=fn)

    @property
    def sweeps(self) -> List[Sweep]:
        return list(self._sweeps.values())

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks.values())

    async def start(self) -> None:
        """启动清理任务"""
        for name, sweep in self._sweeps.items():
            task = self._tasks.get(name)
            if task is None or task.done():
                self._tasks[name] = asyncio.create_task(
                    self._loop(sweep), name=f"janitor:{name}"
                )
        logger.info(f"[Janitor] Started {len(self._tasks)} sweeps")

    async def stop(self) -> None:
        """停止清理任务"""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        if tasks:
            logger.info("[Janitor] Stopped")

    async def _loop(self, sweep: Sweep) -> None:
        while True:
            try:
                await asyncio.sleep(sweep.interval)
            except asyncio.CancelledError:
                break
            await self.run_sweep(sweep.name)

    async def run_sweep(self, name: str) -> Optional[int]:
        """
        Run one sweep now

        Returns:
            Number of entries removed, or None if the sweep failed
        """
        sweep = self._sweeps[name]
        sweep.runs += 1
        try:
            result = sweep.fn()
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            sweep.failures += 1
            sweep.last_error = str(e)
            logger.error(f"[Janitor] Sweep {name} failed: {e}", exc_info=True)
            return None

        sweep.last_error = None
        sweep.last_removed = int(result or 0)
        if sweep.last_removed:
            logger.info(f"[Janitor] {name}: removed {sweep.last_removed}")
        return sweep.last_removed

    async def run_all(self) -> Dict[str, Optional[int]]:
        """Run every sweep once, each isolated from the others"""
        return {name: await self.run_sweep(name) for name in self._sweeps}

    def stats(self) -> Dict[str, Any]:
        return {
            s.name: {
                "interval": s.interval,
                "runs": s.runs,
                "failures": s.failures,
                "last_removed": s.last_removed,
                "last_error": s.last_error,
            }
            for s in self._sweeps.values()
        }
