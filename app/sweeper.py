"""Background task that periodically purges expired cache entries."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .cache import TTLCache

logger = logging.getLogger(__name__)


class CacheSweeper:
    """Runs ``cache.cleanup()`` every ``interval`` seconds on the event loop.

    The sweeper is owned by whoever owns the cache; it is started and
    stopped explicitly and never outlives that owner.
    """

    def __init__(self, cache: TTLCache[Any, Any], interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._cache = cache
        self._interval = interval
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="cache-sweeper")
        logger.info("Cache sweeper started (interval=%ss)", self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Cache sweeper stopped")

    def sweep_once(self) -> int:
        removed = self._cache.cleanup()
        if removed:
            logger.info("Swept %d expired cache entries", removed)
        else:
            logger.debug("Cache sweep found nothing to remove")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Cache sweep failed")

    async def __aenter__(self) -> "CacheSweeper":
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
