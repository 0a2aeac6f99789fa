"""Periodic roll-up of events into per-user counts."""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Optional

from .errors import ConfigError
from .store import EventAggregation

logger = logging.getLogger(__name__)


class AggregationScheduler:
    """Runs ``aggregate_events`` every ``interval_seconds`` on the event loop.

    Each tick covers the trailing ``interval_seconds`` ending at the moment the
    tick fires. A failed tick is logged and the next one proceeds normally.
    """

    def __init__(self, aggregator: EventAggregation, interval_seconds: int = 60) -> None:
        if isinstance(interval_seconds, bool) or not isinstance(interval_seconds, int):
            raise ConfigError(f"aggregation interval must be an integer, got {interval_seconds!r}")
        if interval_seconds <= 0:
            raise ConfigError(
                f"aggregation interval must be a positive integer, got {interval_seconds}"
            )
        self._aggregator = aggregator
        self._interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def interval_seconds(self) -> int:
        return self._interval_seconds

    @property
    def running(self) -> bool:
        return self._task is not None

    async def run_once(self) -> bool:
        logger.info("Aggregation started")
        try:
            buckets = await asyncio.to_thread(
                self._aggregator.aggregate_events, self._interval_seconds
            )
        except Exception:
            logger.exception("Aggregation failed")
            return False
        logger.info("Aggregation completed successfully (%d buckets)", buckets)
        return True

    async def _worker(self) -> None:
        loop = asyncio.get_running_loop()
        # fixed rate: tick duration must not push later windows back
        deadline = loop.time()
        try:
            while True:
                deadline += self._interval_seconds
                await asyncio.sleep(max(0.0, deadline - loop.time()))
                await self.run_once()
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            pass

    def start(self) -> None:
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._worker())
        logger.info("Aggregation scheduler started (interval_seconds=%d)", self._interval_seconds)

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        self._task = None
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.info("Aggregation scheduler stopped")
