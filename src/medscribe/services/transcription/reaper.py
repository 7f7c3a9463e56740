"""Background eviction of abandoned live transcriptions.

A connection that stops sending chunks without a stop or a clean disconnect
would otherwise keep its registry entry (and its unsaved transcript) forever.
The reaper periodically flushes and removes every entry idle for longer than
the configured timeout.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

from src.medscribe.config import settings
from src.medscribe.services.transcription.coordinator import TranscriptionCoordinator

logger = logging.getLogger("medscribe.transcription.reaper")


class IdleSessionReaper:
    """Periodic sweep over the coordinator's session registry.

    Usage:
        reaper = IdleSessionReaper(coordinator)
        reaper.start()          # call in application startup
        await reaper.shutdown() # call in application shutdown
    """

    def __init__(
        self,
        coordinator: TranscriptionCoordinator,
        *,
        interval_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._coordinator = coordinator
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.transcription_reaper_interval_seconds
        )
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.transcription_idle_timeout_seconds
        )
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            logger.warning("Idle session reaper already running")
            return
        self._task = asyncio.create_task(self._run(), name="idle-session-reaper")
        logger.info(
            "Idle session reaper started (interval=%ss, timeout=%ss)",
            self.interval_seconds,
            self.timeout_seconds,
        )

    async def shutdown(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Idle session reaper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.sweep()

    async def sweep(self) -> List[str]:
        """Run one eviction pass and return the evicted connection ids."""

        now = self._clock()
        stale = self._coordinator.registry.list_stale(now, self.timeout_seconds)
        evicted: List[str] = []
        for connection_id in stale:
            try:
                if await self._coordinator.evict(connection_id, now, self.timeout_seconds):
                    evicted.append(connection_id)
            except Exception:
                # Keep sweeping the remaining entries.
                logger.exception("Failed to evict idle transcription on connection %s", connection_id)
        if evicted:
            logger.info("Idle session reaper evicted %d transcription(s)", len(evicted))
        return evicted
