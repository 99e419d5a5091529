"""Periodic eviction of sessions whose streamer socket is no longer open.

Some transport failures never surface as a close event; the sweep bounds how
long such a session can stay in the registry to one interval.
"""

from __future__ import annotations

import asyncio
import contextlib

from loguru import logger

from app.shared.api.utils import format_error

from .message_router import MessageRouter
from .session_registry import SessionRegistry

DEFAULT_SWEEP_INTERVAL_SECONDS = 30.0


class LivenessSweeper:
    def __init__(
        self,
        registry: SessionRegistry,
        router: MessageRouter,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ):
        self.registry = registry
        self.router = router
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        """Evict every session whose streamer is not open. Returns the eviction count."""
        stale = [session for session in self.registry.sessions() if not session.streamer.is_open]

        evicted = 0
        for session in stale:
            if await self.router.teardown_session(session, close_streamer=True):
                evicted += 1

        if evicted:
            logger.info("Liveness sweep evicted {} stale session(s), {} remaining", evicted, len(self.registry))
        return evicted

    async def run(self) -> None:
        logger.info("Liveness sweeper started (interval={}s)", self.interval_seconds)
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_once()
            except Exception as exc:
                logger.error("Liveness sweep failed: {}", format_error(exc))

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run(), name="liveness-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return

        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Liveness sweeper stopped")
