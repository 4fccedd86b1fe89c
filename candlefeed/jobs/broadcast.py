from __future__ import annotations

import asyncio
import enum
import logging
import traceback
from typing import Optional

from candlefeed.models.messages import StreamMessage
from candlefeed.providers.base import MarketDataProvider
from candlefeed.realtime.subscribers import SubscriberRegistry

log = logging.getLogger("broadcaster")


class BroadcasterState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class Broadcaster:
    """
    Background loop:
    every `interval_s`, if anyone is subscribed, re-fetch candles and push the
    newest one to every subscriber as an "update" frame.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        registry: SubscriberRegistry,
        interval_s: float = 5.0,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.interval_s = interval_s
        self.state = BroadcasterState.IDLE
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self.state is not BroadcasterState.IDLE:
            raise RuntimeError(f"broadcaster cannot start from state={self.state.value}")
        self._task = asyncio.create_task(self._run(), name="candle-broadcast")
        self.state = BroadcasterState.RUNNING
        log.info("Broadcaster started interval=%.1fs", self.interval_s)

    async def stop(self) -> None:
        if self.state is not BroadcasterState.RUNNING:
            self.state = BroadcasterState.STOPPED
            return

        self.state = BroadcasterState.STOPPED
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("Broadcaster stopped")

    async def tick(self) -> int:
        """
        One broadcast round. Returns the number of subscribers reached.
        Skips the provider call entirely when nobody is listening.
        """
        if len(self.registry) == 0:
            return 0

        # Provider may block on network I/O; keep it off the event loop.
        series = await asyncio.to_thread(self.provider.fetch_candles)
        latest = series.latest()
        if latest is None:
            return 0

        message = StreamMessage.update([latest])
        return await self.registry.broadcast(message.to_json())

    async def _run(self) -> None:
        while True:
            try:
                delivered = await self.tick()
                if delivered:
                    log.debug("Broadcast update delivered=%d", delivered)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Keep loop alive even if a round fails, but log the error.
                log.error("Broadcast tick failed error=%s", repr(e))
                log.error(traceback.format_exc())

            await asyncio.sleep(self.interval_s)
