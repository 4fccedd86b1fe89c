from __future__ import annotations

import asyncio
import logging
from typing import List, Protocol, Set

log = logging.getLogger("subscribers")


class Subscriber(Protocol):
    """Anything that can receive a text frame (a FastAPI WebSocket in production)."""

    async def send_text(self, data: str) -> None: ...


class SubscriberRegistry:
    """
    Connected real-time clients.

    Owned by one app instance and passed to whoever needs it (WS route,
    broadcaster). add/remove/snapshot share one lock, and broadcasts iterate
    over a snapshot so connects/disconnects during a send are safe.
    """

    def __init__(self, send_timeout_s: float = 5.0) -> None:
        self.send_timeout_s = send_timeout_s
        self._subscribers: Set[Subscriber] = set()
        self._lock = asyncio.Lock()

    async def add(self, subscriber: Subscriber) -> None:
        async with self._lock:
            self._subscribers.add(subscriber)
            total = len(self._subscribers)
        log.info("Subscriber connected. Total: %d", total)

    async def remove(self, subscriber: Subscriber) -> bool:
        async with self._lock:
            if subscriber not in self._subscribers:
                return False
            self._subscribers.discard(subscriber)
            total = len(self._subscribers)
        log.info("Subscriber removed. Total: %d", total)
        return True

    async def snapshot(self) -> List[Subscriber]:
        async with self._lock:
            return list(self._subscribers)

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: object) -> bool:
        return subscriber in self._subscribers

    async def broadcast(self, payload: str) -> int:
        """
        Send payload to every subscriber in parallel.

        A subscriber whose send raises or times out is removed; the others
        are unaffected. Returns how many sends succeeded.
        """
        targets = await self.snapshot()
        if not targets:
            return 0

        results = await asyncio.gather(*(self._safe_send(s, payload) for s in targets))

        delivered = 0
        for subscriber, ok in zip(targets, results):
            if ok:
                delivered += 1
            else:
                await self.remove(subscriber)
        return delivered

    async def _safe_send(self, subscriber: Subscriber, payload: str) -> bool:
        try:
            await asyncio.wait_for(subscriber.send_text(payload), timeout=self.send_timeout_s)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning("Error sending to subscriber: %r", e)
            return False
