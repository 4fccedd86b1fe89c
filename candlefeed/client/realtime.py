from __future__ import annotations

import asyncio
import enum
import json
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import httpx
import websockets
from websockets.exceptions import WebSocketException

from candlefeed.candles.series import CandleSeries
from candlefeed.client.cache import CandleCache
from candlefeed.models.messages import CandlesResponse, StreamMessage

log = logging.getLogger("realtime_client")

NORMAL_CLOSURE = 1000
RECONNECT_DELAY_S = 3.0
MAX_RECONNECT_ATTEMPTS = 5
PING_INTERVAL_S = 30.0
TERMINAL_ERROR = "Connection lost - unable to reconnect"
INVALID_FRAME_ERROR = "Invalid message format"


class ConnectionStatus(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class ConnectionState:
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    error: Optional[str] = None
    last_ping_ms: Optional[int] = None


def _default_connect(url: str):
    return websockets.connect(url, open_timeout=10)


class RealtimeClient:
    """
    Consumer of the candle feed (HTTP snapshot + /ws stream).

    fetch_initial():
      one GET of the snapshot endpoint; seeds the cache if it is still empty.
      Retries with exponential backoff (1s, 2s, ... capped at 10s).

    connect():
      starts one supervised task that owns the socket and the retry counter.
      - close code 1000 (or disconnect()) -> DISCONNECTED, no retry
      - anything else -> wait a fixed reconnect_delay_s and try again
      - after max_reconnect_attempts failed retries -> ERROR (terminal);
        only another connect() starts over

    messages():
      async iterator over decoded frames, after they were applied to the cache.
      Ends when the supervised task finishes.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        ws_url: Optional[str] = None,
        snapshot_path: str = "/api/stock-prices",
        cache: Optional[CandleCache] = None,
        reconnect_delay_s: float = RECONNECT_DELAY_S,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        ping_interval_s: float = PING_INTERVAL_S,
        http_retries: int = 2,
        http_retry_base_s: float = 1.0,
        http_retry_max_s: float = 10.0,
        connector: Optional[Callable] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.ws_url = ws_url or self._derive_ws_url(self.base_url)
        self.snapshot_path = snapshot_path
        self.cache = cache or CandleCache()
        self.reconnect_delay_s = reconnect_delay_s
        self.max_reconnect_attempts = max_reconnect_attempts
        self.ping_interval_s = ping_interval_s
        self.http_retries = http_retries
        self.http_retry_base_s = http_retry_base_s
        self.http_retry_max_s = http_retry_max_s
        self.connector = connector or _default_connect
        self._http_client = http_client

        self.state = ConnectionState()
        self.attempts = 0
        self._messages: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._socket = None
        self._closing = False

    @staticmethod
    def _derive_ws_url(base_url: str) -> str:
        if base_url.startswith("https://"):
            return "wss://" + base_url[len("https://"):] + "/ws"
        if base_url.startswith("http://"):
            return "ws://" + base_url[len("http://"):] + "/ws"
        return base_url + "/ws"

    @property
    def status(self) -> ConnectionStatus:
        return self.state.status

    # -------------------------
    # HTTP snapshot
    # -------------------------
    async def fetch_initial(self) -> CandleSeries:
        last_error: Optional[Exception] = None

        for attempt in range(self.http_retries + 1):
            try:
                series = await self._get_snapshot()
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                if attempt < self.http_retries:
                    delay = min(self.http_retry_base_s * 2 ** attempt, self.http_retry_max_s)
                    log.warning("Snapshot fetch failed (%r), retrying in %.1fs", e, delay)
                    await asyncio.sleep(delay)
                continue

            self.cache.seed(series)
            return series

        raise ConnectionError(f"snapshot fetch failed: {last_error!r}") from last_error

    async def _get_snapshot(self) -> CandleSeries:
        if self._http_client is not None:
            resp = await self._http_client.get(self.base_url + self.snapshot_path)
        else:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.get(self.base_url + self.snapshot_path)

        resp.raise_for_status()
        body = CandlesResponse.model_validate(resp.json())
        return CandleSeries.from_candles(row.to_candle() for row in body.data)

    # -------------------------
    # Real-time stream
    # -------------------------
    def connect(self) -> asyncio.Task:
        """Start (or restart after a terminal error) the reconnect loop."""
        if self._task is not None and not self._task.done():
            return self._task

        self.attempts = 0
        self._closing = False
        self.state = ConnectionState(status=ConnectionStatus.CONNECTING)
        self._messages = asyncio.Queue()
        self._task = asyncio.create_task(self._run(), name="realtime-client")
        return self._task

    async def disconnect(self) -> None:
        """Caller-initiated normal closure. Never triggers a reconnect."""
        self._closing = True

        if self._socket is not None:
            try:
                await self._socket.close(code=NORMAL_CLOSURE, reason="User disconnected")
            except WebSocketException as e:
                log.debug("Close failed: %r", e)

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._task = None
        self._socket = None
        self.attempts = 0
        self.state = ConnectionState(status=ConnectionStatus.DISCONNECTED)

    async def send(self, message: dict) -> bool:
        """Send a JSON frame on the open socket. False when not connected."""
        if self._socket is None or self.state.status is not ConnectionStatus.CONNECTED:
            return False
        await self._socket.send(json.dumps(message))
        return True

    async def messages(self) -> AsyncIterator[StreamMessage]:
        while True:
            message = await self._messages.get()
            if message is None:
                return
            yield message

    async def _run(self) -> None:
        try:
            while True:
                self.state = ConnectionState(status=ConnectionStatus.CONNECTING)
                closed_normally = False

                try:
                    async with self.connector(self.ws_url) as ws:
                        self._socket = ws
                        self.attempts = 0
                        self.state = ConnectionState(status=ConnectionStatus.CONNECTED)
                        log.info("WebSocket connected url=%s", self.ws_url)
                        closed_normally = await self._session(ws)
                except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                    log.warning("WebSocket error: %r", e)
                finally:
                    self._socket = None

                if closed_normally or self._closing:
                    log.info("WebSocket disconnected")
                    self.state = ConnectionState(status=ConnectionStatus.DISCONNECTED)
                    return

                if self.attempts >= self.max_reconnect_attempts:
                    log.error("Giving up after %d reconnection attempts", self.attempts)
                    self.state = ConnectionState(status=ConnectionStatus.ERROR, error=TERMINAL_ERROR)
                    return

                self.attempts += 1
                log.info(
                    "Reconnection attempt %d/%d in %.1fs",
                    self.attempts,
                    self.max_reconnect_attempts,
                    self.reconnect_delay_s,
                )
                self.state = ConnectionState(status=ConnectionStatus.CONNECTING)
                await asyncio.sleep(self.reconnect_delay_s)
        finally:
            self._messages.put_nowait(None)

    async def _session(self, ws) -> bool:
        """Reads frames until the socket closes. True if it closed with code 1000."""
        pinger = asyncio.create_task(self._keepalive(ws))
        try:
            async for raw in ws:
                self._on_frame(raw)
        finally:
            pinger.cancel()
            try:
                await pinger
            except asyncio.CancelledError:
                pass

        return getattr(ws, "close_code", None) == NORMAL_CLOSURE

    def _on_frame(self, raw) -> None:
        try:
            message = StreamMessage.model_validate_json(raw)
        except ValueError as e:
            log.error("Failed to parse WebSocket message: %s", e)
            self.state.error = INVALID_FRAME_ERROR
            return

        error = self.cache.on_message(message)
        if error is not None:
            log.warning("Server reported error: %s", error)
            self.state.error = error

        self._messages.put_nowait(message)

    async def _keepalive(self, ws) -> None:
        # No action on silence: the server does not enforce liveness either.
        while True:
            await asyncio.sleep(self.ping_interval_s)
            try:
                await ws.send(json.dumps({"type": "ping"}))
            except WebSocketException:
                return
            self.state.last_ping_ms = int(time.time() * 1000)
