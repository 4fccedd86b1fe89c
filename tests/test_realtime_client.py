import asyncio
import json
import unittest

import httpx

from candlefeed.client.realtime import ConnectionStatus, RealtimeClient, TERMINAL_ERROR
from candlefeed.models.market import DAY_MS, Candle
from candlefeed.models.messages import StreamMessage

T0 = 1640995200000


def candle(ts: int, price: float = 150.0) -> Candle:
    return Candle(timestamp=ts, open=price, high=price + 5, low=price - 5, close=price + 2, volume=1000)


class FakeSocket:
    """Plays back frames, then closes with `final_code` (optionally after `hold` seconds)."""

    def __init__(self, frames=(), final_code: int = 1000, hold: float = 0.0) -> None:
        self.frames = list(frames)
        self.final_code = final_code
        self.hold = hold
        self.close_code = None
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self._play()

    async def _play(self):
        for frame in self.frames:
            yield frame
        if self.hold:
            await asyncio.sleep(self.hold)
        if self.close_code is None:
            self.close_code = self.final_code

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_code = code


class ScriptedConnector:
    """Hands out sockets in order; raises OSError once it runs out (or always, if empty)."""

    def __init__(self, sockets=()) -> None:
        self.sockets = list(sockets)
        self.calls = 0

    def __call__(self, url: str):
        self.calls += 1
        if not self.sockets:
            raise OSError("connection refused")
        return self.sockets.pop(0)


class TestReconnectLoop(unittest.IsolatedAsyncioTestCase):
    async def test_gives_up_after_five_retries_and_connect_resets(self):
        connector = ScriptedConnector()
        client = RealtimeClient(reconnect_delay_s=0.01, connector=connector)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await client.connect()
        elapsed = loop.time() - started

        self.assertEqual(connector.calls, 6)  # first try + 5 retries
        self.assertEqual(client.attempts, 5)
        self.assertIs(client.status, ConnectionStatus.ERROR)
        self.assertEqual(client.state.error, TERMINAL_ERROR)
        self.assertGreaterEqual(elapsed, 0.04)

        task = client.connect()
        self.assertEqual(client.attempts, 0)
        self.assertIs(client.status, ConnectionStatus.CONNECTING)
        await task

        self.assertEqual(connector.calls, 12)
        self.assertIs(client.status, ConnectionStatus.ERROR)

    async def test_normal_close_does_not_reconnect(self):
        connector = ScriptedConnector([FakeSocket(final_code=1000), FakeSocket()])
        client = RealtimeClient(reconnect_delay_s=0, connector=connector)

        await client.connect()

        self.assertEqual(connector.calls, 1)
        self.assertIs(client.status, ConnectionStatus.DISCONNECTED)

    async def test_abnormal_close_reconnects_and_resets_counter(self):
        initial = StreamMessage.initial([candle(T0)]).to_json()
        connector = ScriptedConnector(
            [
                FakeSocket(final_code=1006),
                FakeSocket(final_code=1011),
                FakeSocket([initial], final_code=1000),
            ]
        )
        client = RealtimeClient(reconnect_delay_s=0, connector=connector)

        await client.connect()

        self.assertEqual(connector.calls, 3)
        self.assertEqual(client.attempts, 0)
        self.assertIs(client.status, ConnectionStatus.DISCONNECTED)
        self.assertEqual(len(client.cache), 1)

    async def test_disconnect_is_a_normal_closure(self):
        socket = FakeSocket(hold=10)
        connector = ScriptedConnector([socket])
        client = RealtimeClient(reconnect_delay_s=0, connector=connector)

        client.connect()
        for _ in range(100):
            if client.status is ConnectionStatus.CONNECTED:
                break
            await asyncio.sleep(0)
        self.assertTrue(await client.send({"type": "ping"}))

        await client.disconnect()

        self.assertEqual(socket.close_code, 1000)
        self.assertEqual(connector.calls, 1)
        self.assertIs(client.status, ConnectionStatus.DISCONNECTED)
        self.assertFalse(await client.send({"type": "ping"}))

    async def test_keepalive_pings_while_connected(self):
        socket = FakeSocket(hold=0.1)
        client = RealtimeClient(ping_interval_s=0.01, connector=ScriptedConnector([socket]))

        await client.connect()

        pings = [json.loads(s) for s in socket.sent]
        self.assertGreaterEqual(len(pings), 2)
        self.assertTrue(all(p == {"type": "ping"} for p in pings))


class TestMessageStream(unittest.IsolatedAsyncioTestCase):
    async def test_frames_are_applied_to_cache_and_streamed(self):
        frames = [
            StreamMessage.initial([candle(T0), candle(T0 + DAY_MS)]).to_json(),
            StreamMessage.update([candle(T0 + DAY_MS, price=999)]).to_json(),
            StreamMessage.update([candle(T0 + 2 * DAY_MS)]).to_json(),
            StreamMessage.failure("provider down").to_json(),
            "definitely not json",
        ]
        client = RealtimeClient(connector=ScriptedConnector([FakeSocket(frames)]))

        task = client.connect()
        received = [m async for m in client.messages()]
        await task

        self.assertEqual([m.type for m in received], ["initial", "update", "update", "error"])
        self.assertEqual(received[-1].error, "provider down")
        cached = client.cache.candles()
        self.assertEqual([c.timestamp for c in cached], [T0, T0 + DAY_MS, T0 + 2 * DAY_MS])
        self.assertEqual(cached[1].open, 150.0)

    async def test_error_frame_is_recorded_on_state(self):
        frames = [StreamMessage.failure("provider down").to_json()]
        client = RealtimeClient(connector=ScriptedConnector([FakeSocket(frames, hold=10)]))

        client.connect()
        stream = client.messages()
        first = await stream.__anext__()

        self.assertEqual(first.type, "error")
        self.assertEqual(client.state.error, "provider down")
        self.assertIs(client.status, ConnectionStatus.CONNECTED)
        await client.disconnect()


class TestFetchInitial(unittest.IsolatedAsyncioTestCase):
    def body(self, *candles):
        return {"data": [c.to_wire() for c in candles]}

    async def test_snapshot_seeds_empty_cache(self):
        def handler(request):
            self.assertEqual(request.url.path, "/api/stock-prices")
            return httpx.Response(200, json=self.body(candle(T0 + DAY_MS), candle(T0)))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = RealtimeClient(base_url="http://feed.test", http_client=http)
            series = await client.fetch_initial()

        self.assertEqual(series.timestamps(), [T0, T0 + DAY_MS])
        self.assertEqual(len(client.cache), 2)

    async def test_snapshot_does_not_clobber_live_cache(self):
        def handler(request):
            return httpx.Response(200, json=self.body(candle(T0)))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = RealtimeClient(base_url="http://feed.test", http_client=http)
            client.cache.on_message(StreamMessage.initial([candle(T0 + 5 * DAY_MS)]))
            await client.fetch_initial()

        self.assertEqual([c.timestamp for c in client.cache.candles()], [T0 + 5 * DAY_MS])

    async def test_retries_then_succeeds(self):
        statuses = [500, 502]

        def handler(request):
            if statuses:
                return httpx.Response(statuses.pop(0))
            return httpx.Response(200, json=self.body(candle(T0)))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = RealtimeClient(base_url="http://feed.test", http_client=http, http_retry_base_s=0)
            series = await client.fetch_initial()

        self.assertEqual(len(series), 1)

    async def test_gives_up_after_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = RealtimeClient(base_url="http://feed.test", http_client=http, http_retry_base_s=0)
            with self.assertRaises(ConnectionError):
                await client.fetch_initial()

        self.assertEqual(len(calls), 3)

    def test_ws_url_follows_base_url_scheme(self):
        self.assertEqual(RealtimeClient(base_url="https://x.test/").ws_url, "wss://x.test/ws")
        self.assertEqual(RealtimeClient(base_url="http://x.test").ws_url, "ws://x.test/ws")


if __name__ == "__main__":
    unittest.main()
