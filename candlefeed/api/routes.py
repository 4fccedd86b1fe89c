from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query, Request, Response, WebSocket, WebSocketDisconnect

from candlefeed.indicators.fibonacci import retracement_levels
from candlefeed.models.messages import CandlesResponse, StreamMessage

log = logging.getLogger("api")

router = APIRouter()


@router.get("/candles", response_model=CandlesResponse)
@router.get("/api/stock-prices", response_model=CandlesResponse)
def candles(request: Request):
    """
    Snapshot:
    - full candle history from the provider as {"data": [...]}
    - any failure -> 500 with an empty body
    """
    provider = request.app.state.provider
    try:
        series = provider.fetch_candles()
        return {"data": series.to_wire()}
    except Exception:
        log.exception("Snapshot request failed")
        return Response(status_code=500)


@router.get("/api/fibonacci")
def fibonacci(
    request: Request,
    lookback: int = Query(50, ge=1, le=1000, description="How many recent candles to span"),
):
    """Fibonacci retracement levels (0 / 38.2 / 61.8 / 100%) over recent candles."""
    series = request.app.state.provider.fetch_candles()
    try:
        return retracement_levels(series, lookback=lookback).model_dump()
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.websocket("/ws")
async def stream(websocket: WebSocket):
    """
    Real-time feed.

    Sends the full snapshot ("initial") first, then registers the client for
    "update" frames. Anything the client sends (keepalive pings) is read and
    dropped.
    """
    registry = websocket.app.state.registry
    provider = websocket.app.state.provider

    await websocket.accept()

    try:
        series = await asyncio.to_thread(provider.fetch_candles)
        first = StreamMessage.initial(series)
    except Exception as e:
        log.warning("Initial snapshot failed: %r", e)
        first = StreamMessage.failure("Failed to load initial data")

    try:
        await websocket.send_text(first.to_json())
    except WebSocketDisconnect:
        return

    await registry.add(websocket)
    try:
        while True:
            # Text or binary, the payload is never inspected
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        await registry.remove(websocket)
