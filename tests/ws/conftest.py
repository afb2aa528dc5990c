"""Shared fixtures for stream tests: a local fake of the Lighter WebSocket endpoint."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import aiohttp
import aiohttp.web
import orjson
import pytest

from lighter_client.ws.types import WSConfig


class FakeLighterServer:
    """
    Minimal stream server.

    - Sends {"type": "connected"} on every new connection
    - Answers {"type": "ping"} with {"type": "pong"}
    - Replies to a subscribe with the frames queued in ``replies[channel]``
    - Records every frame and Authorization header it receives
    """

    def __init__(self) -> None:
        self.replies: dict[str, list[dict[str, Any]]] = {}
        self.received: list[dict[str, Any]] = []
        self.auth_headers: list[str | None] = []
        self.connection_count = 0
        self.answer_pings = True
        self._sockets: list[aiohttp.web.WebSocketResponse] = []
        self._runner: aiohttp.web.AppRunner | None = None
        self.port = 0

    async def _ws_handler(self, request: aiohttp.web.Request) -> aiohttp.web.WebSocketResponse:
        ws = aiohttp.web.WebSocketResponse()
        await ws.prepare(request)
        self.connection_count += 1
        self.auth_headers.append(request.headers.get("Authorization"))
        self._sockets.append(ws)

        try:
            await ws.send_str('{"type":"connected"}')
            async for msg in ws:
                if msg.type != aiohttp.WSMsgType.TEXT:
                    continue
                frame = orjson.loads(msg.data)
                self.received.append(frame)
                if frame.get("type") == "ping" and self.answer_pings:
                    await ws.send_str('{"type":"pong"}')
                elif frame.get("type") == "subscribe":
                    for reply in self.replies.get(frame.get("channel", ""), []):
                        await ws.send_str(orjson.dumps(reply).decode())
        finally:
            if ws in self._sockets:
                self._sockets.remove(ws)
        return ws

    async def start(self) -> None:
        app = aiohttp.web.Application()
        app.router.add_get("/ws", self._ws_handler)
        self._runner = aiohttp.web.AppRunner(app)
        await self._runner.setup()
        site = aiohttp.web.TCPSite(self._runner, "127.0.0.1", 0)
        await site.start()
        assert self._runner.addresses
        self.port = self._runner.addresses[0][1]

    async def stop(self) -> None:
        await self.drop_all()
        if self._runner:
            await self._runner.cleanup()

    async def __aenter__(self) -> FakeLighterServer:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.port}/ws"

    @property
    def open_connections(self) -> int:
        return len(self._sockets)

    def config(self, **overrides: Any) -> WSConfig:
        params: dict[str, Any] = {"url": self.url, "resubscribe_delay_ms": 10}
        params.update(overrides)
        return WSConfig(**params)

    async def broadcast(self, frame: dict[str, Any] | str) -> None:
        data = frame if isinstance(frame, str) else orjson.dumps(frame).decode()
        for ws in list(self._sockets):
            await ws.send_str(data)

    async def drop_all(self) -> None:
        """Close every client connection from the server side."""
        for ws in list(self._sockets):
            await ws.close()

    def frames_of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [f for f in self.received if f.get("type") == message_type]

    @staticmethod
    async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        """Poll until predicate() holds, failing the test after timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)


@pytest.fixture
def fake_server() -> FakeLighterServer:
    """Unstarted fake server; use ``async with fake_server as server:``."""
    return FakeLighterServer()


def order_book_frame(
    message_type: str,
    market_id: int,
    bids: list[Any],
    asks: list[Any],
    **extra: Any,
) -> dict[str, Any]:
    frame: dict[str, Any] = {
        "type": message_type,
        "channel": f"order_book:{market_id}",
        "order_book": {"bids": bids, "asks": asks},
    }
    frame.update(extra)
    return frame


@pytest.fixture
def make_order_book_frame() -> Callable[..., dict[str, Any]]:
    return order_book_frame
