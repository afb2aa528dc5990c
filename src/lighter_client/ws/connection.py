"""
WebSocket connection manager - one live socket to the Lighter stream.

Reconnection is never automatic: on a read or write failure the manager
moves to DISCONNECTED, notifies its on_disconnected callback once, and
waits for the caller to call connect() again. Tracked subscriptions are
replayed when that happens.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

import aiohttp

from lighter_client.errors import NotConnectedError, TransportError
from lighter_client.ws.messages import PING, PONG
from lighter_client.ws.registry import SubscriptionHandle, SubscriptionRegistry
from lighter_client.ws.router import MessageRouter
from lighter_client.ws.types import ChannelKey, ConnectionState, StreamMetrics, WSConfig

logger = logging.getLogger(__name__)

DisconnectCallback = Callable[[], Awaitable[None] | None]


class ConnectionManager:
    """
    Owns the socket lifecycle, the heartbeat and the read loop.

    Responsible for:
    - Handshake with a bounded timeout and optional bearer token
    - Frame read loop feeding the MessageRouter
    - Heartbeat pings
    - Serialised writes with a write deadline
    - Failure detection and a single disconnect notification
    """

    def __init__(
        self,
        config: WSConfig | None = None,
        *,
        on_disconnected: DisconnectCallback | None = None,
    ) -> None:
        """
        Initialize the connection manager.

        Args:
            config: Stream configuration.
            on_disconnected: Called once, off the read loop, whenever a live
                connection is lost without disconnect() being called.
        """
        self._config = config or WSConfig()
        self._on_disconnected = on_disconnected
        self._auth_token: str | None = None

        self._metrics = StreamMetrics()
        self._router = MessageRouter(on_ping=self._send_pong, metrics=self._metrics)
        self._registry = SubscriptionRegistry(
            self,
            resubscribe_delay_ms=self._config.resubscribe_delay_ms,
        )

        self._state = ConnectionState.DISCONNECTED
        self._connected = False
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._session: aiohttp.ClientSession | None = None

        # Guards connect/disconnect/failure transitions
        self._state_lock = asyncio.Lock()
        # Socket libraries do not allow concurrent writers
        self._send_lock = asyncio.Lock()
        self._stop: asyncio.Event | None = None

        self._receive_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._resubscribe_task: asyncio.Task[None] | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()

    @property
    def config(self) -> WSConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """Liveness flag; never touches the socket."""
        return self._connected

    @property
    def metrics(self) -> StreamMetrics:
        self._metrics.state = self._state
        return self._metrics

    @property
    def router(self) -> MessageRouter:
        return self._router

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def on_disconnected(self) -> DisconnectCallback | None:
        return self._on_disconnected

    @on_disconnected.setter
    def on_disconnected(self, callback: DisconnectCallback | None) -> None:
        self._on_disconnected = callback

    def set_auth_token(self, token: str | None) -> None:
        """Set the bearer token sent on the next handshake."""
        self._auth_token = token or None

    def _set_state(self, state: ConnectionState) -> None:
        if self._state != state:
            old_state = self._state
            self._state = state
            self._metrics.state = state
            logger.debug(
                "Connection state changed",
                extra={"old_state": old_state.value, "new_state": state.value},
            )

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    def _signal_stop(self) -> None:
        if self._stop is not None and not self._stop.is_set():
            self._stop.set()

    async def connect(self) -> None:
        """
        Open the socket unless it is already open.

        Raises:
            TransportError: If the handshake fails or times out.
        """
        async with self._state_lock:
            if self._connected:
                return

            self._set_state(ConnectionState.CONNECTING)
            headers: dict[str, str] = {}
            if self._auth_token:
                headers["Authorization"] = f"Bearer {self._auth_token}"

            logger.info("Connecting to WebSocket", extra={"url": self._config.url})
            session = aiohttp.ClientSession()
            try:
                ws = await asyncio.wait_for(
                    session.ws_connect(self._config.url, headers=headers, autoping=True),
                    timeout=self._config.handshake_timeout_ms / 1000,
                )
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
                await session.close()
                self._set_state(ConnectionState.DISCONNECTED)
                logger.error("Failed to connect", extra={"error": str(e) or type(e).__name__})
                raise TransportError(
                    f"failed to connect to websocket: {str(e) or type(e).__name__}"
                ) from e

            self._session = session
            self._ws = ws
            self._connected = True
            self._stop = asyncio.Event()
            self._set_state(ConnectionState.CONNECTED)

            self._receive_task = asyncio.create_task(self._receive_loop(ws))
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(self._stop))

            tracked = self._registry.keys
            if tracked:
                self._resubscribe_task = asyncio.create_task(self._resubscribe(tracked))

        logger.info("WebSocket connected", extra={"resubscribing": len(tracked)})

    async def disconnect(self) -> None:
        """
        Close the socket and stop background loops.

        Safe to call repeatedly; only the first call on a live connection
        closes anything.

        Raises:
            TransportError: If closing the socket failed.
        """
        async with self._state_lock:
            if not self._connected and self._ws is None and self._session is None:
                return

            self._set_state(ConnectionState.CLOSING)
            self._connected = False
            self._signal_stop()
            await self._cancel_loops()
            error = await self._close_transport()
            self._set_state(ConnectionState.CLOSED)

        logger.info("WebSocket disconnected")
        if error is not None:
            raise TransportError(f"failed to close websocket: {error}") from error

    async def wait_closed(self) -> None:
        """Wait for pending disconnect notifications and resubscribe work."""
        tasks = [t for t in self._background_tasks if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def send(self, data: bytes) -> None:
        """
        Write one text frame.

        Raises:
            NotConnectedError: If there is no live socket.
            TransportError: If the write fails or exceeds the write deadline;
                the connection is then torn down as lost.
        """
        ws = self._ws
        if not self._connected or ws is None:
            raise NotConnectedError()

        async with self._send_lock:
            try:
                await asyncio.wait_for(
                    ws.send_str(data.decode()),
                    timeout=self._config.write_timeout_ms / 1000,
                )
            except asyncio.TimeoutError as e:
                self._spawn(self._handle_transport_failure("write deadline exceeded", ws))
                raise TransportError("write deadline exceeded") from e
            except (aiohttp.ClientError, OSError, RuntimeError) as e:
                self._spawn(self._handle_transport_failure(f"write failed: {e}", ws))
                raise TransportError(f"failed to write frame: {e}") from e

    async def subscribe(self, key: ChannelKey) -> SubscriptionHandle:
        return await self._registry.subscribe(key)

    async def unsubscribe(self, key: ChannelKey) -> None:
        await self._registry.unsubscribe(key)

    async def _send_pong(self) -> None:
        await self.send(PONG.to_json())
        self._metrics.pongs_sent += 1

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Read frames until the socket fails, then run the disconnect path."""
        read_timeout = self._config.read_timeout_ms / 1000
        reason = "connection closed"

        try:
            while True:
                msg = await ws.receive(timeout=read_timeout)

                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self._metrics.frames_received += 1
                    await self._router.dispatch(msg.data)

                elif msg.type in (
                    aiohttp.WSMsgType.CLOSE,
                    aiohttp.WSMsgType.CLOSING,
                    aiohttp.WSMsgType.CLOSED,
                ):
                    reason = "closed by remote"
                    break

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = f"websocket error: {ws.exception()}"
                    break

        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            reason = "read deadline exceeded"
        except Exception as e:
            reason = f"read failed: {e}"

        await self._handle_transport_failure(reason, ws)

    async def _heartbeat_loop(self, stop: asyncio.Event) -> None:
        """Send a ping every interval until the stop signal fires."""
        interval = self._config.ping_interval_ms / 1000

        while not stop.is_set():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=interval)
            if stop.is_set() or not self._connected:
                break

            try:
                await self.send(PING.to_json())
                self._metrics.pings_sent += 1
            except (TransportError, NotConnectedError) as e:
                logger.warning("Failed to send ping", extra={"error": str(e)})

    async def _resubscribe(self, keys: list[ChannelKey]) -> None:
        sent = await self._registry.resubscribe(keys)
        self._metrics.resubscribes += sent

    async def _cancel_loops(self) -> None:
        current = asyncio.current_task()
        tasks = [
            t
            for t in (self._receive_task, self._heartbeat_task, self._resubscribe_task)
            if t is not None and t is not current and not t.done()
        ]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._receive_task = None
        self._heartbeat_task = None
        self._resubscribe_task = None

    async def _close_transport(self) -> BaseException | None:
        error: BaseException | None = None

        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                error = e

        session, self._session = self._session, None
        if session is not None and not session.closed:
            await session.close()

        return error

    async def _handle_transport_failure(
        self,
        reason: str,
        ws: aiohttp.ClientWebSocketResponse,
    ) -> None:
        """Tear down a lost connection and notify once."""
        async with self._state_lock:
            # Already torn down, or a newer socket replaced this one
            if not self._connected or self._ws is not ws:
                return

            self._connected = False
            self._signal_stop()
            self._metrics.disconnects += 1
            await self._cancel_loops()
            error = await self._close_transport()
            self._set_state(ConnectionState.DISCONNECTED)

        logger.warning(
            "Connection lost",
            extra={"reason": reason, "close_error": str(error) if error else None},
        )
        if self._on_disconnected is not None:
            self._spawn(self._notify_disconnected(self._on_disconnected))

    async def _notify_disconnected(self, callback: DisconnectCallback) -> None:
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Disconnect callback failed")
