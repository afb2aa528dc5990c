"""Shared lifecycle for the public and private stream services."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from lighter_client.errors import AlreadySubscribedError, StateError, TransportError
from lighter_client.ws.connection import ConnectionManager
from lighter_client.ws.registry import SubscriptionHandle
from lighter_client.ws.router import FrameHandler
from lighter_client.ws.types import ChannelKey, StreamMetrics, WSConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrHandler = Callable[[Exception], Awaitable[None] | None]
Callback = Callable[[T], Awaitable[None] | None]


async def invoke_callback(callback: Callable[[T], Awaitable[None] | None], value: T) -> None:
    """Call a sync or async subscriber callback."""
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class Subscription:
    """
    A live subscription owned by a stream service.

    Awaiting ``unsubscribe()`` (or calling the object itself) removes the
    handlers and releases the channel key; repeated calls are no-ops.
    """

    def __init__(
        self,
        service: BaseStreamService,
        key: ChannelKey,
        handlers: dict[str, FrameHandler],
        handle: SubscriptionHandle,
    ) -> None:
        self._service = service
        self._key = key
        self._handlers = handlers
        self._handle = handle
        self._cancelled = False

    @property
    def key(self) -> ChannelKey:
        return self._key

    @property
    def handlers(self) -> dict[str, FrameHandler]:
        return dict(self._handlers)

    @property
    def active(self) -> bool:
        return not self._cancelled

    async def unsubscribe(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        await self._service._release(self, self._handle)

    async def __call__(self) -> None:
        await self.unsubscribe()

    def __repr__(self) -> str:
        return f"Subscription({self._key!s}, active={self.active})"


class BaseStreamService:
    """
    Base class owning one ConnectionManager and the subscriptions made over it.

    Subclasses add typed subscribe methods on top of _open().
    """

    label = "stream"

    def __init__(
        self,
        config: WSConfig | None = None,
        *,
        connection: ConnectionManager | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            config: Stream configuration (ignored when connection is given).
            connection: Pre-built connection manager, mainly for tests.
        """
        self._connection = connection or ConnectionManager(config)
        self._subscriptions: dict[ChannelKey, Subscription] = {}
        self._pending: set[ChannelKey] = set()
        self._err_handler: ErrHandler | None = None
        self._closed = False

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def metrics(self) -> StreamMetrics:
        return self._connection.metrics

    @property
    def subscriptions(self) -> list[ChannelKey]:
        return list(self._subscriptions)

    async def start(self, err_handler: ErrHandler | None = None) -> None:
        """
        Connect and register the error handler.

        err_handler is called with a TransportError each time the connection
        drops. It is a notification only; reconnecting is up to the caller.

        Raises:
            StateError: If the service was closed.
            TransportError: If the connection could not be established.
        """
        if self._closed:
            raise StateError(f"{self.label} service is closed")

        self._err_handler = err_handler
        self._connection.on_disconnected = self._on_connection_lost
        await self._before_connect()
        try:
            await self._connection.connect()
        except TransportError as e:
            raise TransportError(f"failed to connect websocket: {e}") from e

        logger.info("Stream service started", extra={"service": self.label})

    async def reconnect(self) -> None:
        """Connect again after a loss; tracked subscriptions are replayed."""
        if self._closed:
            raise StateError(f"{self.label} service is closed")
        await self._before_connect()
        await self._connection.connect()
        logger.info("Stream service reconnected", extra={"service": self.label})

    async def _before_connect(self) -> None:
        """Hook run before every connect attempt."""

    async def close(self) -> None:
        """Cancel every owned subscription and disconnect. Idempotent."""
        if self._closed:
            return
        self._closed = True

        subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            await subscription.unsubscribe()

        await self._connection.router.close()
        try:
            await self._connection.disconnect()
        finally:
            self._connection.registry.clear()
            logger.info("Stream service closed", extra={"service": self.label})

    async def _on_connection_lost(self) -> None:
        logger.warning("Stream service lost its connection", extra={"service": self.label})
        if self._err_handler is not None:
            await invoke_callback(self._err_handler, TransportError("websocket connection lost"))

    async def _open(
        self,
        key: ChannelKey,
        handlers: dict[str, FrameHandler],
    ) -> Subscription:
        """
        Register handlers, then send the subscribe frame.

        Handlers are registered first so the snapshot that follows the
        subscribe frame is not missed. On failure they are removed again.
        """
        if self._closed:
            raise StateError(f"{self.label} service is closed")
        if key in self._subscriptions or key in self._pending:
            raise AlreadySubscribedError(key)

        router = self._connection.router
        self._pending.add(key)
        for message_type, handler in handlers.items():
            router.add_handler(message_type, handler)
        try:
            handle = await self._connection.subscribe(key)
        except BaseException:
            for message_type, handler in handlers.items():
                router.remove_handler(message_type, handler)
            raise
        finally:
            self._pending.discard(key)

        subscription = Subscription(self, key, handlers, handle)
        self._subscriptions[key] = subscription
        logger.info("Subscription opened", extra={"service": self.label, "channel": key.channel})
        return subscription

    async def _release(self, subscription: Subscription, handle: SubscriptionHandle) -> None:
        if self._subscriptions.get(subscription.key) is subscription:
            del self._subscriptions[subscription.key]

        router = self._connection.router
        for message_type, handler in subscription.handlers.items():
            router.remove_handler(message_type, handler)

        await handle.unsubscribe()
        logger.info(
            "Subscription closed",
            extra={"service": self.label, "channel": subscription.key.channel},
        )
