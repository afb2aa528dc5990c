"""
Subscription registry for one streaming connection.

Tracks the set of channel keys the caller wants to receive and emits the
subscribe/unsubscribe control frames. The tracked set outlives a single
socket so it can be replayed after the caller reconnects.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from typing import Protocol

from lighter_client.errors import (
    AlreadySubscribedError,
    NotConnectedError,
    TransportError,
)
from lighter_client.ws.messages import subscribe_message, unsubscribe_message
from lighter_client.ws.types import ChannelKey

logger = logging.getLogger(__name__)


class ControlTransport(Protocol):
    """What the registry needs from the connection."""

    @property
    def is_connected(self) -> bool: ...

    async def send(self, data: bytes) -> None: ...


class SubscriptionHandle:
    """Idempotent unsubscribe handle for one registered channel key."""

    def __init__(self, registry: SubscriptionRegistry, key: ChannelKey) -> None:
        self._registry = registry
        self._key = key
        self._released = False

    @property
    def key(self) -> ChannelKey:
        return self._key

    @property
    def active(self) -> bool:
        return not self._released and self._registry.owner_of(self._key) is self

    async def unsubscribe(self) -> None:
        """Release the key; later calls are no-ops."""
        if self._released:
            return
        self._released = True
        if self._registry.owner_of(self._key) is self:
            await self._registry.unsubscribe(self._key)

    def __repr__(self) -> str:
        return f"SubscriptionHandle({self._key!s}, active={self.active})"


class SubscriptionRegistry:
    """
    Maps channel keys to their handles and keeps the exchange in sync.

    Usage:
        registry = SubscriptionRegistry(connection)
        handle = await registry.subscribe(ChannelKey("order_book/3"))
        ...
        await handle.unsubscribe()
    """

    def __init__(
        self,
        transport: ControlTransport,
        *,
        resubscribe_delay_ms: int = 100,
    ) -> None:
        """
        Initialize the registry.

        Args:
            transport: Connection used to send control frames.
            resubscribe_delay_ms: Spacing between replayed subscribe frames.
        """
        self._transport = transport
        self._resubscribe_delay_ms = resubscribe_delay_ms
        self._active: dict[ChannelKey, SubscriptionHandle] = {}
        self._lock = asyncio.Lock()

    @property
    def keys(self) -> list[ChannelKey]:
        return list(self._active)

    def __contains__(self, key: object) -> bool:
        return key in self._active

    def __len__(self) -> int:
        return len(self._active)

    def __iter__(self) -> Iterator[ChannelKey]:
        return iter(list(self._active))

    def owner_of(self, key: ChannelKey) -> SubscriptionHandle | None:
        return self._active.get(key)

    async def subscribe(self, key: ChannelKey) -> SubscriptionHandle:
        """
        Register a key and send its subscribe frame.

        Raises:
            AlreadySubscribedError: If the key is already registered.
            NotConnectedError: If the transport is down.
            TransportError: If the frame could not be written.
        """
        async with self._lock:
            if key in self._active:
                raise AlreadySubscribedError(key)
            if not self._transport.is_connected:
                raise NotConnectedError(f"cannot subscribe to {key}: websocket not connected")

            handle = SubscriptionHandle(self, key)
            self._active[key] = handle
            try:
                await self._transport.send(subscribe_message(key).to_json())
            except BaseException:
                del self._active[key]
                raise

        logger.info("Subscribed", extra={"channel": key.channel, "symbol": key.symbol})
        return handle

    async def unsubscribe(self, key: ChannelKey) -> None:
        """
        Forget a key and, if connected, send its unsubscribe frame.

        Delivery is best effort: a transport that is down or fails while
        sending is logged, not raised.
        """
        async with self._lock:
            if self._active.pop(key, None) is None:
                return
            if not self._transport.is_connected:
                logger.debug("Unsubscribed while disconnected", extra={"channel": key.channel})
                return
            try:
                await self._transport.send(unsubscribe_message(key).to_json())
            except (TransportError, NotConnectedError) as e:
                logger.warning(
                    "Failed to send unsubscribe",
                    extra={"channel": key.channel, "error": str(e)},
                )
                return

        logger.info("Unsubscribed", extra={"channel": key.channel, "symbol": key.symbol})

    async def resubscribe(self, keys: list[ChannelKey] | None = None) -> int:
        """
        Replay tracked keys as fresh subscribe frames.

        Args:
            keys: Keys to replay, typically captured when the connection came
                back. Defaults to every tracked key. Keys no longer tracked
                are skipped.

        Returns:
            Number of frames sent.
        """
        if keys is None:
            async with self._lock:
                keys = list(self._active)

        sent = 0
        for i, key in enumerate(keys):
            if i and self._resubscribe_delay_ms:
                await asyncio.sleep(self._resubscribe_delay_ms / 1000)
            async with self._lock:
                if key not in self._active:
                    continue
                if not self._transport.is_connected:
                    logger.warning(
                        "Connection lost during resubscribe",
                        extra={"remaining": len(keys) - i},
                    )
                    break
                try:
                    await self._transport.send(subscribe_message(key).to_json())
                except (TransportError, NotConnectedError) as e:
                    logger.warning(
                        "Failed to resubscribe",
                        extra={"channel": key.channel, "error": str(e)},
                    )
                    continue
            sent += 1
            logger.info("Resubscribed", extra={"channel": key.channel, "symbol": key.symbol})
        return sent

    def clear(self) -> None:
        """Forget all keys without sending frames."""
        self._active.clear()
