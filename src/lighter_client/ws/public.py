"""Public market data service (order books)."""

from __future__ import annotations

from typing import Any

from lighter_client.errors import UnsupportedOperationError
from lighter_client.ws.messages import (
    AccountParams,
    AccountResponse,
    OrderBookParams,
    OrderBookResponse,
    TradesParams,
    channel_instrument,
    parse_order_book,
)
from lighter_client.ws.router import Frame, FrameHandler
from lighter_client.ws.service import BaseStreamService, Callback, Subscription, invoke_callback
from lighter_client.ws.types import Channel, ChannelKey, MessageType


def _order_book_handler(market_id: int, callback: Callback[OrderBookResponse]) -> FrameHandler:
    """Handler for one market; frames tagged with another market are ignored."""
    expected = str(market_id)

    async def handle(frame: Frame) -> None:
        instrument = channel_instrument(str(frame.get("channel", "")))
        if instrument is not None and instrument != expected:
            return
        await invoke_callback(callback, parse_order_book(frame, market_id))

    return handle


class PublicStreamService(BaseStreamService):
    """
    Order book subscriptions over an unauthenticated connection.

    Usage:
        service = PublicStreamService()
        await service.start(err_handler)
        sub = await service.subscribe_order_book(OrderBookParams(market_id=3), on_book)
        ...
        await sub.unsubscribe()
        await service.close()
    """

    label = "public"

    async def subscribe_order_book(
        self,
        params: OrderBookParams,
        callback: Callback[OrderBookResponse],
    ) -> Subscription:
        """
        Subscribe to snapshots and incremental updates for one market.

        The callback first receives the snapshot (is_snapshot=True), then
        each incremental update in wire order.

        Raises:
            AlreadySubscribedError: If the market is already subscribed.
            NotConnectedError: If start() has not connected the service.
            TransportError: If the subscribe frame could not be written.
        """
        handler = _order_book_handler(params.market_id, callback)
        key = ChannelKey.for_instrument(Channel.ORDER_BOOK, params.market_id)
        return await self._open(
            key,
            {
                MessageType.ORDER_BOOK_SUBSCRIBED.value: handler,
                MessageType.ORDER_BOOK_UPDATE.value: handler,
            },
        )

    async def subscribe_ticker(self, params: Any = None, callback: Any = None) -> Subscription:
        """Not offered by the stream; derive best bid/ask from the order book instead."""
        raise UnsupportedOperationError(
            "ticker subscription is not supported; use subscribe_order_book and read the top level"
        )

    async def subscribe_trades(
        self,
        params: TradesParams,
        callback: Callback[Any],
    ) -> Subscription:
        raise UnsupportedOperationError(
            f"trades subscription is not supported (market {params.market_id})"
        )

    async def subscribe_account(
        self,
        params: AccountParams,
        callback: Callback[AccountResponse],
    ) -> Subscription:
        raise UnsupportedOperationError(
            "account subscription is served by PrivateStreamService.subscribe_account"
        )
