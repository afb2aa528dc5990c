"""End-to-end tests for PublicStreamService against the fake server."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest

from lighter_client.errors import (
    AlreadySubscribedError,
    NotConnectedError,
    StateError,
    TransportError,
    UnsupportedOperationError,
)
from lighter_client.ws.messages import AccountParams, OrderBookParams, OrderBookResponse, TradesParams
from lighter_client.ws.public import PublicStreamService
from lighter_client.ws.types import WSConfig

if TYPE_CHECKING:
    from conftest import FakeLighterServer

FrameFactory = Callable[..., dict[str, Any]]


class TestOrderBook:
    @pytest.mark.asyncio
    async def test_snapshot_delivered_after_subscribe(
        self, fake_server: FakeLighterServer, make_order_book_frame: FrameFactory
    ) -> None:
        fake_server.replies["order_book/3"] = [
            make_order_book_frame("subscribed/order_book", 3, [["100.5", "2.0"]], [["101.0", "1.5"]])
        ]
        async with fake_server as server:
            service = PublicStreamService(server.config())
            books: list[OrderBookResponse] = []
            await service.start()

            sub = await service.subscribe_order_book(OrderBookParams(market_id=3), books.append)
            await server.wait_for(lambda: len(books) == 1)

            book = books[0]
            assert book.market_id == 3
            assert book.is_snapshot is True
            assert [(lv.price, lv.quantity) for lv in book.bids] == [("100.5", "2.0")]
            assert [(lv.price, lv.quantity) for lv in book.asks] == [("101.0", "1.5")]
            assert sub.active
            await service.close()

    @pytest.mark.asyncio
    async def test_updates_follow_snapshot_in_order(
        self, fake_server: FakeLighterServer, make_order_book_frame: FrameFactory
    ) -> None:
        fake_server.replies["order_book/3"] = [
            make_order_book_frame("subscribed/order_book", 3, [["100.5", "2.0"]], [])
        ]
        async with fake_server as server:
            service = PublicStreamService(server.config())
            books: list[OrderBookResponse] = []
            await service.start()
            await service.subscribe_order_book(OrderBookParams(market_id=3), books.append)
            await server.wait_for(lambda: len(books) == 1)

            for i in range(5):
                await server.broadcast(
                    make_order_book_frame("update/order_book", 3, [[f"100.{i}", "1"]], [], offset=i)
                )
            await server.wait_for(lambda: len(books) == 6)

            assert books[0].is_snapshot
            assert [b.bids[0].price for b in books[1:]] == [f"100.{i}" for i in range(5)]
            assert not any(b.is_snapshot for b in books[1:])
            await service.close()

    @pytest.mark.asyncio
    async def test_markets_do_not_cross_deliver(
        self, fake_server: FakeLighterServer, make_order_book_frame: FrameFactory
    ) -> None:
        async with fake_server as server:
            service = PublicStreamService(server.config())
            market_3: list[OrderBookResponse] = []
            market_5: list[OrderBookResponse] = []
            await service.start()
            await service.subscribe_order_book(OrderBookParams(market_id=3), market_3.append)
            await service.subscribe_order_book(OrderBookParams(market_id=5), market_5.append)

            await server.broadcast(make_order_book_frame("update/order_book", 5, [["7", "1"]], []))
            await server.wait_for(lambda: len(market_5) == 1)
            await asyncio.sleep(0.05)

            assert market_3 == []
            assert market_5[0].market_id == 5
            await service.close()

    @pytest.mark.asyncio
    async def test_async_callback(
        self, fake_server: FakeLighterServer, make_order_book_frame: FrameFactory
    ) -> None:
        async with fake_server as server:
            service = PublicStreamService(server.config())
            callback = AsyncMock()
            await service.start()
            await service.subscribe_order_book(OrderBookParams(market_id=3), callback)

            await server.broadcast(make_order_book_frame("update/order_book", 3, [], [["1", "1"]]))
            await server.wait_for(lambda: callback.await_count == 1)

            delivered = callback.await_args.args[0]
            assert isinstance(delivered, OrderBookResponse)
            assert delivered.asks[0].price == "1"
            await service.close()

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_stop_stream(
        self, fake_server: FakeLighterServer, make_order_book_frame: FrameFactory
    ) -> None:
        async with fake_server as server:
            service = PublicStreamService(server.config())
            callback = AsyncMock(side_effect=[ValueError("bad"), None])
            await service.start()
            await service.subscribe_order_book(OrderBookParams(market_id=3), callback)

            await server.broadcast(make_order_book_frame("update/order_book", 3, [], []))
            await server.broadcast(make_order_book_frame("update/order_book", 3, [], []))
            await server.wait_for(lambda: callback.await_count == 2)

            assert service.is_connected
            assert service.metrics.callback_errors == 1
            await service.close()


class TestSubscriptionErrors:
    @pytest.mark.asyncio
    async def test_duplicate_subscribe(self, fake_server: FakeLighterServer) -> None:
        async with fake_server as server:
            service = PublicStreamService(server.config())
            await service.start()
            await service.subscribe_order_book(OrderBookParams(market_id=3), lambda _: None)

            with pytest.raises(AlreadySubscribedError):
                await service.subscribe_order_book(OrderBookParams(market_id=3), lambda _: None)

            assert service.connection.router.handler_count("update/order_book") == 1
            await server.wait_for(lambda: len(server.frames_of_type("subscribe")) == 1)
            await service.close()

    @pytest.mark.asyncio
    async def test_subscribe_before_start(self) -> None:
        service = PublicStreamService()

        with pytest.raises(NotConnectedError):
            await service.subscribe_order_book(OrderBookParams(market_id=3), lambda _: None)

        # Handlers registered ahead of the subscribe frame are rolled back
        assert service.connection.router.handler_count("update/order_book") == 0
        assert service.connection.router.handler_count("subscribed/order_book") == 0
        assert service.subscriptions == []

    @pytest.mark.asyncio
    async def test_start_failure(self) -> None:
        service = PublicStreamService(WSConfig(url="ws://127.0.0.1:1/ws"))
        with pytest.raises(TransportError, match="failed to connect websocket"):
            await service.start()

    @pytest.mark.asyncio
    async def test_unsupported_surfaces(self) -> None:
        service = PublicStreamService()
        with pytest.raises(UnsupportedOperationError):
            await service.subscribe_ticker()
        with pytest.raises(UnsupportedOperationError):
            await service.subscribe_trades(TradesParams(market_id=3), lambda _: None)
        with pytest.raises(UnsupportedOperationError):
            await service.subscribe_account(AccountParams(account_id=1), lambda _: None)
        assert issubclass(UnsupportedOperationError, NotImplementedError)


class TestUnsubscribe:
    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(
        self, fake_server: FakeLighterServer, make_order_book_frame: FrameFactory
    ) -> None:
        async with fake_server as server:
            service = PublicStreamService(server.config())
            books: list[OrderBookResponse] = []
            await service.start()
            sub = await service.subscribe_order_book(OrderBookParams(market_id=3), books.append)

            await sub.unsubscribe()
            await sub()
            await server.wait_for(lambda: len(server.frames_of_type("unsubscribe")) == 1)

            await server.broadcast(make_order_book_frame("update/order_book", 3, [], []))
            await asyncio.sleep(0.05)

            assert books == []
            assert not sub.active
            assert service.subscriptions == []
            assert len(server.frames_of_type("unsubscribe")) == 1
            await service.close()

    @pytest.mark.asyncio
    async def test_resubscribe_after_unsubscribe(self, fake_server: FakeLighterServer) -> None:
        async with fake_server as server:
            service = PublicStreamService(server.config())
            await service.start()
            first = await service.subscribe_order_book(OrderBookParams(market_id=3), lambda _: None)
            await first.unsubscribe()
            second = await service.subscribe_order_book(OrderBookParams(market_id=3), lambda _: None)

            assert second.active
            await server.wait_for(lambda: len(server.frames_of_type("subscribe")) == 2)
            await service.close()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close_unsubscribes_and_is_idempotent(self, fake_server: FakeLighterServer) -> None:
        async with fake_server as server:
            service = PublicStreamService(server.config())
            await service.start()
            await service.subscribe_order_book(OrderBookParams(market_id=3), lambda _: None)
            await service.subscribe_order_book(OrderBookParams(market_id=5), lambda _: None)

            await service.close()
            await service.close()

            await server.wait_for(lambda: server.open_connections == 0)
            channels = sorted(f["channel"] for f in server.frames_of_type("unsubscribe"))
            assert channels == ["order_book/3", "order_book/5"]
            assert service.is_connected is False

            with pytest.raises(StateError):
                await service.start()
            with pytest.raises(StateError):
                await service.subscribe_order_book(OrderBookParams(market_id=3), lambda _: None)

    @pytest.mark.asyncio
    async def test_connection_loss_and_reconnect(
        self, fake_server: FakeLighterServer, make_order_book_frame: FrameFactory
    ) -> None:
        fake_server.replies["order_book/3"] = [
            make_order_book_frame("subscribed/order_book", 3, [["100.5", "2.0"]], [])
        ]
        async with fake_server as server:
            service = PublicStreamService(server.config())
            errors: list[Exception] = []
            books: list[OrderBookResponse] = []
            await service.start(errors.append)
            await service.subscribe_order_book(OrderBookParams(market_id=3), books.append)
            await server.wait_for(lambda: len(books) == 1)

            await server.drop_all()
            await server.wait_for(lambda: len(errors) == 1)
            assert isinstance(errors[0], TransportError)
            assert service.is_connected is False

            await service.reconnect()
            # Replayed subscription yields a fresh snapshot
            await server.wait_for(lambda: len(books) == 2)
            assert books[1].is_snapshot
            assert len(errors) == 1
            await service.close()


class TestChannelOrdering:
    @pytest.mark.asyncio
    async def test_slow_market_does_not_reorder_another_market(
        self, fake_server: FakeLighterServer, make_order_book_frame: FrameFactory
    ) -> None:
        fake_server.replies["order_book/3"] = [
            make_order_book_frame("subscribed/order_book", 3, [["100", "1"]], [])
        ]
        # Snapshot and first update for market 4 leave the server back to back
        fake_server.replies["order_book/4"] = [
            make_order_book_frame("subscribed/order_book", 4, [["200", "1"]], []),
            make_order_book_frame("update/order_book", 4, [["201", "1"]], []),
        ]
        async with fake_server as server:
            service = PublicStreamService(server.config())
            seen_3: list[bool] = []
            seen_4: list[bool] = []

            async def slow_market_3(book: OrderBookResponse) -> None:
                await asyncio.sleep(0.3)
                seen_3.append(book.is_snapshot)

            await service.start()
            await service.subscribe_order_book(OrderBookParams(market_id=3), slow_market_3)
            await service.subscribe_order_book(
                OrderBookParams(market_id=4), lambda book: seen_4.append(book.is_snapshot)
            )

            await server.wait_for(lambda: len(seen_4) == 2)
            assert seen_4 == [True, False]

            await server.wait_for(lambda: seen_3 == [True])
            await service.close()

    @pytest.mark.asyncio
    async def test_queued_frames_dropped_after_unsubscribe(
        self, fake_server: FakeLighterServer, make_order_book_frame: FrameFactory
    ) -> None:
        async with fake_server as server:
            service = PublicStreamService(server.config())
            release = asyncio.Event()
            entered: list[OrderBookResponse] = []

            async def blocking(book: OrderBookResponse) -> None:
                entered.append(book)
                await release.wait()

            await service.start()
            sub = await service.subscribe_order_book(OrderBookParams(market_id=5), blocking)

            await server.broadcast(make_order_book_frame("update/order_book", 5, [["1", "1"]], []))
            await server.broadcast(make_order_book_frame("update/order_book", 5, [["2", "1"]], []))
            await server.wait_for(lambda: len(entered) == 1)
            await server.wait_for(lambda: service.metrics.frames_received >= 3)

            # The second update is already queued behind the blocked callback
            await sub.unsubscribe()
            release.set()
            await asyncio.sleep(0.05)

            assert [b.bids[0].price for b in entered] == ["1"]
            await service.close()
