"""
lighter-client: async WebSocket streaming and REST access to the Lighter exchange.

Usage:
    from lighter_client import LighterWebsocketClient, OrderBookParams

    public = LighterWebsocketClient().public()
    await public.start(on_error)
    await public.subscribe_order_book(OrderBookParams(market_id=3), on_book)
"""

from lighter_client.errors import (
    AlreadySubscribedError,
    ApplicationError,
    LighterError,
    NotConnectedError,
    ProtocolError,
    StateError,
    TransportError,
    UnsupportedOperationError,
)
from lighter_client.rest import LighterRestClient, RestConfig
from lighter_client.ws import (
    AccountParams,
    AccountResponse,
    LighterWebsocketClient,
    OrderBookParams,
    OrderBookResponse,
    PriceLevel,
    PrivateStreamService,
    PublicStreamService,
    Subscription,
    WSConfig,
)

__version__ = "0.1.0"

__all__ = [
    "AccountParams",
    "AccountResponse",
    "AlreadySubscribedError",
    "ApplicationError",
    "LighterError",
    "LighterRestClient",
    "LighterWebsocketClient",
    "NotConnectedError",
    "OrderBookParams",
    "OrderBookResponse",
    "PriceLevel",
    "PrivateStreamService",
    "ProtocolError",
    "PublicStreamService",
    "RestConfig",
    "StateError",
    "Subscription",
    "TransportError",
    "UnsupportedOperationError",
    "WSConfig",
    "__version__",
]
