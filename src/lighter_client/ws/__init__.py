"""
Lighter WebSocket streaming.

- ConnectionManager owns one socket, the read loop and the heartbeat
- SubscriptionRegistry tracks channel keys and replays them on reconnect
- MessageRouter classifies frames and feeds per-type handlers in order
- PublicStreamService / PrivateStreamService expose typed subscriptions
- No automatic reconnection: callers re-invoke connect()/reconnect()
"""

from lighter_client.ws.client import LighterWebsocketClient
from lighter_client.ws.connection import ConnectionManager
from lighter_client.ws.messages import (
    AccountParams,
    AccountResponse,
    OrderBookParams,
    OrderBookResponse,
    PriceLevel,
    SubscribeMessage,
    TradesParams,
)
from lighter_client.ws.private import PrivateStreamService, TokenGenerator
from lighter_client.ws.public import PublicStreamService
from lighter_client.ws.registry import SubscriptionHandle, SubscriptionRegistry
from lighter_client.ws.router import MessageRouter
from lighter_client.ws.service import BaseStreamService, Subscription
from lighter_client.ws.types import (
    Channel,
    ChannelKey,
    ConnectionState,
    MessageType,
    StreamMetrics,
    WSConfig,
)

__all__ = [
    "AccountParams",
    "AccountResponse",
    "BaseStreamService",
    "Channel",
    "ChannelKey",
    "ConnectionManager",
    "ConnectionState",
    "LighterWebsocketClient",
    "MessageRouter",
    "MessageType",
    "OrderBookParams",
    "OrderBookResponse",
    "PriceLevel",
    "PrivateStreamService",
    "PublicStreamService",
    "StreamMetrics",
    "SubscribeMessage",
    "Subscription",
    "SubscriptionHandle",
    "SubscriptionRegistry",
    "TokenGenerator",
    "TradesParams",
    "WSConfig",
]
