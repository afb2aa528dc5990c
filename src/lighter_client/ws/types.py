"""
Types and configuration for the Lighter WebSocket connection.

Defaults:
- 45s handshake timeout
- 30s heartbeat interval
- 60s read deadline, refreshed on every receive
- 10s write deadline per send
- 100ms spacing between replayed subscriptions after a reconnect
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

DEFAULT_WS_URL = "wss://api.lighter.xyz/ws"


class ConnectionState(str, Enum):
    """WebSocket connection state."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


class MessageType(str, Enum):
    """Frame types exchanged on the stream."""

    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    PING = "ping"
    PONG = "pong"
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"

    ORDER_BOOK_SUBSCRIBED = "subscribed/order_book"
    ORDER_BOOK_UPDATE = "update/order_book"
    ACCOUNT_SUBSCRIBED = "subscribed/account_all"
    ACCOUNT_UPDATE = "update/account_all"


# Handled inline by the router, never forwarded to data handlers
CONTROL_TYPES: frozenset[str] = frozenset(
    {
        MessageType.PING.value,
        MessageType.PONG.value,
        MessageType.CONNECTED.value,
        MessageType.SUBSCRIBED.value,
        MessageType.UNSUBSCRIBED.value,
    }
)


class Channel(str, Enum):
    """Channel kinds the stream can push updates for."""

    ORDER_BOOK = "order_book"
    ACCOUNT_ALL = "account_all"
    TICKER = "ticker"
    TRADES = "trades"


@dataclass(frozen=True)
class ChannelKey:
    """
    Identity of one logical subscription.

    Attributes:
        channel: Channel name as sent on the wire (e.g., "order_book/3").
        symbol: Optional instrument symbol, omitted from frames when None.
    """

    channel: str
    symbol: str | None = None

    @classmethod
    def for_instrument(cls, kind: Channel | str, instrument_id: int | str) -> ChannelKey:
        """Build the "<kind>/<id>" channel used for per-market and per-account feeds."""
        kind_value = kind.value if isinstance(kind, Channel) else kind
        return cls(channel=f"{kind_value}/{instrument_id}")

    def __str__(self) -> str:
        if self.symbol:
            return f"{self.channel}:{self.symbol}"
        return self.channel


@dataclass
class WSConfig:
    """
    Configuration for the streaming connection.

    Attributes:
        url: WebSocket endpoint.
        handshake_timeout_ms: Bound on the opening handshake.
        ping_interval_ms: Heartbeat interval.
        read_timeout_ms: Read deadline applied to every receive.
        write_timeout_ms: Write deadline applied to every send.
        resubscribe_delay_ms: Spacing between replayed subscribe frames.
    """

    url: str = DEFAULT_WS_URL
    handshake_timeout_ms: int = 45000
    ping_interval_ms: int = 30000
    read_timeout_ms: int = 60000
    write_timeout_ms: int = 10000
    resubscribe_delay_ms: int = 100

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("url must not be empty")
        for name in (
            "handshake_timeout_ms",
            "ping_interval_ms",
            "read_timeout_ms",
            "write_timeout_ms",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be > 0, got {value}")
        if self.resubscribe_delay_ms < 0:
            raise ValueError(f"resubscribe_delay_ms must be >= 0, got {self.resubscribe_delay_ms}")

    @classmethod
    def from_env(cls) -> WSConfig:
        """Build config, taking the endpoint from LIGHTER_WS_URL when set."""
        return cls(url=os.environ.get("LIGHTER_WS_URL", DEFAULT_WS_URL))


@dataclass
class StreamMetrics:
    """
    Counters for one connection manager and its router.

    Attributes:
        frames_received: Text/binary frames read from the socket.
        frames_dropped: Frames that could not be decoded or had no type.
        error_frames: Frames carrying a nonzero error code.
        callback_errors: Exceptions raised by registered handlers.
        pings_sent: Heartbeat pings written.
        pongs_sent: Pongs written in answer to remote pings.
        disconnects: Unintentional connection losses.
        resubscribes: Subscribe frames replayed after a reconnect.
        state: Current connection state.
    """

    frames_received: int = 0
    frames_dropped: int = 0
    error_frames: int = 0
    callback_errors: int = 0
    pings_sent: int = 0
    pongs_sent: int = 0
    disconnects: int = 0
    resubscribes: int = 0
    state: ConnectionState = ConnectionState.DISCONNECTED
