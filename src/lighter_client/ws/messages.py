"""
Wire contracts for the Lighter stream.

Outbound control frames are pydantic models serialised with orjson.
Inbound frames are decoded into plain dicts and normalised into the
response models handed to subscriber callbacks. Price and size values stay
decimal strings exactly as received.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator

from lighter_client.errors import ApplicationError, ProtocolError
from lighter_client.ws.types import ChannelKey, MessageType

logger = logging.getLogger(__name__)

# Success codes seen in embedded "code" fields (stream uses 0, REST uses 200)
OK_CODES: frozenset[int] = frozenset({0, 200})


class SubscribeMessage(BaseModel):
    """Subscribe/unsubscribe control frame."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["subscribe", "unsubscribe"]
    channel: str = Field(..., min_length=1, description="Channel name")
    symbol: str | None = Field(default=None, description="Optional instrument symbol")

    @field_validator("symbol")
    @classmethod
    def empty_symbol_is_none(cls, v: str | None) -> str | None:
        """An empty symbol is the same as no symbol."""
        return v or None

    @property
    def key(self) -> ChannelKey:
        return ChannelKey(channel=self.channel, symbol=self.symbol)

    def to_json(self) -> bytes:
        """Serialize to JSON bytes, omitting an absent symbol."""
        return orjson.dumps(self.model_dump(mode="json", exclude_none=True))

    @classmethod
    def from_json(cls, data: bytes | str) -> SubscribeMessage:
        """Deserialize from JSON."""
        if isinstance(data, str):
            data = data.encode()
        return cls.model_validate(orjson.loads(data))


class ControlMessage(BaseModel):
    """Bare control frame such as ping or pong."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["ping", "pong"]

    def to_json(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json"))


def subscribe_message(key: ChannelKey) -> SubscribeMessage:
    return SubscribeMessage(type="subscribe", channel=key.channel, symbol=key.symbol)


def unsubscribe_message(key: ChannelKey) -> SubscribeMessage:
    return SubscribeMessage(type="unsubscribe", channel=key.channel, symbol=key.symbol)


PING = ControlMessage(type="ping")
PONG = ControlMessage(type="pong")


def decode_frame(raw: bytes | str) -> dict[str, Any]:
    """
    Decode one inbound frame into a dict.

    Raises:
        ProtocolError: If the frame is not a JSON object.
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ProtocolError(f"frame is not valid JSON: {e}", raw=raw) from e
    if not isinstance(data, dict):
        raise ProtocolError(f"frame is not a JSON object: {type(data).__name__}", raw=raw)
    return data


def frame_error(frame: dict[str, Any]) -> ApplicationError | None:
    """
    Extract the error carried by a frame, if any.

    Recognises {"error": {"code": N, "message": ...}} and a top-level
    "code" outside OK_CODES. Nested payload codes (e.g. order_book.code)
    are not inspected.
    """
    error = frame.get("error")
    if isinstance(error, dict):
        code = error.get("code")
        if isinstance(code, int) and code not in OK_CODES:
            return ApplicationError(str(error.get("message", "")), code=code, body=frame)
    elif isinstance(error, str) and error:
        return ApplicationError(error, body=frame)

    code = frame.get("code")
    if isinstance(code, int) and not isinstance(code, bool) and code not in OK_CODES:
        return ApplicationError(str(frame.get("message", "")), code=code, body=frame)
    return None


def channel_instrument(channel: str) -> str | None:
    """Return the instrument part of "order_book:3" or "order_book/3"."""
    for sep in (":", "/"):
        if sep in channel:
            head, _, tail = channel.rpartition(sep)
            if head and tail:
                return tail
    return None


class PriceLevel(BaseModel):
    """One price level; both fields are exchange decimal strings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    price: str
    quantity: str


def _as_decimal_string(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def parse_price_levels(raw_levels: Any, side: str = "") -> list[PriceLevel]:
    """
    Normalise a list of levels.

    Accepts ["price", "size"] pairs and {"price", "size"|"quantity"}
    objects. Malformed entries are skipped with a warning.
    """
    if not isinstance(raw_levels, list):
        return []

    levels: list[PriceLevel] = []
    for i, entry in enumerate(raw_levels):
        price: str | None = None
        quantity: str | None = None
        if isinstance(entry, (list, tuple)) and len(entry) >= 2:
            price = _as_decimal_string(entry[0])
            quantity = _as_decimal_string(entry[1])
        elif isinstance(entry, dict):
            price = _as_decimal_string(entry.get("price"))
            quantity = _as_decimal_string(entry.get("size", entry.get("quantity")))

        if price is None or quantity is None:
            logger.warning(
                "Skipping malformed price level",
                extra={"side": side, "index": i},
            )
            continue
        levels.append(PriceLevel(price=price, quantity=quantity))
    return levels


class OrderBookParams(BaseModel):
    """Order book subscription parameters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    market_id: int = Field(..., ge=0, description="Market index")


class TradesParams(BaseModel):
    """Trades subscription parameters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    market_id: int = Field(..., ge=0, description="Market index")


class AccountParams(BaseModel):
    """Account subscription parameters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    account_id: int = Field(..., ge=0, description="Account index")


class OrderBookResponse(BaseModel):
    """
    Normalised order book delivery.

    Attributes:
        market_id: Market the levels belong to.
        bids: Bid levels as received.
        asks: Ask levels as received.
        timestamp: Exchange timestamp (ms), 0 when absent.
        offset: Exchange sequence offset, if provided.
        is_snapshot: True for the full book sent on subscribe.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    market_id: int
    bids: list[PriceLevel] = Field(default_factory=list)
    asks: list[PriceLevel] = Field(default_factory=list)
    timestamp: int = 0
    offset: int | None = None
    is_snapshot: bool = False


class AccountResponse(BaseModel):
    """
    Account delivery, carrying the raw payload without reinterpretation.

    Attributes:
        account_id: Account the update belongs to.
        is_snapshot: True for the state sent on subscribe.
        timestamp: Exchange timestamp (ms), if provided.
        raw: The decoded frame as received.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    account_id: int
    is_snapshot: bool = False
    timestamp: int | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


def _int_or(value: Any, default: int | None) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return default


def parse_order_book(frame: dict[str, Any], market_id: int) -> OrderBookResponse:
    """Build an OrderBookResponse from a subscribed/update order book frame."""
    body = frame.get("order_book")
    if not isinstance(body, dict):
        body = frame

    return OrderBookResponse(
        market_id=market_id,
        bids=parse_price_levels(body.get("bids"), side="bid"),
        asks=parse_price_levels(body.get("asks"), side="ask"),
        timestamp=_int_or(frame.get("timestamp"), 0) or 0,
        offset=_int_or(body.get("offset"), None),
        is_snapshot=frame.get("type") == MessageType.ORDER_BOOK_SUBSCRIBED.value,
    )


def parse_account(frame: dict[str, Any], account_id: int) -> AccountResponse:
    """Wrap an account_all frame for delivery."""
    return AccountResponse(
        account_id=account_id,
        is_snapshot=frame.get("type") == MessageType.ACCOUNT_SUBSCRIBED.value,
        timestamp=_int_or(frame.get("timestamp"), None),
        raw=frame,
    )
