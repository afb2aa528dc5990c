"""
REST configuration and response models.

Response models ignore unknown fields so additions on the server side do not
break parsing. Every response carries a ResultCode (code 200 means success).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import orjson
from pydantic import BaseModel, ConfigDict, Field

CODE_OK = 200
ALL_MARKETS = 255
DEFAULT_REST_URL = "https://mainnet.zklighter.elliot.ai"
DEFAULT_CHANNEL_NAME = "lighter-client"


@dataclass
class RestConfig:
    """Configuration for LighterRestClient."""

    base_url: str = DEFAULT_REST_URL
    request_timeout_ms: int = 10000
    channel_name: str = DEFAULT_CHANNEL_NAME
    # When disabled every sendTx carries price_protection=false
    fat_finger_protection: bool = False

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url must not be empty")
        if self.request_timeout_ms <= 0:
            raise ValueError(f"request_timeout_ms must be positive, got {self.request_timeout_ms}")
        self.base_url = self.base_url.rstrip("/")

    @classmethod
    def from_env(cls) -> RestConfig:
        """Build config from LIGHTER_REST_URL / LIGHTER_CHANNEL_NAME."""
        return cls(
            base_url=os.environ.get("LIGHTER_REST_URL", DEFAULT_REST_URL),
            channel_name=os.environ.get("LIGHTER_CHANNEL_NAME", DEFAULT_CHANNEL_NAME),
        )


@runtime_checkable
class TxInfo(Protocol):
    """A signed transaction ready for submission."""

    tx_type: int

    def get_tx_info(self) -> str: ...


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    @classmethod
    def from_json(cls, data: bytes | str) -> _Model:
        return cls.model_validate(orjson.loads(data))


class ResultCode(_Model):
    code: int = CODE_OK
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.code == CODE_OK


class NextNonce(ResultCode):
    nonce: int


class ApiKey(_Model):
    account_index: int
    api_key_index: int
    nonce: int = 0
    public_key: str = ""


class AccountApiKeys(ResultCode):
    api_keys: list[ApiKey] = Field(default_factory=list)


class TxHash(ResultCode):
    tx_hash: str


class TxHashBatch(ResultCode):
    tx_hash: list[str] = Field(default_factory=list)


class TransferFeeInfo(ResultCode):
    transfer_fee_usdc: int = 0


class AccountMarketStats(_Model):
    market_id: int = 0
    open_order_count: int = 0
    sign: int = 0
    position: str = ""
    avg_entry_price: str = ""
    position_value: str = ""
    unrealized_pnl: str = ""
    realized_pnl: str = ""


class AccountInfo(_Model):
    account_type: int = 0
    index: int = 0
    l1_address: str = ""
    cancel_all_time: int = 0
    total_order_count: int = 0
    total_isolated_order_count: int = 0
    pending_order_count: int = 0
    available_balance: str = ""
    status: int = 0
    created_at: int = 0
    last_active_at: int = 0
    market_stats: list[AccountMarketStats] = Field(default_factory=list)


class DetailedAccountsResponse(ResultCode):
    """Response of api/v1/account and api/v1/accountsByL1Address."""

    total: int = 0
    accounts: list[AccountInfo] = Field(default_factory=list)
    detailed_accounts: list[AccountInfo] = Field(default_factory=list)

    @property
    def all_accounts(self) -> list[AccountInfo]:
        return self.accounts or self.detailed_accounts


class AccountByL1AddressResponse(ResultCode):
    l1_address: str = ""
    sub_accounts: list[AccountInfo] = Field(default_factory=list)


class RestPriceLevel(_Model):
    price: str = ""
    quantity: str = ""


class OrderBook(_Model):
    symbol: str = ""
    market_id: int = 0
    status: str = ""
    bids: list[RestPriceLevel] = Field(default_factory=list)
    asks: list[RestPriceLevel] = Field(default_factory=list)
    taker_fee: str = ""
    maker_fee: str = ""
    liquidation_fee: str = ""
    min_base_amount: str = ""
    min_quote_amount: str = ""
    supported_size_decimals: int = 0
    supported_price_decimals: int = 0
    supported_quote_decimals: int = 0


class OrderBooksResponse(ResultCode):
    order_books: list[OrderBook] = Field(default_factory=list)


class OrderBookDetail(OrderBook):
    size_decimals: int = 0
    price_decimals: int = 0
    last_trade_price: float = 0.0
    daily_trades_count: int = 0
    daily_base_token_volume: float = 0.0
    daily_quote_token_volume: float = 0.0
    open_interest: float = 0.0


class OrderBookDetailsResponse(ResultCode):
    order_book_details: list[OrderBookDetail] = Field(default_factory=list)


class Order(_Model):
    id: str = ""
    account_index: int = 0
    market_id: int = 0
    client_order_index: int = 0
    is_ask: bool = False
    base_quantity: str = ""
    price: str = ""
    order_type: int = 0
    time_in_force: int = 0
    reduce_only: bool = False
    trigger_price: str = ""
    order_expiry: int = 0
    created_at: int = 0
    status: str = ""
    filled_quantity: str = ""
    remaining_quantity: str = ""


class OrdersResponse(ResultCode):
    orders: list[Order] = Field(default_factory=list)
    next_cursor: str | None = None


class FundingRate(_Model):
    market_id: int = 0
    exchange: str = ""
    symbol: str = ""
    rate: float = 0.0


class FundingRatesResponse(ResultCode):
    funding_rates: list[FundingRate] = Field(default_factory=list)


class StatusResponse(_Model):
    status: int = 0
    network_id: int = 0
    timestamp: int = 0


class InfoResponse(_Model):
    contract_address: str = ""
    deposit_amount_limit: str = ""
