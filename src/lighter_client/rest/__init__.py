"""Lighter HTTP API client."""

from lighter_client.rest.client import LighterRestClient
from lighter_client.rest.types import (
    AccountApiKeys,
    AccountByL1AddressResponse,
    AccountInfo,
    DetailedAccountsResponse,
    FundingRatesResponse,
    InfoResponse,
    Order,
    OrderBookDetailsResponse,
    OrderBooksResponse,
    OrdersResponse,
    RestConfig,
    StatusResponse,
    TransferFeeInfo,
    TxInfo,
)

__all__ = [
    "AccountApiKeys",
    "AccountByL1AddressResponse",
    "AccountInfo",
    "DetailedAccountsResponse",
    "FundingRatesResponse",
    "InfoResponse",
    "LighterRestClient",
    "Order",
    "OrderBookDetailsResponse",
    "OrderBooksResponse",
    "OrdersResponse",
    "RestConfig",
    "StatusResponse",
    "TransferFeeInfo",
    "TxInfo",
]
