"""
REST client for the Lighter HTTP API.

- GET endpoints take a query string, POST endpoints a URL-encoded form
- A response must be HTTP 200 and carry code 200 in its body
- No retries: every failure surfaces to the caller as a LighterError
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

import aiohttp
import orjson
from pydantic import BaseModel, ValidationError

from lighter_client.errors import ApplicationError, ProtocolError, TransportError
from lighter_client.rest.types import (
    ALL_MARKETS,
    CODE_OK,
    AccountApiKeys,
    AccountByL1AddressResponse,
    DetailedAccountsResponse,
    FundingRatesResponse,
    InfoResponse,
    NextNonce,
    OrderBookDetailsResponse,
    OrderBooksResponse,
    OrdersResponse,
    RestConfig,
    StatusResponse,
    TransferFeeInfo,
    TxHash,
    TxHashBatch,
    TxInfo,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


class LighterRestClient:
    """
    Async client for account, market and transaction endpoints.

    Usage:
        async with LighterRestClient(RestConfig.from_env()) as client:
            nonce = await client.get_next_nonce(account_index=3, api_key_index=0)
            tx_hash = await client.send_raw_tx(signed_tx)
    """

    def __init__(self, config: RestConfig | None = None) -> None:
        """
        Initialize the REST client.

        Args:
            config: REST configuration (base URL, timeout, channel name).
        """
        self._config = config or RestConfig()
        self._session: aiohttp.ClientSession | None = None

    @property
    def config(self) -> RestConfig:
        return self._config

    async def __aenter__(self) -> LighterRestClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_ms / 1000)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _url(self, path: str) -> str:
        return f"{self._config.base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        form: dict[str, str] | None = None,
        check_code: bool = True,
    ) -> dict[str, Any]:
        """
        Perform one HTTP request and decode its JSON body.

        Args:
            method: HTTP method.
            path: Endpoint path relative to the base URL.
            params: Query parameters (GET).
            form: URL-encoded form fields (POST).
            check_code: Require an embedded code of 200.

        Returns:
            Decoded JSON object.

        Raises:
            TransportError: On connection failures or timeouts.
            ApplicationError: On non-200 HTTP status or embedded error code.
            ProtocolError: If the body is not a JSON object.
        """
        url = self._url(path)
        headers = None
        if form is not None:
            headers = {**_FORM_HEADERS, "Channel-Name": self._config.channel_name}

        session = await self._get_session()
        try:
            async with session.request(
                method, url, params=params, data=form, headers=headers
            ) as response:
                status = response.status
                text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("HTTP request failed", extra={"path": path, "error": str(e)})
            raise TransportError(f"{method} {path} failed: {e}") from e

        if status != 200:
            logger.error("HTTP error", extra={"path": path, "status": status, "body": text[:500]})
            raise ApplicationError(text, status=status, body=text)

        try:
            data = orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise ProtocolError(f"invalid JSON from {path}: {e}", raw=text) from e
        if not isinstance(data, dict):
            raise ProtocolError(f"expected JSON object from {path}", raw=text)

        if check_code:
            code = data.get("code")
            if code != CODE_OK:
                message = str(data.get("message") or f"request failed with code {code}")
                logger.warning("API error", extra={"path": path, "code": code})
                raise ApplicationError(message, code=code if isinstance(code, int) else None, body=data)

        return data

    async def _get(
        self,
        path: str,
        model: type[M],
        params: dict[str, Any] | None = None,
        *,
        check_code: bool = True,
    ) -> M:
        query = {k: str(v) for k, v in (params or {}).items()}
        data = await self._request("GET", path, params=query, check_code=check_code)
        return _parse(model, data, path)

    async def _post(self, path: str, model: type[M], form: dict[str, str]) -> M:
        data = await self._request("POST", path, form=form)
        return _parse(model, data, path)

    async def get_next_nonce(self, account_index: int, api_key_index: int) -> int:
        """Return the next nonce to sign with for an API key."""
        result = await self._get(
            "api/v1/nextNonce",
            NextNonce,
            {"account_index": account_index, "api_key_index": api_key_index},
        )
        return result.nonce

    async def get_api_key(self, account_index: int, api_key_index: int) -> AccountApiKeys:
        return await self._get(
            "api/v1/apikeys",
            AccountApiKeys,
            {"account_index": account_index, "api_key_index": api_key_index},
        )

    async def send_raw_tx(self, tx: TxInfo) -> str:
        """
        Submit one signed transaction.

        Args:
            tx: Signed transaction exposing tx_type and get_tx_info().

        Returns:
            Transaction hash.
        """
        form = {"tx_type": str(tx.tx_type), "tx_info": tx.get_tx_info()}
        if not self._config.fat_finger_protection:
            form["price_protection"] = "false"
        result = await self._post("api/v1/sendTx", TxHash, form)
        logger.info("Transaction submitted", extra={"tx_type": tx.tx_type})
        return result.tx_hash

    async def send_tx_batch(self, tx_types: Sequence[int], tx_infos: Sequence[str]) -> list[str]:
        """Submit several signed transactions; both lists are sent JSON-encoded."""
        if len(tx_types) != len(tx_infos):
            raise ValueError(
                f"tx_types and tx_infos differ in length ({len(tx_types)} != {len(tx_infos)})"
            )
        form = {
            "tx_types": orjson.dumps(list(tx_types)).decode(),
            "tx_infos": orjson.dumps(list(tx_infos)).decode(),
        }
        result = await self._post("api/v1/sendTxBatch", TxHashBatch, form)
        logger.info("Transaction batch submitted", extra={"count": len(tx_types)})
        return result.tx_hash

    async def get_transfer_fee_info(
        self, account_index: int, to_account_index: int, auth: str
    ) -> TransferFeeInfo:
        return await self._get(
            "api/v1/transferFeeInfo",
            TransferFeeInfo,
            {"account_index": account_index, "to_account_index": to_account_index, "auth": auth},
        )

    async def get_account(self, account_index: int) -> DetailedAccountsResponse:
        return await self._get(
            "api/v1/account",
            DetailedAccountsResponse,
            {"by": "index", "value": account_index},
        )

    async def get_account_by_l1_address(self, l1_address: str) -> AccountByL1AddressResponse:
        return await self._get(
            "api/v1/accountsByL1Address",
            AccountByL1AddressResponse,
            {"l1_address": l1_address},
        )

    async def get_order_books(self) -> OrderBooksResponse:
        return await self._get("api/v1/orderBooks", OrderBooksResponse)

    async def get_order_book_details(self, market_id: int = 0) -> OrderBookDetailsResponse:
        """Details for one market, or for all markets when market_id is 0."""
        params: dict[str, Any] = {}
        if market_id > 0:
            params["market_id"] = market_id
        return await self._get("api/v1/orderBookDetails", OrderBookDetailsResponse, params)

    async def get_active_orders(self, account_index: int, market_id: int, auth: str) -> OrdersResponse:
        return await self._get(
            "api/v1/accountActiveOrders",
            OrdersResponse,
            {"account_index": account_index, "market_id": market_id, "auth": auth},
        )

    async def get_inactive_orders(
        self,
        account_index: int,
        market_id: int,
        auth: str,
        limit: int = 50,
    ) -> OrdersResponse:
        """Historical orders; market_id 255 queries all markets."""
        params: dict[str, Any] = {"account_index": account_index, "auth": auth, "limit": limit}
        if market_id != ALL_MARKETS:
            params["market_id"] = market_id
        return await self._get("api/v1/accountInactiveOrders", OrdersResponse, params)

    async def get_funding_rates(self) -> FundingRatesResponse:
        return await self._get("api/v1/funding-rates", FundingRatesResponse)

    async def get_status(self) -> StatusResponse:
        return await self._get("/", StatusResponse, check_code=False)

    async def get_info(self) -> InfoResponse:
        return await self._get("info", InfoResponse, check_code=False)


def _parse(model: type[M], data: dict[str, Any], path: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"unexpected response from {path}: {e}", raw=orjson.dumps(data)) from e
