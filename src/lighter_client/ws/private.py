"""Private account data service."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from lighter_client.errors import UnsupportedOperationError
from lighter_client.ws.connection import ConnectionManager
from lighter_client.ws.messages import (
    AccountParams,
    AccountResponse,
    channel_instrument,
    parse_account,
)
from lighter_client.ws.router import Frame, FrameHandler
from lighter_client.ws.service import BaseStreamService, Callback, Subscription, invoke_callback
from lighter_client.ws.types import Channel, ChannelKey, MessageType, WSConfig

logger = logging.getLogger(__name__)

# Produces the bearer token for the handshake; signing lives outside this package
TokenGenerator = Callable[[], str]


def _frame_account(frame: Frame) -> str | None:
    account = frame.get("account")
    if isinstance(account, int) and not isinstance(account, bool):
        return str(account)
    return channel_instrument(str(frame.get("channel", "")))


def _account_handler(account_id: int, callback: Callback[AccountResponse]) -> FrameHandler:
    expected = str(account_id)

    async def handle(frame: Frame) -> None:
        owner = _frame_account(frame)
        if owner is not None and owner != expected:
            return
        await invoke_callback(callback, parse_account(frame, account_id))

    return handle


class PrivateStreamService(BaseStreamService):
    """
    Account subscriptions over a connection authenticated with a bearer token.

    The token generator is called before every connect, so a reconnect
    always presents a fresh token.
    """

    label = "private"

    def __init__(
        self,
        config: WSConfig | None = None,
        token_generator: TokenGenerator | None = None,
        *,
        connection: ConnectionManager | None = None,
    ) -> None:
        super().__init__(config, connection=connection)
        self._token_generator = token_generator

    async def _before_connect(self) -> None:
        if self._token_generator is None:
            return
        token = self._token_generator()
        if token:
            self._connection.set_auth_token(token)
        else:
            logger.warning("Token generator returned an empty token")

    async def subscribe_account(
        self,
        params: AccountParams,
        callback: Callback[AccountResponse],
    ) -> Subscription:
        """
        Subscribe to state and updates for one account.

        Payloads (positions, trades, orders) are passed through unchanged in
        AccountResponse.raw; no running state is derived from them.

        Raises:
            AlreadySubscribedError: If the account is already subscribed.
            NotConnectedError: If start() has not connected the service.
            TransportError: If the subscribe frame could not be written.
        """
        handler = _account_handler(params.account_id, callback)
        key = ChannelKey.for_instrument(Channel.ACCOUNT_ALL, params.account_id)
        return await self._open(
            key,
            {
                MessageType.ACCOUNT_SUBSCRIBED.value: handler,
                MessageType.ACCOUNT_UPDATE.value: handler,
            },
        )

    async def subscribe_orders(self, params: AccountParams, callback: Callback[Any]) -> Subscription:
        """Order updates are delivered inside account updates."""
        raise UnsupportedOperationError(
            f"order subscription is not supported (account {params.account_id}); "
            "order updates arrive through subscribe_account"
        )
