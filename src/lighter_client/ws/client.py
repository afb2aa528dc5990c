"""Entry point producing public and private stream services."""

from __future__ import annotations

from lighter_client.ws.private import PrivateStreamService, TokenGenerator
from lighter_client.ws.public import PublicStreamService
from lighter_client.ws.types import WSConfig


class LighterWebsocketClient:
    """
    Factory for stream services sharing one configuration.

    Each service owns its own connection.

    Usage:
        client = LighterWebsocketClient()
        public = client.public()
        private = client.private(token_generator)
    """

    def __init__(self, config: WSConfig | None = None) -> None:
        self._config = config or WSConfig()

    @property
    def config(self) -> WSConfig:
        return self._config

    def set_config(self, config: WSConfig) -> LighterWebsocketClient:
        self._config = config
        return self

    def public(self) -> PublicStreamService:
        return PublicStreamService(self._config)

    def private(self, token_generator: TokenGenerator | None = None) -> PrivateStreamService:
        return PrivateStreamService(self._config, token_generator)
