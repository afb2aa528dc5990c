"""
Error taxonomy for the Lighter client.

- TransportError: handshake, read, write and HTTP transport failures.
- ProtocolError: malformed frames or undecodable response bodies.
- ApplicationError: nonzero status code embedded in a payload, or non-200 HTTP.
- StateError: local misuse (duplicate subscribe, operating while disconnected).

No error in this package is retried internally; callers own retry policy.
"""

from __future__ import annotations

from typing import Any


class LighterError(Exception):
    """Base class for all client errors."""


class TransportError(LighterError, ConnectionError):
    """Raised when the underlying socket or HTTP transport fails."""


class ProtocolError(LighterError):
    """Raised when a frame or response body cannot be decoded."""

    def __init__(self, message: str, raw: bytes | str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class ApplicationError(LighterError):
    """Raised when the exchange reports a failure in a decoded payload."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        status: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.body = body


class StateError(LighterError):
    """Raised synchronously for local misuse; the call has no side effect."""


class AlreadySubscribedError(StateError):
    """Raised when a channel key already has an active subscription."""

    def __init__(self, key: object) -> None:
        super().__init__(f"already subscribed to {key}")
        self.key = key


class NotConnectedError(StateError):
    """Raised when an operation needs a live connection and there is none."""

    def __init__(self, message: str = "websocket not connected") -> None:
        super().__init__(message)


class UnsupportedOperationError(LighterError, NotImplementedError):
    """Raised by surface the exchange does not offer over this transport."""
