# =============================================================================
# Gateway Client -- Error Types
# =============================================================================

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for all gateway client errors."""


class ConfigError(GatewayError):
    """Missing or invalid configuration (token, intents, URLs)."""


class DiscoveryError(GatewayError):
    """The gateway discovery call failed or returned an unusable body."""


class DialError(GatewayError):
    """Opening the gateway websocket failed."""


class ReadError(GatewayError):
    """The socket closed or errored while waiting for the next frame."""

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        reason: str = "",
    ) -> None:
        self.code = code
        self.reason = reason
        super().__init__(message)


class WriteError(GatewayError):
    """Sending a frame failed (closed handle or transport error)."""


class ProtocolError(GatewayError):
    """The server sent a payload that does not match the protocol."""
