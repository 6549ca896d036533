"""Minimal asyncio client for the Discord WebSocket gateway.

Usage::

    from gateway_client import GatewayConfig, connect

    async with connect(GatewayConfig(token="bot-token")) as client:
        async for event in client:
            print(event.event_name, event.data)

Or run it as a process (token from ``DISCORD_TOKEN``)::

    python -m gateway_client

Optional extras::

    pip install gateway-client[fast]   # orjson
"""

from ._version import __version__
from .client import GatewayClient
from .config import GatewayConfig
from .connection import GatewayConnection
from .discovery import EndpointResolver, build_gateway_url
from .errors import (
    ConfigError,
    DialError,
    DiscoveryError,
    GatewayError,
    ProtocolError,
    ReadError,
    WriteError,
)
from .heartbeat import Heartbeater
from .protocol import EnvelopeCodec
from .reconnect import ReconnectSupervisor
from .session import GatewaySession
from .types import (
    GatewayEnvelope,
    IdentifyProperties,
    Identity,
    Intents,
    Opcode,
    ReconnectConfig,
    ReconnectMode,
    SessionState,
    SessionStats,
)


def connect(config: GatewayConfig, **kwargs) -> GatewayClient:
    """Create a gateway client.

    Use as an async context manager.  Keyword arguments are forwarded
    to :class:`GatewayClient` (``resolver``, ``dial``).

    Raises (on enter):
        DiscoveryError: If the gateway URL cannot be resolved.
        DialError: If the first connection cannot be opened.
    """
    return GatewayClient(config, **kwargs)


__all__ = [
    "__version__",
    "connect",
    "GatewayClient",
    "GatewayConfig",
    "GatewayConnection",
    "GatewaySession",
    "EndpointResolver",
    "build_gateway_url",
    "EnvelopeCodec",
    "Heartbeater",
    "ReconnectSupervisor",
    "GatewayEnvelope",
    "IdentifyProperties",
    "Identity",
    "Intents",
    "Opcode",
    "ReconnectConfig",
    "ReconnectMode",
    "SessionState",
    "SessionStats",
    "GatewayError",
    "ConfigError",
    "DiscoveryError",
    "DialError",
    "ReadError",
    "WriteError",
    "ProtocolError",
]
