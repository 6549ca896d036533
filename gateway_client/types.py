# =============================================================================
# Gateway Client -- Type Definitions
# =============================================================================

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import Enum, IntEnum, IntFlag
from typing import Any

from .constants import (
    LIBRARY_NAME,
    RECONNECT_DELAY,
    RECONNECT_FACTOR,
    RECONNECT_MAX_DELAY,
)


class Opcode(IntEnum):
    """Gateway opcodes.

    The client sends HEARTBEAT and IDENTIFY; it receives DISPATCH,
    HEARTBEAT, RECONNECT, INVALID_SESSION, HELLO and HEARTBEAT_ACK.
    """

    DISPATCH = 0
    HEARTBEAT = 1
    IDENTIFY = 2
    PRESENCE_UPDATE = 3
    VOICE_STATE_UPDATE = 4
    RESUME = 6
    RECONNECT = 7
    REQUEST_GUILD_MEMBERS = 8
    INVALID_SESSION = 9
    HELLO = 10
    HEARTBEAT_ACK = 11


class Intents(IntFlag):
    """Event categories requested at Identify time."""

    GUILDS = 1 << 0
    GUILD_MEMBERS = 1 << 1
    GUILD_MODERATION = 1 << 2
    GUILD_EMOJIS_AND_STICKERS = 1 << 3
    GUILD_INTEGRATIONS = 1 << 4
    GUILD_WEBHOOKS = 1 << 5
    GUILD_INVITES = 1 << 6
    GUILD_VOICE_STATES = 1 << 7
    GUILD_PRESENCES = 1 << 8
    GUILD_MESSAGES = 1 << 9
    GUILD_MESSAGE_REACTIONS = 1 << 10
    GUILD_MESSAGE_TYPING = 1 << 11
    DIRECT_MESSAGES = 1 << 12
    DIRECT_MESSAGE_REACTIONS = 1 << 13
    DIRECT_MESSAGE_TYPING = 1 << 14

    @classmethod
    def all(cls) -> Intents:
        value = cls(0)
        for member in cls:
            value |= member
        return value


class SessionState(str, Enum):
    """Gateway session lifecycle state.

    Typical flow: CONNECTING -> AWAITING_HELLO -> IDENTIFYING -> READY.
    A read failure moves any state to RECONNECTING, which returns to
    AWAITING_HELLO once a new socket is open. CLOSED is terminal.
    """

    CONNECTING = "connecting"
    AWAITING_HELLO = "awaiting_hello"
    IDENTIFYING = "identifying"
    READY = "ready"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class ReconnectMode(str, Enum):
    """Backoff strategy between reconnect dial attempts."""

    CONSTANT = "constant"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True, slots=True)
class GatewayEnvelope:
    """A single gateway frame.

    Attributes:
        opcode: Integer discriminator, see :class:`Opcode`.
        data: Opcode-specific payload (``"d"`` on the wire).
        sequence: Dispatch sequence number (``"s"``), dispatch only.
        event_name: Dispatch event name (``"t"``), e.g. ``"READY"``.
        error_code: Error code (``"code"``) on error frames.
        message: Human-readable error text on error frames.
    """

    opcode: int
    data: Any = None
    sequence: int | None = None
    event_name: str | None = None
    error_code: int | None = None
    message: str | None = None

    @property
    def is_dispatch(self) -> bool:
        return self.opcode == Opcode.DISPATCH


@dataclass(frozen=True, slots=True)
class IdentifyProperties:
    """Client platform properties sent with Identify."""

    os: str = sys.platform
    browser: str = LIBRARY_NAME
    device: str = LIBRARY_NAME

    def to_payload(self) -> dict[str, str]:
        return {"$os": self.os, "$browser": self.browser, "$device": self.device}


@dataclass(frozen=True, slots=True)
class Identity:
    """Who we are to the gateway. Built once per process."""

    token: str = field(repr=False)
    properties: IdentifyProperties = field(default_factory=IdentifyProperties)
    intents: int = int(Intents.all())

    def to_payload(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "properties": self.properties.to_payload(),
            "intents": int(self.intents),
        }


@dataclass(frozen=True)
class ReconnectConfig:
    """Configuration for the reconnect supervisor.

    Retries never stop; there is deliberately no attempt limit.

    Attributes:
        mode: Backoff strategy (default: constant delay).
        delay: Delay in seconds between attempts (base delay when
            exponential).
        max_delay: Cap for exponential backoff.
        factor: Multiplier per attempt for exponential backoff.
        jitter: Randomize exponential delays by +-10%.
    """

    mode: ReconnectMode = ReconnectMode.CONSTANT
    delay: float = RECONNECT_DELAY
    max_delay: float = RECONNECT_MAX_DELAY
    factor: float = RECONNECT_FACTOR
    jitter: bool = False


@dataclass
class SessionStats:
    """Counters for one client across all connection generations."""

    envelopes_received: int = 0
    envelopes_sent: int = 0
    heartbeats_sent: int = 0
    heartbeat_acks: int = 0
    reconnect_count: int = 0
    last_latency_ms: float | None = None
