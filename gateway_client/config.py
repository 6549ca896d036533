# =============================================================================
# Gateway Client -- Configuration
# =============================================================================
#
# One immutable object built at startup and passed down explicitly.
# =============================================================================

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from dotenv import find_dotenv, load_dotenv

from .constants import (
    API_VERSION,
    CONNECTION_TIMEOUT,
    DEFAULT_INTENTS,
    DISCOVERY_URL,
    EVENT_QUEUE_SIZE,
    HTTP_TIMEOUT,
)
from .errors import ConfigError
from .types import IdentifyProperties, Identity, ReconnectConfig

ENV_TOKEN = "DISCORD_TOKEN"
ENV_INTENTS = "DISCORD_INTENTS"
ENV_DISCOVERY_URL = "GATEWAY_DISCOVERY_URL"
ENV_API_VERSION = "GATEWAY_API_VERSION"
ENV_RECONNECT_DELAY = "GATEWAY_RECONNECT_DELAY"


def load_env_file(path: str | os.PathLike[str] | None = None) -> bool:
    """Load ``KEY=value`` pairs from a ``.env`` file into ``os.environ``.

    Without *path* the working directory and its parents are searched.
    Variables already set in the process environment win.  Returns True
    if the file supplied at least one variable.
    """
    if path is None:
        path = find_dotenv(usecwd=True)
        if not path:
            return False
    return load_dotenv(dotenv_path=path)


@dataclass(frozen=True)
class GatewayConfig:
    """Everything the client needs, fixed for the life of the process.

    Attributes:
        token: Bot token sent with Identify. Never logged.
        intents: Intents bitmask (default: all classic intents).
        properties: ``$os``/``$browser``/``$device`` sent with Identify.
        discovery_url: HTTP endpoint returning ``{"url": ...}``.
        api_version: Gateway protocol version appended as ``v=``.
        connect_timeout: Seconds allowed for the websocket handshake.
        http_timeout: Seconds allowed for the discovery call.
        reconnect: Backoff policy for the reconnect supervisor.
        event_queue_size: Dispatch events buffered for async iteration.
    """

    token: str = field(repr=False)
    intents: int = DEFAULT_INTENTS
    properties: IdentifyProperties = field(default_factory=IdentifyProperties)
    discovery_url: str = DISCOVERY_URL
    api_version: int = API_VERSION
    connect_timeout: float = CONNECTION_TIMEOUT
    http_timeout: float = HTTP_TIMEOUT
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)
    event_queue_size: int = EVENT_QUEUE_SIZE

    def __post_init__(self) -> None:
        if not self.token:
            raise ConfigError("A gateway token is required")
        if self.intents < 0:
            raise ConfigError(f"Intents must be non-negative, got {self.intents}")
        if self.api_version <= 0:
            raise ConfigError(f"Invalid API version {self.api_version}")
        if self.reconnect.delay < 0:
            raise ConfigError("Reconnect delay must be non-negative")

    def identity(self) -> Identity:
        return Identity(
            token=self.token,
            properties=self.properties,
            intents=self.intents,
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GatewayConfig:
        """Build a config from environment variables.

        ``DISCORD_TOKEN`` is required. ``DISCORD_INTENTS``,
        ``GATEWAY_DISCOVERY_URL``, ``GATEWAY_API_VERSION`` and
        ``GATEWAY_RECONNECT_DELAY`` override the defaults.

        Raises:
            ConfigError: If the token is missing or a value does not parse.
        """
        env = os.environ if environ is None else environ

        token = env.get(ENV_TOKEN, "").strip()
        if not token:
            raise ConfigError(f"{ENV_TOKEN} is not set")

        kwargs: dict = {"token": token}
        if ENV_INTENTS in env:
            kwargs["intents"] = _parse(env, ENV_INTENTS, int)
        if ENV_DISCOVERY_URL in env:
            kwargs["discovery_url"] = env[ENV_DISCOVERY_URL]
        if ENV_API_VERSION in env:
            kwargs["api_version"] = _parse(env, ENV_API_VERSION, int)
        if ENV_RECONNECT_DELAY in env:
            kwargs["reconnect"] = ReconnectConfig(
                delay=_parse(env, ENV_RECONNECT_DELAY, float)
            )
        return cls(**kwargs)


def _parse(env: Mapping[str, str], name: str, kind: type) -> int | float:
    raw = env[name]
    try:
        return kind(raw)
    except ValueError as exc:
        raise ConfigError(f"{name}={raw!r} is not a valid {kind.__name__}") from exc
