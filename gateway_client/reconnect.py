# =============================================================================
# Gateway Client -- Reconnect Supervisor
# =============================================================================
#
# Dial until it works.  There is no attempt limit: the client must come
# back after any finite network partition.
# =============================================================================

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable

from ._logging import logger
from .connection import GatewayConnection
from .errors import DialError
from .types import ReconnectConfig, ReconnectMode

Dialer = Callable[[str, int], Awaitable[GatewayConnection]]


class ReconnectSupervisor:
    """Re-dials the gateway with a fixed (or opt-in exponential) backoff.

    Args:
        config: Backoff policy.
        dial: ``dial(url, generation)`` opening a new handle; raises
            :class:`DialError` on failure.
    """

    def __init__(self, config: ReconnectConfig, dial: Dialer) -> None:
        self._config = config
        self._dial = dial
        self.attempts = 0

    async def reconnect(self, url: str, generation: int) -> GatewayConnection:
        """Return a new handle for *generation*, retrying forever."""
        self.attempts = 0
        while True:
            self.attempts += 1
            logger.info(
                "Reconnecting (attempt %d, generation %d)", self.attempts, generation
            )
            try:
                connection = await self._dial(url, generation)
            except DialError as exc:
                delay = self.calculate_delay(self.attempts - 1)
                logger.warning(
                    "Reconnect attempt %d failed: %s; retrying in %.1fs",
                    self.attempts,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)
                continue

            logger.info(
                "Reconnected after %d attempt(s) (generation %d)",
                self.attempts,
                generation,
            )
            return connection

    def calculate_delay(self, attempt: int) -> float:
        """Backoff before retry number *attempt* (0-based)."""
        cfg = self._config
        if cfg.mode == ReconnectMode.CONSTANT:
            return cfg.delay

        delay = min(cfg.delay * (cfg.factor ** min(attempt, 32)), cfg.max_delay)
        if cfg.jitter:
            jitter_amount = delay * 0.2 * (random.random() - 0.5)
            delay = max(0.0, delay + jitter_amount)
        return delay
