# =============================================================================
# Gateway Client -- Heartbeat Scheduler
# =============================================================================
#
# One Heartbeater per connection generation.  It only ever writes to the
# handle it was created with, and only while its generation is current.
# =============================================================================

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Callable

from ._logging import logger
from .constants import WS_CLOSE_RECONNECT
from .errors import WriteError
from .types import Opcode

if TYPE_CHECKING:
    from .connection import GatewayConnection


class Heartbeater:
    """Sends ``op=1`` every *interval_ms* on one connection generation.

    Before each send the scheduler asks ``is_current(generation)``; once a
    newer generation exists it exits without writing.  A failed write
    ends the task.  Reconnecting is left to the session, which notices
    through its own read failure.

    If the previous heartbeat was never acknowledged (op 11) when the next
    one is due, the connection is treated as a zombie: the heartbeater
    closes its handle, which makes the session's pending read fail.

    Args:
        connection: Handle for this generation.
        interval_ms: Interval from the Hello payload.
        generation: Generation number the scheduler belongs to.
        is_current: Returns True while *generation* is still the active one.
        sequence_provider: Returns the last observed dispatch sequence.
        on_sent: Called after each successful heartbeat.
    """

    def __init__(
        self,
        connection: GatewayConnection,
        interval_ms: int,
        generation: int,
        *,
        is_current: Callable[[int], bool],
        sequence_provider: Callable[[], int | None],
        on_sent: Callable[[], Any] | None = None,
    ) -> None:
        self._connection = connection
        self._interval = interval_ms / 1000.0
        self._generation = generation
        self._is_current = is_current
        self._sequence_provider = sequence_provider
        self._on_sent = on_sent

        self._task: asyncio.Task[None] | None = None
        self._awaiting_ack = False
        self._last_sent: float | None = None
        self.latency_ms: float | None = None

    # -- Properties -----------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def interval_ms(self) -> int:
        return int(self._interval * 1000)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def awaiting_ack(self) -> bool:
        return self._awaiting_ack

    # -- Lifecycle ------------------------------------------------------------

    def start(self) -> None:
        if self._task is not None:
            return
        logger.info(
            "Starting heartbeat (interval=%dms, generation %d)",
            self.interval_ms,
            self._generation,
        )
        self._task = asyncio.create_task(
            self._run(), name=f"gateway-heartbeat-{self._generation}"
        )

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task = self._task
        if task is None:
            return
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    # -- Events from the session ----------------------------------------------

    def ack(self) -> None:
        """Record a HEARTBEAT_ACK from the server."""
        now = time.monotonic()
        self._awaiting_ack = False
        if self._last_sent is not None:
            self.latency_ms = (now - self._last_sent) * 1000.0

    async def beat_now(self) -> bool:
        """Send one heartbeat immediately (server requested op 1)."""
        return await self._beat()

    # -- Internal -------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)

            if not self._is_current(self._generation):
                logger.debug(
                    "Heartbeat for stale generation %d exiting", self._generation
                )
                return

            if self._awaiting_ack:
                logger.warning(
                    "No heartbeat ACK since last beat (generation %d), "
                    "closing zombie connection",
                    self._generation,
                )
                await self._connection.close(WS_CLOSE_RECONNECT, "Heartbeat ACK missed")
                return

            if not await self._beat():
                return

    async def _beat(self) -> bool:
        if not self._is_current(self._generation):
            return False
        sequence = self._sequence_provider()
        try:
            await self._connection.send(Opcode.HEARTBEAT, sequence)
        except WriteError as exc:
            logger.warning(
                "Heartbeat send failed (generation %d): %s", self._generation, exc
            )
            return False
        self._awaiting_ack = True
        self._last_sent = time.monotonic()
        logger.debug("Sent heartbeat (s=%s, generation %d)", sequence, self._generation)
        if self._on_sent:
            self._on_sent()
        return True
