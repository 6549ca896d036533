# =============================================================================
# Gateway Client -- Session State Machine
# =============================================================================
#
# CONNECTING -> AWAITING_HELLO -> IDENTIFYING -> READY
#      any state --(read failure)--> RECONNECTING -> AWAITING_HELLO
#
# The session owns the single "current generation" slot.  Only
# _reconnect() replaces it; the heartbeat only reads the generation
# number through is_current().
# =============================================================================

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable

from ._logging import logger
from .connection import GatewayConnection
from .constants import WS_CLOSE_NORMAL, WS_CLOSE_RECONNECT
from .errors import ProtocolError, ReadError, WriteError
from .heartbeat import Heartbeater
from .reconnect import ReconnectSupervisor
from .types import GatewayEnvelope, Identity, Opcode, SessionState, SessionStats

DispatchHandler = Callable[[GatewayEnvelope], Any]


@dataclass(frozen=True, slots=True)
class Generation:
    """The active connection and the generation number it was opened for."""

    number: int
    connection: GatewayConnection


def parse_heartbeat_interval(data: Any) -> int:
    """Extract ``heartbeat_interval`` (ms) from a Hello payload.

    Raises:
        ProtocolError: If the field is missing or not a positive integer.
    """
    if not isinstance(data, dict):
        raise ProtocolError(f"Hello payload is not an object: {data!r}")
    interval = data.get("heartbeat_interval")
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise ProtocolError(f"Hello has invalid heartbeat_interval: {interval!r}")
    return interval


class GatewaySession:
    """Drives the handshake and keeps one logical session alive.

    :meth:`run` is the read loop.  It interprets opcodes, answers Hello
    with Identify and a heartbeat, and on any read failure hands off to
    the :class:`ReconnectSupervisor` before resuming on the new socket.
    It only returns after :meth:`close`.

    Args:
        identity: Token, properties and intents for Identify.
        url: Gateway URL used for every reconnect.
        connection: Already-open handle for the first generation.
        supervisor: Produces replacement handles after a read failure.
        on_dispatch: Called with every dispatch (op 0) envelope; may be
            a coroutine function.  Exceptions it raises are logged and
            do not stop the read loop.
        on_state_change: Called with each new :class:`SessionState`.
        stats: Shared counters, created if not given.
    """

    def __init__(
        self,
        identity: Identity,
        url: str,
        connection: GatewayConnection,
        *,
        supervisor: ReconnectSupervisor,
        on_dispatch: DispatchHandler | None = None,
        on_state_change: Callable[[SessionState], Any] | None = None,
        stats: SessionStats | None = None,
    ) -> None:
        self._identity = identity
        self._url = url
        self._supervisor = supervisor
        self._on_dispatch = on_dispatch
        self._on_state_change = on_state_change
        self.stats = stats or SessionStats()

        self._state = SessionState.CONNECTING
        self._generation = connection.generation
        self._current = Generation(connection.generation, connection)
        self._heartbeater: Heartbeater | None = None
        self._sequence: int | None = None
        self._session_id: str | None = None
        self._closing = False

        self._set_state(SessionState.AWAITING_HELLO)

    # -- Properties -----------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current(self) -> Generation:
        return self._current

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def last_sequence(self) -> int | None:
        return self._sequence

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def heartbeater(self) -> Heartbeater | None:
        return self._heartbeater

    def is_current(self, generation: int) -> bool:
        return not self._closing and generation == self._generation

    # -- Read loop ------------------------------------------------------------

    async def run(self) -> None:
        """Read and dispatch envelopes until :meth:`close` is called."""
        while not self._closing:
            current = self._current
            try:
                envelope = await current.connection.receive()
            except ReadError as exc:
                if self._closing:
                    return
                logger.warning(
                    "Read failed in state %s (generation %d): %s",
                    self._state.value,
                    current.number,
                    exc,
                )
                await self._reconnect()
                continue

            try:
                await self.handle(envelope)
            except ProtocolError as exc:
                logger.error(
                    "Protocol error on op=%d (generation %d): %s; reconnecting",
                    envelope.opcode,
                    current.number,
                    exc,
                )
                await self._reconnect()

    async def handle(self, envelope: GatewayEnvelope) -> None:
        """Apply one inbound envelope to the state machine."""
        self.stats.envelopes_received += 1
        if envelope.sequence is not None:
            self._sequence = envelope.sequence

        op = envelope.opcode
        if op == Opcode.HELLO:
            await self._handle_hello(envelope)
        elif op == Opcode.HEARTBEAT_ACK:
            self._handle_heartbeat_ack()
        elif op == Opcode.HEARTBEAT:
            await self._handle_heartbeat_request()
        elif op == Opcode.DISPATCH:
            await self._handle_dispatch(envelope)
        elif op == Opcode.RECONNECT:
            logger.info("Server requested reconnect")
            await self._current.connection.close(
                WS_CLOSE_RECONNECT, "Reconnect requested"
            )
        elif op == Opcode.INVALID_SESSION:
            logger.warning(
                "Session invalidated by server (resumable=%s)", envelope.data
            )
            await self._current.connection.close(WS_CLOSE_RECONNECT, "Invalid session")
        else:
            logger.debug("Ignoring op=%d", op)

    # -- Opcode handlers ------------------------------------------------------

    async def _handle_hello(self, envelope: GatewayEnvelope) -> None:
        current = self._current
        heartbeater = self._heartbeater
        if heartbeater is not None and heartbeater.generation == current.number:
            logger.warning("Duplicate Hello on generation %d ignored", current.number)
            return

        interval = parse_heartbeat_interval(envelope.data)
        logger.info(
            "Received Hello (heartbeat_interval=%dms, generation %d)",
            interval,
            current.number,
        )

        self._set_state(SessionState.IDENTIFYING)
        await self._identify(current)
        if self._closing or current is not self._current:
            return

        self._heartbeater = Heartbeater(
            current.connection,
            interval,
            current.number,
            is_current=self.is_current,
            sequence_provider=lambda: self._sequence,
            on_sent=self._record_heartbeat_sent,
        )
        self._heartbeater.start()
        self._set_state(SessionState.READY)

    async def _identify(self, current: Generation) -> None:
        try:
            await current.connection.send(Opcode.IDENTIFY, self._identity.to_payload())
        except WriteError as exc:
            logger.error(
                "Identify send failed (generation %d): %s", current.number, exc
            )
            return
        self.stats.envelopes_sent += 1
        logger.info(
            "Sent Identify (intents=%d, generation %d)",
            self._identity.intents,
            current.number,
        )

    def _handle_heartbeat_ack(self) -> None:
        self.stats.heartbeat_acks += 1
        if self._heartbeater is None:
            logger.debug("Heartbeat ACK without a running heartbeat")
            return
        self._heartbeater.ack()
        self.stats.last_latency_ms = self._heartbeater.latency_ms

    async def _handle_heartbeat_request(self) -> None:
        heartbeater = self._heartbeater
        if heartbeater is not None and heartbeater.generation == self._generation:
            await heartbeater.beat_now()
            return
        current = self._current
        try:
            await current.connection.send(Opcode.HEARTBEAT, self._sequence)
        except WriteError as exc:
            logger.warning(
                "Requested heartbeat failed (generation %d): %s", current.number, exc
            )
            return
        self._record_heartbeat_sent()

    async def _handle_dispatch(self, envelope: GatewayEnvelope) -> None:
        if envelope.event_name == "READY" and isinstance(envelope.data, dict):
            self._session_id = envelope.data.get("session_id")
            logger.info("Session ready (session_id=%s)", self._session_id)
        else:
            logger.debug("Dispatch %s (s=%s)", envelope.event_name, envelope.sequence)

        if self._on_dispatch is None:
            return
        try:
            result = self._on_dispatch(envelope)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.error(
                "Dispatch handler error for %s (s=%s): %s",
                envelope.event_name,
                envelope.sequence,
                exc,
            )

    def _record_heartbeat_sent(self) -> None:
        self.stats.heartbeats_sent += 1
        self.stats.envelopes_sent += 1

    # -- Reconnect ------------------------------------------------------------

    async def _reconnect(self) -> None:
        self._set_state(SessionState.RECONNECTING)
        old = self._current

        # Invalidate the old generation before anything else can run.
        self._generation += 1
        heartbeater, self._heartbeater = self._heartbeater, None
        if heartbeater is not None:
            await heartbeater.stop()
        await old.connection.close(WS_CLOSE_RECONNECT, "Reconnecting")

        connection = await self._supervisor.reconnect(self._url, self._generation)
        if self._closing:
            await connection.close(WS_CLOSE_NORMAL, "Client shutdown")
            return
        self._current = Generation(self._generation, connection)
        self._sequence = None
        self._session_id = None
        self.stats.reconnect_count += 1
        self._set_state(SessionState.AWAITING_HELLO)

    # -- Shutdown -------------------------------------------------------------

    async def close(self) -> None:
        """Stop the heartbeat and close the current socket."""
        if self._closing:
            return
        self._closing = True
        heartbeater, self._heartbeater = self._heartbeater, None
        if heartbeater is not None:
            await heartbeater.stop()
        await self._current.connection.close(WS_CLOSE_NORMAL, "Client shutdown")
        self._set_state(SessionState.CLOSED)

    # -- State management -----------------------------------------------------

    def _set_state(self, new_state: SessionState) -> None:
        if new_state == self._state or self._state == SessionState.CLOSED:
            return
        old = self._state
        self._state = new_state
        logger.debug("State: %s -> %s", old.value, new_state.value)
        if self._on_state_change:
            self._on_state_change(new_state)
