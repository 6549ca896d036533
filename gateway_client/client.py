# =============================================================================
# Gateway Client -- Async Client
# =============================================================================
#
# Primary public API.  Async context manager, async iterator, callbacks.
# Wires discovery, the first dial and the session together and supervises
# the read task.
# =============================================================================

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Awaitable, Callable

from ._logging import logger
from .config import GatewayConfig
from .connection import GatewayConnection
from .discovery import EndpointResolver
from .protocol import EnvelopeCodec
from .reconnect import Dialer, ReconnectSupervisor
from .session import GatewaySession
from .types import GatewayEnvelope, SessionState, SessionStats

# Type alias for event handlers
EventHandler = Callable[[GatewayEnvelope], Any]
AsyncEventHandler = Callable[[GatewayEnvelope], Awaitable[Any]]


class GatewayClient:
    """Async gateway client with context manager and async iterator support.

    Args:
        config: Token, intents and connection settings.
        resolver: Endpoint resolver; built from *config* if omitted.
        dial: ``dial(url, generation)`` returning a :class:`GatewayConnection`;
            defaults to :meth:`GatewayConnection.open`.

    Example::

        async with GatewayClient(GatewayConfig(token=token)) as client:
            async for event in client:
                print(event.event_name, event.data)
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        resolver: EndpointResolver | None = None,
        dial: Dialer | None = None,
    ) -> None:
        self._config = config
        self._identity = config.identity()
        self._resolver = resolver or EndpointResolver(
            config.discovery_url,
            api_version=config.api_version,
            timeout=config.http_timeout,
        )
        self._codec = EnvelopeCodec()
        self._dial = dial or self._default_dial

        self._url: str | None = None
        self._session: GatewaySession | None = None
        self._read_task: asyncio.Task[None] | None = None
        self._state = SessionState.CONNECTING
        self._stats = SessionStats()

        # Event queue for async iteration
        self._event_queue: asyncio.Queue[GatewayEnvelope | None] = asyncio.Queue(
            maxsize=config.event_queue_size
        )

        # Callback handlers: event name -> list of handlers
        self._handlers: dict[str, list[EventHandler | AsyncEventHandler]] = defaultdict(
            list
        )
        self._wildcard_handlers: list[EventHandler | AsyncEventHandler] = []
        self._state_listeners: list[Callable[[SessionState], Any]] = []

        self._background_tasks: set[asyncio.Task[Any]] = set()

    # -- Context manager ------------------------------------------------------

    async def __aenter__(self) -> GatewayClient:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # -- Async iterator -------------------------------------------------------

    def __aiter__(self) -> GatewayClient:
        return self

    async def __anext__(self) -> GatewayEnvelope:
        event = await self._event_queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    # -- Start / Close --------------------------------------------------------

    async def start(self) -> None:
        """Resolve the endpoint, open the first socket and start reading.

        Raises:
            DiscoveryError: If the gateway URL cannot be resolved.
            DialError: If the first connection attempt fails.
        """
        if self._session is not None:
            return

        self._url = await self._resolver.resolve()
        connection = await self._dial(self._url, 0)

        self._session = GatewaySession(
            self._identity,
            self._url,
            connection,
            supervisor=ReconnectSupervisor(self._config.reconnect, self._dial),
            on_dispatch=self._on_dispatch,
            on_state_change=self._on_state_change,
            stats=self._stats,
        )
        self._read_task = asyncio.create_task(
            self._session.run(), name="gateway-read-loop"
        )
        logger.info("Gateway client started")

    async def close(self) -> None:
        """Stop every task and close the socket."""
        session, self._session = self._session, None
        read_task, self._read_task = self._read_task, None

        if session is not None:
            await session.close()

        tasks_to_await: list[asyncio.Task[Any]] = []
        if read_task is not None:
            read_task.cancel()
            tasks_to_await.append(read_task)
        for task in self._background_tasks:
            task.cancel()
            tasks_to_await.append(task)
        self._background_tasks.clear()
        if tasks_to_await:
            await asyncio.gather(*tasks_to_await, return_exceptions=True)

        # Signal iterator to stop (drop oldest if queue is full)
        try:
            self._event_queue.put_nowait(None)
        except asyncio.QueueFull:
            try:
                self._event_queue.get_nowait()
                self._event_queue.put_nowait(None)
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                pass

        if session is not None:
            logger.info("Gateway client closed")

    # -- Properties -----------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def session(self) -> GatewaySession | None:
        return self._session

    @property
    def read_task(self) -> asyncio.Task[None] | None:
        return self._read_task

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def queue_size(self) -> int:
        """Number of events waiting in the iterator queue."""
        return self._event_queue.qsize()

    # -- Handler registration -------------------------------------------------

    def on(
        self, event_name: str
    ) -> Callable[[EventHandler | AsyncEventHandler], EventHandler | AsyncEventHandler]:
        """Decorator to register a handler for one dispatch event.

        Example::

            @client.on("MESSAGE_CREATE")
            async def handle(event: GatewayEnvelope):
                print(event.data["content"])
        """

        def decorator(
            fn: EventHandler | AsyncEventHandler,
        ) -> EventHandler | AsyncEventHandler:
            self._handlers[event_name].append(fn)
            return fn

        return decorator

    def on_any(
        self, fn: EventHandler | AsyncEventHandler
    ) -> EventHandler | AsyncEventHandler:
        """Register a wildcard handler that receives all dispatch events."""
        self._wildcard_handlers.append(fn)
        return fn

    def off(self, event_name: str, fn: EventHandler | AsyncEventHandler) -> None:
        """Remove a specific handler."""
        handlers = self._handlers.get(event_name, [])
        if fn in handlers:
            handlers.remove(fn)

    def on_state_change(
        self, fn: Callable[[SessionState], Any]
    ) -> Callable[[SessionState], Any]:
        """Register a listener for session state transitions."""
        self._state_listeners.append(fn)
        return fn

    # -- Stats ----------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Return client statistics."""
        session = self._session
        return {
            "state": self._state.value,
            "generation": session.generation if session else None,
            "session_id": session.session_id if session else None,
            "last_sequence": session.last_sequence if session else None,
            "envelopes_received": self._stats.envelopes_received,
            "envelopes_sent": self._stats.envelopes_sent,
            "heartbeats_sent": self._stats.heartbeats_sent,
            "heartbeat_acks": self._stats.heartbeat_acks,
            "reconnect_count": self._stats.reconnect_count,
            "last_latency_ms": self._stats.last_latency_ms,
        }

    # -- Internal -------------------------------------------------------------

    async def _default_dial(self, url: str, generation: int) -> GatewayConnection:
        return await GatewayConnection.open(
            url,
            generation,
            codec=self._codec,
            timeout=self._config.connect_timeout,
        )

    def _on_state_change(self, state: SessionState) -> None:
        self._state = state
        for listener in self._state_listeners:
            try:
                listener(state)
            except Exception as exc:
                logger.error("State listener error for '%s': %s", state.value, exc)

    def _on_dispatch(self, event: GatewayEnvelope) -> None:
        """Invoke callbacks and enqueue for the iterator."""
        self._invoke_handlers(event)

        try:
            self._event_queue.put_nowait(event)
        except asyncio.QueueFull:
            # Drop oldest to make room
            try:
                self._event_queue.get_nowait()
                self._event_queue.put_nowait(event)
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                pass

    def _invoke_handlers(self, event: GatewayEnvelope) -> None:
        """Call registered handlers for this event name."""
        name = event.event_name or ""
        handlers = self._handlers.get(name, []) + self._wildcard_handlers
        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    self._fire_task(result, name)
            except Exception as exc:
                logger.error("Handler error for '%s': %s", name, exc)

    def _fire_task(self, coro: Any, name: str) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        task.add_done_callback(lambda t: _log_handler_failure(t, name))


def _log_handler_failure(task: asyncio.Task[Any], name: str) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Async handler error for '%s': %s", name, exc)
