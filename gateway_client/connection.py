# =============================================================================
# Gateway Client -- Connection Handle
# =============================================================================
#
# One websocket, one generation number, one write lock.
# The session replaces the whole handle on reconnect; a handle is never
# reopened.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any

from websockets.asyncio.client import ClientConnection
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from ._logging import logger
from .constants import (
    CLOSE_TIMEOUT,
    CONNECTION_TIMEOUT,
    MAX_MESSAGE_SIZE,
    WS_CLOSE_NORMAL,
)
from .errors import DialError, ReadError, WriteError
from .protocol import EnvelopeCodec
from .types import GatewayEnvelope


class GatewayConnection:
    """A live gateway socket belonging to one connection generation.

    All outbound frames pass through a single ``asyncio.Lock`` owned by
    this handle, so concurrent senders (heartbeat, identify) never
    interleave.  Use :meth:`open` to create one.
    """

    def __init__(
        self,
        ws: ClientConnection,
        *,
        url: str,
        generation: int,
        codec: EnvelopeCodec | None = None,
    ) -> None:
        self._ws = ws
        self._url = url
        self._generation = generation
        self._codec = codec or EnvelopeCodec()
        self._send_lock = asyncio.Lock()
        self._closed = False

        self.frames_sent = 0
        self.frames_received = 0

    @classmethod
    async def open(
        cls,
        url: str,
        generation: int,
        *,
        codec: EnvelopeCodec | None = None,
        timeout: float = CONNECTION_TIMEOUT,
    ) -> GatewayConnection:
        """Dial *url* and wrap the socket.

        Raises:
            DialError: If the handshake fails or exceeds *timeout*.
        """
        try:
            ws = await asyncio.wait_for(
                ws_connect(
                    url,
                    max_size=MAX_MESSAGE_SIZE,
                    open_timeout=None,  # asyncio.wait_for handles timeout
                    close_timeout=CLOSE_TIMEOUT,
                    ping_interval=None,  # the gateway has its own heartbeat
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise DialError(f"Connection timed out after {timeout}s") from exc
        except (OSError, WebSocketException) as exc:
            raise DialError(f"Failed to connect to {url}: {exc}") from exc

        logger.debug("Opened gateway socket (generation %d)", generation)
        return cls(ws, url=url, generation=generation, codec=codec)

    # -- Properties -----------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def url(self) -> str:
        return self._url

    @property
    def closed(self) -> bool:
        return self._closed

    # -- I/O ------------------------------------------------------------------

    async def send(self, opcode: int, data: Any = None) -> None:
        """Encode and transmit one ``{op, d}`` envelope.

        Raises:
            WriteError: If the handle is closed or the transport fails.
        """
        payload = self._codec.encode(opcode, data)
        async with self._send_lock:
            if self._closed:
                raise WriteError(
                    f"op={int(opcode)}: connection (generation "
                    f"{self._generation}) is closed"
                )
            try:
                await self._ws.send(payload)
            except ConnectionClosed as exc:
                self._closed = True
                raise WriteError(f"op={int(opcode)}: connection closed") from exc
            except (OSError, WebSocketException) as exc:
                raise WriteError(f"op={int(opcode)}: send failed: {exc}") from exc
            self.frames_sent += 1

    async def receive(self) -> GatewayEnvelope:
        """Block until the next decodable envelope arrives.

        Undecodable frames are skipped.

        Raises:
            ReadError: When the socket is closed or errors.
        """
        while True:
            if self._closed:
                raise ReadError(
                    f"Connection (generation {self._generation}) is closed"
                )
            try:
                raw = await self._ws.recv()
            except ConnectionClosed as exc:
                self._closed = True
                close = exc.rcvd
                code = close.code if close is not None else None
                reason = close.reason if close is not None else ""
                raise ReadError(
                    f"Connection closed (code={code} reason={reason!r})",
                    code=code,
                    reason=reason,
                ) from exc
            except (OSError, WebSocketException) as exc:
                self._closed = True
                raise ReadError(f"Receive failed: {exc}") from exc

            self.frames_received += 1
            envelope = self._codec.decode(raw)
            if envelope is not None:
                return envelope

    async def close(self, code: int = WS_CLOSE_NORMAL, reason: str = "") -> None:
        """Close the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.close(code, reason)
        except (OSError, WebSocketException) as exc:
            logger.debug(
                "Error closing socket (generation %d): %s", self._generation, exc
            )
