"""Fakes for gateway client tests.

No test opens a real socket: ``FakeSocket`` stands in for a websockets
``ClientConnection`` and ``FakeDialer`` for ``GatewayConnection.open``.
"""

import asyncio
import json

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from gateway_client.connection import GatewayConnection
from gateway_client.errors import DialError

GATEWAY_URL = "wss://gateway.example?encoding=json&v=9"
TOKEN = "test-token"


class FakeSocket:
    """In-memory websocket: tests push frames into ``incoming``."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.close_code: int | None = None

    async def send(self, data: str) -> None:
        if self.closed:
            frame = Close(1000, "")
            raise ConnectionClosedOK(frame, frame, True)
        self.sent.append(data)

    async def recv(self) -> str:
        item = await self.incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        frame = Close(code, reason)
        self.incoming.put_nowait(ConnectionClosedOK(frame, frame, True))

    # -- Test helpers -----------------------------------------------------------

    def push(self, op: int, d=None, s=None, t=None) -> None:
        self.incoming.put_nowait(json.dumps({"op": op, "d": d, "s": s, "t": t}))

    def push_hello(self, interval_ms: int) -> None:
        self.push(10, {"heartbeat_interval": interval_ms})

    def drop(self, code: int | None = None) -> None:
        """Simulate a connection reset."""
        rcvd = Close(code, "") if code is not None else None
        self.incoming.put_nowait(ConnectionClosedError(rcvd, None))

    def sent_envelopes(self) -> list[dict]:
        return [json.loads(frame) for frame in self.sent]

    def sent_ops(self) -> list[int]:
        return [env["op"] for env in self.sent_envelopes()]


class FakeDialer:
    """Fails *failures* times, then hands out connections over FakeSockets."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls = 0
        self.sockets: list[FakeSocket] = []
        self.connections: list[GatewayConnection] = []

    async def __call__(self, url: str, generation: int) -> GatewayConnection:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise DialError("connection refused")
        sock = FakeSocket()
        conn = GatewayConnection(sock, url=url, generation=generation)
        self.sockets.append(sock)
        self.connections.append(conn)
        return conn


class FakeResolver:
    def __init__(self, url: str = GATEWAY_URL, error: Exception | None = None):
        self.url = url
        self.error = error
        self.calls = 0

    async def resolve(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.url


async def eventually(predicate, timeout: float = 2.0, interval: float = 0.005):
    """Poll *predicate* until it is truthy or *timeout* elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(interval)

