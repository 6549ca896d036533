"""Tests for GatewayClient (fake resolver and dialer)."""

import asyncio

import pytest

from fakes import GATEWAY_URL, FakeDialer, FakeResolver, eventually
from gateway_client import connect
from gateway_client.client import GatewayClient
from gateway_client.errors import DialError, DiscoveryError
from gateway_client.types import SessionState


def _client(config, failures=0, resolver=None):
    dialer = FakeDialer(failures=failures)
    client = GatewayClient(config, resolver=resolver or FakeResolver(), dial=dialer)
    return client, dialer


class TestStart:
    @pytest.mark.asyncio
    async def test_start_resolves_and_dials(self, config):
        client, dialer = _client(config)
        await client.start()
        try:
            assert client.url == GATEWAY_URL
            assert dialer.calls == 1
            assert dialer.connections[0].generation == 0
            assert client.state == SessionState.AWAITING_HELLO
            assert client.read_task is not None and not client.read_task.done()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, config):
        client, dialer = _client(config)
        await client.start()
        await client.start()
        try:
            assert dialer.calls == 1
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_discovery_error_propagates(self, config):
        resolver = FakeResolver(error=DiscoveryError("no route"))
        client, dialer = _client(config, resolver=resolver)
        with pytest.raises(DiscoveryError):
            await client.start()
        assert dialer.calls == 0
        assert client.session is None

    @pytest.mark.asyncio
    async def test_initial_dial_error_is_fatal(self, config):
        client, dialer = _client(config, failures=1)
        with pytest.raises(DialError):
            await client.start()
        assert dialer.calls == 1
        assert client.session is None


class TestHandshake:
    @pytest.mark.asyncio
    async def test_hello_identify_heartbeat(self, config):
        client, dialer = _client(config)
        async with client:
            sock = dialer.sockets[0]
            sock.push_hello(40)
            await eventually(lambda: len(sock.sent) >= 1)
            assert client.state == SessionState.READY
            await eventually(lambda: len(sock.sent) >= 2)
            identify, heartbeat = sock.sent_envelopes()[:2]
            assert identify["op"] == 2
            assert identify["d"]["token"] == config.token
            assert identify["d"]["intents"] == 513
            assert set(identify["d"]["properties"]) == {"$os", "$browser", "$device"}
            assert heartbeat == {"op": 1, "d": None}

    @pytest.mark.asyncio
    async def test_reconnect_after_reset(self, config):
        client, dialer = _client(config)
        async with client:
            first = dialer.sockets[0]
            first.push_hello(10_000)
            await eventually(lambda: client.state == SessionState.READY)
            first.drop()
            await eventually(lambda: len(dialer.sockets) == 2)
            await eventually(lambda: client.state == SessionState.AWAITING_HELLO)
            second = dialer.sockets[1]
            second.push_hello(10_000)
            await eventually(lambda: len(second.sent) == 1)
            assert second.sent_ops() == [2]
            assert client.stats.reconnect_count == 1
            assert client.get_stats()["generation"] == 1


class TestEvents:
    @pytest.mark.asyncio
    async def test_handlers_and_iterator(self, config):
        client, dialer = _client(config)
        seen_named, seen_any, seen_async = [], [], []

        @client.on("MESSAGE_CREATE")
        def on_message(event):
            seen_named.append(event)

        @client.on("MESSAGE_CREATE")
        async def on_message_async(event):
            seen_async.append(event)

        client.on_any(seen_any.append)

        async with client:
            sock = dialer.sockets[0]
            sock.push(0, {"content": "hi"}, s=1, t="MESSAGE_CREATE")
            sock.push(0, {}, s=2, t="TYPING_START")

            event = await asyncio.wait_for(client.__anext__(), timeout=1.0)
            assert event.event_name == "MESSAGE_CREATE"
            event = await asyncio.wait_for(client.__anext__(), timeout=1.0)
            assert event.event_name == "TYPING_START"
            await eventually(lambda: len(seen_async) == 1)

        assert [e.sequence for e in seen_named] == [1]
        assert [e.sequence for e in seen_any] == [1, 2]

    @pytest.mark.asyncio
    async def test_handler_error_does_not_break_loop(self, config):
        client, dialer = _client(config)

        @client.on("BAD")
        def explode(event):
            raise RuntimeError("boom")

        async with client:
            sock = dialer.sockets[0]
            sock.push(0, {}, s=1, t="BAD")
            sock.push(0, {}, s=2, t="GOOD")
            await eventually(lambda: client.queue_size == 2)
            assert not client.read_task.done()

    @pytest.mark.asyncio
    async def test_off_removes_handler(self, config):
        client, _ = _client(config)
        calls = []
        handler = client.on("X")(calls.append)
        client.off("X", handler)
        client.off("X", handler)
        assert client._handlers["X"] == []

    @pytest.mark.asyncio
    async def test_queue_drops_oldest_when_full(self, config):
        from dataclasses import replace

        client, dialer = _client(replace(config, event_queue_size=2))
        async with client:
            sock = dialer.sockets[0]
            for seq in (1, 2, 3):
                sock.push(0, {}, s=seq, t="X")
            await eventually(lambda: client.stats.envelopes_received == 3)
            first = await client.__anext__()
            assert first.sequence == 2

    @pytest.mark.asyncio
    async def test_iteration_stops_after_close(self, config):
        client, _ = _client(config)
        await client.start()
        await client.close()
        events = [event async for event in client]
        assert events == []

    @pytest.mark.asyncio
    async def test_state_listener(self, config):
        client, dialer = _client(config)
        states = []
        client.on_state_change(states.append)
        async with client:
            dialer.sockets[0].push_hello(10_000)
            await eventually(lambda: SessionState.READY in states)
        assert states[:3] == [
            SessionState.AWAITING_HELLO,
            SessionState.IDENTIFYING,
            SessionState.READY,
        ]
        assert states[-1] == SessionState.CLOSED


class TestClose:
    @pytest.mark.asyncio
    async def test_close_stops_everything(self, config):
        client, dialer = _client(config)
        await client.start()
        sock = dialer.sockets[0]
        sock.push_hello(10_000)
        await eventually(lambda: client.state == SessionState.READY)
        session = client.session
        heartbeater = session.heartbeater
        read_task = client.read_task

        await client.close()
        assert read_task.done()
        assert not heartbeater.running
        assert sock.closed is True
        assert client.session is None
        assert client.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_close_before_start(self, config):
        client, _ = _client(config)
        await client.close()

    @pytest.mark.asyncio
    async def test_connect_factory(self, config):
        client = connect(config, resolver=FakeResolver(), dial=FakeDialer())
        assert isinstance(client, GatewayClient)
