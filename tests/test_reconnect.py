"""Tests for the reconnect supervisor."""

import pytest

from fakes import GATEWAY_URL, FakeDialer
from gateway_client.reconnect import ReconnectSupervisor
from gateway_client.types import ReconnectConfig, ReconnectMode


class TestReconnect:
    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self):
        dialer = FakeDialer()
        sup = ReconnectSupervisor(ReconnectConfig(delay=0), dialer)
        conn = await sup.reconnect(GATEWAY_URL, 4)
        assert conn.generation == 4
        assert sup.attempts == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failures", [1, 7, 40])
    async def test_retries_until_dial_succeeds(self, failures):
        dialer = FakeDialer(failures=failures)
        sup = ReconnectSupervisor(ReconnectConfig(delay=0), dialer)
        conn = await sup.reconnect(GATEWAY_URL, 1)
        assert conn is dialer.connections[-1]
        assert dialer.calls == failures + 1
        assert sup.attempts == failures + 1

    @pytest.mark.asyncio
    async def test_waits_fixed_delay_between_attempts(self, monkeypatch):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        monkeypatch.setattr("gateway_client.reconnect.asyncio.sleep", fake_sleep)
        dialer = FakeDialer(failures=3)
        sup = ReconnectSupervisor(ReconnectConfig(delay=1.0), dialer)
        await sup.reconnect(GATEWAY_URL, 1)
        assert sleeps == [1.0, 1.0, 1.0]

    @pytest.mark.asyncio
    async def test_attempts_reset_per_run(self):
        dialer = FakeDialer(failures=2)
        sup = ReconnectSupervisor(ReconnectConfig(delay=0), dialer)
        await sup.reconnect(GATEWAY_URL, 1)
        await sup.reconnect(GATEWAY_URL, 2)
        assert sup.attempts == 1


class TestDelay:
    def test_constant(self):
        sup = ReconnectSupervisor(ReconnectConfig(delay=1.0), FakeDialer())
        assert [sup.calculate_delay(n) for n in range(5)] == [1.0] * 5

    def test_exponential_capped(self):
        cfg = ReconnectConfig(
            mode=ReconnectMode.EXPONENTIAL, delay=1.0, factor=2.0, max_delay=5.0
        )
        sup = ReconnectSupervisor(cfg, FakeDialer())
        assert [sup.calculate_delay(n) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_exponential_large_attempt(self):
        cfg = ReconnectConfig(mode=ReconnectMode.EXPONENTIAL, max_delay=60.0)
        sup = ReconnectSupervisor(cfg, FakeDialer())
        assert sup.calculate_delay(100_000) == 60.0

    def test_jitter_bounds(self):
        cfg = ReconnectConfig(
            mode=ReconnectMode.EXPONENTIAL, delay=10.0, max_delay=10.0, jitter=True
        )
        sup = ReconnectSupervisor(cfg, FakeDialer())
        for _ in range(50):
            assert 9.0 <= sup.calculate_delay(3) <= 11.0
