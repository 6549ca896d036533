"""Shared fixtures for gateway client tests."""

import pytest

from fakes import TOKEN
from gateway_client.config import GatewayConfig
from gateway_client.types import ReconnectConfig


@pytest.fixture
def config():
    return GatewayConfig(
        token=TOKEN,
        intents=513,
        reconnect=ReconnectConfig(delay=0.001),
    )
