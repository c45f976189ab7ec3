"""Shared fixtures and fake channels for the relay tests."""

import asyncio
import json

import pytest
import websockets

from pairing_relay import PairingRelay
from server_data import ServerData


class FakeChannel:
    """Stands in for a websocket: records what the relay sends to it."""

    def __init__(self):
        self.sent: list[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        if self.closed:
            raise websockets.exceptions.ConnectionClosedOK(None, None)
        self.sent.append(message)

    def types(self) -> list[str]:
        return [json.loads(message)["type"] for message in self.sent]


class YieldingChannel(FakeChannel):
    """Gives the event loop a turn on every send, like a real socket write can."""

    async def send(self, message: str) -> None:
        await asyncio.sleep(0)
        await super().send(message)


def make_config(**server):
    config = {
        "server": {
            "name": "Rendezvous Test",
            "websocket_host": "127.0.0.1",
            "websocket_port": 0,
            "stun_host": "127.0.0.1",
            "stun_port": 0,
        },
        "mdns": {"enabled": False},
    }
    config["server"].update(server)
    return config


@pytest.fixture
def data():
    return ServerData()


@pytest.fixture
def relay(data):
    return PairingRelay(data)


@pytest.fixture
def config():
    return make_config()
