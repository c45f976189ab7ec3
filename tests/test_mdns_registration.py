from unittest.mock import AsyncMock, MagicMock

import pytest
import zeroconf

from conftest import make_config
from mdns_registration import RendezvousZeroconf, SIGNALING_SERVICE_TYPE, STUN_SERVICE_TYPE


def enabled_config():
    config = make_config(websocket_port=9000, stun_port=3478)
    config["mdns"] = {"enabled": True, "address": "192.168.1.10"}
    return config


def fake_manager():
    manager = MagicMock()
    manager.register_service = AsyncMock()
    manager.unregister_all_services = AsyncMock()
    manager.close = AsyncMock()
    return manager


@pytest.mark.asyncio
async def test_disabled_does_nothing(config):
    factory = MagicMock()
    async with RendezvousZeroconf(config, manager_factory=factory):
        pass
    factory.assert_not_called()


@pytest.mark.asyncio
async def test_registers_both_services():
    manager = fake_manager()
    mdns = RendezvousZeroconf(enabled_config(), manager_factory=lambda: manager)

    async with mdns:
        assert manager.register_service.await_count == 2
        services = {service.type: service for service in mdns.services}
        assert set(services) == {SIGNALING_SERVICE_TYPE, STUN_SERVICE_TYPE}
        assert services[SIGNALING_SERVICE_TYPE].port == 9000
        assert services[STUN_SERVICE_TYPE].port == 3478
        assert services[STUN_SERVICE_TYPE].parsed_addresses() == ["192.168.1.10"]

    manager.unregister_all_services.assert_awaited_once()
    manager.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_registration_failure_is_not_fatal():
    manager = fake_manager()
    manager.register_service.side_effect = zeroconf.Error("name conflict")
    mdns = RendezvousZeroconf(enabled_config(), manager_factory=lambda: manager)

    async with mdns:
        pass

    manager.unregister_all_services.assert_awaited_once()
