"""
Rendezvous
Copyright (C) 2024 thiccaxe

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import logging

import zeroconf
from zeroconf import IPVersion
from zeroconf.asyncio import AsyncZeroconf, AsyncServiceInfo

SIGNALING_SERVICE_TYPE = "_p2p-signal._tcp.local."
STUN_SERVICE_TYPE = "_stun._udp.local."


class ZeroconfManager:

    def __init__(self):
        self._zeroconf = AsyncZeroconf(ip_version=IPVersion.V4Only)

    async def register_service(self, service: AsyncServiceInfo):
        await self._zeroconf.async_register_service(service)

    async def unregister_all_services(self):
        await self._zeroconf.async_unregister_all_services()

    async def close(self):
        await self._zeroconf.async_close()


class ZeroconfException(Exception): pass


class RendezvousZeroconf:
    """
    Advertises the signaling and STUN ports on the LAN so clients do not need them typed in.
    Does nothing unless [mdns] enabled = true.
    """

    def __init__(self, config, manager_factory=ZeroconfManager):
        self._config = config
        self._manager_factory = manager_factory
        self._manager = None
        self.services: list[AsyncServiceInfo] = []

    @property
    def enabled(self) -> bool:
        return bool(self._config.get("mdns", {}).get("enabled", False))

    def _service_info(self, service_type: str, port: int, properties: dict) -> AsyncServiceInfo:
        name = self._config["server"]["name"]
        return AsyncServiceInfo(
            service_type,
            f"{name}.{service_type}",
            parsed_addresses=[self._config["mdns"]["address"]],
            port=port,
            properties=properties,
            server=f"{name.replace(' ', '-')}.local.",
        )

    async def start(self):
        if not self.enabled:
            logging.debug("mDNS advertisement disabled")
            return
        self._manager = self._manager_factory()
        try:
            self.services = [
                self._service_info(SIGNALING_SERVICE_TYPE,
                                   int(self._config["server"]["websocket_port"]), {"path": "/"}),
                self._service_info(STUN_SERVICE_TYPE,
                                   int(self._config["server"]["stun_port"]), {}),
            ]
            for service in self.services:
                await self._manager.register_service(service)
            logging.debug(f"Registered services.")
        except zeroconf.Error as e:
            logging.exception(e)
            raise ZeroconfException() from e

    async def stop(self):
        if self._manager is None:
            return
        await self._manager.unregister_all_services()
        await self._manager.close()
        self._manager = None
        logging.debug(f"Unregistered services.")

    async def __aenter__(self):
        try:
            await self.start()
        except ZeroconfException:
            logging.warning("Could not advertise over mDNS, continuing without it")
            await self.stop()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
