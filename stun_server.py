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

import asyncio
import logging
from typing import Optional

import stun_codec


class BindingResponderProtocol(asyncio.DatagramProtocol):

    def __init__(self):
        self._transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport):
        self._transport = transport

    def datagram_received(self, data, addr):
        response = stun_codec.respond(data, addr)
        if response is None:
            # scanners, keepalives, anything that is not a binding request
            logging.debug(f"Dropped {len(data)} byte datagram from {addr}")
            return
        try:
            self._transport.sendto(response, addr)
        except OSError as e:
            logging.error(f"STUN send error to {addr}: {e}")
            return
        logging.debug(f"Answered binding request from {addr[0]}:{addr[1]}")

    def error_received(self, exc):
        logging.debug(f"STUN socket error: {exc}")

    def connection_lost(self, exc):
        self._transport = None


class StunServer:
    def __init__(self, config, loop: asyncio.AbstractEventLoop):
        self._config = config
        self._loop = loop
        self._transport: Optional[asyncio.DatagramTransport] = None

    @property
    def bound_address(self) -> Optional[tuple]:
        if self._transport is None:
            return None
        return self._transport.get_extra_info("sockname")[:2]

    async def __aenter__(self):
        self._transport, _ = await self._loop.create_datagram_endpoint(
            BindingResponderProtocol,
            local_addr=(self._config["server"]["stun_host"], int(self._config["server"]["stun_port"])),
        )
        logging.info(f"STUN server running on UDP port {self.bound_address[1]}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            logging.debug("closed STUN server")
