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
import os

from config import Config, ConfigurationLoadError
from logger import setup_logging
from mdns_registration import RendezvousZeroconf
from pairing_relay import PairingRelay
from server_data import ServerData
from stun_server import StunServer
from websocket_server import WebsocketServer


class Rendezvous:

    def __init__(self, config, loop: asyncio.AbstractEventLoop):
        self._config = config
        self._loop = loop
        self._mdns = RendezvousZeroconf(self._config)
        self._data = ServerData()
        self._relay = PairingRelay(self._data)
        self._websocket_server = WebsocketServer(self._config, self._data, self._relay)
        self._stun_server = StunServer(self._config, self._loop)

    async def begin(self):
        logging.info("Starting Rendezvous Server")
        logging.info("Starting MDNS")
        async with self._mdns:
            logging.info("Starting Signaling Websocket Server")
            async with self._websocket_server:
                logging.info("Starting STUN Server")
                async with self._stun_server:
                    try:
                        logging.info("Ctrl^C to quit")
                        while True:
                            await asyncio.sleep(1)
                    except asyncio.CancelledError:
                        logging.info("Cancelled ...")
                    finally:
                        logging.info("Stopping Server ...")


async def main():
    logging.info("Starting rendezvous ...")

    config = Config(os.environ.get("RENDEZVOUS_CONFIG", "./config.toml"))
    loop = asyncio.get_running_loop()

    try:
        await config.initialize()

        rendezvous = Rendezvous(config.config, loop)
        await rendezvous.begin()
    except ConfigurationLoadError:
        logging.error("Could not load configuration. Exiting")
        return
    except OSError as e:
        logging.exception(e)
        logging.error("Could not bind the listening ports. Exiting")
        return


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
