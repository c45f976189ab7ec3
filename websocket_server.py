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

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve

from pairing_relay import PairingRelay
from server_data import ServerData


class WebsocketServer:

    def __init__(self, config, data: ServerData, relay: PairingRelay):
        self._config = config
        self._data = data
        self._relay = relay
        self._websocket_server = serve(self.handler,
                                       self._config["server"]["websocket_host"],
                                       int(self._config["server"]["websocket_port"]))
        self._server: Optional[Server] = None

    @property
    def bound_address(self) -> Optional[tuple]:
        if self._server is None:
            return None
        return next(iter(self._server.sockets)).getsockname()[:2]

    async def handler(self, websocket: ServerConnection):
        peername = "{}:{}".format(*websocket.remote_address[:2]) if websocket.remote_address else ""
        connection = self._relay.connection_opened(websocket, peername)
        shutdown_wait_task = asyncio.create_task(self._data.shutdown_event.wait())
        try:
            while True:
                recv_task = asyncio.create_task(websocket.recv())
                await asyncio.wait([recv_task, shutdown_wait_task], return_when=asyncio.FIRST_COMPLETED)

                # shutdown case
                if self._data.shutdown_event.is_set():
                    recv_task.cancel()
                    await websocket.close()
                    break

                message = recv_task.result()
                if isinstance(message, str):
                    await self._relay.handle_message(connection, message)
                else:
                    logging.debug(f"Client {connection.cid} sent a binary frame, ignoring")
        except websockets.exceptions.ConnectionClosed:
            logging.debug(f"Websocket connection {peername} closed")
        finally:
            shutdown_wait_task.cancel()
            await self._relay.connection_closed(connection)

    async def __aenter__(self):
        logging.debug(f"Starting websocket server")
        self._server = await self._websocket_server.__aenter__()
        logging.info(f"Signaling server running on ws://{self._config['server']['websocket_host']}:"
                     f"{self.bound_address[1]}")
        return self._server

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        logging.debug(f"Stopping websocket server")
        self._data.shutdown_event.set()
        self._server = None
        return await self._websocket_server.__aexit__(exc_type, exc_val, exc_tb)
