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

import json
import logging
from typing import Optional

import voluptuous.error
import websockets
from voluptuous import Schema, Required, ALLOW_EXTRA

from server_data import ServerData, Connection, ConnectionState

NEGOTIATION_TYPES = ("offer", "answer", "ice-candidate")

WAITING = json.dumps({"type": "waiting"})
CREATE_OFFER = json.dumps({"type": "create-offer"})
WAITING_FOR_OFFER = json.dumps({"type": "waiting-for-offer"})
PEER_DISCONNECTED = json.dumps({"type": "peer-disconnected"})

"""
Pairs the next joining connection with the one waiting in the single slot, then relays
negotiation messages between the two until one of them goes away.

Every state transition happens between two awaits, so on one event loop the slot
check-and-set cannot interleave with another connection's.
"""


class PairingRelay:

    def __init__(self, data: ServerData):
        self._data = data
        self.message_schema = Schema({
            Required('type'): str,
        }, extra=ALLOW_EXTRA)

    def connection_opened(self, channel, peername: str = "") -> Connection:
        connection = self._data.register(channel, peername)
        logging.info(f"Client {connection.cid} connected {peername}")
        return connection

    def partner_of(self, connection: Connection) -> Optional[Connection]:
        return self._data.lookup(connection.partner)

    def waiting_connection(self) -> Optional[Connection]:
        return self._data.lookup(self._data.waiting_client)

    async def handle_message(self, connection: Connection, message: str) -> None:
        try:
            packet = self.message_schema(json.loads(message))
        except json.JSONDecodeError:
            logging.warning(f"Client {connection.cid} sent non-JSON data")
            return
        except RecursionError:
            logging.warning(f"Client {connection.cid} sent JSON nested too deep")
            return
        except voluptuous.error.Invalid as e:
            logging.warning(f"Client {connection.cid} sent malformed message: {e}")
            return

        logging.debug(f"Client {connection.cid} sent: {packet['type']}")

        if packet["type"] == "join":
            await self.join(connection)
        elif packet["type"] in NEGOTIATION_TYPES:
            await self.forward(connection, message)
        else:
            logging.debug(f"Client {connection.cid} sent unknown type {packet['type']!r}, ignoring")

    def _try_pair_or_wait(self, connection: Connection) -> Optional[Connection]:
        """
        must not await: this is the only place the waiting slot is filled or emptied by a join.
        returns the connection we were paired with, or None if we now hold the slot
        """
        waiting = self.waiting_connection()
        if waiting is not None and waiting.state is ConnectionState.WAITING and waiting is not connection:
            self._data.waiting_client = None
            waiting.partner, connection.partner = connection.cid, waiting.cid
            waiting.state = connection.state = ConnectionState.PAIRED
            return waiting

        self._data.waiting_client = connection.cid
        connection.state = ConnectionState.WAITING
        return None

    async def join(self, connection: Connection) -> None:
        if connection.state is not ConnectionState.IDLE:
            logging.debug(f"Client {connection.cid} sent join while {connection.state.value}, ignoring")
            return

        waiting = self._try_pair_or_wait(connection)
        if waiting is None:
            logging.info(f"Client {connection.cid} waiting for peer")
            await self._deliver(connection, WAITING)
            return

        logging.info(f"Paired clients {waiting.cid} and {connection.cid}")
        # the earlier arrival makes the offer, so only one side ever does
        await self._deliver(waiting, CREATE_OFFER)
        # the waiter may have gone away while we were sending, then peer-disconnected was the last word
        if connection.state is ConnectionState.PAIRED and connection.partner == waiting.cid:
            await self._deliver(connection, WAITING_FOR_OFFER)

    async def forward(self, connection: Connection, message: str) -> None:
        if connection.state is not ConnectionState.PAIRED:
            logging.debug(f"Client {connection.cid} sent negotiation message while {connection.state.value}")
            return
        partner = self.partner_of(connection)
        if partner is None:
            return
        await self._deliver(partner, message)

    async def connection_closed(self, connection: Connection) -> None:
        if connection.state is ConnectionState.CLOSED:
            return

        logging.info(f"Client {connection.cid} disconnected")
        previous_state = connection.state
        connection.state = ConnectionState.CLOSED
        self._data.unregister(connection)

        # a later pairing may already have taken us out of the slot
        if previous_state is ConnectionState.WAITING and self._data.waiting_client == connection.cid:
            self._data.waiting_client = None

        partner = self.partner_of(connection)
        connection.partner = None
        if partner is None:
            return
        partner.partner = None
        if partner.state is ConnectionState.PAIRED:
            partner.state = ConnectionState.IDLE
        await self._deliver(partner, PEER_DISCONNECTED)

    async def _deliver(self, connection: Connection, message: str) -> bool:
        """
        best-effort: a partner that is gone or going away just misses the message,
        the sender finds out later through peer-disconnected
        """
        if connection.state is ConnectionState.CLOSED:
            return False
        try:
            await connection.channel.send(message)
        except websockets.exceptions.ConnectionClosed:
            logging.debug(f"Client {connection.cid} is closing, dropped message")
            return False
        return True
