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
import dataclasses
import enum
import itertools
from typing import Optional


class ConnectionState(enum.Enum):
    IDLE = "idle"
    WAITING = "waiting"
    PAIRED = "paired"
    CLOSED = "closed"


@dataclasses.dataclass
class Connection:
    cid: int
    channel: object  # websocket, or anything with an async send(str)
    state: ConnectionState = ConnectionState.IDLE
    partner: Optional[int] = None  # cid of the partner, looked up in ServerData.connections
    peername: str = ""


class ServerData:

    def __init__(self):
        self.connections: dict[int, Connection] = dict()
        # only ever touched by PairingRelay._try_pair_or_wait and PairingRelay.connection_closed
        self.waiting_client: Optional[int] = None

        self.shutdown_event = asyncio.Event()
        self._cids = itertools.count(1)

    def register(self, channel: object, peername: str = "") -> Connection:
        connection = Connection(cid=next(self._cids), channel=channel, peername=peername)
        self.connections[connection.cid] = connection
        return connection

    def unregister(self, connection: Connection) -> None:
        self.connections.pop(connection.cid, None)

    def lookup(self, cid: Optional[int]) -> Optional[Connection]:
        if cid is None:
            return None
        return self.connections.get(cid)
