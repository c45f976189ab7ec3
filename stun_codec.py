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

"""
Binding request / binding response, the part of RFC 5389 a client needs to learn its
public (NAT mapped) address. Everything else is dropped without a reply.

Header, 20 bytes big endian:
    0   2   message type
    2   2   body length, not counting the header
    4   4   magic cookie 0x2112A442
    8   12  transaction id, echoed back as is

The response carries one XOR-MAPPED-ADDRESS attribute (IPv4 only).
"""

import dataclasses
import ipaddress
import struct
from typing import Optional, Tuple

BINDING_REQUEST = 0x0001
BINDING_RESPONSE = 0x0101
MAGIC_COOKIE = 0x2112A442
ATTR_XOR_MAPPED_ADDRESS = 0x0020
FAMILY_IPV4 = 0x01

HEADER_LENGTH = 20
TRANSACTION_ID_LENGTH = 12

_HEADER = struct.Struct("!HHI12s")
_ATTRIBUTE_HEADER = struct.Struct("!HH")
_XOR_MAPPED_IPV4 = struct.Struct("!BBHI")

RESPONSE_LENGTH = HEADER_LENGTH + _ATTRIBUTE_HEADER.size + _XOR_MAPPED_IPV4.size


@dataclasses.dataclass(frozen=True)
class StunHeader:
    message_type: int
    length: int
    magic_cookie: int
    transaction_id: bytes


def parse_header(data: bytes) -> Optional[StunHeader]:
    if len(data) < HEADER_LENGTH:
        return None
    return StunHeader(*_HEADER.unpack_from(data))


def parse_binding_request(data: bytes) -> Optional[bytes]:
    """Transaction id of a binding request, or None for anything else."""
    header = parse_header(data)
    if header is None:
        return None
    if header.message_type != BINDING_REQUEST or header.magic_cookie != MAGIC_COOKIE:
        return None
    return header.transaction_id


def _ipv4_source(address: Tuple) -> Optional[Tuple[ipaddress.IPv4Address, int]]:
    try:
        host = ipaddress.ip_address(address[0])
        port = int(address[1])
    except (ValueError, TypeError, IndexError):
        return None
    if isinstance(host, ipaddress.IPv6Address):
        host = host.ipv4_mapped  # dual stack sockets report v4 peers as ::ffff:a.b.c.d
    if host is None or not 0 <= port <= 0xFFFF:
        return None
    return host, port


def build_binding_response(transaction_id: bytes, address: Tuple) -> bytes:
    if len(transaction_id) != TRANSACTION_ID_LENGTH:
        raise ValueError(f"transaction id must be {TRANSACTION_ID_LENGTH} bytes, got {len(transaction_id)}")
    source = _ipv4_source(address)
    if source is None:
        raise ValueError(f"{address!r} is not an IPv4 address")
    host, port = source

    attribute = _XOR_MAPPED_IPV4.pack(
        0,  # reserved
        FAMILY_IPV4,
        port ^ (MAGIC_COOKIE >> 16),
        int(host) ^ MAGIC_COOKIE,
    )
    body = _ATTRIBUTE_HEADER.pack(ATTR_XOR_MAPPED_ADDRESS, len(attribute)) + attribute
    return _HEADER.pack(BINDING_RESPONSE, len(body), MAGIC_COOKIE, transaction_id) + body


def respond(data: bytes, address: Tuple) -> Optional[bytes]:
    transaction_id = parse_binding_request(data)
    if transaction_id is None:
        return None
    if _ipv4_source(address) is None:
        return None
    return build_binding_response(transaction_id, address)


def decode_xor_mapped_address(data: bytes) -> Optional[Tuple[str, int]]:
    """
    client side of the exchange: recover (ip, port) from a binding response
    """
    header = parse_header(data)
    if header is None or header.message_type != BINDING_RESPONSE or header.magic_cookie != MAGIC_COOKIE:
        return None

    offset = HEADER_LENGTH
    end = min(len(data), HEADER_LENGTH + header.length)
    while offset + _ATTRIBUTE_HEADER.size <= end:
        attribute_type, attribute_length = _ATTRIBUTE_HEADER.unpack_from(data, offset)
        offset += _ATTRIBUTE_HEADER.size
        if attribute_type == ATTR_XOR_MAPPED_ADDRESS and attribute_length == _XOR_MAPPED_IPV4.size:
            if offset + attribute_length > end:
                return None
            _, family, xor_port, xor_address = _XOR_MAPPED_IPV4.unpack_from(data, offset)
            if family != FAMILY_IPV4:
                return None
            host = ipaddress.IPv4Address(xor_address ^ MAGIC_COOKIE)
            return str(host), xor_port ^ (MAGIC_COOKIE >> 16)
        # attributes are padded to 4 bytes
        offset += (attribute_length + 3) & ~3
    return None
