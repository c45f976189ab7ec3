import struct

import pytest

import stun_codec
from stun_codec import (
    BINDING_REQUEST,
    BINDING_RESPONSE,
    MAGIC_COOKIE,
    build_binding_response,
    decode_xor_mapped_address,
    parse_binding_request,
    respond,
)

TRANSACTION_ID = bytes(range(1, 13))


def binding_request(transaction_id=TRANSACTION_ID, message_type=BINDING_REQUEST, cookie=MAGIC_COOKIE, body=b""):
    return struct.pack("!HHI", message_type, len(body), cookie) + transaction_id + body


def test_response_header_echoes_transaction_id():
    response = respond(binding_request(), ("198.51.100.7", 40000))

    assert len(response) == 32
    message_type, length, cookie = struct.unpack("!HHI", response[:8])
    assert message_type == BINDING_RESPONSE
    assert length == 12
    assert cookie == MAGIC_COOKIE
    assert response[8:20] == TRANSACTION_ID


def test_xor_mapped_address_bytes():
    response = build_binding_response(TRANSACTION_ID, ("192.0.2.1", 54321))

    # type 0x0020, length 8, reserved, family IPv4, port ^ 0x2112, address ^ 0x2112A442
    assert response[20:32] == bytes.fromhex("00200008" "0001" "f523" "e112a643")


@pytest.mark.parametrize("address", [
    ("192.0.2.1", 54321),
    ("10.0.0.1", 1),
    ("255.255.255.255", 65535),
    ("0.0.0.0", 0),
])
def test_xor_mapped_address_recovers_source(address):
    response = respond(binding_request(), address)
    assert decode_xor_mapped_address(response) == address


def test_request_with_attributes_is_still_answered():
    body = struct.pack("!HH", 0x8022, 4) + b"test"
    response = respond(binding_request(body=body), ("203.0.113.5", 3478))
    assert decode_xor_mapped_address(response) == ("203.0.113.5", 3478)


def test_independent_requests_from_same_origin():
    other_id = b"\xff" * 12
    first = respond(binding_request(), ("203.0.113.5", 5000))
    second = respond(binding_request(other_id), ("203.0.113.5", 5000))
    assert first[8:20] == TRANSACTION_ID
    assert second[8:20] == other_id
    assert first[20:] == second[20:]


def test_truncated_datagram_dropped():
    assert respond(binding_request()[:19], ("192.0.2.1", 1000)) is None
    assert respond(b"", ("192.0.2.1", 1000)) is None


def test_wrong_magic_cookie_dropped():
    assert respond(binding_request(cookie=0x2112A443), ("192.0.2.1", 1000)) is None


@pytest.mark.parametrize("message_type", [BINDING_RESPONSE, 0x0111, 0x0011, 0x0003, 0xFFFF])
def test_other_message_types_dropped(message_type):
    assert respond(binding_request(message_type=message_type), ("192.0.2.1", 1000)) is None


def test_ipv6_source_dropped():
    assert respond(binding_request(), ("2001:db8::1", 1000, 0, 0)) is None


def test_ipv4_mapped_source_answered_as_ipv4():
    response = respond(binding_request(), ("::ffff:192.0.2.9", 1000, 0, 0))
    assert decode_xor_mapped_address(response) == ("192.0.2.9", 1000)


def test_parse_binding_request():
    assert parse_binding_request(binding_request()) == TRANSACTION_ID
    assert parse_binding_request(b"GET / HTTP/1.1\r\nHost: example\r\n\r\n") is None


def test_build_rejects_bad_transaction_id():
    with pytest.raises(ValueError):
        build_binding_response(b"short", ("192.0.2.1", 1))


def test_decode_rejects_non_responses():
    assert decode_xor_mapped_address(binding_request()) is None
    assert decode_xor_mapped_address(b"\x01\x01") is None

    truncated = build_binding_response(TRANSACTION_ID, ("192.0.2.1", 1))[:28]
    assert decode_xor_mapped_address(truncated) is None


def test_decode_skips_unknown_attributes():
    software = struct.pack("!HH", 0x8022, 5) + b"relay" + b"\x00" * 3
    mapped = build_binding_response(TRANSACTION_ID, ("192.0.2.77", 9999))[20:]
    body = software + mapped
    response = struct.pack("!HHI", BINDING_RESPONSE, len(body), MAGIC_COOKIE) + TRANSACTION_ID + body
    assert decode_xor_mapped_address(response) == ("192.0.2.77", 9999)


def test_header_length_constant():
    assert stun_codec.HEADER_LENGTH == 20
    assert stun_codec.RESPONSE_LENGTH == 32
