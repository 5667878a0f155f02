import ipaddress

import pytest

from minnowutil.arp import ARPMessage
from minnowutil.parser import parse, serialize

SENDER_MAC = bytes([0x02, 0, 0, 0, 0, 0x01])
TARGET_MAC = bytes([0x02, 0, 0, 0, 0, 0x02])


def make_request():
    return ARPMessage(
        opcode=ARPMessage.OPCODE_REQUEST,
        sender_ethernet_address=SENDER_MAC,
        sender_ip_address=int(ipaddress.IPv4Address("10.0.0.1")),
        target_ethernet_address=TARGET_MAC,
        target_ip_address=int(ipaddress.IPv4Address("10.0.0.2")),
    )


def test_serialized_length_matches_constant():
    assert len(b"".join(serialize(make_request()))) == ARPMessage.LENGTH


def test_wire_prefix_is_ethernet_ipv4_request():
    wire = b"".join(serialize(make_request()))
    assert wire[:8] == b"\x00\x01\x08\x00\x06\x04\x00\x01"
    assert wire[8:14] == SENDER_MAC


def test_round_trip():
    original = make_request()
    parsed = ARPMessage()
    assert parse(parsed, serialize(original))
    assert parsed == original


def test_round_trip_reply_split_buffers():
    original = make_request()
    original.opcode = ARPMessage.OPCODE_REPLY
    wire = b"".join(serialize(original))
    parsed = ARPMessage()
    assert parse(parsed, [wire[:5], wire[5:17], wire[17:]])
    assert parsed == original


def test_supported_defaults_need_opcode():
    assert not ARPMessage().supported()
    assert make_request().supported()


def test_unsupported_parse_sets_error():
    wire = bytearray(b"".join(serialize(make_request())))
    wire[7] = 9
    assert not parse(ARPMessage(), bytes(wire))


def test_truncated_parse_sets_error():
    wire = b"".join(serialize(make_request()))
    assert not parse(ARPMessage(), wire[:20])


def test_serialize_unsupported_raises():
    with pytest.raises(ValueError):
        serialize(ARPMessage(opcode=5))


def test_string_form():
    text = str(make_request())
    assert text.startswith("opcode=REQUEST, sender=02:00:00:00:00:01/10.0.0.1")
    assert text.endswith("target=02:00:00:00:00:02/10.0.0.2")
    assert str(ARPMessage(opcode=7)).startswith("opcode=(unknown type)")