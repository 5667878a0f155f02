import pytest

from minnowutil.ethernet import (
    ETHERNET_BROADCAST,
    EthernetFrame,
    EthernetHeader,
    format_ethernet_address,
)
from minnowutil.parser import parse, serialize

LOCAL_MAC = bytes([0x02, 0, 0, 0, 0, 0x01])
OTHER_MAC = bytes([0x02, 0, 0, 0, 0, 0x02])


def test_broadcast_address_format():
    assert format_ethernet_address(ETHERNET_BROADCAST) == "ff:ff:ff:ff:ff:ff"


def test_address_format_pads_with_zeros():
    assert format_ethernet_address(bytes([0, 1, 2, 0x0A, 0x0B, 0xFF])) == "00:01:02:0a:0b:ff"


def test_header_round_trip():
    header = EthernetHeader(dst=LOCAL_MAC, src=OTHER_MAC, type=EthernetHeader.TYPE_ARP)
    copy = EthernetHeader()
    assert parse(copy, serialize(header))
    assert copy == header


def test_header_wire_layout():
    header = EthernetHeader(dst=ETHERNET_BROADCAST, src=LOCAL_MAC, type=EthernetHeader.TYPE_IPV4)
    wire = b"".join(serialize(header))
    assert len(wire) == EthernetHeader.LENGTH
    assert wire[:6] == ETHERNET_BROADCAST
    assert wire[6:12] == LOCAL_MAC
    assert wire[12:] == EthernetHeader.TYPE_IPV4.to_bytes(2, "big")


@pytest.mark.parametrize(
    ("kind", "label"),
    [(EthernetHeader.TYPE_IPV4, "type=IPv4"), (EthernetHeader.TYPE_ARP, "type=ARP")],
)
def test_header_str_known_types(kind, label):
    header = EthernetHeader(dst=ETHERNET_BROADCAST, src=LOCAL_MAC, type=kind)
    text = str(header)
    assert text.endswith(label)
    assert text.startswith("dst=" + format_ethernet_address(ETHERNET_BROADCAST))


def test_header_str_unknown_type():
    header = EthernetHeader(type=0x1234)
    assert str(header).endswith("type=[unknown type 1234!]")


def test_short_header_fails_to_parse():
    wire = b"".join(serialize(EthernetHeader(dst=LOCAL_MAC, src=OTHER_MAC, type=1)))
    assert not parse(EthernetHeader(), [wire[:-1]])


def test_wrong_address_length_rejected():
    with pytest.raises(ValueError):
        serialize(EthernetHeader(dst=b"\x01\x02"))


def test_frame_round_trip_keeps_payload():
    payload = [b"first chunk", b"second"]
    frame = EthernetFrame(
        header=EthernetHeader(dst=OTHER_MAC, src=LOCAL_MAC, type=EthernetHeader.TYPE_IPV4),
        payload=payload,
    )
    out = serialize(frame)
    assert out[1:] == payload
    copy = EthernetFrame()
    assert parse(copy, out)
    assert copy.header == frame.header
    assert b"".join(copy.payload) == b"".join(payload)