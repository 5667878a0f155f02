import socket

import pytest

from minnowutil.adapters import (
    FdAdapterBase,
    LossyFdAdapter,
    TCPOverIPv4Adapter,
    TCPOverIPv4OverTunFdAdapter,
)
from minnowutil.address import Address
from minnowutil.file_descriptor import FileDescriptor
from minnowutil.ipv4 import IPv4Datagram, IPv4Header
from minnowutil.parser import parse
from minnowutil.tcp_config import FdAdapterConfig
from minnowutil.tcp_segment import TCPMessage, TCPReceiverMessage, TCPSenderMessage

CLIENT_IP = "10.0.0.1"
SERVER_IP = "10.0.0.2"
CLIENT_PORT = 1234
SERVER_PORT = 80


def configure(adapter, src_ip, src_port, dst_ip, dst_port):
    adapter.config().source = Address.from_ip(src_ip, src_port)
    adapter.config().destination = Address.from_ip(dst_ip, dst_port)
    return adapter


def client_adapter(adapter=None):
    return configure(adapter or TCPOverIPv4Adapter(), CLIENT_IP, CLIENT_PORT, SERVER_IP, SERVER_PORT)


def server_adapter(adapter=None):
    return configure(adapter or TCPOverIPv4Adapter(), SERVER_IP, SERVER_PORT, CLIENT_IP, CLIENT_PORT)


def sample_message(syn=False, payload=b"hello"):
    return TCPMessage(
        sender=TCPSenderMessage(seqno=5, syn=syn, payload=payload),
        receiver=TCPReceiverMessage(ackno=77, window_size=1000),
    )


@pytest.fixture
def fd_pair():
    a, b = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
    first = FileDescriptor(a.detach())
    second = FileDescriptor(b.detach())
    yield first, second
    for fd in (first, second):
        if not fd.closed():
            fd.close()


def test_base_listening_flag_and_config():
    base = FdAdapterBase()
    assert base.listening() is False
    base.set_listening(True)
    assert base.listening() is True
    base.config().loss_rate_up = 5
    assert base.config().loss_rate_up == 5
    base.tick(10)
    assert base.config().loss_rate_up == 5


def test_wrap_sets_addresses_and_protocol():
    dgram = client_adapter().wrap_tcp_in_ip(sample_message())
    assert dgram.header.src == Address.from_ip(CLIENT_IP).ipv4_numeric()
    assert dgram.header.dst == Address.from_ip(SERVER_IP).ipv4_numeric()
    assert dgram.header.proto == IPv4Header.PROTO_TCP
    assert dgram.header.length == 45


def test_wrapped_datagram_has_valid_ip_checksum():
    dgram = client_adapter().wrap_tcp_in_ip(sample_message())
    reparsed = IPv4Datagram()
    chunks = [b"".join(
        [bytes(c) for c in __import_serialize(dgram)]
    )]
    assert parse(reparsed, chunks)
    assert reparsed.header == dgram.header


def __import_serialize(obj):
    from minnowutil.parser import serialize

    return serialize(obj)


def test_wrap_then_unwrap_round_trip():
    message = sample_message()
    dgram = client_adapter().wrap_tcp_in_ip(message)
    assert server_adapter().unwrap_tcp_in_ip(dgram) == message


def test_unwrap_rejects_wrong_destination_address():
    dgram = client_adapter().wrap_tcp_in_ip(sample_message())
    other = configure(TCPOverIPv4Adapter(), "10.0.0.3", SERVER_PORT, CLIENT_IP, CLIENT_PORT)
    assert other.unwrap_tcp_in_ip(dgram) is None


def test_unwrap_rejects_wrong_source_address():
    dgram = client_adapter().wrap_tcp_in_ip(sample_message())
    other = configure(TCPOverIPv4Adapter(), SERVER_IP, SERVER_PORT, "10.0.0.9", CLIENT_PORT)
    assert other.unwrap_tcp_in_ip(dgram) is None


def test_unwrap_rejects_wrong_ports():
    dgram = client_adapter().wrap_tcp_in_ip(sample_message())
    wrong_dst = configure(TCPOverIPv4Adapter(), SERVER_IP, 81, CLIENT_IP, CLIENT_PORT)
    wrong_src = configure(TCPOverIPv4Adapter(), SERVER_IP, SERVER_PORT, CLIENT_IP, 4321)
    assert wrong_dst.unwrap_tcp_in_ip(dgram) is None
    assert wrong_src.unwrap_tcp_in_ip(dgram) is None


def test_unwrap_rejects_non_tcp_protocol():
    dgram = client_adapter().wrap_tcp_in_ip(sample_message())
    dgram.header.proto = 17
    assert server_adapter().unwrap_tcp_in_ip(dgram) is None


def test_unwrap_rejects_corrupted_tcp_segment():
    dgram = client_adapter().wrap_tcp_in_ip(sample_message())
    last = dgram.payload[-1]
    dgram.payload[-1] = last[:-1] + bytes([last[-1] ^ 0xFF])
    assert server_adapter().unwrap_tcp_in_ip(dgram) is None


def test_listening_adapter_accepts_syn_and_learns_peer():
    syn = sample_message(syn=True, payload=b"")
    dgram = client_adapter().wrap_tcp_in_ip(syn)

    server = TCPOverIPv4Adapter()
    server.config().source = Address.from_ip("0.0.0.0", SERVER_PORT)
    server.set_listening(True)

    assert server.unwrap_tcp_in_ip(dgram) == syn
    assert server.listening() is False
    assert server.config().source == Address.from_ip(SERVER_IP, SERVER_PORT)
    assert server.config().destination == Address.from_ip(CLIENT_IP, CLIENT_PORT)


def test_listening_adapter_ignores_non_syn():
    dgram = client_adapter().wrap_tcp_in_ip(sample_message(syn=False))
    server = TCPOverIPv4Adapter()
    server.config().source = Address.from_ip("0.0.0.0", SERVER_PORT)
    server.set_listening(True)
    assert server.unwrap_tcp_in_ip(dgram) is None
    assert server.listening() is True


def test_listening_adapter_ignores_syn_with_rst():
    message = sample_message(syn=True, payload=b"")
    message.sender.rst = True
    dgram = client_adapter().wrap_tcp_in_ip(message)
    server = TCPOverIPv4Adapter()
    server.config().source = Address.from_ip("0.0.0.0", SERVER_PORT)
    server.set_listening(True)
    assert server.unwrap_tcp_in_ip(dgram) is None
    assert server.listening() is True


def test_tun_adapter_write_then_read(fd_pair):
    first, second = fd_pair
    client = client_adapter(TCPOverIPv4OverTunFdAdapter(first))
    server = server_adapter(TCPOverIPv4OverTunFdAdapter(second))
    message = sample_message(payload=b"some data over the wire")
    client.write(message)
    assert server.read() == message
    assert client.fd() is first


def test_tun_adapter_read_nothing_available(fd_pair):
    _, second = fd_pair
    second.set_blocking(False)
    server = server_adapter(TCPOverIPv4OverTunFdAdapter(second))
    assert server.read() is None


def test_tun_adapter_read_garbage_gives_none(fd_pair):
    first, second = fd_pair
    first.write(b"not an ip datagram at all")
    server = server_adapter(TCPOverIPv4OverTunFdAdapter(second))
    assert server.read() is None


class RecordingAdapter:
    def __init__(self, message):
        self._config = FdAdapterConfig()
        self._message = message
        self.written = []
        self.listening = False
        self.ticks = []
        self.descriptor = object()

    def fd(self):
        return self.descriptor

    def read(self):
        return self._message

    def write(self, msg):
        self.written.append(msg)

    def set_listening(self, listening):
        self.listening = listening

    def config(self):
        return self._config

    def tick(self, ms_since_last_tick):
        self.ticks.append(ms_since_last_tick)


def test_lossy_adapter_without_loss_passes_everything():
    message = sample_message()
    inner = RecordingAdapter(message)
    lossy = LossyFdAdapter(inner)
    for _ in range(50):
        lossy.write(message)
    assert len(inner.written) == 50
    assert all(lossy.read() == message for _ in range(50))


def test_lossy_adapter_with_full_loss_drops_nearly_everything():
    message = sample_message()
    inner = RecordingAdapter(message)
    inner.config().loss_rate_up = 0xFFFF
    inner.config().loss_rate_dn = 0xFFFF
    lossy = LossyFdAdapter(inner)
    for _ in range(200):
        lossy.write(message)
    reads = [lossy.read() for _ in range(200)]
    assert len(inner.written) < 5
    assert sum(r is not None for r in reads) < 5


def test_lossy_adapter_uplink_loss_does_not_affect_reads():
    message = sample_message()
    inner = RecordingAdapter(message)
    inner.config().loss_rate_up = 0xFFFF
    lossy = LossyFdAdapter(inner)
    assert all(lossy.read() == message for _ in range(50))


def test_lossy_adapter_passthroughs():
    inner = RecordingAdapter(None)
    lossy = LossyFdAdapter(inner)
    lossy.set_listening(True)
    lossy.tick(10)
    assert inner.listening is True
    assert inner.ticks == [10]
    assert lossy.config() is inner.config()
    assert lossy.fd() is inner.descriptor
    assert lossy.read() is None