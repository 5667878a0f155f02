"""Adapters that carry TCP messages inside IPv4 datagrams over a TUN device."""

from __future__ import annotations

import ipaddress
from typing import Optional, Protocol

from .address import Address
from .file_descriptor import READ_BUFFER_SIZE, FileDescriptor
from .ipv4 import IPv4Datagram, IPv4Header
from .parser import parse, serialize
from .rng import get_random_engine
from .tcp_config import FdAdapterConfig
from .tcp_segment import TCPMessage, TCPSegment

_TCP_HEADER_LENGTH = 20


def _dotted_quad(value: int) -> str:
    return str(ipaddress.IPv4Address(value & 0xFFFFFFFF))


class FdAdapterBase:
    """Configuration and listening state shared by the datagram adapters."""

    def __init__(self) -> None:
        self._config = FdAdapterConfig()
        self._listening = False

    def set_listening(self, listening: bool) -> None:
        self._listening = bool(listening)

    def listening(self) -> bool:
        """Is the adapter waiting for a new connection?"""
        return self._listening

    def config(self) -> FdAdapterConfig:
        """The adapter's configuration (changes to it take effect)."""
        return self._config

    def tick(self, ms_since_last_tick: int) -> None:
        """Called periodically as time passes."""


class TCPOverIPv4Adapter(FdAdapterBase):
    """Converts between TCP messages and IPv4 datagrams for one connection."""

    def unwrap_tcp_in_ip(self, ip_dgram: IPv4Datagram) -> Optional[TCPMessage]:
        """The TCP message inside ``ip_dgram``, or None if invalid or unrelated.

        While listening, a SYN (without RST) fixes the connection's addresses
        and ports from the datagram, and listening stops.
        """
        cfg = self._config
        header = ip_dgram.header

        if not self.listening() and header.dst != cfg.source.ipv4_numeric():
            return None
        if not self.listening() and header.src != cfg.destination.ipv4_numeric():
            return None
        if header.proto != IPv4Header.PROTO_TCP:
            return None

        segment = TCPSegment()
        if not parse(segment, ip_dgram.payload, header.pseudo_checksum()):
            return None

        if segment.udinfo.dst_port != cfg.source.port():
            return None

        if self.listening():
            sender = segment.message.sender
            if not (sender.syn and not sender.rst):
                return None
            cfg.source = Address.from_ip(_dotted_quad(header.dst), cfg.source.port())
            cfg.destination = Address.from_ip(_dotted_quad(header.src), segment.udinfo.src_port)
            self.set_listening(False)

        if segment.udinfo.src_port != cfg.destination.port():
            return None

        return segment.message

    def wrap_tcp_in_ip(self, msg: TCPMessage) -> IPv4Datagram:
        """Wrap ``msg`` in a checksummed IPv4 datagram using the configured endpoints."""
        cfg = self._config
        segment = TCPSegment(message=msg)
        segment.udinfo.src_port = cfg.source.port()
        segment.udinfo.dst_port = cfg.destination.port()

        ip_dgram = IPv4Datagram()
        header = ip_dgram.header
        header.src = cfg.source.ipv4_numeric()
        header.dst = cfg.destination.ipv4_numeric()
        header.length = (
            header.hlen * 4 + _TCP_HEADER_LENGTH + len(msg.sender.payload)
        ) & 0xFFFF

        segment.compute_checksum(header.pseudo_checksum())
        header.compute_checksum()
        ip_dgram.payload = serialize(segment)
        return ip_dgram


class TCPOverIPv4OverTunFdAdapter(TCPOverIPv4Adapter):
    """Reads and writes TCP-in-IPv4 datagrams on a TUN device."""

    def __init__(self, tun: FileDescriptor) -> None:
        super().__init__()
        self._tun = tun

    def read(self) -> Optional[TCPMessage]:
        """Read one datagram; return its TCP message if it belongs to this connection."""
        buffers = self._tun.readv([IPv4Header.LENGTH, READ_BUFFER_SIZE])
        if not buffers:
            return None
        ip_dgram = IPv4Datagram()
        if parse(ip_dgram, buffers):
            return self.unwrap_tcp_in_ip(ip_dgram)
        return None

    def write(self, msg: TCPMessage) -> None:
        """Wrap ``msg`` in an IPv4 datagram and write it to the device."""
        self._tun.write(serialize(self.wrap_tcp_in_ip(msg)))

    def fd(self) -> FileDescriptor:
        return self._tun


class _DatagramAdapter(Protocol):
    def fd(self) -> FileDescriptor: ...

    def read(self) -> Optional[TCPMessage]: ...

    def write(self, msg: TCPMessage) -> None: ...

    def set_listening(self, listening: bool) -> None: ...

    def config(self) -> FdAdapterConfig: ...

    def tick(self, ms_since_last_tick: int) -> None: ...


class LossyFdAdapter:
    """Wraps another adapter and randomly drops reads and writes.

    The drop rates come from the wrapped adapter's configuration.
    """

    def __init__(self, adapter: _DatagramAdapter) -> None:
        self._adapter = adapter
        self._rand = get_random_engine()

    def _should_drop(self, uplink: bool) -> bool:
        cfg = self._adapter.config()
        loss = cfg.loss_rate_up if uplink else cfg.loss_rate_dn
        return loss != 0 and self._rand.getrandbits(16) < loss

    def fd(self) -> FileDescriptor:
        return self._adapter.fd()

    def read(self) -> Optional[TCPMessage]:
        """Read from the wrapped adapter; None if nothing came or it was dropped."""
        message = self._adapter.read()
        if self._should_drop(False):
            return None
        return message

    def write(self, msg: TCPMessage) -> None:
        """Write through the wrapped adapter unless the message is dropped."""
        if self._should_drop(True):
            return
        self._adapter.write(msg)

    def set_listening(self, listening: bool) -> None:
        self._adapter.set_listening(listening)

    def config(self) -> FdAdapterConfig:
        return self._adapter.config()

    def tick(self, ms_since_last_tick: int) -> None:
        self._adapter.tick(ms_since_last_tick)