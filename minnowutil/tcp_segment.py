"""TCP messages and their wire format as TCP segments."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .checksum import InternetChecksum
from .parser import Parser, Serializer

_HEADER_MIN_WORDS = 5

_FLAG_ACK = 0b0001_0000
_FLAG_RST = 0b0000_0100
_FLAG_SYN = 0b0000_0010
_FLAG_FIN = 0b0000_0001


@dataclass
class UserDatagramInfo:
    """Ports and checksum: the datagram-like part of a TCP header."""

    src_port: int = 0
    dst_port: int = 0
    cksum: int = 0


@dataclass
class TCPSenderMessage:
    """What a TCP sender tells its receiver. ``seqno`` is a raw 32-bit value."""

    seqno: int = 0
    syn: bool = False
    payload: bytes = b""
    fin: bool = False
    rst: bool = False

    def sequence_length(self) -> int:
        """How many sequence numbers this message occupies."""
        return int(self.syn) + len(self.payload) + int(self.fin)


@dataclass
class TCPReceiverMessage:
    """What a TCP receiver tells its sender. ``ackno`` is None before the SYN."""

    ackno: Optional[int] = None
    window_size: int = 0
    rst: bool = False


@dataclass
class TCPMessage:
    sender: TCPSenderMessage = field(default_factory=TCPSenderMessage)
    receiver: TCPReceiverMessage = field(default_factory=TCPReceiverMessage)


@dataclass
class TCPSegment:
    """A TCP message together with its ports and checksum."""

    message: TCPMessage = field(default_factory=TCPMessage)
    udinfo: UserDatagramInfo = field(default_factory=UserDatagramInfo)

    def parse(self, parser: Parser, pseudo_checksum: int = 0) -> None:
        check = InternetChecksum(pseudo_checksum)
        check.add(parser.buffer())
        if check.value():
            parser.set_error()
            return

        sender = self.message.sender
        receiver = self.message.receiver

        self.udinfo.src_port = parser.integer(2)
        self.udinfo.dst_port = parser.integer(2)
        sender.seqno = parser.integer(4)
        ackno = parser.integer(4)

        data_offset = parser.integer(1) >> 4
        flags = parser.integer(1)
        receiver.ackno = ackno if flags & _FLAG_ACK else None
        sender.rst = receiver.rst = bool(flags & _FLAG_RST)
        sender.syn = bool(flags & _FLAG_SYN)
        sender.fin = bool(flags & _FLAG_FIN)

        receiver.window_size = parser.integer(2)
        self.udinfo.cksum = parser.integer(2)
        parser.integer(2)  # urgent pointer

        if data_offset < _HEADER_MIN_WORDS:
            parser.set_error()
            parser.remove_prefix(len(parser))
        else:
            parser.remove_prefix((data_offset - _HEADER_MIN_WORDS) * 4)

        sender.payload = parser.all_remaining_bytes()

    def serialize(self, serializer: Serializer) -> None:
        sender = self.message.sender
        receiver = self.message.receiver
        serializer.integer(self.udinfo.src_port, 2)
        serializer.integer(self.udinfo.dst_port, 2)
        serializer.integer(sender.seqno, 4)
        serializer.integer(receiver.ackno if receiver.ackno is not None else 0, 4)
        serializer.integer(_HEADER_MIN_WORDS << 4, 1)
        flags = (
            (_FLAG_ACK if receiver.ackno is not None else 0)
            | (_FLAG_RST if sender.rst or receiver.rst else 0)
            | (_FLAG_SYN if sender.syn else 0)
            | (_FLAG_FIN if sender.fin else 0)
        )
        serializer.integer(flags, 1)
        serializer.integer(receiver.window_size, 2)
        serializer.integer(self.udinfo.cksum, 2)
        serializer.integer(0, 2)  # urgent pointer
        serializer.buffer(sender.payload)

    def compute_checksum(self, pseudo_checksum: int = 0) -> None:
        """Set the checksum field given the network layer's pseudo-header sum."""
        self.udinfo.cksum = 0
        serializer = Serializer()
        self.serialize(serializer)
        check = InternetChecksum(pseudo_checksum)
        check.add(serializer.output())
        self.udinfo.cksum = check.value()