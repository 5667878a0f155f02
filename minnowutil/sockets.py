"""Network sockets built on reference-counted file descriptors."""

from __future__ import annotations

import errno
import os
import socket
import struct
from contextlib import contextmanager
from typing import Iterator, Optional, Union

from .address import Address
from .errors import UnixError
from .file_descriptor import READ_BUFFER_SIZE, FileDescriptor

_BytesLike = Union[bytes, bytearray, memoryview]

_SO_DOMAIN = getattr(socket, "SO_DOMAIN", 39)
_SO_PROTOCOL = getattr(socket, "SO_PROTOCOL", 38)
_SO_BINDTODEVICE = getattr(socket, "SO_BINDTODEVICE", 25)
_SOL_PACKET = getattr(socket, "SOL_PACKET", 263)
_PACKET_ADD_MEMBERSHIP = getattr(socket, "PACKET_ADD_MEMBERSHIP", 1)
_PACKET_MR_PROMISC = getattr(socket, "PACKET_MR_PROMISC", 1)
_AF_PACKET = getattr(socket, "AF_PACKET", 17)

_WOULD_BLOCK = frozenset({errno.EAGAIN, errno.EWOULDBLOCK, errno.EINPROGRESS})


class Socket(FileDescriptor):
    """Base class for network sockets.

    Without ``fd`` a new socket is created. With ``fd`` the given descriptor
    is taken over, after checking that its domain, type and protocol match.
    """

    def __init__(
        self,
        domain: int,
        sock_type: int,
        protocol: int = 0,
        fd: Optional[FileDescriptor] = None,
    ) -> None:
        if fd is None:
            try:
                sock = socket.socket(domain, sock_type, protocol)
            except OSError as exc:
                raise UnixError("socket", exc.errno or 0) from exc
            super().__init__(sock.detach())
            return

        self._adopt(fd)
        for option, expected, what in (
            (_SO_DOMAIN, domain, "domain"),
            (socket.SO_TYPE, sock_type, "type"),
            (_SO_PROTOCOL, protocol, "protocol"),
        ):
            if self._getsockopt(socket.SOL_SOCKET, option) != expected:
                raise RuntimeError(f"socket {what} mismatch")

    @contextmanager
    def _borrow(self, attempt: str) -> Iterator[socket.socket]:
        """A temporary socket object over this descriptor that does not own it."""
        fd = self.fd_num()
        try:
            sock = socket.socket(fileno=fd)
        except OSError as exc:
            raise UnixError(attempt, exc.errno or 0) from exc
        try:
            sock.setblocking(os.get_blocking(fd))
            yield sock
        finally:
            sock.detach()

    def _getsockopt(self, level: int, option: int) -> int:
        with self._borrow("getsockopt") as sock:
            return self._call("getsockopt", sock.getsockopt, level, option)

    def _setsockopt(self, level: int, option: int, value: Union[int, bytes]) -> None:
        with self._borrow("setsockopt") as sock:
            self._call("setsockopt", sock.setsockopt, level, option, value)

    def _address(self, attempt: str, peer: bool) -> Address:
        with self._borrow(attempt) as sock:
            getter = sock.getpeername if peer else sock.getsockname
            sockaddr = self._call(attempt, getter)
            return Address(int(sock.family), sockaddr)

    def bind(self, address: Address) -> None:
        """Bind to a local address, usually before listening."""
        with self._borrow("bind") as sock:
            self._call("bind", sock.bind, address.sockaddr)

    def bind_to_device(self, device_name: str) -> None:
        """Send and receive only through the named network device."""
        self._setsockopt(socket.SOL_SOCKET, _SO_BINDTODEVICE, device_name.encode())

    def connect(self, address: Address) -> None:
        """Connect to a peer (returns at once on a non-blocking socket)."""
        with self._borrow("connect") as sock:
            self._call("connect", sock.connect, address.sockaddr)

    def shutdown(self, how: int) -> None:
        """Shut down reading (SHUT_RD), writing (SHUT_WR) or both (SHUT_RDWR)."""
        with self._borrow("shutdown") as sock:
            self._call("shutdown", sock.shutdown, how)
        if how == socket.SHUT_RD:
            self._register_read()
        elif how == socket.SHUT_WR:
            self._register_write()
        elif how == socket.SHUT_RDWR:
            self._register_read()
            self._register_write()
        else:
            raise ValueError("Socket.shutdown() called with invalid `how`")

    def local_address(self) -> Address:
        return self._address("getsockname", peer=False)

    def peer_address(self) -> Address:
        return self._address("getpeername", peer=True)

    def set_reuseaddr(self) -> None:
        """Allow the local address to be reused sooner, at some cost in robustness."""
        self._setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

    def throw_if_error(self) -> None:
        """Raise UnixError if the socket has a pending error."""
        socket_error = self._getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if socket_error:
            raise UnixError("socket error", socket_error)


class DatagramSocket(Socket):
    """A socket that sends and receives whole datagrams."""

    def recv(self) -> tuple[Optional[Address], bytes]:
        """Receive one datagram and the address of its sender.

        On a non-blocking socket with nothing waiting, returns (None, b"").
        Raises RuntimeError if the datagram did not fit the read buffer.
        """
        buffer = bytearray(READ_BUFFER_SIZE)
        with self._borrow("recvfrom") as sock:
            try:
                count, source = sock.recvfrom_into(buffer, 0, socket.MSG_TRUNC)
            except OSError as exc:
                if exc.errno in _WOULD_BLOCK and not os.get_blocking(self.fd_num()):
                    self._register_read()
                    return None, b""
                raise UnixError("recvfrom", exc.errno or 0) from exc
            family = int(sock.family)

        if count > len(buffer):
            raise RuntimeError("recvfrom (oversized datagram)")
        self._register_read()
        return Address(family, source), bytes(buffer[:count])

    def sendto(self, destination: Address, payload: _BytesLike) -> None:
        with self._borrow("sendto") as sock:
            self._call("sendto", sock.sendto, bytes(payload), destination.sockaddr)
        self._register_write()

    def send(self, payload: _BytesLike) -> None:
        """Send to the connected peer (connect() must come first)."""
        with self._borrow("send") as sock:
            self._call("send", sock.send, bytes(payload))
        self._register_write()


class UDPSocket(DatagramSocket):
    """A UDP socket over IPv4."""

    def __init__(self, fd: Optional[FileDescriptor] = None) -> None:
        super().__init__(socket.AF_INET, socket.SOCK_DGRAM, fd=fd)


class TCPSocket(Socket):
    """A TCP socket over IPv4."""

    def __init__(self, fd: Optional[FileDescriptor] = None) -> None:
        if fd is None:
            super().__init__(socket.AF_INET, socket.SOCK_STREAM)
        else:
            super().__init__(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP, fd=fd)

    def listen(self, backlog: int = 16) -> None:
        with self._borrow("listen") as sock:
            self._call("listen", sock.listen, backlog)

    def accept(self) -> "TCPSocket":
        """Accept a new connection, blocking until one arrives."""
        self._register_read()
        with self._borrow("accept") as sock:
            try:
                conn, _ = sock.accept()
            except OSError as exc:
                raise UnixError("accept", exc.errno or 0) from exc
        return TCPSocket(fd=FileDescriptor(conn.detach()))


class PacketSocket(DatagramSocket):
    """A link-layer packet socket."""

    def __init__(self, sock_type: int, protocol: int) -> None:
        super().__init__(_AF_PACKET, sock_type, protocol)

    def set_promiscuous(self) -> None:
        """Put the bound interface into promiscuous mode."""
        address = self.local_address()
        if address.family != _AF_PACKET or not isinstance(address.sockaddr, tuple):
            raise RuntimeError("local address is not a packet address")
        ifindex = socket.if_nametoindex(address.sockaddr[0])
        request = struct.pack("iHH8s", ifindex, _PACKET_MR_PROMISC, 0, b"")
        self._setsockopt(_SOL_PACKET, _PACKET_ADD_MEMBERSHIP, request)


class LocalStreamSocket(Socket):
    """A Unix-domain stream socket taken over from an existing descriptor."""

    def __init__(self, fd: FileDescriptor) -> None:
        super().__init__(socket.AF_UNIX, socket.SOCK_STREAM, fd=fd)


class LocalDatagramSocket(DatagramSocket):
    """A Unix-domain datagram socket."""

    def __init__(self, fd: Optional[FileDescriptor] = None) -> None:
        super().__init__(socket.AF_UNIX, socket.SOCK_DGRAM, fd=fd)