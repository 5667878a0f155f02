"""Socket addresses, with IPv4 name resolution."""

from __future__ import annotations

import ipaddress
import socket
from typing import Any

from .errors import TaggedError

_INET_FAMILIES = (socket.AF_INET, socket.AF_INET6)


class Address:
    """A socket address: an address family and Python's sockaddr value for it."""

    def __init__(self, family: int, sockaddr: Any) -> None:
        self.family = int(family)
        self.sockaddr = tuple(sockaddr) if isinstance(sockaddr, list) else sockaddr

    @classmethod
    def _lookup(cls, node: str, service: str, flags: int) -> "Address":
        try:
            results = socket.getaddrinfo(node, service, socket.AF_INET, 0, 0, flags)
        except socket.gaierror as exc:
            raise TaggedError(
                f"getaddrinfo({node}, {service})", exc.errno or 0, exc.strerror or str(exc)
            ) from exc
        if not results:
            raise RuntimeError("getaddrinfo returned successfully but with no results")
        family, _, _, _, sockaddr = results[0]
        return cls(family, sockaddr)

    @classmethod
    def resolve(cls, hostname: str, service: str) -> "Address":
        """Resolve a hostname and a service name or number to an IPv4 address."""
        return cls._lookup(hostname, service, getattr(socket, "AI_ALL", 0))

    @classmethod
    def from_ip(cls, ip: str, port: int = 0) -> "Address":
        """Build from a numeric IPv4 address and port, without any lookup."""
        if not 0 <= port <= 0xFFFF:
            raise ValueError(f"port out of range: {port}")
        return cls._lookup(ip, str(port), socket.AI_NUMERICHOST | socket.AI_NUMERICSERV)

    @classmethod
    def from_ipv4_numeric(cls, ip_address: int) -> "Address":
        """Build from a 32-bit IPv4 address in host order, with port 0."""
        if not 0 <= ip_address <= 0xFFFFFFFF:
            raise ValueError(f"not a 32-bit address: {ip_address}")
        return cls(socket.AF_INET, (str(ipaddress.IPv4Address(ip_address)), 0))

    def _is_inet(self) -> bool:
        return self.family in _INET_FAMILIES

    def ip_port(self) -> tuple[str, int]:
        """Numeric host string and port."""
        if not self._is_inet():
            raise ValueError("Address.ip_port() called on non-Internet address")
        try:
            host, port = socket.getnameinfo(
                self.sockaddr, socket.NI_NUMERICHOST | socket.NI_NUMERICSERV
            )
        except socket.gaierror as exc:
            raise TaggedError("getnameinfo", exc.errno or 0, exc.strerror or str(exc)) from exc
        return host, int(port)

    def ip(self) -> str:
        return self.ip_port()[0]

    def port(self) -> int:
        return self.ip_port()[1]

    def ipv4_numeric(self) -> int:
        """The IPv4 address as an integer in host order."""
        if (
            self.family != socket.AF_INET
            or not isinstance(self.sockaddr, tuple)
            or len(self.sockaddr) != 2
        ):
            raise ValueError("ipv4_numeric called on non-IPV4 address")
        return int(ipaddress.IPv4Address(self.sockaddr[0]))

    def __str__(self) -> str:
        if self._is_inet():
            ip, port = self.ip_port()
            return f"{ip}:{port}"
        return "(non-Internet address)"

    def __repr__(self) -> str:
        return f"Address({self.family!r}, {self.sockaddr!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        return self.family == other.family and self.sockaddr == other.sockaddr

    def __hash__(self) -> int:
        return hash((self.family, self.sockaddr))