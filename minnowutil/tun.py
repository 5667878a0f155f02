"""File descriptors for Linux TUN and TAP devices."""

from __future__ import annotations

import fcntl
import os
import struct

from .errors import UnixError
from .file_descriptor import FileDescriptor

CLONE_DEVICE = "/dev/net/tun"
IFF_TUN = 0x0001
IFF_TAP = 0x0002
IFF_NO_PI = 0x1000
TUNSETIFF = 0x400454CA
IFNAMSIZ = 16
_IFREQ_SIZE = 40


def _ifreq(devname: str, flags: int) -> bytes:
    name = devname.encode()[: IFNAMSIZ - 1]
    return struct.pack(f"{IFNAMSIZ}sH", name, flags).ljust(_IFREQ_SIZE, b"\0")


class TunTapFD(FileDescriptor):
    """A descriptor on an existing persistent TUN (IP) or TAP (Ethernet) device.

    The device must already exist, e.g. created by an administrator with
    ``ip tuntap add mode tun user <username> name <devname>``.
    """

    def __init__(self, devname: str, is_tun: bool) -> None:
        try:
            fd = os.open(CLONE_DEVICE, os.O_RDWR | os.O_CLOEXEC)
        except OSError as exc:
            raise UnixError("open", exc.errno or 0) from exc
        super().__init__(fd)

        flags = (IFF_TUN if is_tun else IFF_TAP) | IFF_NO_PI  # no packet info
        try:
            self._call("ioctl", fcntl.ioctl, fd, TUNSETIFF, _ifreq(devname, flags))
        except UnixError:
            self.close()
            raise


class TunFD(TunTapFD):
    """A descriptor on a TUN device, which carries IP datagrams."""

    def __init__(self, devname: str) -> None:
        super().__init__(devname, True)


class TapFD(TunTapFD):
    """A descriptor on a TAP device, which carries Ethernet frames."""

    def __init__(self, devname: str) -> None:
        super().__init__(devname, False)