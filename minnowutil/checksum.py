"""The Internet checksum (ones' complement sum of 16-bit words)."""

from __future__ import annotations

from typing import Iterable, Union

_BytesLike = Union[bytes, bytearray, memoryview]


class InternetChecksum:
    """Incrementally computes the Internet checksum over a byte sequence.

    Bytes added in separate calls are treated as one contiguous stream.
    """

    def __init__(self, initial: int = 0) -> None:
        self._sum = initial & 0xFFFFFFFF
        self._odd = False

    def add(self, data: Union[_BytesLike, Iterable[_BytesLike]]) -> None:
        """Add a buffer, or each buffer of an iterable, to the running sum."""
        if isinstance(data, str):
            raise TypeError("data must be bytes-like, not str")
        if isinstance(data, (bytes, bytearray, memoryview)):
            self._add_bytes(bytes(data))
            return
        for chunk in data:
            self.add(chunk)

    def _add_bytes(self, data: bytes) -> None:
        total = self._sum
        odd = self._odd
        for byte in data:
            total += byte if odd else byte << 8
            odd = not odd
        self._sum = total & 0xFFFFFFFF
        self._odd = odd

    def value(self) -> int:
        folded = self._sum
        while folded > 0xFFFF:
            folded = (folded >> 16) + (folded & 0xFFFF)
        return ~folded & 0xFFFF