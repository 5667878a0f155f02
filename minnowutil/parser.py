"""Big-endian parsing and serialization over lists of byte buffers."""

from __future__ import annotations

from collections import deque
from typing import Any, Iterable, Protocol, Union

BytesLike = Union[bytes, bytearray, memoryview]
BufferInput = Union[BytesLike, Iterable[BytesLike]]


def _as_buffers(buffers: BufferInput) -> list[bytes]:
    if isinstance(buffers, (bytes, bytearray, memoryview)):
        return [bytes(buffers)]
    if isinstance(buffers, str):
        raise TypeError("buffers must be bytes-like, not str")
    return [bytes(chunk) for chunk in buffers]


class Parser:
    """Reads big-endian integers and raw bytes from a sequence of buffers.

    Running out of input does not raise: it marks the parser as failed,
    and later reads return zero values.
    """

    def __init__(self, buffers: BufferInput = ()) -> None:
        self._chunks: deque[bytes] = deque()
        self._skip = 0
        self._size = 0
        self._error = False
        for chunk in _as_buffers(buffers):
            if chunk:
                self._chunks.append(chunk)
                self._size += len(chunk)

    def __len__(self) -> int:
        return self._size

    def has_error(self) -> bool:
        return self._error

    def set_error(self) -> None:
        self._error = True

    def remove_prefix(self, n: int) -> None:
        """Discard up to ``n`` bytes from the front of the input."""
        while n > 0 and self._chunks:
            front = self._chunks[0]
            take = min(n, len(front) - self._skip)
            self._skip += take
            self._size -= take
            n -= take
            if self._skip == len(front):
                self._chunks.popleft()
                self._skip = 0

    def _check_size(self, size: int) -> None:
        if size > self._size:
            self._error = True

    def _take(self, size: int) -> bytes:
        parts = []
        remaining = size
        while remaining:
            front = self._chunks[0]
            piece = front[self._skip : self._skip + remaining]
            parts.append(piece)
            self.remove_prefix(len(piece))
            remaining -= len(piece)
        return b"".join(parts)

    def integer(self, size: int) -> int:
        """Read an unsigned big-endian integer of ``size`` bytes."""
        if size < 1:
            raise ValueError("integer size must be at least one byte")
        self._check_size(size)
        if self._error:
            return 0
        return int.from_bytes(self._take(size), "big")

    def string(self, size: int) -> bytes:
        """Read exactly ``size`` raw bytes (zeros if the parser has failed)."""
        if size < 0:
            raise ValueError("string size must not be negative")
        self._check_size(size)
        if self._error:
            return bytes(size)
        return self._take(size)

    def all_remaining(self) -> list[bytes]:
        """Consume and return everything left, keeping the buffer boundaries."""
        if not self._chunks:
            return []
        first = self._chunks.popleft()[self._skip :]
        out = [first, *self._chunks]
        self._chunks.clear()
        self._skip = 0
        self._size = 0
        return out

    def all_remaining_bytes(self) -> bytes:
        """Consume and return everything left as one byte string."""
        return b"".join(self.all_remaining())

    def buffer(self) -> list[bytes]:
        """The unread input, without consuming it."""
        if not self._chunks:
            return []
        chunks = list(self._chunks)
        chunks[0] = chunks[0][self._skip :]
        return chunks


class Serializer:
    """Accumulates big-endian integers and byte buffers into a list of buffers."""

    def __init__(self, initial: BytesLike = b"") -> None:
        self._output: list[bytes] = []
        self._pending = bytearray(initial)

    def integer(self, value: int, size: int) -> None:
        """Append ``value`` as ``size`` big-endian bytes, truncating to fit."""
        if size < 1:
            raise ValueError("integer size must be at least one byte")
        mask = (1 << (8 * size)) - 1
        self._pending += (value & mask).to_bytes(size, "big")

    def buffer(self, data: BufferInput) -> None:
        """Append a buffer (or each of several) as its own output chunk."""
        if isinstance(data, (bytes, bytearray, memoryview)):
            self.flush()
            if data:
                self._output.append(bytes(data))
            return
        if isinstance(data, str):
            raise TypeError("data must be bytes-like, not str")
        for chunk in data:
            self.buffer(chunk)

    def flush(self) -> None:
        if self._pending:
            self._output.append(bytes(self._pending))
            self._pending = bytearray()

    def output(self) -> list[bytes]:
        self.flush()
        return list(self._output)


class _Serializable(Protocol):
    def serialize(self, serializer: Serializer) -> None: ...


def serialize(obj: _Serializable) -> list[bytes]:
    """Serialize ``obj`` into a fresh list of buffers."""
    serializer = Serializer()
    obj.serialize(serializer)
    return serializer.output()


def parse(obj: Any, buffers: BufferInput, *args: Any) -> bool:
    """Parse ``buffers`` into ``obj``; return True if parsing succeeded."""
    parser = Parser(buffers)
    obj.parse(parser, *args)
    return not parser.has_error()