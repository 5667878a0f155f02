"""Reference-counted handles on kernel file descriptors."""

from __future__ import annotations

import errno
import fcntl
import os
import sys
from typing import Any, Callable, Iterable, TypeVar, Union

from .errors import UnixError

READ_BUFFER_SIZE = 16384

_WOULD_BLOCK = frozenset({errno.EAGAIN, errno.EWOULDBLOCK, errno.EINPROGRESS})

_BytesLike = Union[bytes, bytearray, memoryview]
_T = TypeVar("_T")


class _FDWrapper:
    """The shared state behind one kernel file descriptor; closes it when collected."""

    def __init__(self, fd: int) -> None:
        self.closed = True
        if fd < 0:
            raise ValueError(f"invalid fd number:{fd}")
        self.fd = fd
        self.eof = False
        self.non_blocking = False
        self.read_count = 0
        self.write_count = 0
        flags = self.call("fcntl", fcntl.fcntl, fd, fcntl.F_GETFL)
        self.closed = False
        self.non_blocking = bool(flags & os.O_NONBLOCK)

    def would_block(self, exc: OSError) -> bool:
        return self.non_blocking and exc.errno in _WOULD_BLOCK

    def call(self, attempt: str, func: Callable[..., _T], *args: Any) -> Union[_T, int]:
        """Run a system call, raising UnixError on failure.

        On a non-blocking descriptor, a call that would block returns 0.
        """
        try:
            return func(*args)
        except OSError as exc:
            if self.would_block(exc):
                return 0
            raise UnixError(attempt, exc.errno or 0) from exc

    def close(self) -> None:
        self.call("close", os.close, self.fd)
        self.eof = True
        self.closed = True

    def __del__(self) -> None:
        if getattr(self, "closed", True):
            return
        try:
            self.close()
        except Exception as exc:  # never raise from a finalizer
            print(f"Exception destructing FDWrapper: {exc}", file=sys.stderr)


class FileDescriptor:
    """A handle on a file descriptor, shared by all of its duplicates.

    The descriptor is closed explicitly with close(), on leaving a ``with``
    block, or once the last handle sharing it is garbage collected.
    """

    def __init__(self, fd: int) -> None:
        self._wrapper = _FDWrapper(fd)

    @classmethod
    def _sharing(cls, wrapper: _FDWrapper) -> "FileDescriptor":
        handle = FileDescriptor.__new__(FileDescriptor)
        handle._wrapper = wrapper
        return handle

    def _adopt(self, other: "FileDescriptor") -> None:
        """Take over the descriptor shared by ``other``."""
        self._wrapper = other._wrapper

    def _call(self, attempt: str, func: Callable[..., _T], *args: Any) -> Union[_T, int]:
        return self._wrapper.call(attempt, func, *args)

    def _register_read(self) -> None:
        self._wrapper.read_count += 1

    def _register_write(self) -> None:
        self._wrapper.write_count += 1

    def _set_eof(self) -> None:
        self._wrapper.eof = True

    def read(self, size: int = READ_BUFFER_SIZE) -> bytes:
        """Read up to ``size`` bytes.

        Returns b"" at end of file (which sets eof()) or, on a non-blocking
        descriptor, when nothing is available yet.
        """
        if size < 1:
            raise ValueError("read size must be positive")
        try:
            data = os.read(self.fd_num(), size)
        except OSError as exc:
            if self._wrapper.would_block(exc):
                return b""
            raise UnixError("read", exc.errno or 0) from exc
        self._register_read()
        if not data:
            self._set_eof()
        return data

    def readv(self, sizes: Iterable[int]) -> list[bytes]:
        """Scatter one read across buffers of the given capacities.

        Returns one buffer per capacity, each trimmed to what was filled.
        On a non-blocking descriptor with nothing available, returns [].
        """
        capacities = list(sizes)
        if not capacities:
            return []
        if any(capacity < 0 for capacity in capacities):
            raise ValueError("buffer sizes must not be negative")
        buffers = [bytearray(capacity) for capacity in capacities]
        try:
            count = os.readv(self.fd_num(), buffers)
        except OSError as exc:
            if self._wrapper.would_block(exc):
                return []
            raise UnixError("read", exc.errno or 0) from exc
        self._register_read()
        if count > sum(capacities):
            raise RuntimeError("read() read more than requested")

        out = []
        remaining = count
        for buf in buffers:
            take = min(remaining, len(buf))
            out.append(bytes(buf[:take]))
            remaining -= take
        return out

    def write(self, data: Union[_BytesLike, Iterable[_BytesLike]]) -> int:
        """Write one buffer or gather several; return the number of bytes written."""
        if isinstance(data, str):
            raise TypeError("data must be bytes-like, not str")
        if isinstance(data, (bytes, bytearray, memoryview)):
            buffers = [data]
        else:
            buffers = list(data)
        total = sum(memoryview(buf).nbytes for buf in buffers)

        written = self._call("writev", os.writev, self.fd_num(), buffers)
        self._register_write()

        if written == 0 and total != 0:
            raise RuntimeError("write returned 0 given non-empty input buffer")
        if written > total:
            raise RuntimeError("write wrote more than length of input buffer")
        return written

    def close(self) -> None:
        self._wrapper.close()

    def duplicate(self) -> "FileDescriptor":
        """Another handle sharing this descriptor and its state."""
        return FileDescriptor._sharing(self._wrapper)

    def set_blocking(self, blocking: bool) -> None:
        flags = self._call("fcntl", fcntl.fcntl, self.fd_num(), fcntl.F_GETFL)
        if blocking:
            flags &= ~os.O_NONBLOCK
        else:
            flags |= os.O_NONBLOCK
        self._call("fcntl", fcntl.fcntl, self.fd_num(), fcntl.F_SETFL, flags)
        self._wrapper.non_blocking = not blocking

    def fd_num(self) -> int:
        return self._wrapper.fd

    def eof(self) -> bool:
        return self._wrapper.eof

    def closed(self) -> bool:
        return self._wrapper.closed

    def read_count(self) -> int:
        return self._wrapper.read_count

    def write_count(self) -> int:
        return self._wrapper.write_count

    def __enter__(self) -> "FileDescriptor":
        return self

    def __exit__(self, *args: object) -> None:
        if not self.closed():
            self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed() else "open"
        return f"<{type(self).__name__} fd={self.fd_num()} {state}>"