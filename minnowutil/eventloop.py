"""A poll-based event loop that runs callbacks for interested rules."""

from __future__ import annotations

import enum
import errno
import os
import select
import socket
import sys
import weakref
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .errors import UnixError
from .file_descriptor import FileDescriptor

_MAX_CATEGORIES = 64
_MAX_BUSY_ITERATIONS = 128

Callback = Callable[[], None]
Interest = Callable[[], bool]


class Direction(enum.IntEnum):
    """Whether a rule waits for its descriptor to be readable or writable."""

    IN = select.POLLIN
    OUT = select.POLLOUT


class Result(enum.Enum):
    """The outcome of one EventLoop.wait_next_event call."""

    SUCCESS = enum.auto()  # a rule was served
    TIMEOUT = enum.auto()  # nothing happened before the timeout
    EXIT = enum.auto()  # no rule is left that is interested in anything


@dataclass(eq=False, kw_only=True)
class _BasicRule:
    category_id: int
    callback: Callback
    interest: Optional[Interest] = None
    cancel_requested: bool = False

    def interested(self) -> bool:
        """A rule without an interest function is always interested."""
        return self.interest is None or bool(self.interest())


@dataclass(eq=False, kw_only=True)
class _FDRule(_BasicRule):
    fd: FileDescriptor
    direction: Direction
    on_cancel: Optional[Callback] = None
    on_error: Optional[Callback] = None

    def cancel(self) -> None:
        if self.on_cancel is not None:
            self.on_cancel()

    def error(self) -> None:
        if self.on_error is not None:
            self.on_error()

    def service_count(self) -> int:
        if self.direction is Direction.IN:
            return self.fd.read_count()
        return self.fd.write_count()


class RuleHandle:
    """Lets the owner cancel a rule without keeping it alive."""

    def __init__(self, rule: _BasicRule) -> None:
        self._rule = weakref.ref(rule)

    def cancel(self) -> None:
        """Ask for the rule to be dropped; its cancel callback is not called."""
        rule = self._rule()
        if rule is not None:
            rule.cancel_requested = True


def _socket_error(fd: int) -> Optional[int]:
    """The pending error on a socket, or None if ``fd`` is not a socket."""
    try:
        sock = socket.socket(fileno=fd)
    except OSError as exc:
        if exc.errno == errno.ENOTSOCK:
            return None
        raise UnixError("getsockopt", exc.errno or 0) from exc
    try:
        return sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
    except OSError as exc:
        raise UnixError("getsockopt", exc.errno or 0) from exc
    finally:
        sock.detach()


class EventLoop:
    """Waits for events on file descriptors and runs the matching callbacks."""

    def __init__(self) -> None:
        self._categories: list[str] = []
        self._fd_rules: list[_FDRule] = []
        self._basic_rules: list[_BasicRule] = []

    def add_category(self, name: str) -> int:
        """Register a rule category (used in diagnostics) and return its id."""
        if len(self._categories) >= _MAX_CATEGORIES:
            raise RuntimeError("maximum categories reached")
        self._categories.append(name)
        return len(self._categories) - 1

    def _category_id(self, category: Union[int, str]) -> int:
        if isinstance(category, str):
            return self.add_category(category)
        if not 0 <= category < len(self._categories):
            raise IndexError("bad category_id")
        return category

    def add_rule(
        self,
        category: Union[int, str],
        fd: FileDescriptor,
        direction: Direction,
        callback: Callback,
        interest: Optional[Interest] = None,
        cancel: Optional[Callback] = None,
        error: Optional[Callback] = None,
    ) -> RuleHandle:
        """Run ``callback`` when ``fd`` is ready in ``direction`` and ``interest()`` holds.

        ``category`` is a category id, or a name for a new category. Without
        ``interest`` the rule is always interested.
        """
        rule = _FDRule(
            category_id=self._category_id(category),
            interest=interest,
            callback=callback,
            fd=fd.duplicate(),
            direction=Direction(direction),
            on_cancel=cancel,
            on_error=error,
        )
        self._fd_rules.append(rule)
        return RuleHandle(rule)

    def add_basic_rule(
        self,
        category: Union[int, str],
        callback: Callback,
        interest: Optional[Interest] = None,
    ) -> RuleHandle:
        """Run ``callback`` whenever ``interest()`` holds, with no descriptor involved."""
        rule = _BasicRule(
            category_id=self._category_id(category), interest=interest, callback=callback
        )
        self._basic_rules.append(rule)
        return RuleHandle(rule)

    def _name(self, rule: _BasicRule) -> str:
        return self._categories[rule.category_id]

    def _serve_basic_rules(self) -> bool:
        for rule in list(self._basic_rules):
            if rule.cancel_requested:
                self._basic_rules.remove(rule)
                continue

            fired = False
            iterations = 0
            while rule.interested():
                if iterations >= _MAX_BUSY_ITERATIONS:
                    raise RuntimeError(
                        f'EventLoop: busy wait detected: rule "{self._name(rule)}" is still '
                        f"interested after {iterations + 1} iterations"
                    )
                iterations += 1
                fired = True
                rule.callback()

            if fired:
                return True
        return False

    def _report_error(self, rule: _FDRule) -> None:
        socket_error = _socket_error(rule.fd.fd_num())
        if socket_error is None:
            print(f'error on polled file descriptor for rule "{self._name(rule)}"', file=sys.stderr)
        elif socket_error:
            print(
                f'error on polled socket for rule "{self._name(rule)}": '
                f"{os.strerror(socket_error)}",
                file=sys.stderr,
            )

    def wait_next_event(self, timeout_ms: int) -> Result:
        """Serve at most one rule, waiting up to ``timeout_ms`` (negative: forever)."""
        if self._serve_basic_rules():
            return Result.SUCCESS

        polled: list[tuple[_FDRule, int]] = []
        something_to_poll = False
        for rule in list(self._fd_rules):
            if rule.cancel_requested:
                self._fd_rules.remove(rule)
                continue
            if (rule.direction is Direction.IN and rule.fd.eof()) or rule.fd.closed():
                rule.cancel()
                self._fd_rules.remove(rule)
                continue
            if rule.interested():
                polled.append((rule, int(rule.direction)))
                something_to_poll = True
            else:
                polled.append((rule, 0))  # still watched for errors

        if not something_to_poll:
            return Result.EXIT

        masks: dict[int, int] = {}
        for rule, events in polled:
            fd = rule.fd.fd_num()
            masks[fd] = masks.get(fd, 0) | events
        poller = select.poll()
        for fd, mask in masks.items():
            poller.register(fd, mask)
        try:
            ready = poller.poll(timeout_ms)
        except OSError as exc:
            raise UnixError("poll", exc.errno or 0) from exc
        if not ready:
            return Result.TIMEOUT
        revents_by_fd = dict(ready)

        for rule, events in polled:
            revents = revents_by_fd.get(rule.fd.fd_num(), 0)

            if revents & (select.POLLERR | select.POLLNVAL):
                self._report_error(rule)
                rule.error()
                rule.cancel()
                self._fd_rules.remove(rule)
                continue

            poll_ready = bool(revents & events)
            poll_hup = bool(revents & select.POLLHUP)
            if poll_hup and ((events and not poll_ready) or rule.direction is Direction.OUT):
                # hung up with nothing left to do: this descriptor is defunct
                rule.cancel()
                self._fd_rules.remove(rule)
                continue

            if poll_ready:
                count_before = rule.service_count()
                rule.callback()
                if (
                    count_before == rule.service_count()
                    and not rule.fd.closed()
                    and rule.interested()
                ):
                    raise RuntimeError(
                        f'EventLoop: busy wait detected: rule "{self._name(rule)}" '
                        "did not read/write fd and is still interested"
                    )
                return Result.SUCCESS

        return Result.SUCCESS