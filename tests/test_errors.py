import errno
import os

import pytest

from minnowutil.errors import TaggedError, UnixError, check_system_call


def test_tagged_error_message_joins_attempt_and_message():
    err = TaggedError("lookup", 7, "it broke")
    assert str(err) == "lookup: it broke"
    assert err.error_code == 7
    assert err.attempt == "lookup"


def test_tagged_error_is_an_oserror_with_errno():
    err = TaggedError("op", 3, "msg")
    assert isinstance(err, OSError)
    assert err.errno == 3


def test_unix_error_uses_strerror():
    err = UnixError("open", errno.ENOENT)
    assert str(err) == "open: " + os.strerror(errno.ENOENT)
    assert err.error_code == errno.ENOENT


def test_check_system_call_passes_through_non_negative():
    assert check_system_call("read", 0) == 0
    assert check_system_call("read", 42) == 42


def test_check_system_call_raises_on_negative():
    with pytest.raises(UnixError) as info:
        check_system_call("close", -errno.EBADF)
    assert info.value.error_code == errno.EBADF
    assert str(info.value).startswith("close: ")