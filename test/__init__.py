from __future__ import annotations

import errno
import functools
import platform
import socket
import typing

import pytest

_TestFunc = typing.TypeVar("_TestFunc", bound=typing.Callable[..., typing.Any])

# We need a host that will not immediately close the connection with a TCP
# Reset.
if platform.system() == "Windows":
    # Reserved loopback subnet address
    TARPIT_HOST = "127.0.0.0"
else:
    # Reserved internet scoped address
    # https://www.iana.org/assignments/iana-ipv4-special-registry/iana-ipv4-special-registry.xhtml
    TARPIT_HOST = "240.0.0.0"

# Agent timeouts are in milliseconds.
SHORT_TIMEOUT_MS = 10

# How long a test waits on a future before giving up, in seconds.
LONG_TIMEOUT = 5.0


_requires_network_has_route: bool | None = None


def requires_network(test: _TestFunc) -> _TestFunc:
    """Helps you skip tests that require the network"""

    def _is_unreachable_err(err: Exception) -> bool:
        return getattr(err, "errno", None) in (
            errno.ENETUNREACH,
            errno.EHOSTUNREACH,  # For OSX
        )

    def _has_route() -> bool:
        try:
            sock = socket.create_connection((TARPIT_HOST, 80), 0.0001)
            sock.close()
            return True
        except socket.timeout:
            return True
        except OSError as e:
            if _is_unreachable_err(e):
                return False
            else:
                raise

    @functools.wraps(test)
    def wrapper(*args: typing.Any, **kwargs: typing.Any) -> typing.Any:
        global _requires_network_has_route

        if _requires_network_has_route is None:
            _requires_network_has_route = _has_route()

        if not _requires_network_has_route:
            pytest.skip(
                f"Can't run {test.__name__} because the network is unreachable"
            )
        return test(*args, **kwargs)

    return typing.cast(_TestFunc, wrapper)
