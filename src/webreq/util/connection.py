from __future__ import annotations

import selectors
import socket
from typing import TYPE_CHECKING, Sequence, Tuple, Union

if TYPE_CHECKING:
    from http.client import HTTPConnection

_TYPE_SOCKET_OPTIONS = Sequence[Tuple[int, int, Union[int, bytes]]]


def wait_for_read(sock: socket.socket, timeout: float | None = None) -> bool:
    """Waits for reading to be available on a given socket.
    Returns True if the socket is readable, or False if the timeout expired.
    """
    with selectors.DefaultSelector() as selector:
        selector.register(sock, selectors.EVENT_READ)
        return bool(selector.select(timeout))


def is_connection_dropped(conn: "HTTPConnection") -> bool:  # Platform-specific
    """
    Returns True if the connection is dropped and should be closed.

    An idle keep-alive connection is never readable: data or EOF waiting on
    it means the server hung up or misbehaved.

    :param conn:
        :class:`http.client.HTTPConnection` object.
    """
    sock = getattr(conn, "sock", None)
    if sock is None:  # Connection already closed (such as by http.client).
        return True
    try:
        return wait_for_read(sock, timeout=0.0)
    except (OSError, ValueError):
        return True


# This function is copied from socket.py in the Python 2.7 standard
# library test suite, without `source_address` and with `socket_options`.
def create_connection(
    address: tuple[str, int],
    timeout: float | None = None,
    socket_options: _TYPE_SOCKET_OPTIONS | None = None,
) -> socket.socket:
    """Connect to *address* and return the socket object.

    Convenience function.  Connect to *address* (a 2-tuple ``(host,
    port)``) and return the socket object.  The optional *timeout* is set on
    the socket before attempting to connect; ``None`` leaves it blocking.
    Errors from name resolution and from the last connection attempt are
    raised unchanged.
    """

    host, port = address
    if host.startswith("["):
        host = host.strip("[]")
    err = None

    for res in socket.getaddrinfo(host, port, 0, socket.SOCK_STREAM):
        af, socktype, proto, canonname, sa = res
        sock = None
        try:
            sock = socket.socket(af, socktype, proto)

            # If provided, set socket level options before connecting.
            _set_socket_options(sock, socket_options)

            sock.settimeout(timeout)
            sock.connect(sa)
            # Break explicitly a reference cycle
            err = None
            return sock

        except OSError as e:
            err = e
            if sock is not None:
                sock.close()

    if err is not None:
        try:
            raise err
        finally:
            # Break explicitly a reference cycle
            err = None
    else:
        raise OSError("getaddrinfo returns an empty list")


def _set_socket_options(
    sock: socket.socket, options: _TYPE_SOCKET_OPTIONS | None
) -> None:
    if options is None:
        return

    for opt in options:
        sock.setsockopt(*opt)
