#!/usr/bin/env python

"""
Dummy server used for unit testing.
"""

from __future__ import annotations

import logging
import socket
import ssl
import sys
import threading
import typing

import trustme

log = logging.getLogger(__name__)


class SocketServerThread(threading.Thread):
    """
    :param socket_handler: Callable which receives a socket argument for one
        request.
    :param ready_event: Event which gets set when the socket handler is
        ready to receive requests.
    """

    def __init__(
        self,
        socket_handler: typing.Callable[[socket.socket], None],
        host: str = "127.0.0.1",
        ready_event: threading.Event | None = None,
    ) -> None:
        super().__init__()
        self.daemon = True

        self.socket_handler = socket_handler
        self.host = host
        self.ready_event = ready_event

    def _start_server(self) -> None:
        sock = socket.socket(socket.AF_INET)
        if sys.platform != "win32":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.host, 0))
        self.port = sock.getsockname()[1]

        # Once listen() returns, the server socket is ready
        sock.listen(5)

        if self.ready_event:
            self.ready_event.set()

        try:
            self.socket_handler(sock)
        finally:
            sock.close()

    def run(self) -> None:
        self._start_server()


def server_ssl_context(
    ca: trustme.CA, *identities: str, require_client_cert: bool = False
) -> ssl.SSLContext:
    """A server-side context presenting a certificate for ``identities``."""
    ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    ca.issue_cert(*identities).configure_cert(ctx)
    if require_client_cert:
        ctx.verify_mode = ssl.CERT_REQUIRED
        ca.configure_trust(ctx)
    return ctx


def get_closed_port(host: str = "127.0.0.1") -> int:
    """A port nothing listens on: bound once, then released."""
    sock = socket.socket(socket.AF_INET)
    sock.bind((host, 0))
    port: int = sock.getsockname()[1]
    sock.close()
    return port
