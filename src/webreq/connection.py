from __future__ import annotations

import logging
import re
import socket
from http.client import HTTPConnection as _HTTPConnection
from typing import TYPE_CHECKING, Mapping

from ._collections import HTTPHeaderDict
from ._version import __version__
from .body import BodyKind, RequestBody
from .config import METHODS_WITH_PAYLOAD
from .util import connection
from .util.ssl_ import create_webreq_context

if TYPE_CHECKING:
    import ssl

    from .util.request import ConnectionParams

log = logging.getLogger(__name__)

port_by_scheme = {"http": 80, "https": 443}

_CONTAINS_CONTROL_CHAR_RE = re.compile(r"[^-!#$%&'*+.^_`|~0-9a-zA-Z]")

#: Block size used when reading file-like request bodies.
_DEFAULT_BLOCKSIZE = 16384


class HTTPConnection(_HTTPConnection):
    """
    Based on :class:`http.client.HTTPConnection`, with control over the
    options of the underlying socket and a :meth:`send_request` method that
    understands :class:`~webreq.body.RequestBody` payloads.

    Additional keyword parameters are used to configure attributes of the connection.
    Accepted parameters include:

    - ``socket_options``: Set specific options on the underlying socket. If not specified, then
      defaults are loaded from ``HTTPConnection.default_socket_options`` which includes disabling
      Nagle's algorithm (sets TCP_NODELAY to 1).

      For example, if you wish to enable TCP Keep Alive in addition to the defaults,
      you might pass:

      .. code-block:: python

         HTTPConnection.default_socket_options + [
             (socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1),
         ]

      Or you may want to disable the defaults by passing an empty list (e.g., ``[]``).

    Connection errors are raised exactly as :mod:`socket` reports them.
    """

    default_port: int = port_by_scheme["http"]

    #: Disable Nagle's algorithm by default.
    #: ``[(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)]``
    default_socket_options: connection._TYPE_SOCKET_OPTIONS = [
        (socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    ]

    socket_options: connection._TYPE_SOCKET_OPTIONS | None

    def __init__(
        self,
        host: str,
        port: int | None = None,
        timeout: float | None = None,
        blocksize: int = _DEFAULT_BLOCKSIZE,
        socket_options: None | (
            connection._TYPE_SOCKET_OPTIONS
        ) = default_socket_options,
    ) -> None:
        self.socket_options = socket_options

        super().__init__(host=host, port=port, timeout=timeout, blocksize=blocksize)

    @property  # type: ignore[override]
    def host(self) -> str:  # type: ignore[override]
        """
        Getter method to remove any trailing dots that indicate the hostname is an FQDN.

        In general, SSL certificates don't include the trailing dot indicating a
        fully-qualified domain name, and thus, they don't validate properly when
        checked against a domain name that includes the dot. The hostname with
        the trailing dot is kept for the DNS lookup only.
        """
        return self._dns_host.rstrip(".")

    @host.setter
    def host(self, value: str) -> None:
        """
        Setter for the `host` property.

        We assume that only webreq uses the _dns_host attribute; http.client itself
        only uses `host`, and it seems reasonable that other libraries follow suit.
        """
        self._dns_host = value

    def _new_conn(self) -> socket.socket:
        """Establish a socket connection and set nodelay settings on it.

        :return: New socket connection.
        """
        log.debug("Starting new connection to %s:%s", self.host, self.port)
        return connection.create_connection(
            (self._dns_host, self.port),
            self.timeout,
            socket_options=self.socket_options,
        )

    def connect(self) -> None:
        self.sock = self._new_conn()

    def putrequest(
        self,
        method: str,
        url: str,
        skip_host: bool = False,
        skip_accept_encoding: bool = False,
    ) -> None:
        """"""
        # Empty docstring because the indentation of CPython's implementation
        # is broken but we don't want this method in our documentation.
        match = _CONTAINS_CONTROL_CHAR_RE.search(method)
        if match:
            raise ValueError(
                f"Method cannot contain non-token characters {method!r} (found at least {match.group()!r})"
            )

        return super().putrequest(
            method, url, skip_host=skip_host, skip_accept_encoding=skip_accept_encoding
        )

    def send_request(
        self,
        method: str,
        url: str,
        body: RequestBody | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        """
        Send the request line, the headers and the body.

        TEXT and BINARY bodies are sent with a single write, STREAM bodies
        with one write per chunk read from the source. When no
        ``Content-Length`` header is given a non-empty body is sent with
        chunked transfer encoding. An empty POST, PUT or PATCH announces
        ``Content-Length: 0``.
        """
        if body is None:
            body = RequestBody(BodyKind.EMPTY)
        if not isinstance(headers, HTTPHeaderDict):
            headers = HTTPHeaderDict(headers or {})

        skip_host = "host" in headers
        self.putrequest(
            method, url, skip_accept_encoding=True, skip_host=skip_host
        )
        if "user-agent" not in headers:
            self.putheader("User-Agent", _get_default_user_agent())
        for header, value in headers.iteritems():
            self.putheader(header, value)

        chunked = "transfer-encoding" in headers
        if "content-length" not in headers and not chunked:
            if not body.is_empty:
                self.putheader("Transfer-Encoding", "chunked")
                chunked = True
            elif method in METHODS_WITH_PAYLOAD:
                self.putheader("Content-Length", "0")
        self.endheaders()

        for chunk in body.chunks(self.blocksize):
            if chunked:
                to_send = bytearray(f"{len(chunk):x}".encode())
                to_send += b"\r\n"
                to_send += chunk
                to_send += b"\r\n"
                self.send(to_send)
            else:
                self.send(chunk)

        if chunked:
            # After the loop, to always have a closed body
            self.send(b"0\r\n\r\n")


class HTTPSConnection(HTTPConnection):
    """
    Many of the parameters to this constructor are passed to the underlying SSL
    socket by means of :py:func:`webreq.util.ssl_.create_webreq_context`.

    :param ssl_context:
        Context used to wrap the socket. A context trusting the system's CA
        store is created when none is given.
    """

    default_port = port_by_scheme["https"]

    def __init__(
        self,
        host: str,
        port: int | None = None,
        timeout: float | None = None,
        blocksize: int = _DEFAULT_BLOCKSIZE,
        socket_options: None | (
            connection._TYPE_SOCKET_OPTIONS
        ) = HTTPConnection.default_socket_options,
        ssl_context: ssl.SSLContext | None = None,
        server_hostname: str | None = None,
    ) -> None:
        super().__init__(
            host,
            port=port,
            timeout=timeout,
            blocksize=blocksize,
            socket_options=socket_options,
        )
        self.ssl_context = ssl_context
        self.server_hostname = server_hostname

    def connect(self) -> None:
        sock = self._new_conn()
        if self.ssl_context is None:
            self.ssl_context = create_webreq_context()

        server_hostname = self.server_hostname or self.host
        if server_hostname.startswith("["):
            server_hostname = server_hostname.strip("[]")
        try:
            self.sock = self.ssl_context.wrap_socket(
                sock, server_hostname=server_hostname
            )
        except BaseException:
            sock.close()
            raise


def connection_from_params(
    params: "ConnectionParams",
    timeout: float | None = None,
    socket_options: connection._TYPE_SOCKET_OPTIONS | None = None,
    ssl_context: ssl.SSLContext | None = None,
) -> HTTPConnection | HTTPSConnection:
    """
    Build an unconnected connection to the peer named by ``params``.

    The TLS context, when not given, is built from the certificate material
    carried by ``params``.
    """
    if socket_options is None:
        socket_options = HTTPConnection.default_socket_options
    if params.scheme == "https":
        if ssl_context is None:
            ssl_context = create_webreq_context(**params.certificate)
        return HTTPSConnection(
            params.host,
            port=params.port,
            timeout=timeout,
            socket_options=socket_options,
            ssl_context=ssl_context,
        )
    return HTTPConnection(
        params.host, port=params.port, timeout=timeout, socket_options=socket_options
    )


def _get_default_user_agent() -> str:
    return f"python-webreq/{__version__}"
