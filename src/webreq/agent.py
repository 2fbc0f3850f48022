"""
Connection-pooling agents.

An :class:`Agent` keeps one :class:`ConnectionPool` per destination, keyed on
the scheme, host and port of the socket peer plus the TLS material used to
reach it. Two process-level agents, one for ``http`` and one for ``https``,
serve every call that doesn't bring its own.
"""

from __future__ import annotations

import logging
import queue
import socket
import threading
from types import TracebackType
from typing import Any, Hashable, Mapping, Tuple

from ._collections import HTTPHeaderDict
from .body import RequestBody
from .connection import HTTPConnection, HTTPSConnection, connection_from_params
from .response import HTTPResponse
from .util.connection import _TYPE_SOCKET_OPTIONS, is_connection_dropped
from .util.request import ConnectionParams
from .util.ssl_ import create_webreq_context

__all__ = [
    "Agent",
    "ConnectionPool",
    "configure_global_agent",
    "get_global_agent",
]

log = logging.getLogger(__name__)

_TYPE_POOL_KEY = Tuple[str, str, int, Hashable]

# camelCase spellings accepted as aliases.
_OPTION_ALIASES = {
    "keepAlive": "keep_alive",
    "keepAliveMsecs": "keep_alive_msecs",
    "maxSockets": "max_sockets",
    "maxFreeSockets": "max_free_sockets",
}

DEFAULT_MAX_FREE_SOCKETS = 256


def _freeze(value: Any) -> Hashable:
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, bytearray):
        return bytes(value)
    return value


def _normalize_options(options: Mapping[str, Any]) -> dict[str, Any]:
    return {_OPTION_ALIASES.get(key, key): value for key, value in options.items()}


class ConnectionPool:
    """
    Thread-safe connection pool for one destination.

    :param params:
        Connection parameters of the first request to this destination. Only
        the scheme, host, port and TLS material are used.

    :param keep_alive:
        Put connections back into the pool after their response has been read.
        When ``False`` every connection is closed after one request.

    :param max_sockets:
        Number of connections that can be in use at the same time. Further
        requests block until a connection is released. ``None`` means no
        limit.

    :param max_free_sockets:
        Number of idle connections to save for reuse. If more connections are
        released, the extra ones are closed.

    :param timeout:
        Socket timeout in seconds, ``None`` to block.

    :param socket_options:
        Options set on every new socket.
    """

    def __init__(
        self,
        params: ConnectionParams,
        keep_alive: bool = False,
        max_sockets: int | None = None,
        max_free_sockets: int = DEFAULT_MAX_FREE_SOCKETS,
        timeout: float | None = None,
        socket_options: _TYPE_SOCKET_OPTIONS | None = None,
    ) -> None:
        self.scheme = params.scheme
        self.host = params.host
        self.port = params.port
        self.keep_alive = keep_alive and max_free_sockets > 0
        self.timeout = timeout
        self.socket_options = socket_options

        self.ssl_context = None
        if self.scheme == "https":
            self.ssl_context = create_webreq_context(**params.certificate)
        self._params = params

        self.pool: queue.LifoQueue[HTTPConnection] | None = queue.LifoQueue(
            max(max_free_sockets, 1)
        )
        self._sockets: threading.BoundedSemaphore | None = None
        if max_sockets is not None:
            self._sockets = threading.BoundedSemaphore(max_sockets)

        self.num_connections = 0
        self.num_requests = 0

    def __str__(self) -> str:
        return f"{type(self).__name__}(host={self.host!r}, port={self.port!r})"

    def _new_conn(self) -> HTTPConnection | HTTPSConnection:
        """
        Return a fresh connection.
        """
        self.num_connections += 1
        log.debug(
            "Starting new %s connection (%d): %s:%s",
            self.scheme.upper(),
            self.num_connections,
            self.host,
            self.port,
        )
        return connection_from_params(
            self._params,
            timeout=self.timeout,
            socket_options=self.socket_options,
            ssl_context=self.ssl_context,
        )

    def _get_conn(self) -> HTTPConnection | HTTPSConnection:
        """
        Get a connection. Will return a pooled connection if one is available.

        If no connections are available and ``max_sockets`` are already in
        use, this blocks until a connection is released. Otherwise, a fresh
        connection is returned.
        """
        if self._sockets is not None:
            self._sockets.acquire()

        conn = None
        if self.pool is not None:
            try:
                conn = self.pool.get(block=False)
            except queue.Empty:
                pass  # Oh well, we'll create a new connection then

        # If this is a persistent connection, check if it got disconnected
        if conn and is_connection_dropped(conn):
            log.debug("Resetting dropped connection: %s", self.host)
            conn.close()

        return conn or self._new_conn()

    def _put_conn(self, conn: HTTPConnection | None) -> None:
        """
        Put a connection back into the pool and give up its slot.

        :param conn:
            Connection object for the current host and port as returned by
            :meth:`._new_conn` or :meth:`._get_conn`, or ``None`` when the
            connection was lost.

        If the pool is already full, the connection is closed and discarded
        because we exceeded max_free_sockets. If connections are discarded
        frequently, then max_free_sockets should be increased.

        If the pool is closed, or keep-alive is off, or the server asked to
        close the connection, then the connection will be closed and
        discarded.
        """
        try:
            if conn is None:
                return
            if self.pool is not None and self.keep_alive and conn.sock is not None:
                try:
                    self.pool.put(conn, block=False)
                    return  # Everything is dandy, done.
                except queue.Full:
                    log.warning(
                        "Connection pool is full, discarding connection: %s. "
                        "Connection pool size: %s",
                        self.host,
                        self.pool.qsize(),
                    )
            # Connection never got put back into the pool, close it.
            conn.close()
        finally:
            if self._sockets is not None:
                self._sockets.release()

    def urlopen(
        self,
        method: str,
        url: str,
        body: RequestBody | None = None,
        headers: HTTPHeaderDict | None = None,
        request_url: str | None = None,
    ) -> HTTPResponse:
        """
        Get a connection from the pool and perform an HTTP request.

        :param method:
            HTTP request method (such as GET, POST, PUT, etc.)

        :param url:
            The request target: a path with its query, or the absolute URL
            when talking to a forward proxy.

        :param body:
            The payload, sent by :meth:`~webreq.connection.HTTPConnection.send_request`.

        :param headers:
            Request headers.

        :param request_url:
            Full URL of the request, recorded on the response.

        The response body is not read: the connection is released when the
        returned :class:`~webreq.response.HTTPResponse` has been read to the
        end or closed. Errors are raised unchanged and the connection is
        closed.
        """
        conn = self._get_conn()
        try:
            self.num_requests += 1
            conn.send_request(method, url, body=body, headers=headers)
            httplib_response = conn.getresponse()
        except BaseException:
            # The connection may hold a half-sent request or a half-read
            # response; it can never be reused.
            conn.close()
            self._put_conn(None)
            raise

        log.debug(
            '%s://%s:%s "%s %s %s" %s %s',
            self.scheme,
            self.host,
            self.port,
            method,
            url,
            conn._http_vsn_str,  # type: ignore[attr-defined]
            httplib_response.status,
            httplib_response.length,
        )

        return HTTPResponse.from_httplib(
            httplib_response,
            pool=self,
            connection=conn,
            request_method=method,
            request_url=request_url,
        )

    def close(self) -> None:
        """
        Close all pooled connections and disable the pool.

        In-flight connections are closed when they are released.
        """
        if self.pool is None:
            return
        # Disable access to the pool
        old_pool, self.pool = self.pool, None

        while True:
            try:
                conn = old_pool.get(block=False)
            except queue.Empty:
                break  # Done.
            conn.close()


class Agent:
    """
    Keeps track of connection pools, one per destination.

    :param keep_alive:
        Reuse connections after their response has been read.

    :param keep_alive_msecs:
        With ``keep_alive``, idle time in milliseconds before the first TCP
        keep-alive probe is sent.

    :param max_sockets:
        Maximum number of connections in use per destination. ``None`` means
        no limit.

    :param max_free_sockets:
        Maximum number of idle connections kept per destination.

    :param timeout:
        Socket timeout in milliseconds, ``None`` to block.

    Example:

    .. code-block:: python

        import webreq

        with webreq.Agent(keep_alive=True, max_sockets=10) as agent:
            webreq.get("https://example.com/", agent=agent).result()
    """

    def __init__(
        self,
        keep_alive: bool = False,
        keep_alive_msecs: int = 1000,
        max_sockets: int | None = None,
        max_free_sockets: int = DEFAULT_MAX_FREE_SOCKETS,
        timeout: float | None = None,
    ) -> None:
        if max_sockets is not None and max_sockets < 1:
            raise ValueError(f"max_sockets must be at least 1, got {max_sockets!r}")
        if max_free_sockets < 0:
            raise ValueError(
                f"max_free_sockets can't be negative, got {max_free_sockets!r}"
            )
        self.keep_alive = keep_alive
        self.keep_alive_msecs = keep_alive_msecs
        self.max_sockets = max_sockets
        self.max_free_sockets = max_free_sockets
        self.timeout = timeout

        self.pools: dict[_TYPE_POOL_KEY, ConnectionPool] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> Agent:
        """
        Build an agent from a mapping of options. The camelCase
        spellings (``keepAlive``, ``maxSockets``, ...) are accepted too.
        """
        return cls(**_normalize_options(options))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(keep_alive={self.keep_alive!r}, "
            f"max_sockets={self.max_sockets!r}, "
            f"max_free_sockets={self.max_free_sockets!r})"
        )

    def __enter__(self) -> Agent:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def socket_options(self) -> _TYPE_SOCKET_OPTIONS:
        options = list(HTTPConnection.default_socket_options)
        if self.keep_alive:
            options.append((socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1))
            if hasattr(socket, "TCP_KEEPIDLE"):
                idle = max(1, self.keep_alive_msecs // 1000)
                options.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, idle))
        return options

    def _pool_key(self, params: ConnectionParams) -> _TYPE_POOL_KEY:
        material: Hashable = None
        if params.scheme == "https":
            material = tuple(
                (key, _freeze(value)) for key, value in params.certificate.items()
            )
        return (params.scheme, params.host.lower(), params.port, material)

    def _new_pool(self, params: ConnectionParams) -> ConnectionPool:
        timeout = self.timeout / 1000.0 if self.timeout is not None else None
        return ConnectionPool(
            params,
            keep_alive=self.keep_alive,
            max_sockets=self.max_sockets,
            max_free_sockets=self.max_free_sockets,
            timeout=timeout,
            socket_options=self.socket_options,
        )

    def connection_pool_for(self, params: ConnectionParams) -> ConnectionPool:
        """
        Get the :class:`ConnectionPool` for the destination of ``params``,
        creating it on first use.
        """
        key = self._pool_key(params)
        with self._lock:
            pool = self.pools.get(key)
            if pool is None:
                pool = self._new_pool(params)
                self.pools[key] = pool
            return pool

    def configure(
        self,
        max_sockets: int | None = None,
        max_free_sockets: int = DEFAULT_MAX_FREE_SOCKETS,
    ) -> None:
        """
        Change the pool sizes. Existing pools are closed, so new limits
        apply to every connection opened from now on.
        """
        if max_sockets is not None and max_sockets < 1:
            raise ValueError(f"max_sockets must be at least 1, got {max_sockets!r}")
        if max_free_sockets < 0:
            raise ValueError(
                f"max_free_sockets can't be negative, got {max_free_sockets!r}"
            )
        with self._lock:
            self.max_sockets = max_sockets
            self.max_free_sockets = max_free_sockets
        log.debug(
            "Configured %r (max_sockets=%s, max_free_sockets=%s)",
            self,
            max_sockets,
            max_free_sockets,
        )
        self.clear()

    def clear(self) -> None:
        """
        Empty our store of pools and direct them all to close.

        This will not affect in-flight connections, but they will not be
        re-used after completion.
        """
        with self._lock:
            pools, self.pools = self.pools, {}
        for pool in pools.values():
            pool.close()

    close = clear


#: Process-level agents used when a call doesn't bring its own.
_GLOBAL_AGENTS = {
    "http": Agent(keep_alive=True),
    "https": Agent(keep_alive=True),
}


def get_global_agent(scheme: str) -> Agent:
    """The process-level agent for connections using ``scheme``."""
    return _GLOBAL_AGENTS[scheme]


def configure_global_agent(
    max_sockets: int | None = None,
    max_free_sockets: int = DEFAULT_MAX_FREE_SOCKETS,
) -> None:
    """
    Set the pool sizes of both global agents.

    Called without arguments it restores the defaults: no limit on sockets
    in use and 256 idle sockets per destination.
    """
    for agent in _GLOBAL_AGENTS.values():
        agent.configure(max_sockets=max_sockets, max_free_sockets=max_free_sockets)
