from __future__ import annotations

import io
import logging
from http.client import HTTPException
from http.client import HTTPResponse as _HttplibHTTPResponse
from typing import TYPE_CHECKING, Any, Generator, Iterator, Mapping, NamedTuple

from ._collections import HTTPHeaderDict
from .connection import HTTPConnection
from .util.response import is_fp_closed

if TYPE_CHECKING:
    from .agent import ConnectionPool

log = logging.getLogger(__name__)


class Response(NamedTuple):
    """
    Result of a buffered call or of a download.

    ``body`` is the decoded payload, ``None`` for downloads and for empty
    payloads.
    """

    status_code: int
    headers: HTTPHeaderDict
    body: Any = None


class HTTPResponse(io.IOBase):
    """
    Live HTTP response, returned to callers that ask for a stream.

    Wraps an :class:`http.client.HTTPResponse`. The body is not read
    up front: use :meth:`read`, :meth:`stream` or iterate over the lines of
    the response. This class is also compatible with the Python standard
    library's :mod:`io` module, and can hence be treated as a readable object
    in the context of that framework.

    The connection goes back to its pool once the body has been read to the
    end. Closing the response before that discards the connection.

    :param pool:
        The :class:`~webreq.agent.ConnectionPool` the connection came from.

    :param connection:
        The connection the response is read from.
    """

    REDIRECT_STATUSES = range(300, 400)

    def __init__(
        self,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        status: int = 0,
        version: int = 0,
        reason: str | None = None,
        pool: ConnectionPool | None = None,
        connection: HTTPConnection | None = None,
        request_method: str | None = None,
        request_url: str | None = None,
    ) -> None:
        if isinstance(headers, HTTPHeaderDict):
            self.headers = headers
        else:
            self.headers = HTTPHeaderDict(headers)
        self.status = status
        self.version = version
        self.reason = reason
        self.request_method = request_method
        self._request_url = request_url

        self._fp: _HttplibHTTPResponse | None = None
        if hasattr(body, "read"):
            self._fp = body

        self._pool = pool
        self._connection = connection

    def __repr__(self) -> str:
        return f"<{type(self).__name__} [{self.status}]>"

    @property
    def status_code(self) -> int:
        return self.status

    @property
    def url(self) -> str | None:
        """The URL this response was received from."""
        return self._request_url

    @url.setter
    def url(self, url: str) -> None:
        self._request_url = url

    @property
    def connection(self) -> HTTPConnection | None:
        return self._connection

    def get_redirect_location(self) -> str | None:
        """
        The ``Location`` header of a 3xx response. ``None`` when there is no
        such header or when the status is not a redirect.
        """
        if self.status in self.REDIRECT_STATUSES:
            return self.headers.get("location")
        return None

    def release_conn(self) -> None:
        if not self._pool or not self._connection:
            return None

        self._pool._put_conn(self._connection)
        self._connection = None

    def drain_conn(self) -> None:
        """
        Read and discard any remaining HTTP response data in the response connection.

        Unread data in the HTTPResponse connection blocks the connection from being released back to the pool.
        """
        try:
            self.read()
        except (HTTPException, OSError):
            log.debug("Unable to drain %r, closing its connection", self)
            self.close()

    def isclosed(self) -> bool:
        return is_fp_closed(self._fp)

    def read(self, amt: int | None = None) -> bytes:
        """
        Similar to :meth:`http.client.HTTPResponse.read`, but the connection is
        released to its pool as soon as the body has been read to the end.

        :param amt:
            How much of the content to read. If specified, caching is skipped
            because it doesn't make sense to cache partial content as the full
            response.
        """
        if self._fp is None:
            return b""

        try:
            data = self._fp.read() if amt is None else self._fp.read(amt)
        except BaseException:
            # The connection is in an unknown state, never reuse it.
            if self._connection:
                self._connection.close()
            self.release_conn()
            raise

        if is_fp_closed(self._fp):
            self.release_conn()

        return data

    def stream(self, amt: int | None = 2 ** 16) -> Generator[bytes, None, None]:
        """
        A generator wrapper for the read() method. A call will block until
        ``amt`` bytes have been read from the connection or until the
        connection is closed.

        :param amt:
            How much of the content to read. The generator will return up to
            much data per iteration, but may return less. The empty string will
            never be returned.
        """
        while not is_fp_closed(self._fp):
            data = self.read(amt=amt)

            if not data:
                break
            yield data

    @classmethod
    def from_httplib(
        ResponseCls: type[HTTPResponse], r: _HttplibHTTPResponse, **response_kw: Any
    ) -> HTTPResponse:
        """
        Given an :class:`http.client.HTTPResponse` instance ``r``, return a
        corresponding :class:`webreq.response.HTTPResponse` object.

        Remaining parameters are passed to the HTTPResponse constructor.
        """
        headers = HTTPHeaderDict()
        for key, value in r.getheaders():
            headers.add(key, value)

        return ResponseCls(
            body=r,
            headers=headers,
            status=r.status,
            version=r.version,
            reason=r.reason,
            **response_kw,
        )

    # Overrides from io.IOBase
    def readable(self) -> bool:
        return True

    def readinto(self, b: bytearray | memoryview) -> int:
        data = self.read(len(b))
        if len(data) == 0:
            return 0
        b[: len(data)] = data
        return len(data)

    def close(self) -> None:
        if self._fp is not None and not is_fp_closed(self._fp):
            self._fp.close()
            if self._connection:
                self._connection.close()
        self.release_conn()
        io.IOBase.close(self)

    @property
    def closed(self) -> bool:
        if self._fp is None:
            return True
        return is_fp_closed(self._fp)

    def fileno(self) -> int:
        if self._fp is None:
            raise OSError("HTTPResponse has no file to get a fileno from")
        return self._fp.fileno()

    def __iter__(self) -> Iterator[bytes]:
        buffer: list[bytes] = []
        for chunk in self.stream():
            if b"\n" in chunk:
                chunks = chunk.split(b"\n")
                yield b"".join(buffer) + chunks[0] + b"\n"
                for x in chunks[1:-1]:
                    yield x + b"\n"
                if chunks[-1]:
                    buffer = [chunks[-1]]
                else:
                    buffer = []
            else:
                buffer.append(chunk)
        if buffer:
            yield b"".join(buffer)
