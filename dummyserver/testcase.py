from __future__ import annotations

import socket
import ssl
import threading
import typing

from dummyserver.server import SocketServerThread


def consume_socket(sock: socket.socket, chunks: int = 65536) -> bytearray:
    """
    Read one complete HTTP/1.1 request from ``sock``: the head, then a body
    framed by ``Content-Length`` or by chunked transfer encoding.
    """
    consumed = bytearray()
    while b"\r\n\r\n" not in consumed:
        b = sock.recv(chunks)
        if not b:
            return consumed
        consumed += b

    head, _, body = bytes(consumed).partition(b"\r\n\r\n")
    headers = {}
    for line in head.split(b"\r\n")[1:]:
        key, _, value = line.partition(b":")
        headers[key.strip().lower()] = value.strip()

    if b"content-length" in headers:
        remaining = int(headers[b"content-length"]) - len(body)
        while remaining > 0:
            b = sock.recv(chunks)
            if not b:
                break
            consumed += b
            remaining -= len(b)
    elif headers.get(b"transfer-encoding", b"").lower() == b"chunked":
        while not consumed.endswith(b"0\r\n\r\n"):
            b = sock.recv(chunks)
            if not b:
                break
            consumed += b
    return consumed


def decode_chunked(body: bytes) -> bytes:
    """Payload of a chunked request body."""
    decoded = bytearray()
    while body:
        size_line, _, body = body.partition(b"\r\n")
        size = int(size_line, 16)
        if size == 0:
            break
        decoded += body[:size]
        body = body[size + 2 :]
    return bytes(decoded)


class SocketDummyServerTestCase:
    """
    A simple socket-based server is created for each test that answers a
    fixed number of requests with canned bytes.

    Requests received by the server are recorded in ``received`` in order.
    """

    scheme = "http"
    host = "127.0.0.1"

    server_thread: typing.ClassVar[SocketServerThread]
    port: typing.ClassVar[int]
    received: typing.ClassVar[list[bytes]]

    @classmethod
    def _start_server(
        cls, socket_handler: typing.Callable[[socket.socket], None]
    ) -> None:
        ready_event = threading.Event()
        cls.server_thread = SocketServerThread(
            socket_handler=socket_handler, ready_event=ready_event, host=cls.host
        )
        cls.server_thread.start()
        ready_event.wait(5)
        if not ready_event.is_set():
            raise Exception("most likely failed to start server")
        cls.port = cls.server_thread.port

    @classmethod
    def start_response_handler(
        cls,
        *responses: bytes,
        server_context: ssl.SSLContext | None = None,
    ) -> None:
        """
        Answer one request per item of ``responses``, each on its own
        connection, then stop.
        """
        cls.received = []

        def socket_handler(listener: socket.socket) -> None:
            for response in responses:
                sock = listener.accept()[0]
                if server_context is not None:
                    try:
                        sock = server_context.wrap_socket(sock, server_side=True)
                    except (ssl.SSLError, OSError):
                        # The client gave up on the handshake.
                        sock.close()
                        continue
                try:
                    cls.received.append(bytes(consume_socket(sock)))
                    sock.sendall(response)
                finally:
                    sock.close()

        cls._start_server(socket_handler)

    @classmethod
    def start_keep_alive_handler(cls, *responses: bytes) -> None:
        """
        Accept a single connection and answer one request per item of
        ``responses`` on it.
        """
        cls.received = []

        def socket_handler(listener: socket.socket) -> None:
            sock = listener.accept()[0]
            try:
                for response in responses:
                    cls.received.append(bytes(consume_socket(sock)))
                    sock.sendall(response)
            finally:
                sock.close()

        cls._start_server(socket_handler)

    @classmethod
    def start_basic_handler(cls, num: int = 1) -> None:
        cls.start_response_handler(
            *[b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\nConnection: close\r\n\r\n"]
            * num
        )

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    def teardown_method(self) -> None:
        if hasattr(self, "server_thread"):
            self.server_thread.join(5)

    @staticmethod
    def split_request(request: bytes) -> tuple[bytes, dict[bytes, bytes], bytes]:
        """Request line, headers (lower-cased names) and raw body of ``request``."""
        head, _, body = request.partition(b"\r\n\r\n")
        lines = head.split(b"\r\n")
        headers = {}
        for line in lines[1:]:
            key, _, value = line.partition(b":")
            headers[key.strip().lower()] = value.strip()
        return lines[0], headers, body
