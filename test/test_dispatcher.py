from __future__ import annotations

import io
import logging
import typing
from pathlib import Path
from unittest import mock

import pytest

from webreq.agent import Agent, ConnectionPool
from webreq.body import RequestBody
from webreq.config import RequestConfig
from webreq.dispatcher import Dispatcher, dispatch
from webreq.response import HTTPResponse, Response
from webreq.util.response import MALFORMED_JSON


class Sent(typing.NamedTuple):
    host: str
    port: int
    method: str
    url: str
    body: bytes
    headers: typing.Any
    request_url: str | None


class FakeServer:
    """Answers ``ConnectionPool.urlopen`` with canned responses, in order."""

    def __init__(self, *responses: HTTPResponse) -> None:
        self.responses = list(responses)
        self.sent: list[Sent] = []

    def urlopen(
        self,
        pool: ConnectionPool,
        method: str,
        url: str,
        body: RequestBody | None = None,
        headers: typing.Any = None,
        request_url: str | None = None,
    ) -> HTTPResponse:
        data = b"".join(body.chunks()) if body is not None else b""
        self.sent.append(
            Sent(pool.host, pool.port, method, url, data, headers, request_url)
        )
        response = self.responses.pop(0)
        response.url = request_url  # type: ignore[assignment]
        return response


def respond(
    status: int = 200,
    body: bytes = b"",
    headers: dict[str, str] | None = None,
) -> HTTPResponse:
    return HTTPResponse(body=io.BytesIO(body), headers=headers, status=status)


def redirect(location: str, status: int = 302) -> HTTPResponse:
    return respond(status, b"moved", {"Location": location})


@pytest.fixture()
def server() -> typing.Generator[FakeServer, None, None]:
    server = FakeServer()
    with mock.patch.object(
        ConnectionPool, "urlopen", autospec=True, side_effect=server.urlopen
    ):
        yield server


def run(url: str, **options: typing.Any) -> typing.Any:
    return dispatch(url, RequestConfig.from_options(options))


class TestBuffered:
    def test_json(self, server: FakeServer) -> None:
        server.responses.append(
            respond(200, b'{"a": [1, 2]}', {"Content-Type": "application/json"})
        )
        response = run("http://localhost/json")
        assert isinstance(response, Response)
        assert response.status_code == 200
        assert response.body == {"a": [1, 2]}
        assert response.headers["content-type"] == "application/json"
        assert server.sent[0].method == "GET"
        assert server.sent[0].url == "/json"

    def test_malformed_json(self, server: FakeServer) -> None:
        server.responses.append(
            respond(200, b"{nope", {"Content-Type": "application/json; charset=utf-8"})
        )
        assert run("http://localhost/").body == MALFORMED_JSON

    def test_parse_off_returns_text(self, server: FakeServer) -> None:
        server.responses.append(
            respond(200, b'{"a": 1}', {"Content-Type": "application/json"})
        )
        assert run("http://localhost/", parse=False).body == '{"a": 1}'

    def test_empty_payload(self, server: FakeServer) -> None:
        server.responses.append(respond(204))
        response = run("http://localhost/")
        assert response.status_code == 204
        assert response.body is None

    def test_error_status_is_a_response(self, server: FakeServer) -> None:
        server.responses.append(respond(500, b"boom", {"Content-Type": "text/plain"}))
        response = run("http://localhost/")
        assert response.status_code == 500
        assert response.body == "boom"

    def test_post_body_and_headers(self, server: FakeServer) -> None:
        server.responses.append(respond(201))
        run("http://localhost:8080/items?x=1", method="post", body={"name": "é"})
        sent = server.sent[0]
        assert (sent.host, sent.port) == ("localhost", 8080)
        assert sent.method == "POST"
        assert sent.url == "/items?x=1"
        assert sent.body == b'{"name": "\\u00e9"}'
        assert sent.headers["Content-Type"] == "application/json"
        assert sent.headers["Content-Length"] == str(len(sent.body))

    def test_transport_error_propagates(self) -> None:
        error = ConnectionRefusedError(111, "Connection refused")
        with mock.patch.object(ConnectionPool, "urlopen", side_effect=error):
            with pytest.raises(ConnectionRefusedError) as e:
                run("http://localhost/")
        assert e.value is error

    def test_response_is_closed(self, server: FakeServer) -> None:
        live = respond(200, b"text")
        server.responses.append(live)
        run("http://localhost/")
        assert live.closed


class TestRedirects:
    def test_not_followed_by_default(self, server: FakeServer) -> None:
        server.responses.append(redirect("/next"))
        response = run("http://localhost/")
        assert response.status_code == 302
        assert response.headers["location"] == "/next"
        assert len(server.sent) == 1

    def test_followed_once(self, server: FakeServer, caplog: pytest.LogCaptureFixture) -> None:
        server.responses.extend([redirect("/next"), respond(200, b"done")])
        with caplog.at_level(logging.INFO, logger="webreq.dispatcher"):
            response = run("http://localhost/start", follow_redirects=True)
        assert response.status_code == 200
        assert response.body == "done"
        assert [s.url for s in server.sent] == ["/start", "/next"]
        assert server.sent[1].request_url == "http://localhost/next"
        assert "Redirecting http://localhost/start -> http://localhost/next" in caplog.text

    def test_relative_location(self, server: FakeServer) -> None:
        server.responses.extend([redirect("c?d=1"), respond(200)])
        run("http://localhost/a/b", follow_redirects=True)
        assert server.sent[1].url == "/a/c?d=1"

    def test_absolute_location_to_other_host(self, server: FakeServer) -> None:
        server.responses.extend([redirect("http://example.com:81/x"), respond(200)])
        run("http://localhost/", follow_redirects=True)
        sent = server.sent[1]
        assert (sent.host, sent.port, sent.url) == ("example.com", 81, "/x")

    def test_missing_location(self, server: FakeServer) -> None:
        server.responses.append(respond(301, b"", {}))
        response = run("http://localhost/", follow_redirects=True)
        assert response.status_code == 301
        assert len(server.sent) == 1

    def test_delete_is_never_redirected(self, server: FakeServer) -> None:
        server.responses.append(redirect("/next"))
        response = run("http://localhost/", method="DELETE", follow_redirects=True)
        assert response.status_code == 302
        assert len(server.sent) == 1

    @pytest.mark.parametrize("max_redirects", [0, 1, 3])
    def test_ceiling(self, server: FakeServer, max_redirects: int) -> None:
        server.responses.extend(redirect(f"/{i}") for i in range(max_redirects + 1))
        response = run(
            "http://localhost/", follow_redirects=True, max_redirects=max_redirects
        )
        assert response.status_code == 302
        assert len(server.sent) == max_redirects + 1

    def test_method_and_body_are_kept(self, server: FakeServer) -> None:
        server.responses.extend([redirect("/next", 307), respond(200)])
        run("http://localhost/", method="PUT", body="data", follow_redirects=True)
        assert [(s.method, s.body) for s in server.sent] == [
            ("PUT", b"data"),
            ("PUT", b"data"),
        ]

    def test_seekable_stream_is_replayed(self, server: FakeServer) -> None:
        server.responses.extend([redirect("/next", 308), respond(200)])
        fp = io.BytesIO(b"0123456789")
        fp.seek(2)
        run("http://localhost/", method="POST", body=fp, follow_redirects=True)
        assert [s.body for s in server.sent] == [b"23456789", b"23456789"]

    def test_iterator_body_is_not_replayed(
        self, server: FakeServer, caplog: pytest.LogCaptureFixture
    ) -> None:
        server.responses.append(redirect("/next", 307))
        response = run(
            "http://localhost/",
            method="POST",
            body=iter([b"a", b"b"]),
            follow_redirects=True,
        )
        assert response.status_code == 307
        assert len(server.sent) == 1
        assert "Unable to replay the request body" in caplog.text


class TestStream:
    def test_returns_live_response(self, server: FakeServer) -> None:
        live = respond(200, b"line 1\nline 2\n")
        server.responses.append(live)
        response = run("http://localhost/", stream=True)
        assert response is live
        assert not live.closed
        assert list(response) == [b"line 1\n", b"line 2\n"]

    def test_stream_after_redirect(self, server: FakeServer) -> None:
        first = redirect("/next")
        server.responses.extend([first, respond(200, b"payload")])
        response = run("http://localhost/", stream=True, follow_redirects=True)
        assert isinstance(response, HTTPResponse)
        assert response.url == "http://localhost/next"
        assert response.read() == b"payload"


class TestFiles:
    def test_download_uses_disposition(self, server: FakeServer, tmp_path: Path) -> None:
        server.responses.append(
            respond(
                200,
                b"pdf bytes",
                {"Content-Disposition": 'attachment; filename="report.pdf"'},
            )
        )
        response = run("http://localhost/files/1", path=str(tmp_path))
        assert response.status_code == 200
        assert response.body is None
        assert (tmp_path / "report.pdf").read_bytes() == b"pdf bytes"

    def test_download_filename_option_wins(self, server: FakeServer, tmp_path: Path) -> None:
        server.responses.append(
            respond(200, b"data", {"Content-Disposition": "attachment; filename=a.txt"})
        )
        run("http://localhost/b.txt", path=str(tmp_path), filename="c.txt")
        assert [p.name for p in tmp_path.iterdir()] == ["c.txt"]

    def test_download_name_from_url(self, server: FakeServer, tmp_path: Path) -> None:
        server.responses.append(respond(200, b"data"))
        run("http://localhost/dir/b%20c.txt?x=1", path=str(tmp_path))
        assert (tmp_path / "b c.txt").read_bytes() == b"data"

    def test_download_default_name(self, server: FakeServer, tmp_path: Path) -> None:
        server.responses.append(respond(200, b"<html>"))
        run("http://localhost/", path=str(tmp_path))
        assert (tmp_path / "index.html").read_bytes() == b"<html>"

    def test_download_after_redirect_uses_final_url(
        self, server: FakeServer, tmp_path: Path
    ) -> None:
        server.responses.extend([redirect("/real.bin"), respond(200, b"\x00\x01")])
        run("http://localhost/alias", path=str(tmp_path), follow_redirects=True)
        assert (tmp_path / "real.bin").read_bytes() == b"\x00\x01"

    def test_download_name_from_non_ascii_url(
        self, server: FakeServer, tmp_path: Path
    ) -> None:
        server.responses.append(respond(200, b"data"))
        run("http://localhost/dir/caf\u00e9 1.txt", path=str(tmp_path))
        assert server.sent[0].url == "/dir/caf%C3%A9%201.txt"
        assert (tmp_path / "caf\u00e9 1.txt").read_bytes() == b"data"

    def test_truncated_download_is_removed(
        self, server: FakeServer, tmp_path: Path
    ) -> None:
        class ResetMidBody(io.BytesIO):
            def read(self, size: int | None = -1) -> bytes:
                data = super().read(4)
                if not data:
                    raise ConnectionResetError("connection reset by peer")
                return data

        server.responses.append(
            HTTPResponse(
                body=ResetMidBody(b"first part"),
                headers={"Content-Disposition": "attachment; filename=big.bin"},
                status=200,
            )
        )
        with pytest.raises(ConnectionResetError):
            run("http://localhost/big", path=str(tmp_path))
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.parametrize("method", ["POST", "PUT"])
    def test_upload_from_path(
        self, server: FakeServer, tmp_path: Path, method: str
    ) -> None:
        source = tmp_path / "upload.bin"
        source.write_bytes(b"file content")
        server.responses.append(respond(200))
        config = RequestConfig.from_options({"method": method, "path": str(source)})
        Dispatcher(config).dispatch("http://localhost/upload")
        assert server.sent[0].body == b"file content"
        assert config.body.content.closed

    def test_body_wins_over_path(self, server: FakeServer, tmp_path: Path) -> None:
        server.responses.append(respond(200))
        run("http://localhost/", method="POST", body="inline", path=str(tmp_path))
        assert server.sent[0].body == b"inline"
        assert list(tmp_path.iterdir()) == []


class TestAgents:
    def test_global_agent_by_default(self, server: FakeServer) -> None:
        server.responses.append(respond(200))
        with mock.patch.object(Agent, "close") as close:
            run("http://localhost/")
        close.assert_not_called()

    @pytest.mark.parametrize("agent", [False, {"maxSockets": 2}])
    def test_private_agent_is_closed(self, server: FakeServer, agent: typing.Any) -> None:
        server.responses.append(respond(200))
        config = RequestConfig.from_options({"agent": agent})
        dispatcher = Dispatcher(config)
        with mock.patch.object(Agent, "close") as close:
            dispatcher.dispatch("http://localhost/")
        close.assert_called_once_with()
        assert dispatcher._private_agent is not None
        assert dispatcher._private_agent.keep_alive is False
        if agent:
            assert dispatcher._private_agent.max_sockets == 2

    def test_private_agent_is_closed_on_error(self) -> None:
        with mock.patch.object(ConnectionPool, "urlopen", side_effect=OSError()):
            with mock.patch.object(Agent, "close") as close:
                with pytest.raises(OSError):
                    run("http://localhost/", agent=False)
        close.assert_called_once_with()

    def test_given_agent_is_used_and_kept(self, server: FakeServer) -> None:
        server.responses.extend([redirect("/next"), respond(200)])
        agent = Agent(keep_alive=True)
        run("http://localhost/", agent=agent, follow_redirects=True)
        assert len(agent.pools) == 1
        pool = next(iter(agent.pools.values()))
        assert pool.pool is not None
        agent.close()
