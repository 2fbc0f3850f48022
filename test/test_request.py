from __future__ import annotations

import io
import typing

import pytest

from webreq._collections import HTTPHeaderDict
from webreq.config import RequestConfig
from webreq.exceptions import (
    LocationValueError,
    ProxySchemeUnknown,
    URLSchemeUnknown,
)
from webreq.util.request import ConnectionParams, build_request_options
from webreq.util.url import parse_url


def build(url: str, **options: typing.Any) -> ConnectionParams:
    return build_request_options(parse_url(url), RequestConfig.from_options(options))


class TestBuildRequestOptions:
    def test_default_get(self) -> None:
        params = build("http://someurl.not/")
        assert params == ConnectionParams(
            scheme="http", host="someurl.not", port=80, path="/", method="GET"
        )
        assert params.headers is None

    @pytest.mark.parametrize(
        "url, port",
        [
            ("http://someurl.not/", 80),
            ("https://someurl.not/", 443),
            ("http://someurl.not:8080/", 8080),
            ("https://someurl.not:8443/", 8443),
        ],
    )
    def test_port_defaults_by_scheme(self, url: str, port: int) -> None:
        assert build(url).port == port

    @pytest.mark.parametrize(
        "url, path",
        [
            ("https://codecloudandrants.io:8443/a-path?istrue=true", "/a-path?istrue=true"),
            ("https://codecloudandrants.io/a-path", "/a-path"),
            ("https://codecloudandrants.io", "/"),
            ("https://codecloudandrants.io?q=1", "/?q=1"),
            ("https://codecloudandrants.io/a#fragment", "/a"),
        ],
    )
    def test_path(self, url: str, path: str) -> None:
        assert build(url).path == path

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH"])
    def test_json_content_type_is_inferred(self, method: str) -> None:
        params = build("http://someurl.not/", method=method, body='{"a":1}')
        assert params.headers is not None
        assert params.headers["Content-Type"] == "application/json"
        assert params.headers["Content-Length"] == "7"

    def test_content_length_is_utf8_length(self) -> None:
        params = build("http://someurl.not/", method="POST", body="héllo")
        assert params.headers is not None
        assert params.headers["content-length"] == "6"

    def test_structured_body_length(self) -> None:
        params = build("http://someurl.not/", method="POST", body={"data": "data"})
        assert params.headers is not None
        assert params.headers["content-length"] == str(len('{"data": "data"}'))

    def test_explicit_content_type_is_kept(self) -> None:
        params = build(
            "http://someurl.not/",
            method="POST",
            body="a=b",
            headers={"content-type": "application/x-www-form-urlencoded"},
        )
        assert params.headers is not None
        assert params.headers.getlist("Content-Type") == [
            "application/x-www-form-urlencoded"
        ]

    def test_explicit_content_length_is_kept(self) -> None:
        params = build(
            "http://someurl.not/",
            method="PUT",
            body="abc",
            headers={"CONTENT-LENGTH": "3"},
        )
        assert params.headers is not None
        assert params.headers.getlist("content-length") == ["3"]

    @pytest.mark.parametrize("body", [b"binary", io.BytesIO(b"stream")])
    def test_no_length_for_binary_and_stream(self, body: typing.Any) -> None:
        params = build("http://someurl.not/", method="POST", body=body)
        assert params.headers is not None
        assert params.headers["Content-Type"] == "application/json"
        assert "Content-Length" not in params.headers

    @pytest.mark.parametrize("method", ["GET", "DELETE"])
    def test_no_inference_for_other_methods(self, method: str) -> None:
        params = build("http://someurl.not/", method=method, body="data")
        assert params.headers is None

    def test_no_inference_without_body(self) -> None:
        assert build("http://someurl.not/", method="POST").headers is None

    def test_request_headers_are_not_mutated(self) -> None:
        config = RequestConfig.from_options(
            {"method": "POST", "body": "x", "headers": {"X-A": "1"}}
        )
        params = build_request_options(parse_url("http://someurl.not/"), config)
        assert params.headers is not None
        assert "content-type" in params.headers
        assert config.headers == HTTPHeaderDict({"X-A": "1"})

    def test_proxy(self) -> None:
        params = build("https://someurl.not/x", proxy="http://proxy:8080")
        assert params.scheme == "http"
        assert params.host == "proxy"
        assert params.port == 8080
        assert params.path == "https://someurl.not/x"
        assert params.headers is not None
        assert params.headers["Host"] == "https://someurl.not"

    def test_proxy_keeps_query_and_default_port(self) -> None:
        params = build("http://someurl.not?a=1#frag", proxy="https://proxy")
        assert params.scheme == "https"
        assert params.port == 443
        assert params.path == "http://someurl.not/?a=1"

    def test_proxy_host_keeps_target_port(self) -> None:
        params = build("http://someurl.not:8081/x", proxy="http://proxy:8080")
        assert params.path == "http://someurl.not:8081/x"
        assert params.headers is not None
        assert params.headers["Host"] == "http://someurl.not:8081"

    def test_path_is_percent_encoded(self) -> None:
        assert build("http://someurl.not/caf\u00e9 x?q=\u00e9").path == "/caf%C3%A9%20x?q=%C3%A9"

    @pytest.mark.parametrize("proxy", ["socks5://proxy:1080", "proxy:8080"])
    def test_proxy_scheme_unknown(self, proxy: str) -> None:
        with pytest.raises(ProxySchemeUnknown):
            build("http://someurl.not/", proxy=proxy)

    def test_certificate_is_copied_for_https(self) -> None:
        certificate = {"ca": "ca-pem", "cert": "cert-pem", "key": "key-pem"}
        params = build("https://someurl.not/", certificate=certificate)
        assert params.ca == "ca-pem"
        assert params.cert == "cert-pem"
        assert params.key == "key-pem"
        assert params.passphrase is None
        assert params.certificate == certificate

    def test_certificate_is_dropped_for_http(self) -> None:
        params = build("http://someurl.not/", certificate={"ca": "ca-pem"})
        assert params.ca is None
        assert params.certificate == {}

    def test_unknown_scheme(self) -> None:
        with pytest.raises(URLSchemeUnknown):
            build("ftp://someurl.not/")

    def test_no_host(self) -> None:
        with pytest.raises(LocationValueError):
            build("http:///path")
