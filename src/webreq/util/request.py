from __future__ import annotations

import typing

from .._collections import HTTPHeaderDict
from ..config import CERTIFICATE_KEYS, METHODS_WITH_PAYLOAD, RequestConfig
from ..exceptions import LocationValueError, ProxySchemeUnknown, URLSchemeUnknown
from .url import Url, parse_url

port_by_scheme = {"http": 80, "https": 443}

#: Content type assumed for payloads sent without one.
DEFAULT_CONTENT_TYPE = "application/json"


class ConnectionParams(typing.NamedTuple):
    """
    Everything the transport needs to open a connection and send one request.

    ``scheme``, ``host`` and ``port`` name the socket peer, which is the proxy
    when one is configured. ``headers`` is ``None`` when there is nothing to
    send. The TLS fields are copied verbatim from the ``certificate`` option
    and only interpreted by the transport.
    """

    scheme: str
    host: str
    port: int
    path: str
    method: str
    headers: HTTPHeaderDict | None = None
    ca: typing.Any = None
    cert: typing.Any = None
    key: typing.Any = None
    passphrase: typing.Any = None
    pfx: typing.Any = None

    @property
    def certificate(self) -> dict:
        """The TLS fields that were given, as a mapping."""
        return {
            key: getattr(self, key)
            for key in CERTIFICATE_KEYS
            if getattr(self, key) is not None
        }


def build_request_options(url: Url, config: RequestConfig) -> ConnectionParams:
    """
    Turn a parsed URL and a call's configuration into transport parameters.

    :param url:
        Destination of the request, as returned by :func:`~webreq.util.url.parse_url`.

    :param config:
        Options of the call. ``config.headers`` is copied, never modified.

    Headers are inferred for POST, PUT and PATCH calls carrying a body:
    ``Content-Type`` defaults to ``application/json`` and, for text bodies,
    ``Content-Length`` is set to the encoded length. With a ``proxy``
    configured the connection targets the proxy, the request path is the full
    destination URL and ``Host`` carries the destination scheme and
    ``host[:port]``.

    Example:

    .. code-block:: python

        params = build_request_options(
            parse_url("https://codecloudandrants.io:8443/a-path?istrue=true"),
            RequestConfig(method="POST"),
        )
        # ConnectionParams(scheme='https', host='codecloudandrants.io',
        #                  port=8443, path='/a-path?istrue=true', method='POST', ...)
    """
    if url.scheme not in port_by_scheme:
        raise URLSchemeUnknown(url.scheme)
    if not url.host:
        raise LocationValueError(f"No host specified in {url.url!r}")

    scheme = url.scheme
    host = url.host
    port = url.port if url.port is not None else port_by_scheme[scheme]
    path = url.path or "/"
    if url.query is not None:
        path += "?" + url.query

    headers = config.headers.copy()

    if config.method in METHODS_WITH_PAYLOAD and not config.body.is_empty:
        if "content-type" not in headers:
            headers["Content-Type"] = DEFAULT_CONTENT_TYPE
        length = config.body.byte_length()
        if length is not None and "content-length" not in headers:
            headers["Content-Length"] = length

    if config.proxy:
        proxy = parse_url(config.proxy)
        if proxy.scheme not in port_by_scheme:
            raise ProxySchemeUnknown(proxy.scheme)
        if not proxy.host:
            raise LocationValueError(f"No host specified in proxy {config.proxy!r}")
        headers["Host"] = f"{url.scheme}://{url.netloc}"
        path = url._replace(path=url.path or "/", fragment=None).url
        scheme = proxy.scheme
        host = proxy.host
        port = proxy.port if proxy.port is not None else port_by_scheme[scheme]

    certificate = {}
    if url.scheme == "https" and config.certificate:
        certificate = config.certificate

    return ConnectionParams(
        scheme=scheme,
        host=host,
        port=port,
        path=path,
        method=config.method,
        headers=headers or None,
        **certificate,
    )
