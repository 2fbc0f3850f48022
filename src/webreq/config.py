"""
Per-call configuration.

Instance-level defaults live in a :class:`ClientDefaults` value. At call time
they are merged with the call's options into a fresh :class:`RequestConfig`,
which is then owned by that one call.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any, Mapping, Union

from ._collections import HTTPHeaderDict
from .body import BodyKind, RequestBody

if TYPE_CHECKING:
    from .agent import Agent

__all__ = ["ClientDefaults", "RequestConfig", "METHODS", "CERTIFICATE_KEYS"]

METHODS = frozenset(["GET", "POST", "PUT", "PATCH", "DELETE"])

#: Methods whose body gets ``Content-Type``/``Content-Length`` inference.
METHODS_WITH_PAYLOAD = frozenset(["POST", "PUT", "PATCH"])

#: Methods that upload the file named by ``path`` when no body is given.
METHODS_WITH_UPLOAD = frozenset(["POST", "PUT"])

#: TLS material forwarded to the transport for HTTPS calls.
CERTIFICATE_KEYS = ("ca", "cert", "key", "passphrase", "pfx")

_TYPE_AGENT = Union[None, bool, "Agent", Mapping[str, Any]]

# camelCase spellings accepted as aliases.
_OPTION_ALIASES = {
    "followRedirects": "follow_redirects",
    "maxRedirects": "max_redirects",
}

_DEFAULTED_OPTIONS = ("parse", "stream", "follow_redirects", "max_redirects")


@dataclasses.dataclass
class ClientDefaults:
    """Instance-level settings applied to every call of a client."""

    parse: bool = True
    stream: bool = False
    follow_redirects: bool = False
    max_redirects: int = 3


@dataclasses.dataclass
class RequestConfig:
    """
    Options for one logical call, including its redirect chain.

    :param method:
        One of GET, POST, PUT, PATCH or DELETE.

    :param headers:
        Request headers; names compare case-insensitively.

    :param body:
        The payload, already classified as a :class:`~webreq.body.RequestBody`.

    :param parse:
        Decode the response body by content type. When ``False`` the body is
        returned as text.

    :param stream:
        Hand the live :class:`~webreq.response.HTTPResponse` to the caller
        instead of buffering it.

    :param follow_redirects:
        Follow 3xx responses carrying a ``Location`` header.

    :param max_redirects:
        Maximum number of redirects followed for this call.

    :param path:
        Download directory for GET calls, upload source for POST/PUT calls
        without a body.

    :param filename:
        File name used for downloads instead of the one the server suggests.

    :param agent:
        ``None`` for the global agent, an :class:`~webreq.agent.Agent`, a
        mapping of agent options, or ``False`` to disable pooling.

    :param certificate:
        TLS client material (``ca``, ``cert``, ``key``, ``passphrase``,
        ``pfx``) for HTTPS calls.

    :param proxy:
        URL of a forwarding proxy.
    """

    method: str = "GET"
    headers: HTTPHeaderDict = dataclasses.field(default_factory=HTTPHeaderDict)
    body: RequestBody = dataclasses.field(
        default_factory=lambda: RequestBody(BodyKind.EMPTY)
    )
    parse: bool = True
    stream: bool = False
    follow_redirects: bool = False
    max_redirects: int = 3
    path: str | None = None
    filename: str | None = None
    agent: _TYPE_AGENT = None
    certificate: dict[str, Any] | None = None
    proxy: str | None = None

    @classmethod
    def from_options(
        cls,
        options: Mapping[str, Any] | None = None,
        defaults: ClientDefaults | None = None,
        method: str | None = None,
    ) -> RequestConfig:
        """
        Build the configuration of one call.

        ``options`` values that are ``None`` count as not given. ``parse``,
        ``stream``, ``follow_redirects`` and ``max_redirects`` fall back to
        ``defaults``; ``method``, when given, overrides whatever the options
        say.
        """
        if defaults is None:
            defaults = ClientDefaults()

        given: dict[str, Any] = {}
        for key, value in (options or {}).items():
            key = _OPTION_ALIASES.get(key, key)
            if key not in _FIELD_NAMES:
                raise TypeError(f"Unexpected request option {key!r}")
            if value is not None:
                given[key] = value

        for key in _DEFAULTED_OPTIONS:
            given.setdefault(key, getattr(defaults, key))

        if method is not None:
            given["method"] = method
        given["method"] = _normalize_method(given.get("method", "GET"))

        given["headers"] = HTTPHeaderDict(given.get("headers") or {})

        if "certificate" in given:
            given["certificate"] = _normalize_certificate(given["certificate"])

        body = given.get("body")
        if (
            body is None
            and given.get("path")
            and given["method"] in METHODS_WITH_UPLOAD
        ):
            given["body"] = RequestBody.from_file(given["path"])
        else:
            given["body"] = RequestBody.from_value(body)

        return cls(**given)

    @property
    def is_download(self) -> bool:
        return self.path is not None and self.method == "GET"


_FIELD_NAMES = frozenset(f.name for f in dataclasses.fields(RequestConfig))


def _normalize_method(method: str) -> str:
    normalized = str(method).upper()
    if normalized not in METHODS:
        raise ValueError(
            f"Unsupported method {method!r}, expected one of {', '.join(sorted(METHODS))}"
        )
    return normalized


def _normalize_certificate(certificate: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(certificate) - set(CERTIFICATE_KEYS)
    if unknown:
        raise TypeError(
            f"Unexpected certificate option(s) {', '.join(sorted(unknown))}"
        )
    return dict(certificate)
