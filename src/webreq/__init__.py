"""
HTTP/HTTPS client with redirect following, response decoding, streaming and
file downloads on top of pooled connections.
"""

from __future__ import annotations

# Set default logging handler to avoid "No handler found" warnings.
import logging
import warnings
from logging import NullHandler
from typing import Any, Mapping, TextIO

from . import exceptions
from ._collections import HTTPHeaderDict
from ._version import __version__
from .agent import Agent, configure_global_agent
from .body import RequestBody
from .client import Client, ResponseFuture
from .config import ClientDefaults, RequestConfig
from .response import HTTPResponse, Response
from .util.response import MALFORMED_JSON

__license__ = "MIT"
__version__ = __version__

__all__ = (
    "Agent",
    "Client",
    "ClientDefaults",
    "HTTPHeaderDict",
    "HTTPResponse",
    "MALFORMED_JSON",
    "RequestBody",
    "RequestConfig",
    "Response",
    "ResponseFuture",
    "add_stderr_logger",
    "configure_global_agent",
    "delete",
    "disable_warnings",
    "get",
    "global_agent",
    "patch",
    "post",
    "put",
    "request",
)

logging.getLogger(__name__).addHandler(NullHandler())


def add_stderr_logger(level: int = logging.DEBUG) -> "logging.StreamHandler[TextIO]":
    """
    Helper for quickly adding a StreamHandler to the logger. Useful for
    debugging.

    Returns the handler after adding it.
    """
    # This method needs to be in this __init__.py to get the __name__ correct
    # even if webreq is vendored within another package.
    logger = logging.getLogger(__name__)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.debug("Added a stderr logging handler to logger: %s", __name__)
    return handler


# ... Clean up.
del NullHandler


# All warning filters *must* be appended unless you're really certain that they
# shouldn't be: otherwise, it's very hard for users to use most Python
# mechanisms to silence them.
# CertificateConflictWarning's go off every time the conflicting material is used.
warnings.simplefilter("always", exceptions.CertificateConflictWarning, append=True)


def disable_warnings(category: type[Warning] = exceptions.WebReqWarning) -> None:
    """
    Helper for quickly disabling all webreq warnings.
    """
    warnings.simplefilter("ignore", category)


_DEFAULT_CLIENT = Client()


def request(
    uri: str, options: Any = None, callback: Any = None, **kwargs: Any
) -> ResponseFuture | None:
    """
    A convenience, top-level request method. It uses a module-global ``Client`` instance.
    Therefore, its defaults and thread pool are shared across dependencies relying on it.
    To avoid side effects create a new ``Client`` instance and use it instead.
    """
    return _DEFAULT_CLIENT.request(uri, options, callback, **kwargs)


def get(
    uri: str, options: Any = None, callback: Any = None, **kwargs: Any
) -> ResponseFuture | None:
    return _DEFAULT_CLIENT.get(uri, options, callback, **kwargs)


def post(
    uri: str, options: Any = None, callback: Any = None, **kwargs: Any
) -> ResponseFuture | None:
    return _DEFAULT_CLIENT.post(uri, options, callback, **kwargs)


def put(
    uri: str, options: Any = None, callback: Any = None, **kwargs: Any
) -> ResponseFuture | None:
    return _DEFAULT_CLIENT.put(uri, options, callback, **kwargs)


def patch(
    uri: str, options: Any = None, callback: Any = None, **kwargs: Any
) -> ResponseFuture | None:
    return _DEFAULT_CLIENT.patch(uri, options, callback, **kwargs)


def delete(
    uri: str, options: Any = None, callback: Any = None, **kwargs: Any
) -> ResponseFuture | None:
    return _DEFAULT_CLIENT.delete(uri, options, callback, **kwargs)


def global_agent(options: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
    """
    Set the pool sizes of the global agents; see :meth:`Client.global_agent`.
    """
    Client.global_agent(options, **kwargs)
