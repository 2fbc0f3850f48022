from __future__ import annotations

import asyncio
import concurrent.futures
import dataclasses
import logging
from types import TracebackType
from typing import (
    Any,
    Callable,
    Generator,
    Mapping,
    Optional,
    Union,
)

from .agent import configure_global_agent
from .config import ClientDefaults, RequestConfig
from .dispatcher import dispatch
from .response import HTTPResponse, Response

__all__ = ["Client", "ResponseFuture"]

log = logging.getLogger(__name__)

_TYPE_RESULT = Union[Response, HTTPResponse]
_TYPE_CALLBACK = Callable[[Optional[BaseException], Optional[_TYPE_RESULT]], Any]
_TYPE_OPTIONS = Union[Mapping[str, Any], _TYPE_CALLBACK, None]

_GLOBAL_AGENT_ALIASES = {
    "maxSockets": "max_sockets",
    "maxFreeSockets": "max_free_sockets",
}


class ResponseFuture(concurrent.futures.Future):  # type: ignore[type-arg]
    """
    Pending result of a call.

    A regular :class:`concurrent.futures.Future`, so ``result()`` blocks until
    the call is over. It can also be awaited from a running asyncio event
    loop:

    .. code-block:: python

        response = await client.get("https://example.com/")
    """

    def __await__(self) -> Generator[Any, None, _TYPE_RESULT]:
        return asyncio.wrap_future(self).__await__()


def _run(future: ResponseFuture, fn: Callable[..., Any], *args: Any) -> None:
    if not future.set_running_or_notify_cancel():
        return
    try:
        result = fn(*args)
    except BaseException as exc:
        future.set_exception(exc)
    else:
        future.set_result(result)


def _callback_adapter(callback: _TYPE_CALLBACK) -> Callable[[ResponseFuture], None]:
    def done(future: ResponseFuture) -> None:
        if future.cancelled():
            error: BaseException | None = concurrent.futures.CancelledError()
        else:
            error = future.exception()
        try:
            if error is not None:
                callback(error, None)
            else:
                callback(None, future.result())
        except Exception:
            log.exception("Exception in request callback %r", callback)

    return done


class Client:
    """
    Issues requests on a thread pool and hands back their results.

    :param parse:
        Decode response bodies by content type. Default for every call.

    :param stream:
        Return the live response instead of buffering it. Default for every
        call.

    :param follow_redirects:
        Follow 3xx responses with a ``Location`` header. Default for every
        call.

    :param max_redirects:
        Maximum number of redirects per call. Default for every call.

    :param max_workers:
        Size of the thread pool running the calls.

    Example:

    .. code-block:: python

        import webreq

        with webreq.Client(follow_redirects=True) as client:
            response = client.get("http://httpbin.org/json").result()
            print(response.status_code, response.body)

            def done(error, response):
                print(error or response.status_code)

            client.post("http://httpbin.org/post", {"body": {"a": 1}}, done)
    """

    def __init__(
        self,
        parse: bool = True,
        stream: bool = False,
        follow_redirects: bool = False,
        max_redirects: int = 3,
        max_workers: int | None = None,
    ) -> None:
        self.defaults = ClientDefaults(
            parse=parse,
            stream=stream,
            follow_redirects=follow_redirects,
            max_redirects=max_redirects,
        )
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="webreq"
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.defaults!r})"

    def __enter__(self) -> Client:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def parse(self) -> bool:
        return self.defaults.parse

    @parse.setter
    def parse(self, value: bool) -> None:
        self.defaults.parse = value

    @property
    def stream(self) -> bool:
        return self.defaults.stream

    @stream.setter
    def stream(self, value: bool) -> None:
        self.defaults.stream = value

    @property
    def follow_redirects(self) -> bool:
        return self.defaults.follow_redirects

    @follow_redirects.setter
    def follow_redirects(self, value: bool) -> None:
        self.defaults.follow_redirects = value

    @property
    def max_redirects(self) -> int:
        return self.defaults.max_redirects

    @max_redirects.setter
    def max_redirects(self, value: int) -> None:
        self.defaults.max_redirects = value

    def request(
        self,
        uri: str,
        options: _TYPE_OPTIONS = None,
        callback: _TYPE_CALLBACK | None = None,
        **kwargs: Any,
    ) -> ResponseFuture | None:
        """
        Make a request to ``uri``.

        :param uri:
            Absolute ``http://`` or ``https://`` URL.

        :param options:
            Mapping of call options (``method``, ``headers``, ``body``,
            ``parse``, ``stream``, ``follow_redirects``, ``max_redirects``,
            ``path``, ``filename``, ``agent``, ``certificate``, ``proxy``).
            Keyword arguments are merged over it. When ``options`` is callable
            and ``callback`` isn't given, it is used as the callback.

        :param callback:
            Called once with ``(error, None)`` or ``(None, result)`` when the
            call is over, from a worker thread.

        :returns:
            ``None`` when a callback is given, otherwise a
            :class:`ResponseFuture` for the :class:`~webreq.response.Response`
            (or live :class:`~webreq.response.HTTPResponse` for streams).

        Invalid options and transport errors are reported through the future
        or the callback, never raised here.
        """
        return self._submit(None, uri, options, callback, kwargs)

    def _submit(
        self,
        method: str | None,
        uri: str,
        options: _TYPE_OPTIONS,
        callback: _TYPE_CALLBACK | None,
        kwargs: Mapping[str, Any],
    ) -> ResponseFuture | None:
        if callback is None and callable(options):
            callback, options = options, None

        # Validated on the worker so that bad options reach the future.
        if isinstance(options, Mapping):
            options = dict(options)
        defaults = dataclasses.replace(self.defaults)

        future = ResponseFuture()
        if callback is not None:
            future.add_done_callback(_callback_adapter(callback))
        self._executor.submit(
            _run, future, self._call, uri, options, dict(kwargs), defaults, method
        )

        if callback is not None:
            return None
        return future

    @staticmethod
    def _call(
        uri: str,
        options: Any,
        kwargs: Mapping[str, Any],
        defaults: ClientDefaults,
        method: str | None,
    ) -> _TYPE_RESULT:
        if options is not None and not isinstance(options, Mapping):
            raise TypeError(
                "options must be a mapping or a callback, "
                f"not {type(options).__name__}"
            )
        merged = {**(options or {}), **kwargs}
        config = RequestConfig.from_options(merged, defaults, method)
        return dispatch(uri, config)

    def get(
        self,
        uri: str,
        options: _TYPE_OPTIONS = None,
        callback: _TYPE_CALLBACK | None = None,
        **kwargs: Any,
    ) -> ResponseFuture | None:
        return self._submit("GET", uri, options, callback, kwargs)

    def post(
        self,
        uri: str,
        options: _TYPE_OPTIONS = None,
        callback: _TYPE_CALLBACK | None = None,
        **kwargs: Any,
    ) -> ResponseFuture | None:
        return self._submit("POST", uri, options, callback, kwargs)

    def put(
        self,
        uri: str,
        options: _TYPE_OPTIONS = None,
        callback: _TYPE_CALLBACK | None = None,
        **kwargs: Any,
    ) -> ResponseFuture | None:
        return self._submit("PUT", uri, options, callback, kwargs)

    def patch(
        self,
        uri: str,
        options: _TYPE_OPTIONS = None,
        callback: _TYPE_CALLBACK | None = None,
        **kwargs: Any,
    ) -> ResponseFuture | None:
        return self._submit("PATCH", uri, options, callback, kwargs)

    def delete(
        self,
        uri: str,
        options: _TYPE_OPTIONS = None,
        callback: _TYPE_CALLBACK | None = None,
        **kwargs: Any,
    ) -> ResponseFuture | None:
        return self._submit("DELETE", uri, options, callback, kwargs)

    @staticmethod
    def global_agent(options: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        """
        Set ``max_sockets`` and ``max_free_sockets`` of the global agents.

        Without options the defaults are restored (no socket limit, 256 idle
        sockets per destination).
        """
        merged = {
            _GLOBAL_AGENT_ALIASES.get(key, key): value
            for key, value in {**(options or {}), **kwargs}.items()
            if value is not None
        }
        configure_global_agent(**merged)

    def close(self) -> None:
        """Wait for calls in flight, then shut the thread pool down."""
        self._executor.shutdown(wait=True)
