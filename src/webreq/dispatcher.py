"""
The request pipeline of one logical call.

:class:`Dispatcher` sends the request, follows redirects in a bounded loop and
hands the final response to one of three handlers: the live stream, a file
download, or the buffered and decoded :class:`~webreq.response.Response`.
"""

from __future__ import annotations

import logging
import os
from typing import Union
from urllib.parse import urljoin

from .agent import Agent, get_global_agent
from .config import RequestConfig
from .response import HTTPResponse, Response
from .util.request import ConnectionParams, build_request_options
from .util.response import decode_text, parse_response_body, resolve_filename
from .util.url import parse_url

log = logging.getLogger(__name__)

_TYPE_RESULT = Union[Response, HTTPResponse]


class Dispatcher:
    """
    Runs one call, described by ``config``, to completion.

    Transport errors are raised as they are. HTTP statuses, including 3xx
    responses that are not followed, are never errors.

    :param config:
        The call's configuration. It is owned by this dispatcher for the
        duration of :meth:`dispatch`.
    """

    def __init__(self, config: RequestConfig) -> None:
        self.config = config
        self._private_agent: Agent | None = None

    def _agent_for(self, params: ConnectionParams) -> Agent:
        agent = self.config.agent
        if isinstance(agent, Agent):
            return agent
        if agent is None or agent is True:
            return get_global_agent(params.scheme)

        # ``False`` or a mapping of options: a private agent for this call.
        if self._private_agent is None:
            if agent is False:
                self._private_agent = Agent(keep_alive=False)
            else:
                self._private_agent = Agent.from_options(agent)
        return self._private_agent

    def _redirect_location(
        self, response: HTTPResponse, url: str, redirects: int
    ) -> str | None:
        config = self.config
        if not config.follow_redirects or config.method == "DELETE":
            return None
        location = response.get_redirect_location()
        if not location:
            return None
        if redirects >= config.max_redirects:
            log.debug(
                "Not following redirect to %s, %d redirect(s) already followed",
                location,
                redirects,
            )
            return None
        # Support relative URLs for redirecting.
        return urljoin(url, location)

    def _open(self, url: str) -> HTTPResponse:
        config = self.config
        params = build_request_options(parse_url(url), config)
        pool = self._agent_for(params).connection_pool_for(params)
        return pool.urlopen(
            params.method,
            params.path,
            body=config.body,
            headers=params.headers,
            request_url=url,
        )

    def dispatch(self, url: str) -> _TYPE_RESULT:
        """
        Send the request to ``url`` and resolve the response.

        :returns:
            The live :class:`~webreq.response.HTTPResponse` when ``stream`` is
            set, otherwise a :class:`~webreq.response.Response`.
        """
        config = self.config
        body = config.body
        body.mark()
        redirects = 0
        try:
            while True:
                response = self._open(url)

                redirect_location = self._redirect_location(response, url, redirects)
                if redirect_location is None:
                    break
                if not body.rewind():
                    log.warning(
                        "Unable to replay the request body, not following redirect %s -> %s",
                        url,
                        redirect_location,
                    )
                    break

                response.drain_conn()
                redirects += 1
                log.info("Redirecting %s -> %s", url, redirect_location)
                url = redirect_location

            return self._resolve(response, url)
        finally:
            body.close()
            if self._private_agent is not None:
                self._private_agent.close()

    def _resolve(self, response: HTTPResponse, url: str) -> _TYPE_RESULT:
        config = self.config
        if config.stream:
            return response
        try:
            if config.is_download:
                return self._download(response, url)
            return self._buffer(response)
        finally:
            response.close()

    def _buffer(self, response: HTTPResponse) -> Response:
        data = response.read()
        if not data:
            body = None
        elif self.config.parse:
            body = parse_response_body(response.headers, data)
        else:
            body = decode_text(data)
        return Response(response.status, response.headers, body)

    def _download(self, response: HTTPResponse, url: str) -> Response:
        config = self.config
        assert config.path is not None
        filepath = resolve_filename(
            response.headers, config.path, parse_url(url).path, config.filename
        )
        log.debug("Writing response body of %s to %s", url, filepath)
        try:
            with open(filepath, "wb") as fp:
                for chunk in response.stream():
                    fp.write(chunk)
        except BaseException:
            # Never leave a truncated download behind.
            try:
                os.remove(filepath)
            except OSError:
                log.debug("Unable to remove partial download %s", filepath)
            raise
        return Response(response.status, response.headers, None)


def dispatch(url: str, config: RequestConfig) -> _TYPE_RESULT:
    """Run one call; see :meth:`Dispatcher.dispatch`."""
    return Dispatcher(config).dispatch(url)
