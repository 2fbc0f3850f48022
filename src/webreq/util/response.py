from __future__ import annotations

import json
import os
import posixpath
from typing import Any, Mapping
from urllib.parse import unquote

#: Body returned when a response declared as JSON can't be parsed.
MALFORMED_JSON = "Malformed JSON."

JSON_MIME_TYPE = "application/json"

#: File name used for downloads when neither the caller, the server nor the
#: URL path provide one.
DEFAULT_FILENAME = "index.html"


def is_fp_closed(obj: object) -> bool:
    """
    Checks whether a given file-like object is closed.

    :param obj:
        The file-like object to check.
    """

    try:
        # Check `isclosed()` first, in case Python3 doesn't set `closed`.
        # GH Issue #928
        return obj.isclosed()  # type: ignore[no-any-return, attr-defined]
    except AttributeError:
        pass

    try:
        # Check via the official file-like-object way.
        return obj.closed  # type: ignore[no-any-return, attr-defined]
    except AttributeError:
        pass

    try:
        # Check if the object is a container for another file-like object that
        # gets released on exhaustion (e.g. HTTPResponse).
        return obj.fp is None  # type: ignore[attr-defined]
    except AttributeError:
        pass

    raise ValueError("Unable to determine whether fp is closed.")


def _header(headers: Mapping[str, str], name: str) -> str | None:
    # Plain dicts from callers may use any casing.
    value = headers.get(name)
    if value is not None:
        return value
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def get_mime_type(headers: Mapping[str, str]) -> str | None:
    """
    Media type of a response: the ``Content-Type`` value before any
    parameters, lower-cased and without whitespace. ``None`` when the header
    is missing.
    """
    content_type = _header(headers, "content-type")
    if content_type is None:
        return None
    return "".join(content_type.split(";", 1)[0].split()).lower()


def decode_text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Out of range float value {name!r}")


def _loads(text: str) -> Any:
    return json.loads(text, parse_constant=_reject_constant)


def parse_response_body(headers: Mapping[str, str], body: bytes) -> Any:
    """
    Decode a buffered response body based on its ``Content-Type``.

    - ``application/json``: the parsed JSON value, or :data:`MALFORMED_JSON`
      when the payload isn't valid JSON.
    - any other declared type: the UTF-8 text, untouched.
    - no ``Content-Type`` at all: the parsed JSON value if the payload happens
      to be JSON, the UTF-8 text otherwise.
    """
    text = decode_text(body)
    mime_type = get_mime_type(headers)

    if mime_type is None:
        try:
            return _loads(text)
        except ValueError:
            return text

    if mime_type == JSON_MIME_TYPE:
        try:
            return _loads(text)
        except ValueError:
            return MALFORMED_JSON

    return text


def _filename_from_disposition(disposition: str) -> str | None:
    if "=" not in disposition:
        return None
    name = disposition.split("=", 1)[1].split(";", 1)[0].strip().strip("\"'")
    # Never let the server pick a directory.
    name = posixpath.basename(name.replace("\\", "/"))
    return name or None


def resolve_filename(
    headers: Mapping[str, str],
    directory: str,
    request_path: str | None,
    filename: str | None = None,
) -> str:
    """
    Full path of the file a download is written to.

    The name is, in order of preference, ``filename``, the ``filename``
    parameter of a ``Content-Disposition`` header, or the last segment of
    ``request_path``. It is joined onto ``directory``.

    >>> resolve_filename({}, "/tmp", "/files/report.pdf")
    '/tmp/report.pdf'
    """
    name = filename
    if not name:
        disposition = _header(headers, "content-disposition")
        if disposition is not None:
            name = _filename_from_disposition(disposition)
    if not name:
        path = (request_path or "").split("?", 1)[0]
        name = posixpath.basename(unquote(path))
    return os.path.join(directory, name or DEFAULT_FILENAME)
