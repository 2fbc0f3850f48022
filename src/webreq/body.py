"""
Request body variants.

A call's ``body`` option is classified exactly once, when the call is
normalized, into a :class:`RequestBody` of one of four kinds. The rest of the
pipeline only looks at :attr:`RequestBody.kind`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator as _IteratorABC
from enum import Enum
from typing import IO, Any, Iterable, Iterator, Union

log = logging.getLogger(__name__)

_TYPE_BODY = Union[None, str, bytes, bytearray, memoryview, IO[Any], Iterable[bytes], Any]

#: Block size used when reading file-like bodies.
_DEFAULT_BLOCKSIZE = 16384


class BodyKind(Enum):
    EMPTY = "empty"
    TEXT = "text"
    BINARY = "binary"
    STREAM = "stream"


class RequestBody:
    """
    Tagged union over the supported request payloads.

    - ``EMPTY``: no payload.
    - ``TEXT``: a ``str``, sent UTF-8 encoded. Structured values (dicts, lists,
      numbers, ...) are serialized with :func:`json.dumps` into this kind.
    - ``BINARY``: ``bytes``-like content, sent as-is.
    - ``STREAM``: a readable file object or an iterator of byte chunks. Its
      chunks are sent in order as they are produced.

    Build instances with :meth:`from_value` or :meth:`from_file`.
    """

    __slots__ = ("kind", "content", "_owned", "_position")

    def __init__(self, kind: BodyKind, content: Any = None, owned: bool = False) -> None:
        self.kind = kind
        self.content = content
        self._owned = owned
        self._position: int | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.name})"

    @classmethod
    def from_value(cls, value: _TYPE_BODY) -> RequestBody:
        if value is None:
            return cls(BodyKind.EMPTY)
        if isinstance(value, RequestBody):
            return value
        if isinstance(value, str):
            return cls(BodyKind.TEXT, value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(BodyKind.BINARY, bytes(value))
        if hasattr(value, "read") or isinstance(value, _IteratorABC):
            return cls(BodyKind.STREAM, value)
        return cls(BodyKind.TEXT, json.dumps(value))

    @classmethod
    def from_file(cls, path: str) -> RequestBody:
        """
        Stream the file at ``path``. The file is opened here and closed by
        :meth:`close` once the call is over.
        """
        return cls(BodyKind.STREAM, open(path, "rb"), owned=True)

    @property
    def is_empty(self) -> bool:
        return self.kind is BodyKind.EMPTY

    def byte_length(self) -> int | None:
        """Length of a ``TEXT`` body in UTF-8 bytes, ``None`` for other kinds."""
        if self.kind is BodyKind.TEXT:
            return len(self.content.encode("utf-8"))
        return None

    def chunks(self, blocksize: int = _DEFAULT_BLOCKSIZE) -> Iterator[bytes]:
        """Yield the payload as a sequence of non-empty ``bytes`` chunks."""
        if self.kind is BodyKind.EMPTY:
            return
        if self.kind is BodyKind.TEXT:
            if self.content:
                yield self.content.encode("utf-8")
        elif self.kind is BodyKind.BINARY:
            if self.content:
                yield self.content
        elif hasattr(self.content, "read"):
            while True:
                block = self.content.read(blocksize)
                if not block:
                    break
                yield _as_bytes(block)
        else:
            for chunk in self.content:
                if chunk:
                    yield _as_bytes(chunk)

    def mark(self) -> None:
        """
        Record the current position of a seekable stream so the body can be
        sent again after a redirect.
        """
        if self.kind is not BodyKind.STREAM or self._position is not None:
            return
        tell = getattr(self.content, "tell", None)
        if tell is None:
            return
        try:
            self._position = tell()
        except OSError:
            self._position = None

    def rewind(self) -> bool:
        """
        Prepare the body to be sent again. Returns ``False`` when that isn't
        possible (an iterator, or a stream that can't seek).
        """
        if self.kind is not BodyKind.STREAM:
            return True
        body_seek = getattr(self.content, "seek", None)
        if body_seek is None or self._position is None:
            return False
        try:
            body_seek(self._position)
        except OSError:
            log.debug("Unable to rewind request body %r", self.content)
            return False
        return True

    def close(self) -> None:
        if self._owned:
            self.content.close()


def _as_bytes(chunk: str | bytes | bytearray) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)
