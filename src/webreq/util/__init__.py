# For convenience, allow you to access the helpers of the submodules from
# here.
from .connection import is_connection_dropped
from .request import ConnectionParams, build_request_options
from .response import (
    MALFORMED_JSON,
    is_fp_closed,
    parse_response_body,
    resolve_filename,
)
from .ssl_ import create_webreq_context
from .url import Url, parse_url

__all__ = (
    "ConnectionParams",
    "MALFORMED_JSON",
    "Url",
    "build_request_options",
    "create_webreq_context",
    "is_connection_dropped",
    "is_fp_closed",
    "parse_response_body",
    "parse_url",
    "resolve_filename",
)
