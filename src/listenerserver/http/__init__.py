"""
=============================================================================
HTTP MODULE
=============================================================================

The HTTP/1.1 wire layer, just enough to answer one request per connection:

    request.py        raw bytes ──► HTTPRequest
    response.py       HTTPResponse ──► raw bytes (whole or streamed)
    context.py        RequestContext: request + the right to respond once
    status_codes.py   HTTPStatus
    mime_types.py     file extension ──► Content-Type

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    error_response,
    forbidden,      # 403 Forbidden
    not_found,      # 404 Not Found
    internal_error,       # 500 Internal Server Error
    service_unavailable,  # 503 Service Unavailable
)
from .context import RequestContext, ResponseAlreadySentError, RequestCancelledError
from .status_codes import HTTPStatus
from .mime_types import get_mime_type, get_content_type

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "error_response",
    "forbidden",
    "not_found",
    "internal_error",
    "service_unavailable",

    # Per-request state
    "RequestContext",
    "ResponseAlreadySentError",
    "RequestCancelledError",

    # Status codes
    "HTTPStatus",

    # MIME types
    "get_mime_type",
    "get_content_type",
]
