"""Core module initialization."""

from .backend import (
    DifyBackend,
    build_outbound_headers,
    describe_error_body,
    format_httpx_error,
)
from .client import DifyClient, DifyStream
from .exceptions import (
    ConfigurationError,
    InvalidRequestError,
    MissingUserMessageError,
    ProxyError,
    UpstreamError,
)
from .sse import DONE_FRAME, SSELineBuffer, format_sse_frame

__all__ = [
    "ConfigurationError",
    "DONE_FRAME",
    "DifyBackend",
    "DifyClient",
    "DifyStream",
    "InvalidRequestError",
    "MissingUserMessageError",
    "ProxyError",
    "SSELineBuffer",
    "UpstreamError",
    "build_outbound_headers",
    "describe_error_body",
    "format_httpx_error",
    "format_sse_frame",
]
