"""Core exceptions for the proxy."""

from typing import Any, Optional


class ProxyError(Exception):
    """Base exception for proxy errors.

    Carries the HTTP status and error type used to build the
    ``{"error": {...}}`` body returned to the client.
    """

    status_code = 500
    error_type = "internal_server_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_type is not None:
            self.error_type = error_type

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "status": self.status_code,
            }
        }


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    status_code = 400
    error_type = "invalid_request_error"


class MissingUserMessageError(InvalidRequestError):
    """Raised when the message list holds no user-role message."""

    def __init__(self, message: str = "No user message found") -> None:
        super().__init__(message)


class UpstreamError(ProxyError):
    """Raised when Dify answers with a non-2xx status or cannot be reached."""

    error_type = "upstream_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[bytes] = None,
    ) -> None:
        super().__init__(message, status_code=status_code or 500)
        self.body = body
