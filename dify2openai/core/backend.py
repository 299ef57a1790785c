"""Dify backend configuration and utilities."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger("dify2openai")

DEFAULT_TIMEOUT = 30.0
CHAT_MESSAGES_PATH = "/chat-messages"


@dataclass
class DifyBackend:
    """Represents the Dify application the proxy forwards to."""

    base_url: str
    api_key: str
    timeout: Optional[float] = DEFAULT_TIMEOUT

    def build_url(self, path: str = CHAT_MESSAGES_PATH) -> str:
        """Build the full URL for a backend request."""
        base = self.base_url.rstrip("/")
        normalized_path = path or ""
        if not normalized_path.startswith("/"):
            normalized_path = f"/{normalized_path}"
        return f"{base}{normalized_path}"


def build_outbound_headers(api_key: str, is_stream: bool = False) -> dict[str, str]:
    """Build headers for outbound requests to Dify."""
    headers = {
        "Content-Type": "application/json",
        # Explicitly request uncompressed responses
        "Accept-Encoding": "identity",
    }
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    if is_stream:
        headers["Accept"] = "text/event-stream"
    return headers


def format_httpx_error(exc: Any, backend: DifyBackend, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    request = None
    try:
        request = exc.request
    except (AttributeError, RuntimeError):
        # httpx raises RuntimeError when the request was never attached
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        timeout = backend.timeout or DEFAULT_TIMEOUT
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


def describe_error_body(status_code: int, body: bytes) -> str:
    """Build an error message from a Dify error response body.

    Dify errors look like ``{"code": "invalid_param", "message": "...", "status": 400}``.
    """
    detail = ""
    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        code = payload.get("code")
        if message:
            detail = f"{code}: {message}" if code else str(message)
    if not detail:
        detail = body.decode("utf-8", errors="replace").strip()[:500]
    if detail:
        return f"Dify API error {status_code}: {detail}"
    return f"Dify API error {status_code}"
