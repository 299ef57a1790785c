"""API routes for the proxy."""

from .chat import chat_completions, handle_chat_request
from .health import health

__all__ = [
    "chat_completions",
    "handle_chat_request",
    "health",
]
