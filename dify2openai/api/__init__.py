"""API module for the proxy."""

from .context import ProxyContext, get_proxy_context
from .routes import chat_completions, handle_chat_request, health

__all__ = [
    "ProxyContext",
    "chat_completions",
    "get_proxy_context",
    "handle_chat_request",
    "health",
]
