"""Per-application objects shared by the route handlers."""

from dataclasses import dataclass

from fastapi import Request

from ..config_loader import ProxySettings
from ..conversations.registry import ConversationRegistry
from ..core.client import DifyClient
from ..translation.response import ResponseTranslator


@dataclass
class ProxyContext:
    settings: ProxySettings
    client: DifyClient
    registry: ConversationRegistry
    translator: ResponseTranslator


def get_proxy_context(request: Request) -> ProxyContext:
    """Return the ProxyContext stored on the application."""
    context = getattr(request.app.state, "proxy", None)
    if context is None:
        raise RuntimeError("Proxy context not initialized. Did you call create_app?")
    return context
