"""Dify2OpenAI - an OpenAI-compatible front for Dify chat applications.

Exposes ``POST /v1/chat/completions`` and forwards each call to a Dify
``/chat-messages`` endpoint, translating messages, blocking replies and
streamed events between the two protocols.

This module provides:
- create_app: FastAPI application factory
- ConversationRegistry: maps conversation keys to Dify conversation ids
- translate_request / ResponseTranslator: the protocol translators
- StreamRelay: re-streams Dify SSE events as OpenAI chunks

Example:
    >>> from dify2openai import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="0.0.0.0", port=3000)
"""

from .config_loader import ProxySettings, load_config, load_settings
from .conversations import ConversationRegistry, derive_conversation_key
from .logging import logger, setup_logging
from .main import create_app
from .streaming import StreamRelay
from .translation import BackendRequest, ResponseTranslator, translate_request

__all__ = [
    "BackendRequest",
    "ConversationRegistry",
    "ProxySettings",
    "ResponseTranslator",
    "StreamRelay",
    "create_app",
    "derive_conversation_key",
    "load_config",
    "load_settings",
    "logger",
    "setup_logging",
    "translate_request",
]
