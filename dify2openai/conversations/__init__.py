"""Conversation identity tracking.

- registry: in-memory map from conversation key to Dify conversation id
- keys: derivation of the conversation key from a request
"""

from .keys import derive_conversation_key, message_text
from .registry import (
    ConversationRegistry,
    configure_conversation_registry,
    get_conversation_registry,
    reset_conversation_registry,
)

__all__ = [
    "ConversationRegistry",
    "configure_conversation_registry",
    "derive_conversation_key",
    "get_conversation_registry",
    "message_text",
    "reset_conversation_registry",
]
