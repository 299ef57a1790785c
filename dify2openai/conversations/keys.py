"""Derive the key that correlates calls belonging to one conversation."""

import hashlib
import logging
from typing import Any, Mapping, Optional, Sequence

logger = logging.getLogger("dify2openai")

SESSION_KEY_PREFIX = "session:"
CONTENT_KEY_PREFIX = "content:"


def message_text(content: Any) -> str:
    """Return the text of an OpenAI message ``content`` value.

    Accepts a plain string or the list-of-parts form, where only
    ``{"type": "text", "text": ...}`` parts contribute.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, Mapping) and part.get("type") == "text":
                text = part.get("text")
                if isinstance(text, str):
                    parts.append(text)
            elif isinstance(part, str):
                parts.append(part)
        return "".join(parts)
    return str(content)


def derive_conversation_key(
    messages: Sequence[Any],
    session_id: Optional[str] = None,
) -> str:
    """Return the registry key for a request.

    An explicit session id is used verbatim when present. Otherwise the key
    falls back to a hash of the first message's content, which collides for
    conversations that open with identical text and breaks if a client
    trims the start of its history.
    """
    if session_id is not None:
        session = str(session_id).strip()
        if session:
            return f"{SESSION_KEY_PREFIX}{session}"

    first_content = ""
    if messages:
        first = messages[0]
        if isinstance(first, Mapping):
            first_content = message_text(first.get("content"))
    digest = hashlib.sha256(first_content.encode("utf-8")).hexdigest()
    return f"{CONTENT_KEY_PREFIX}{digest}"
