"""OpenAI chat messages -> Dify chat-messages request.

OpenAI format (full history on every call):
    {"messages": [
        {"role": "system", "content": "..."},
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello!", "conversation_id": "c1"},
        {"role": "user", "content": "How are you?"}
    ]}

Dify format (history kept server-side, addressed by conversation_id):
    {"query": "How are you?", "conversation_id": "c1", "user": "default-user",
     "inputs": {}, "response_mode": "blocking"}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from ..conversations.keys import message_text
from ..conversations.registry import ConversationRegistry, get_conversation_registry
from ..core.exceptions import InvalidRequestError, MissingUserMessageError

logger = logging.getLogger("dify2openai")

DEFAULT_USER = "default-user"
RESPONSE_MODES = ("blocking", "streaming")
# Instruction roles are dropped; Dify applies the app's own prompt.
INSTRUCTION_ROLES = ("system", "developer")
KNOWN_ROLES = INSTRUCTION_ROLES + ("user", "assistant")


@dataclass
class HistoryEntry:
    role: str
    content: str
    message_id: Optional[str] = None
    conversation_id: Optional[str] = None


@dataclass
class BackendRequest:
    """A single outbound Dify chat-messages request."""

    query: str
    conversation_id: str
    user: str
    response_mode: str = "blocking"
    conversation_history: list[HistoryEntry] = field(default_factory=list)
    inputs: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Render the JSON body sent to Dify.

        Only the top-level conversation_id travels; the reconstructed
        history stays local.
        """
        return {
            "inputs": dict(self.inputs),
            "query": self.query,
            "response_mode": self.response_mode,
            "conversation_id": self.conversation_id,
            "user": self.user,
        }


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _validate_message(index: int, message: Any) -> Mapping[str, Any]:
    if not isinstance(message, Mapping):
        raise InvalidRequestError(f"messages[{index}] must be an object")
    role = message.get("role")
    if role not in KNOWN_ROLES:
        raise InvalidRequestError(
            f"messages[{index}].role must be one of {', '.join(KNOWN_ROLES)}"
        )
    return message


def translate_request(
    messages: Sequence[Any],
    conversation_key: str,
    user: Optional[str] = None,
    response_mode: str = "blocking",
    registry: Optional[ConversationRegistry] = None,
    default_user: str = DEFAULT_USER,
) -> BackendRequest:
    """Build the Dify request for an OpenAI message list.

    Args:
        messages: OpenAI chat messages in conversation order.
        conversation_key: Registry key of the logical conversation.
        user: Client-supplied user identifier, if any.
        response_mode: "blocking" or "streaming".
        registry: Registry to consult; defaults to the process-wide one.
        default_user: User identifier sent when the client supplies none.

    Returns:
        The BackendRequest to dispatch.

    Raises:
        MissingUserMessageError: If no user-role message exists.
        InvalidRequestError: If a message is malformed.
    """
    if response_mode not in RESPONSE_MODES:
        raise ValueError(f"Unsupported response mode: {response_mode}")

    validated = [_validate_message(i, m) for i, m in enumerate(messages)]

    last_user = next((m for m in reversed(validated) if m.get("role") == "user"), None)
    if last_user is None:
        raise MissingUserMessageError()
    query = message_text(last_user.get("content"))
    if not query:
        logger.warning("The last user message has empty content; Dify may reject it")

    registry = registry if registry is not None else get_conversation_registry()
    conversation_id = registry.get(conversation_key) or ""

    history: list[HistoryEntry] = []
    for message in validated:
        role = message["role"]
        if role in INSTRUCTION_ROLES:
            continue
        entry = HistoryEntry(
            role=role,
            content=message_text(message.get("content")),
            message_id=_optional_str(message.get("message_id")),
        )
        if role == "assistant":
            entry.conversation_id = _optional_str(message.get("conversation_id"))
            if entry.conversation_id:
                conversation_id = entry.conversation_id
        history.append(entry)

    if conversation_id:
        for entry in history:
            if not entry.conversation_id:
                entry.conversation_id = conversation_id

    resolved_user = _optional_str(user) or default_user or DEFAULT_USER
    logger.debug(
        "Translated %d messages (%d history entries), conversation_id=%r",
        len(validated),
        len(history),
        conversation_id,
    )
    return BackendRequest(
        query=query,
        conversation_id=conversation_id,
        user=resolved_user,
        response_mode=response_mode,
        conversation_history=history,
    )
