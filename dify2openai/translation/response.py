"""Dify responses -> OpenAI chat completion objects.

Dify blocking reply:
    {"event": "message", "message_id": "m1", "conversation_id": "c1",
     "answer": "Hello!", "metadata": {"usage": {...}}, "created_at": 1705395332}

Dify streaming events (one per ``data:`` line):
    data: {"event": "message", "message_id": "m1", "conversation_id": "c1", "answer": "Hel"}
    data: {"event": "message", "message_id": "m1", "conversation_id": "c1", "answer": "lo!"}
    data: {"event": "message_end", "id": "m1", "conversation_id": "c1", "metadata": {"usage": {...}}}

OpenAI output:
    chat.completion for blocking replies, one chat.completion.chunk per
    message/message_end event. Both carry an extra ``conversation_id``
    field when Dify reported one.
"""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from typing import Any, Mapping, Optional

from ..conversations.registry import ConversationRegistry, get_conversation_registry
from ..usage_metrics import USAGE_COUNTERS

logger = logging.getLogger("dify2openai")

DEFAULT_MODEL = "gpt-3.5-turbo"
USAGE_FIELDS = ("prompt_tokens", "completion_tokens", "total_tokens")

# Dify has been seen emitting adjacent string fields without a separator:
#   {"answer": "Hi""conversation_id": "c1"}
# Only that shape is repaired: a closing quote followed directly by a key.
_MISSING_COMMA_PATTERN = re.compile(r'"(\s*)"([A-Za-z_][A-Za-z0-9_]*)"(\s*):')


def convert_usage(metadata: Any) -> dict[str, int]:
    """Copy token counts from Dify ``metadata.usage``, zero-filling gaps."""
    usage = metadata.get("usage") if isinstance(metadata, Mapping) else None
    result = {name: 0 for name in USAGE_FIELDS}
    if not isinstance(usage, Mapping):
        return result
    for name in USAGE_FIELDS:
        value = usage.get(name)
        try:
            result[name] = int(value) if value is not None else 0
        except (TypeError, ValueError):
            result[name] = 0
    return result


def _strip_data_prefix(raw_line: str) -> str:
    line = raw_line.strip()
    if line.startswith("data:"):
        line = line[5:].strip()
    return line


def repair_event_json(text: str) -> str:
    """Insert the separator missing between adjacent string fields."""
    return _MISSING_COMMA_PATTERN.sub(r'",\1"\2"\3:', text)


def parse_event_line(raw_line: str) -> Optional[dict[str, Any]]:
    """Parse one ``data: {...}`` line into a dict.

    Strict parsing is tried first; the missing-comma repair is applied
    only when that fails. Returns None if the line is not a JSON object
    even after repair.
    """
    data_str = _strip_data_prefix(raw_line)
    if not data_str or data_str == "[DONE]":
        return None

    try:
        parsed = json.loads(data_str)
    except json.JSONDecodeError:
        repaired = repair_event_json(data_str)
        if repaired == data_str:
            logger.debug(f"Unparseable Dify event dropped: {data_str[:100]}")
            return None
        try:
            parsed = json.loads(repaired)
        except json.JSONDecodeError:
            logger.debug(f"Unparseable Dify event dropped after repair: {data_str[:100]}")
            return None
        USAGE_COUNTERS.record_frame_repaired()
        logger.debug(f"Repaired malformed Dify event: {data_str[:100]}")

    if not isinstance(parsed, dict):
        return None
    return parsed


class ResponseTranslator:
    """Maps Dify replies and events to OpenAI objects.

    Any conversation_id Dify reveals is written to the registry under the
    active conversation key so the next request continues the same Dify
    conversation.
    """

    def __init__(
        self,
        registry: Optional[ConversationRegistry] = None,
        model: str = DEFAULT_MODEL,
    ) -> None:
        self._registry = registry
        self.model = model

    @property
    def registry(self) -> ConversationRegistry:
        if self._registry is not None:
            return self._registry
        return get_conversation_registry()

    def _register(self, conversation_key: Optional[str], data: Mapping[str, Any]) -> Optional[str]:
        conversation_id = data.get("conversation_id")
        if not isinstance(conversation_id, str) or not conversation_id:
            return None
        if conversation_key:
            self.registry.set(conversation_key, conversation_id)
        return conversation_id

    def translate_blocking(
        self,
        reply: Mapping[str, Any],
        conversation_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> dict[str, Any]:
        """Convert a Dify blocking reply into a chat.completion object."""
        answer = reply.get("answer")
        completion: dict[str, Any] = {
            "id": reply.get("message_id") or reply.get("id") or f"chatcmpl-{uuid.uuid4().hex}",
            "object": "chat.completion",
            "created": int(time.time()),
            "model": model or self.model,
            "choices": [
                {
                    "index": 0,
                    "message": {
                        "role": "assistant",
                        "content": answer if isinstance(answer, str) else "",
                    },
                    "finish_reason": "stop",
                }
            ],
            "usage": convert_usage(reply.get("metadata")),
        }
        conversation_id = self._register(conversation_key, reply)
        if conversation_id:
            completion["conversation_id"] = conversation_id
        return completion

    def _chunk(
        self,
        data: Mapping[str, Any],
        delta: dict[str, Any],
        finish_reason: Optional[str],
        model: Optional[str],
    ) -> dict[str, Any]:
        return {
            "id": data.get("message_id") or data.get("id") or f"chatcmpl-{uuid.uuid4().hex}",
            "object": "chat.completion.chunk",
            "created": int(time.time()),
            "model": model or self.model,
            "choices": [
                {
                    "index": 0,
                    "delta": delta,
                    "finish_reason": finish_reason,
                }
            ],
        }

    def translate_event(
        self,
        data: Mapping[str, Any],
        conversation_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        """Convert one parsed Dify event into a chunk, or None to skip it."""
        event = data.get("event")
        if event == "message":
            answer = data.get("answer")
            chunk = self._chunk(
                data,
                {"content": answer if isinstance(answer, str) else ""},
                None,
                model,
            )
        elif event == "message_end":
            chunk = self._chunk(data, {"role": "assistant"}, "stop", model)
            metadata = data.get("metadata")
            if isinstance(metadata, Mapping) and isinstance(metadata.get("usage"), Mapping):
                chunk["usage"] = convert_usage(metadata)
        else:
            if event == "error":
                logger.warning(
                    "Dify stream reported error: status=%s code=%s message=%s",
                    data.get("status"),
                    data.get("code"),
                    data.get("message"),
                )
            else:
                logger.debug(f"Ignoring Dify event {event!r}")
            return None

        conversation_id = self._register(conversation_key, data)
        if conversation_id:
            chunk["conversation_id"] = conversation_id
        return chunk

    def translate_stream_event(
        self,
        raw_line: str,
        conversation_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        """Convert one raw ``data:`` line into a chunk.

        Never raises: unparseable lines and unexpected failures yield None
        so one bad frame cannot end an otherwise healthy stream.
        """
        data_str = _strip_data_prefix(raw_line)
        if not data_str or data_str == "[DONE]":
            return None
        try:
            data = parse_event_line(raw_line)
            if data is None:
                USAGE_COUNTERS.record_frame_dropped()
                return None
            return self.translate_event(data, conversation_key, model)
        except Exception as exc:
            logger.warning(f"Failed to translate Dify event: {exc}")
            USAGE_COUNTERS.record_frame_dropped()
            return None
