"""Bidirectional OpenAI <-> Dify translation.

Key components:
- request: OpenAI chat messages -> Dify chat-messages request
- response: Dify blocking replies and stream events -> OpenAI completions/chunks
"""

from .request import BackendRequest, HistoryEntry, translate_request
from .response import (
    ResponseTranslator,
    convert_usage,
    parse_event_line,
    repair_event_json,
)

__all__ = [
    "BackendRequest",
    "HistoryEntry",
    "ResponseTranslator",
    "convert_usage",
    "parse_event_line",
    "repair_event_json",
    "translate_request",
]
