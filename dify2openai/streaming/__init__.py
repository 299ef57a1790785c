"""Streaming relay between Dify SSE and OpenAI chunk streams."""

from .relay import BackendStream, StreamRelay, StreamState

__all__ = ["BackendStream", "StreamRelay", "StreamState"]
