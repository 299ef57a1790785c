"""Conversation registry mapping conversation keys to Dify conversation ids.

Dify keeps chat history server-side and identifies it by an opaque
``conversation_id``. OpenAI clients resend the whole history instead, so the
proxy remembers which Dify conversation a logical conversation key belongs
to. Entries live in memory only, bounded by an LRU size limit and an
optional time-to-live.
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional

logger = logging.getLogger("dify2openai")

DEFAULT_MAX_ENTRIES = 10000

# Singleton instance
_registry: Optional["ConversationRegistry"] = None


class ConversationRegistry:
    """In-memory ``key -> conversation_id`` store with LRU/TTL eviction.

    All access happens on the event loop thread and neither ``get`` nor
    ``set`` awaits, so no lock is needed. Distinct keys never share state.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the registry.

        Args:
            max_entries: Maximum number of keys kept; 0 disables the limit.
            ttl_seconds: Entries older than this are treated as absent.
                None keeps entries for the process lifetime.
            clock: Monotonic time source, replaceable in tests.
        """
        self._entries: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._evictions = 0

    def get(self, key: str) -> str:
        """Return the conversation id for ``key``, or "" when unknown."""
        if not key:
            return ""
        entry = self._entries.get(key)
        if entry is None:
            return ""
        conversation_id, stored_at = entry
        if self._expired(stored_at):
            del self._entries[key]
            self._evictions += 1
            logger.debug(f"ConversationRegistry: Expired entry for {key[:24]}")
            return ""
        self._entries.move_to_end(key)
        return conversation_id

    def set(self, key: str, conversation_id: str) -> None:
        """Associate ``key`` with ``conversation_id``, replacing any prior value."""
        if not key or not conversation_id:
            return
        previous = self._entries.get(key)
        self._entries[key] = (conversation_id, self._clock())
        self._entries.move_to_end(key)
        if previous is None or previous[0] != conversation_id:
            logger.debug(
                f"ConversationRegistry: {key[:24]} -> {conversation_id}"
            )
        if self.max_entries and len(self._entries) > self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(f"ConversationRegistry: Evicted {evicted_key[:24]}")

    def _expired(self, stored_at: float) -> bool:
        if self.ttl_seconds is None:
            return False
        return self._clock() - stored_at > self.ttl_seconds

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and bool(self.get(key))

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("ConversationRegistry: Cleared")

    def stats(self) -> dict:
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "evictions": self._evictions,
        }


def get_conversation_registry() -> ConversationRegistry:
    """Get the process-wide registry, creating a default one on first use."""
    global _registry
    if _registry is None:
        _registry = ConversationRegistry()
    return _registry


def configure_conversation_registry(
    max_entries: int = DEFAULT_MAX_ENTRIES,
    ttl_seconds: Optional[float] = None,
) -> ConversationRegistry:
    """Replace the process-wide registry with one using the given policy."""
    global _registry
    _registry = ConversationRegistry(max_entries=max_entries, ttl_seconds=ttl_seconds)
    logger.info(
        "Conversation registry configured (max_entries=%s, ttl_seconds=%s)",
        max_entries or "unbounded",
        ttl_seconds,
    )
    return _registry


def reset_conversation_registry() -> None:
    """Reset the process-wide registry (for testing)."""
    global _registry
    _registry = None
