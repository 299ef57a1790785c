"""Tests for the conversation registry."""

import pytest

from dify2openai.conversations.registry import (
    ConversationRegistry,
    configure_conversation_registry,
    get_conversation_registry,
    reset_conversation_registry,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestConversationRegistry:
    def test_unknown_key_returns_empty_string(self, registry):
        assert registry.get("missing") == ""

    def test_set_then_get_returns_value(self, registry):
        registry.set("k", "conv-1")
        assert registry.get("k") == "conv-1"

    def test_later_set_overwrites(self, registry):
        registry.set("k", "conv-1")
        registry.set("k", "conv-2")
        assert registry.get("k") == "conv-2"
        assert len(registry) == 1

    def test_distinct_keys_do_not_interfere(self, registry):
        registry.set("a", "conv-a")
        registry.set("b", "conv-b")
        assert registry.get("a") == "conv-a"
        assert registry.get("b") == "conv-b"

    def test_empty_values_are_ignored(self, registry):
        registry.set("", "conv-1")
        registry.set("k", "")
        assert len(registry) == 0

    def test_lru_eviction_drops_least_recently_used(self):
        registry = ConversationRegistry(max_entries=2)
        registry.set("a", "1")
        registry.set("b", "2")
        # Touch "a" so "b" becomes least recently used
        assert registry.get("a") == "1"
        registry.set("c", "3")

        assert registry.get("b") == ""
        assert registry.get("a") == "1"
        assert registry.get("c") == "3"
        assert registry.stats()["evictions"] == 1

    def test_zero_max_entries_is_unbounded(self):
        registry = ConversationRegistry(max_entries=0)
        for i in range(50):
            registry.set(f"k{i}", f"v{i}")
        assert len(registry) == 50

    def test_ttl_expires_entries(self):
        clock = FakeClock()
        registry = ConversationRegistry(ttl_seconds=60, clock=clock)
        registry.set("k", "conv-1")

        clock.now += 59
        assert registry.get("k") == "conv-1"

        clock.now += 2
        assert registry.get("k") == ""
        assert len(registry) == 0

    def test_contains_and_clear(self, registry):
        registry.set("k", "conv-1")
        assert "k" in registry
        registry.clear()
        assert "k" not in registry


class TestRegistrySingleton:
    def test_get_returns_same_instance(self):
        assert get_conversation_registry() is get_conversation_registry()

    def test_configure_replaces_instance(self):
        original = get_conversation_registry()
        configured = configure_conversation_registry(max_entries=5, ttl_seconds=10)
        assert configured is not original
        assert get_conversation_registry() is configured
        assert configured.stats()["max_entries"] == 5
        assert configured.stats()["ttl_seconds"] == 10

    def test_reset_drops_instance(self):
        first = get_conversation_registry()
        first.set("k", "v")
        reset_conversation_registry()
        assert get_conversation_registry().get("k") == ""


@pytest.mark.parametrize("value", ["abc", "a-very-long-conversation-id-" * 3])
def test_roundtrip_for_arbitrary_values(registry, value):
    registry.set("key", value)
    assert registry.get("key") == value
