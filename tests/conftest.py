"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Generator

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dify2openai.config_loader import ConversationSettings, DifySettings, ProxySettings
from dify2openai.conversations.registry import ConversationRegistry, reset_conversation_registry
from dify2openai.testing import FakeDify
from dify2openai.usage_metrics import USAGE_COUNTERS


@pytest.fixture(autouse=True)
def reset_global_state() -> Generator[None, None, None]:
    """Reset the process-wide registry and counters around every test."""
    reset_conversation_registry()
    USAGE_COUNTERS.reset()
    yield
    reset_conversation_registry()
    USAGE_COUNTERS.reset()


@pytest.fixture
def registry() -> ConversationRegistry:
    return ConversationRegistry()


def build_settings(
    *,
    api_base: str = "http://dify.local/v1",
    api_key: str = "app-test-key",
    model_name: str = "gpt-3.5-turbo",
    max_entries: int = 100,
    ttl_seconds: float | None = None,
    cors_origins: tuple[str, ...] = ("*",),
    **dify_overrides: Any,
) -> ProxySettings:
    """Build ProxySettings for an app under test."""
    return ProxySettings(
        dify=DifySettings(api_base=api_base, api_key=api_key, **dify_overrides),
        conversations=ConversationSettings(max_entries=max_entries, ttl_seconds=ttl_seconds),
        host="127.0.0.1",
        port=9999,
        model_name=model_name,
        cors_origins=cors_origins,
    )


@pytest.fixture
def fake_dify() -> FakeDify:
    return FakeDify()


@pytest.fixture
def make_app(fake_dify: FakeDify):
    """Build an app wired to the fake Dify with custom settings."""
    from dify2openai.main import create_app

    def factory(**settings_overrides: Any):
        return create_app(build_settings(**settings_overrides), transport=fake_dify.transport())

    return factory


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client
