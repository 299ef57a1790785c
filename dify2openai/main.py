"""Main FastAPI application for the Dify to OpenAI proxy."""

import logging
import socket
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.context import ProxyContext
from .api.routes import chat_completions, health
from .config_loader import ProxySettings, load_config, load_settings
from .conversations.registry import configure_conversation_registry
from .core.backend import DifyBackend
from .core.client import DifyClient
from .logging import setup_logging
from .translation.response import ResponseTranslator
from .usage_metrics import USAGE_COUNTERS

logger = logging.getLogger("dify2openai")


def _log_startup(settings: ProxySettings) -> None:
    logger.info("Dify2OpenAI proxy starting up...")
    logger.info("Configured bind address %s:%s", settings.host, settings.port)
    if settings.host == "0.0.0.0":
        hostname = socket.gethostname()
        logger.info("Reachable on local network at http://%s:%s", hostname, settings.port)
    logger.info("Forwarding to Dify at %s", settings.dify.api_base)
    logger.info("Dify2OpenAI proxy ready to handle requests")


def configure_cors(app: FastAPI, origins: Sequence[str]) -> None:
    """Allow browser clients from the configured origins to call the proxy."""
    if not origins:
        logger.info("CORS disabled")
        return
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("CORS enabled for origins: %s", ", ".join(origins))


def create_app(
    settings: Optional[ProxySettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Validated settings. Loaded from the YAML config when omitted.
        transport: Optional httpx transport for the Dify client (tests use
            an in-process fake upstream).

    Raises:
        ConfigurationError: If required settings are missing.
    """
    if settings is None:
        settings = load_settings(load_config())

    setup_logging(settings.log_level)

    registry = configure_conversation_registry(
        max_entries=settings.conversations.max_entries,
        ttl_seconds=settings.conversations.ttl_seconds,
    )
    backend = DifyBackend(
        base_url=settings.dify.api_base,
        api_key=settings.dify.api_key,
        timeout=settings.dify.request_timeout,
    )
    context = ProxyContext(
        settings=settings,
        client=DifyClient(backend, transport=transport),
        registry=registry,
        translator=ResponseTranslator(registry, model=settings.model_name),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _log_startup(settings)
        yield
        logger.info("Shutting down; usage counters: %s", USAGE_COUNTERS.snapshot())
        logger.info("Conversation registry: %s", registry.stats())

    app = FastAPI(title="Dify2OpenAI Proxy", lifespan=lifespan)
    app.state.proxy = context
    configure_cors(app, settings.cors_origins)

    # Register routes
    app.post("/v1/chat/completions")(chat_completions)
    app.get("/health")(health)

    logger.info("FastAPI application created")
    return app


__all__ = ["configure_cors", "create_app"]
