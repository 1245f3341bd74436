"""FastAPI application factory and lifespan management.

This module contains the create_app() factory function that creates and configures
the FastAPI application instance, including lifespan management for startup/shutdown
and router registration.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toolcall_server.config import ToolcallServerSettings
from toolcall_server.formatters import FieldMappingStore, FormatterFactory
from toolcall_server.ollama import OllamaClient
from toolcall_server.orchestration import (
    ChatOrchestrator,
    FlowMetrics,
    MarkerCompleteness,
    SecondaryPass,
)
from toolcall_server.routers import chat, formatting, health, replies, tools
from toolcall_server.tools import (
    FileToolSource,
    HttpToolInvoker,
    HttpToolSource,
    IntentGate,
    RegistryError,
    ToolCallDetector,
    ToolExecutor,
    ToolRegistry,
)

logger = logging.getLogger(__name__)


def build_registry(settings: ToolcallServerSettings, http_client: httpx.AsyncClient) -> ToolRegistry:
    """Create the tool registry from the configured source.

    An HTTP registry URL takes precedence over the registry file.
    """
    if settings.registry_url:
        source = HttpToolSource(settings.registry_url, http_client)
        logger.info(f"Using HTTP tool registry: {settings.registry_url}")
    else:
        source = FileToolSource(settings.resolved_registry_file)
        logger.info(f"Using tool registry file: {settings.resolved_registry_file}")
    return ToolRegistry(source, refresh_interval=settings.registry_refresh_interval)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for FastAPI application.

    This function handles startup and shutdown logic for the application.
    Expensive objects (clients, the registry, formatters and the orchestrator)
    are created once at startup and stored in app.state for reuse across all
    requests.

    Args:
        app: The FastAPI application instance.

    Yields:
        None: Control is yielded while the app is running.
    """
    settings: ToolcallServerSettings = app.state.settings

    # Startup: Initialize Ollama client
    app.state.ollama_client = OllamaClient(host=settings.ollama_host)
    logger.info(f"Initialized Ollama client with host: {settings.ollama_host}")

    # Check initial connectivity
    connected = await app.state.ollama_client.check_connection()
    if connected:
        logger.info("Successfully connected to Ollama")
    else:
        logger.warning("Could not connect to Ollama - check if server is running")

    # Shared HTTP client for tool services and the registry endpoint
    app.state.http_client = httpx.AsyncClient(transport=app.state.tool_transport)

    registry = build_registry(settings, app.state.http_client)
    try:
        await registry.refresh()
    except RegistryError as e:
        logger.warning(f"Initial tool registry load failed: {e}")
    app.state.registry = registry

    mapping_store = FieldMappingStore(settings.resolved_field_mappings_file)
    app.state.formatter_factory = FormatterFactory(store=mapping_store)

    app.state.detector = ToolCallDetector(intent_gate=IntentGate(settings.intent_gate))
    executor = ToolExecutor(
        HttpToolInvoker(app.state.http_client),
        registry=registry,
        default_timeout=settings.tool_timeout,
        tool_timeouts=settings.tool_timeouts,
    )

    summarizer = None
    if settings.secondary_pass_enabled:
        summarizer = SecondaryPass(
            app.state.ollama_client,
            model=settings.secondary_model,
            temperature=settings.secondary_temperature,
            max_tokens=settings.secondary_max_tokens,
            timeout=settings.secondary_timeout,
        )

    app.state.flow_metrics = FlowMetrics()
    app.state.orchestrator = ChatOrchestrator(
        detector=app.state.detector,
        executor=executor,
        registry=registry,
        formatter_factory=app.state.formatter_factory,
        summarizer=summarizer,
        is_complete=MarkerCompleteness.from_settings(settings.completeness),
        metrics=app.state.flow_metrics,
        concurrent_execution=settings.concurrent_tool_execution,
        default_model=settings.default_model,
    )
    logger.info("Chat orchestrator ready")

    yield

    # Shutdown: Clean up resources
    if hasattr(app.state, "http_client"):
        await app.state.http_client.aclose()
        logger.info("HTTP client closed")
    if hasattr(app.state, "ollama_client"):
        await app.state.ollama_client.close()
        logger.info("Ollama client closed")


def create_app(
    settings: ToolcallServerSettings | None = None,
    tool_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    This factory function creates a FastAPI instance with all routers,
    middleware, and configuration applied. It can accept an optional
    settings object for testing or explicit configuration.

    Args:
        settings: Optional ToolcallServerSettings instance. If not provided,
                  settings will be loaded from environment variables.
        tool_transport: Optional httpx transport for tool and registry calls
                        (e.g. httpx.MockTransport in tests).

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        from toolcall_server.dependencies import get_settings

        settings = get_settings()

    app = FastAPI(
        title="toolcall-server",
        description="Tool-call detection, execution and response orchestration for LLM replies",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings in app.state for lifespan access
    app.state.settings = settings
    app.state.tool_transport = tool_transport

    # Configure CORS
    # Note: FastAPI's type hints for add_middleware are overly strict
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(replies.router)
    app.include_router(tools.router)
    app.include_router(formatting.router)

    return app
