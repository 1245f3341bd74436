"""Dependency injection providers for FastAPI endpoints.

This module provides FastAPI dependency functions that are used across
multiple routers to inject the settings and the services created at startup.
"""

from functools import lru_cache
from typing import Any

from fastapi import HTTPException, Request

from toolcall_server.config import ToolcallServerSettings
from toolcall_server.formatters import FormatterFactory
from toolcall_server.ollama import OllamaClient
from toolcall_server.orchestration import ChatOrchestrator
from toolcall_server.tools import ToolCallDetector, ToolRegistry


@lru_cache
def get_settings() -> ToolcallServerSettings:
    """Get the application settings instance.

    This function is cached so that the same settings instance is reused
    across all requests. Settings are loaded from environment variables
    with the TOOLCALL_ prefix.

    Returns:
        ToolcallServerSettings: The application configuration settings.
    """
    return ToolcallServerSettings()


def _from_state(request: Request, name: str, label: str) -> Any:
    if not hasattr(request.app.state, name):
        raise HTTPException(
            status_code=503,
            detail={
                "error": {
                    "code": "service_unavailable",
                    "message": f"{label} not initialized",
                    "details": {},
                }
            },
        )
    return getattr(request.app.state, name)


def get_app_settings(request: Request) -> ToolcallServerSettings:
    """Get the settings the app was created with.

    Settings are read from app.state instead of the cached get_settings()
    so tests can use their own isolated settings.
    """
    return request.app.state.settings


def get_ollama_client(request: Request) -> OllamaClient:
    """Get the Ollama client from app state.

    Args:
        request: The FastAPI request object.

    Returns:
        OllamaClient: The Ollama client instance.

    Raises:
        HTTPException: If the Ollama client is not initialized (503 Service Unavailable).
    """
    return _from_state(request, "ollama_client", "Ollama client")


def get_registry(request: Request) -> ToolRegistry:
    """Get the tool registry from app state.

    Raises:
        HTTPException: If the registry is not initialized (503 Service Unavailable).
    """
    return _from_state(request, "registry", "Tool registry")


def get_detector(request: Request) -> ToolCallDetector:
    """Get the tool-call detector from app state.

    Raises:
        HTTPException: If the detector is not initialized (503 Service Unavailable).
    """
    return _from_state(request, "detector", "Tool-call detector")


def get_formatter_factory(request: Request) -> FormatterFactory:
    """Get the formatter factory from app state.

    Raises:
        HTTPException: If the factory is not initialized (503 Service Unavailable).
    """
    return _from_state(request, "formatter_factory", "Formatter factory")


def get_orchestrator(request: Request) -> ChatOrchestrator:
    """Get the chat orchestrator from app state.

    Raises:
        HTTPException: If the orchestrator is not initialized (503 Service Unavailable).
    """
    return _from_state(request, "orchestrator", "Chat orchestrator")
