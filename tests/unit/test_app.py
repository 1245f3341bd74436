"""Unit tests for the FastAPI app factory."""

import httpx
from fastapi import FastAPI

from toolcall_server import __version__, create_app
from toolcall_server.app import build_registry
from toolcall_server.tools import FileToolSource, HttpToolSource


def test_create_app_returns_fastapi_instance(test_settings):
    """Test that create_app returns a FastAPI instance."""
    app = create_app(settings=test_settings)
    assert isinstance(app, FastAPI)
    assert app.state.settings is test_settings
    assert app.state.tool_transport is None


def test_create_app_metadata(test_settings):
    """Test that app has correct metadata."""
    app = create_app(settings=test_settings)
    assert app.title == "toolcall-server"
    assert app.version == __version__
    assert "Tool-call detection" in app.description


def test_create_app_includes_routers(test_settings):
    """Test that all routers are registered."""
    app = create_app(settings=test_settings)

    routes = [route.path for route in app.routes]  # type: ignore[attr-defined]
    for path in (
        "/api/v1/health",
        "/api/v1/chat",
        "/api/v1/chat/stream",
        "/api/v1/replies/process",
        "/api/v1/tools",
        "/api/v1/tools/detect",
        "/api/v1/format",
        "/api/v1/formatters",
    ):
        assert path in routes


def test_create_app_has_cors_middleware(test_settings):
    """Test that CORS middleware is configured."""
    app = create_app(settings=test_settings)

    middleware_classes = [m.cls.__name__ for m in app.user_middleware]  # type: ignore[attr-defined]
    assert "CORSMiddleware" in middleware_classes


def test_build_registry_from_file(test_settings):
    """Test that the registry file is used when no URL is configured."""
    registry = build_registry(test_settings, httpx.AsyncClient())

    assert isinstance(registry.source, FileToolSource)
    assert registry.refresh_interval == test_settings.registry_refresh_interval


def test_build_registry_from_url(test_settings):
    """Test that a registry URL takes precedence over the file."""
    test_settings.registry_url = "http://registry.test/tools"

    registry = build_registry(test_settings, httpx.AsyncClient())

    assert isinstance(registry.source, HttpToolSource)
