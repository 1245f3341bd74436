"""Pytest configuration and shared fixtures for toolcall-server tests.

This module provides common fixtures used across all test modules,
including a registry file, fake tool services, and test app creation.
"""

import copy
import json

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from toolcall_server import create_app
from toolcall_server.config import DEFAULT_FIELD_MAPPINGS_PATH, ToolcallServerSettings
from toolcall_server.formatters import FieldMappingStore, FormatterFactory
from toolcall_server.tools import FileToolSource, RegistrySnapshot, ToolRegistry
from toolcall_server.tools.registry import parse_registry_document
from toolcall_server.tools.types import (
    SourceFormat,
    ToolCallCandidate,
    ToolExecutionResult,
    ValidatedToolCall,
)

REGISTRY_DOCUMENT = {
    "services": [
        {
            "id": "records",
            "name": "Record Service",
            "endpoint": "http://records.test/tools",
            "tools": [
                {
                    "name": "lookup_record",
                    "description": "Fetch one record by its id",
                    "category": "record_management",
                    "priority": 3,
                    "parameters": {
                        "type": "object",
                        "properties": {"id": {"type": "string", "description": "Record id"}},
                        "required": ["id"],
                    },
                },
                {
                    "name": "get_record_list",
                    "description": "List records",
                    "category": "record_management",
                    "priority": 2,
                    "parameters": {
                        "type": "object",
                        "properties": {"status": {"type": "string"}},
                    },
                },
                {
                    "name": "archived_lookup",
                    "description": "Retired lookup",
                    "enabled": False,
                },
            ],
        },
        {
            "id": "stats",
            "name": "Statistics Service",
            "endpoint": "http://stats.test/tools",
            "tools": [
                {
                    "name": "perform_ttest",
                    "description": "Two-sample t-test",
                    "category": "statistical_analysis",
                },
            ],
        },
    ]
}


@pytest.fixture
def test_settings(tmp_path):
    """Create test settings with an isolated temporary data directory.

    Args:
        tmp_path: Pytest fixture providing a temporary directory.

    Returns:
        ToolcallServerSettings: Settings instance configured for testing.
    """
    return ToolcallServerSettings(
        host="127.0.0.1",
        port=8000,
        ollama_host="http://localhost:11434",
        data_dir=str(tmp_path),
        registry_file="tools/registry.json",
        tool_timeout=5.0,
        log_level="DEBUG",
        cors_origins=["*"],
    )


@pytest.fixture
def registry_document():
    """A fresh copy of the test registry document."""
    return copy.deepcopy(REGISTRY_DOCUMENT)


@pytest.fixture
def registry_file(test_settings):
    """Write the test registry document where the settings expect it."""
    path = test_settings.resolved_registry_file
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(REGISTRY_DOCUMENT), encoding="utf-8")
    return path


@pytest.fixture
def tool_registry(registry_file):
    """A ToolRegistry reading the test registry file."""
    return ToolRegistry(FileToolSource(registry_file))


@pytest.fixture
def registry_snapshot():
    """A snapshot of the test registry document, without file I/O."""
    return RegistrySnapshot(parse_registry_document(REGISTRY_DOCUMENT), version=1)


@pytest.fixture
def tool_responses():
    """Responses of the fake tool services, keyed by tool name.

    Values are JSON bodies (returned with status 200) or callables taking
    the httpx.Request and returning an httpx.Response.
    """
    return {}


@pytest.fixture
def tool_requests():
    """Requests received by the fake tool services, in arrival order."""
    return []


@pytest.fixture
def tool_transport(tool_responses, tool_requests):
    """httpx.MockTransport routing tool calls to tool_responses."""

    def handler(request: httpx.Request) -> httpx.Response:
        tool_requests.append(request)
        tool_name = request.url.path.rsplit("/", 1)[-1]
        response = tool_responses.get(tool_name)
        if response is None:
            return httpx.Response(404, json={"error": f"No such tool: {tool_name}"})
        if callable(response):
            return response(request)
        return httpx.Response(200, json=response)

    return httpx.MockTransport(handler)


@pytest.fixture
def test_app(test_settings, registry_file, tool_transport):
    """Create a FastAPI test application instance.

    Args:
        test_settings: Test settings fixture.
        registry_file: Registry file fixture, written before startup.
        tool_transport: Fake tool services.

    Returns:
        FastAPI: Configured test application.
    """
    return create_app(settings=test_settings, tool_transport=tool_transport)


@pytest_asyncio.fixture
async def async_client(test_app):
    """Create an async HTTP client for testing FastAPI endpoints.

    Args:
        test_app: Test application fixture.

    Yields:
        AsyncClient: Async HTTP client for making test requests.
    """
    # Trigger the lifespan startup manually for tests
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


@pytest.fixture
def mapping_store():
    """Field mapping store reading the packaged mapping file."""
    return FieldMappingStore(DEFAULT_FIELD_MAPPINGS_PATH)


@pytest.fixture
def mappings(mapping_store):
    """The packaged field mapping table."""
    return mapping_store.current


@pytest.fixture
def formatter_factory(mapping_store):
    """Formatter factory with the built-in formatters."""
    return FormatterFactory(store=mapping_store)


@pytest.fixture
def make_result(registry_snapshot):
    """Build ToolExecutionResult objects for tools of the test registry.

    Returns:
        Callable taking the tool name and the outcome fields.
    """

    def _make(tool_name, success=True, data=None, error=None, parameters=None, written_name=None):
        tool = registry_snapshot.find(tool_name)
        candidate = ToolCallCandidate(
            name=written_name or tool.name,
            parameters=parameters or {},
            source_format=SourceFormat.STRUCTURED_BLOCK,
            confidence=0.9,
            raw_span="",
        )
        call = ValidatedToolCall(candidate=candidate, tool_id=tool.tool_id, tool_name=tool.name)
        return ToolExecutionResult(
            tool_call=call,
            tool_id=tool.tool_id,
            tool_name=tool.name,
            service_name=tool.service_name,
            success=success,
            data=data,
            error=error,
            execution_time_ms=12.0,
        )

    return _make
