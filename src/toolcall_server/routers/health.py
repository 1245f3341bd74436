"""Health check endpoint router."""

import logging

from fastapi import APIRouter, Request

from toolcall_server import __version__
from toolcall_server.models.health import HealthResponse
from toolcall_server.ollama import OllamaClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Returns the current health status and version of the toolcall-server.
    Also checks connectivity to the Ollama server and reports the size of
    the current tool registry snapshot and the flow counters.

    Args:
        request: The FastAPI request object.

    Returns:
        HealthResponse: Health status and version information.
    """
    ollama_connected = None
    ollama_host = None

    # Check if Ollama client is available and test connectivity
    if hasattr(request.app.state, "ollama_client"):
        ollama_client: OllamaClient = request.app.state.ollama_client
        ollama_host = ollama_client.host

        try:
            ollama_connected = await ollama_client.check_connection()
            logger.debug(f"Ollama connectivity check: {ollama_connected}")
        except Exception as e:
            logger.warning(f"Ollama connectivity check failed: {e}")
            ollama_connected = False

    registry_tools = 0
    registry_version = None
    if hasattr(request.app.state, "registry"):
        snapshot = request.app.state.registry.current
        if snapshot is not None:
            registry_tools = len(snapshot.enabled_tools)
            registry_version = snapshot.version

    flow_metrics = {}
    if hasattr(request.app.state, "flow_metrics"):
        flow_metrics = request.app.state.flow_metrics.to_dict()

    status = "ok" if ollama_connected is not False and registry_version is not None else "degraded"

    return HealthResponse(
        status=status,
        version=__version__,
        ollama_connected=ollama_connected,
        ollama_host=ollama_host,
        registry_tools=registry_tools,
        registry_version=registry_version,
        flow_metrics=flow_metrics,
    )
