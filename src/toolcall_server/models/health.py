"""Health check response model."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for the health check endpoint.

    Attributes:
        status: Health status indicator ("ok" or "degraded").
        version: The version of toolcall-server.
        ollama_connected: Whether Ollama answered the connectivity check.
        ollama_host: The Ollama host URL.
        registry_tools: Number of enabled tools in the current registry snapshot.
        registry_version: Version of the current registry snapshot.
        flow_metrics: Counters over processed replies.
    """

    status: str = Field(..., description="Health status of the service")
    version: str = Field(..., description="Version of toolcall-server")
    ollama_connected: bool | None = Field(
        default=None,
        description="Whether Ollama is connected",
    )
    ollama_host: str | None = Field(
        default=None,
        description="Ollama host URL",
    )
    registry_tools: int = Field(
        default=0,
        description="Enabled tools in the current registry snapshot",
    )
    registry_version: int | None = Field(
        default=None,
        description="Version of the current registry snapshot (None before the first load)",
    )
    flow_metrics: dict[str, int | float] = Field(
        default_factory=dict,
        description="Counters over processed replies",
    )
