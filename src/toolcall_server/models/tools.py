"""Pydantic models for the tool registry and detection endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from toolcall_server.models.chat import ToolCallModel


class DetectRequest(BaseModel):
    """Request body for POST /api/v1/tools/detect."""

    text: str = Field(description="Model output to scan for tool calls")
    enabled_strategies: list[str] | None = Field(
        default=None,
        description="Names of the detection strategies to run (default: all)",
    )
    validate_calls: bool = Field(
        default=True,
        alias="validate",
        description="Validate candidates against the registry",
    )

    model_config = ConfigDict(populate_by_name=True)


class CandidateModel(BaseModel):
    """A raw detection candidate, before validation."""

    name: str
    parameters: dict[str, Any]
    source_format: str
    confidence: float
    position: int
    raw_span: str


class DetectionStats(BaseModel):
    """Summary of the raw candidates."""

    total: int
    by_format: dict[str, int]
    average_confidence: float


class DetectResponse(BaseModel):
    """Response body for POST /api/v1/tools/detect."""

    tool_calls: list[ToolCallModel] = Field(description="Calls after validation")
    candidates: list[CandidateModel] = Field(description="Every candidate found")
    stats: DetectionStats
    strategies: list[str] = Field(description="Strategies that were run")


class ToolInfo(BaseModel):
    """An enabled tool."""

    tool_id: str
    name: str
    service_id: str
    service_name: str
    description: str = ""
    category: str = "general"
    priority: int = 1
    usage_count: int = 0
    parameter_schema: dict[str, Any] = Field(default_factory=dict)


class ToolListResponse(BaseModel):
    """Response body for GET /api/v1/tools."""

    tools: list[ToolInfo]
    count: int
    registry_version: int


class CategoryStats(BaseModel):
    count: int
    usage: int


class ToolStatsResponse(BaseModel):
    """Response body for GET /api/v1/tools/stats."""

    total_tools: int
    enabled_tools: int
    total_usage: int
    category_stats: dict[str, CategoryStats]
    version: int


class RegistryRefreshResponse(BaseModel):
    """Response body for POST /api/v1/tools/refresh."""

    message: str
    version: int
    total_tools: int
    enabled_tools: int
