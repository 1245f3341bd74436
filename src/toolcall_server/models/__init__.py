"""Pydantic models for API request and response schemas.

This package contains all Pydantic models used for validating and
serializing API requests and responses across all endpoints.
"""

from toolcall_server.models.chat import (
    AttachmentModel,
    ChatRequest,
    ChatResponse,
    HistoryMessage,
    OrchestrationResponse,
    ReplyProcessRequest,
    ToolCallModel,
    ToolResultModel,
)
from toolcall_server.models.formatting import (
    FormatRequest,
    FormatResponse,
    FormattersResponse,
    MappingReloadResponse,
)
from toolcall_server.models.health import HealthResponse
from toolcall_server.models.tools import (
    DetectRequest,
    DetectResponse,
    RegistryRefreshResponse,
    ToolListResponse,
    ToolStatsResponse,
)

__all__ = [
    # Chat
    "AttachmentModel",
    "ChatRequest",
    "ChatResponse",
    "HistoryMessage",
    "OrchestrationResponse",
    "ReplyProcessRequest",
    "ToolCallModel",
    "ToolResultModel",
    # Formatting
    "FormatRequest",
    "FormatResponse",
    "FormattersResponse",
    "MappingReloadResponse",
    # Health
    "HealthResponse",
    # Tools
    "DetectRequest",
    "DetectResponse",
    "RegistryRefreshResponse",
    "ToolListResponse",
    "ToolStatsResponse",
]
