"""Data types for tool detection and execution.

This module defines the core data structures that flow through the pipeline:
registered tool definitions, detected candidates, validated calls, execution
results, and the per-request context.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO 8601 string with a Z suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class SourceFormat(str, Enum):
    """Textual convention a tool-call candidate was recognized from."""

    STRUCTURED_BLOCK = "structured-block"
    INLINE_LITERAL = "inline-literal"
    TAGGED_ELEMENT = "tagged-element"
    SIMPLE_TAGGED = "simple-tagged"
    ATTRIBUTE_TAG = "attribute-tag"


@dataclass(frozen=True)
class ToolDefinition:
    """A tool registered by a remote service.

    Instances are read-only snapshots of the registry; usage counters are
    tracked by the registry itself.
    """

    tool_id: str
    name: str
    service_id: str
    service_name: str
    service_endpoint: str
    parameter_schema: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    category: str = "general"
    enabled: bool = True
    priority: int = 1
    usage_count: int = 0

    @property
    def lookup_key(self) -> str:
        """Case-insensitive key used for name lookups."""
        return self.name.lower()


@dataclass(frozen=True)
class ToolCallCandidate:
    """A raw tool invocation recovered from one span of model output."""

    name: str
    parameters: dict[str, Any]
    source_format: SourceFormat
    confidence: float
    raw_span: str
    position: int = 0

    @property
    def dedup_key(self) -> str:
        """Identity used to collapse duplicate candidates."""
        return f"{self.name}:{json.dumps(self.parameters, sort_keys=True, default=str)}"


@dataclass(frozen=True)
class ValidatedToolCall:
    """A candidate matched against an enabled tool definition."""

    candidate: ToolCallCandidate
    tool_id: str
    tool_name: str
    validated: bool = True

    @property
    def name(self) -> str:
        """Name as written by the model."""
        return self.candidate.name

    @property
    def parameters(self) -> dict[str, Any]:
        """Parameters passed to the remote tool."""
        return self.candidate.parameters

    @property
    def source_format(self) -> SourceFormat:
        """Convention the call was written in."""
        return self.candidate.source_format

    @property
    def confidence(self) -> float:
        """Confidence weight of the detecting strategy."""
        return self.candidate.confidence

    def to_dict(self) -> dict[str, Any]:
        """Serialize the call for API responses."""
        return {
            "name": self.name,
            "tool_name": self.tool_name,
            "tool_id": self.tool_id,
            "parameters": self.parameters,
            "source_format": self.source_format.value,
            "confidence": self.confidence,
            "validated": self.validated,
        }


@dataclass(frozen=True)
class ToolExecutionResult:
    """Outcome of running one validated call. Created once, never mutated."""

    tool_call: ValidatedToolCall
    tool_id: str
    tool_name: str
    service_name: str
    success: bool
    data: Any = None
    error: str | None = None
    execution_time_ms: float = 0.0
    timestamp: str = field(default_factory=utc_timestamp)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the result for API responses."""
        return {
            "tool_call": self.tool_call.to_dict(),
            "tool_id": self.tool_id,
            "tool_name": self.tool_name,
            "service_name": self.service_name,
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "execution_time_ms": self.execution_time_ms,
            "timestamp": self.timestamp,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class Attachment:
    """A file the user attached to their message."""

    filename: str
    content_type: str | None = None
    size_bytes: int | None = None


@dataclass
class RequestContext:
    """Per-request information carried through the pipeline."""

    user_id: str | None = None
    conversation_id: str | None = None
    user_question: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    model: str | None = None

    @property
    def has_attachments(self) -> bool:
        """Whether the user attached any files."""
        return len(self.attachments) > 0
