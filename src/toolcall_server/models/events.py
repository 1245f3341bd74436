"""Pydantic models for Server-Sent Events emitted by POST /api/v1/chat/stream.

Each event's data field is one of these models serialized with
model_dump_json().
"""

from typing import Any

from pydantic import BaseModel, Field

from toolcall_server.models.chat import OrchestrationResponse, ToolCallModel, ToolResultModel


class ContentEvent(BaseModel):
    """Event carrying a block of text (thinking, formatted_results, summary)."""

    content: str = Field(description="Text content")


class ToolDetectedEvent(BaseModel):
    """Validated tool calls found in the reply."""

    tool_calls: list[ToolCallModel]


class ToolExecutionStartEvent(BaseModel):
    """A tool call is about to run."""

    tool_name: str
    index: int = Field(description="Zero-based position of the call")
    total: int = Field(description="Number of calls in this reply")


class ToolExecutionCompleteEvent(ToolResultModel):
    """A tool call finished, successfully or not."""


class DoneEvent(BaseModel):
    """The stream is complete; carries the full result."""

    model: str
    eval_count: int | None = None
    prompt_eval_count: int | None = None
    result: OrchestrationResponse


class ErrorEvent(BaseModel):
    """Processing failed before a result could be produced."""

    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


PROGRESS_EVENTS: dict[str, type[BaseModel]] = {
    "thinking": ContentEvent,
    "tool_detected": ToolDetectedEvent,
    "tool_execution_start": ToolExecutionStartEvent,
    "tool_execution_complete": ToolExecutionCompleteEvent,
    "formatted_results": ContentEvent,
    "summary": ContentEvent,
}
