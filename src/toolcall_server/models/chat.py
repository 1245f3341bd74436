"""Pydantic models for chat and reply-processing requests and responses.

This module defines the request and response schemas for the chat endpoints
(streaming and non-streaming) and for processing an already generated reply.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from toolcall_server.tools.types import Attachment


class AttachmentModel(BaseModel):
    """A file the user attached to the message."""

    filename: str = Field(description="Original file name")
    content_type: str | None = Field(default=None, description="MIME type")
    size_bytes: int | None = Field(default=None, ge=0, description="File size in bytes")

    def to_attachment(self) -> Attachment:
        return Attachment(
            filename=self.filename,
            content_type=self.content_type,
            size_bytes=self.size_bytes,
        )


class HistoryMessage(BaseModel):
    """One earlier message of the conversation."""

    role: Literal["system", "user", "assistant"] = Field(description="Message role")
    content: str = Field(description="Message content")


class ChatRequest(BaseModel):
    """Request body for chat endpoints.

    Used by both POST /api/v1/chat (non-streaming)
    and POST /api/v1/chat/stream (streaming).
    """

    message: str = Field(min_length=1, description="The user message to send")
    model: str | None = Field(
        default=None,
        description="Model to use. Defaults to the configured default model.",
    )
    user_id: str | None = Field(default=None, description="Caller's user identifier")
    conversation_id: str | None = Field(default=None, description="Conversation identifier")
    attachments: list[AttachmentModel] = Field(
        default_factory=list,
        description="Files attached to the message",
    )
    history: list[HistoryMessage] = Field(
        default_factory=list,
        description="Earlier messages of the conversation, oldest first",
    )
    system_prompt: str | None = Field(
        default=None,
        description="Base system prompt; the tool descriptions are appended to it",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "message": "Show me the status of record A1",
                    "model": "llama3.2:latest",
                    "user_id": "u-42",
                    "conversation_id": "c-7",
                },
            ]
        }
    )


class ReplyProcessRequest(BaseModel):
    """Request body for POST /api/v1/replies/process."""

    reply: str = Field(description="Model reply to process")
    user_question: str | None = Field(
        default=None,
        description="The user's literal question, consulted by the intent gate",
    )
    user_id: str | None = Field(default=None, description="Caller's user identifier")
    conversation_id: str | None = Field(default=None, description="Conversation identifier")
    attachments: list[AttachmentModel] = Field(
        default_factory=list,
        description="Files attached to the user's message",
    )
    model: str | None = Field(
        default=None,
        description="Model for the secondary pass. Defaults to the configured model.",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "reply": '```json\n{"tool": "lookup_record", "parameters": {"id": "A1"}}\n```',
                "user_question": "Who owns record A1?",
            }
        }
    )


class ToolCallModel(BaseModel):
    """A validated tool call."""

    name: str = Field(description="Tool name as written by the model")
    tool_name: str = Field(description="Registered tool name")
    tool_id: str = Field(description="Registered tool identifier")
    parameters: dict[str, Any] = Field(description="Call parameters")
    source_format: str = Field(description="Convention the call was written in")
    confidence: float = Field(description="Confidence of the detecting strategy")
    validated: bool = Field(description="Whether the call was checked against the registry")


class ToolResultModel(BaseModel):
    """Outcome of one tool call."""

    tool_call: ToolCallModel
    tool_id: str
    tool_name: str
    service_name: str
    success: bool
    data: Any = None
    error: str | None = None
    execution_time_ms: float = 0.0
    timestamp: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class OrchestrationResponse(BaseModel):
    """Result of processing one model reply."""

    original_response: str = Field(description="The reply as received")
    has_tool_calls: bool = Field(description="Whether validated tool calls were found")
    tool_calls: list[ToolCallModel] = Field(default_factory=list)
    tool_results: list[ToolResultModel] = Field(default_factory=list)
    formatted_results: str = Field(default="", description="Combined Markdown report")
    final_response: str = Field(description="Text to show the user")
    used_secondary_pass: bool = Field(default=False)
    thinking_content: str | None = Field(default=None, description="Reasoning removed from the reply")
    preamble: str = Field(default="", description="Reply prose without tool syntax; not verified")
    error: str | None = Field(default=None, description="Set when the pipeline failed or was cancelled")
    states: list[str] = Field(default_factory=list, description="Pipeline stages visited")
    processing_time_ms: float = Field(default=0.0)


class ChatResponse(BaseModel):
    """Response body for the non-streaming chat endpoint."""

    model: str = Field(description="Model that generated the reply")
    eval_count: int | None = Field(default=None, description="Number of tokens generated")
    prompt_eval_count: int | None = Field(default=None, description="Number of tokens in the prompt")
    result: OrchestrationResponse = Field(description="Processed reply")
