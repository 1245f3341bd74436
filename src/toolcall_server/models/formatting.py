"""Pydantic models for the result formatting endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class FormatRequest(BaseModel):
    """Request body for POST /api/v1/format."""

    data: Any = Field(description="Tool payload to render")
    tool_name: str = Field(min_length=1, description="Name of the tool that produced the payload")
    context: dict[str, Any] | None = Field(
        default=None,
        description="Formatting hints such as category and user_question",
    )


class FormatResponse(BaseModel):
    """Response body for POST /api/v1/format."""

    tool_name: str
    category: str = Field(description="Category used to pick the formatter")
    formatter: str = Field(description="Formatter that rendered the payload")
    content: str = Field(description="Rendered Markdown")


class FormatterInfo(BaseModel):
    name: str
    category: str | None = None
    default: bool = False


class FormatterHealth(BaseModel):
    status: str
    formatters_count: int
    has_default_formatter: bool
    formatters: list[FormatterInfo]
    mappings_version: int
    mapping_categories: list[str]
    warnings: list[str] = Field(default_factory=list)


class FormattersResponse(BaseModel):
    """Response body for GET /api/v1/formatters."""

    formatters: list[FormatterInfo]
    health: FormatterHealth


class MappingReloadResponse(BaseModel):
    """Response body for POST /api/v1/formatters/reload."""

    message: str
    version: int
    document_version: str
    categories: list[str]
