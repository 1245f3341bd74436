"""Result formatting endpoints.

This module exposes the formatter factory for ad hoc formatting, together
with formatter introspection and the field mapping hot reload.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from toolcall_server.dependencies import get_formatter_factory
from toolcall_server.formatters import FormatterFactory
from toolcall_server.models.formatting import (
    FormatRequest,
    FormatResponse,
    FormatterHealth,
    FormatterInfo,
    FormattersResponse,
    MappingReloadResponse,
)
from toolcall_server.tools import FieldMappingError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["formatting"])


@router.post("/format", response_model=FormatResponse)
async def format_tool_result(
    request_body: FormatRequest,
    factory: FormatterFactory = Depends(get_formatter_factory),
) -> FormatResponse:
    """Render a tool payload as Markdown.

    Formatting errors never fail the request; the content then holds a short
    apology naming the tool and the error.
    """
    context = request_body.context or {}
    mappings = factory.current_mappings()
    category = context.get("category") or mappings.infer_category(request_body.tool_name)
    formatter = factory.get_formatter(request_body.tool_name, category)

    content = factory.format_tool_result(
        request_body.data,
        request_body.tool_name,
        context,
        mappings=mappings,
    )
    return FormatResponse(
        tool_name=request_body.tool_name,
        category=category,
        formatter=formatter.name,
        content=content,
    )


@router.get("/formatters", response_model=FormattersResponse)
async def list_formatters(
    factory: FormatterFactory = Depends(get_formatter_factory),
) -> FormattersResponse:
    """Registered formatters in selection order, with a health report."""
    return FormattersResponse(
        formatters=[FormatterInfo(**entry) for entry in factory.info()],
        health=FormatterHealth(**factory.health_check()),
    )


@router.post("/formatters/reload", response_model=MappingReloadResponse)
async def reload_field_mappings(
    factory: FormatterFactory = Depends(get_formatter_factory),
) -> MappingReloadResponse:
    """Reload the field mapping file.

    Raises:
        HTTPException: 422 if the file is unreadable or invalid; the previous
            mappings stay active
    """
    try:
        table = factory.reload()
    except FieldMappingError as e:
        logger.error(f"Field mapping reload failed: {e}")
        raise HTTPException(status_code=422, detail={"error": e.to_dict()})

    return MappingReloadResponse(
        message="Field mappings reloaded",
        version=table.version,
        document_version=table.document.version,
        categories=table.categories,
    )
