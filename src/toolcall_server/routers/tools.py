"""Tool registry and detection endpoints.

This module provides endpoints for listing the registered tools, registry
statistics, forced refreshes, and running the detector on arbitrary text.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from toolcall_server.dependencies import get_detector, get_registry
from toolcall_server.models.chat import ToolCallModel
from toolcall_server.models.tools import (
    CandidateModel,
    DetectionStats,
    DetectRequest,
    DetectResponse,
    RegistryRefreshResponse,
    ToolInfo,
    ToolListResponse,
    ToolStatsResponse,
)
from toolcall_server.tools import RegistryError, ToolCallDetector, ToolRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/tools", tags=["tools"])


def _registry_unavailable(e: RegistryError) -> HTTPException:
    return HTTPException(status_code=503, detail={"error": e.to_dict()})


@router.get("", response_model=ToolListResponse)
async def list_tools(registry: ToolRegistry = Depends(get_registry)) -> ToolListResponse:
    """List enabled tools with their usage counts.

    Raises:
        HTTPException: 503 if the registry cannot be loaded
    """
    try:
        tools = await registry.list_enabled_tools()
        snapshot = await registry.snapshot()
    except RegistryError as e:
        raise _registry_unavailable(e)

    items = [
        ToolInfo(
            tool_id=tool.tool_id,
            name=tool.name,
            service_id=tool.service_id,
            service_name=tool.service_name,
            description=tool.description,
            category=tool.category,
            priority=tool.priority,
            usage_count=tool.usage_count,
            parameter_schema=tool.parameter_schema,
        )
        for tool in tools
    ]
    return ToolListResponse(tools=items, count=len(items), registry_version=snapshot.version)


@router.get("/stats", response_model=ToolStatsResponse)
async def tool_stats(registry: ToolRegistry = Depends(get_registry)) -> ToolStatsResponse:
    """Registry statistics by category.

    Raises:
        HTTPException: 503 if the registry cannot be loaded
    """
    try:
        stats = await registry.stats()
    except RegistryError as e:
        raise _registry_unavailable(e)
    return ToolStatsResponse(**stats)


@router.post("/refresh", response_model=RegistryRefreshResponse)
async def refresh_tools(registry: ToolRegistry = Depends(get_registry)) -> RegistryRefreshResponse:
    """Reload the registry now, ignoring the refresh interval.

    Raises:
        HTTPException: 503 if the registry document cannot be loaded
    """
    try:
        snapshot = await registry.refresh()
    except RegistryError as e:
        logger.error(f"Forced registry refresh failed: {e}")
        raise _registry_unavailable(e)

    return RegistryRefreshResponse(
        message="Tool registry refreshed",
        version=snapshot.version,
        total_tools=len(snapshot),
        enabled_tools=len(snapshot.enabled_tools),
    )


@router.post("/detect", response_model=DetectResponse)
async def detect_tool_calls(
    request_body: DetectRequest,
    detector: ToolCallDetector = Depends(get_detector),
    registry: ToolRegistry = Depends(get_registry),
) -> DetectResponse:
    """Run tool-call detection on a piece of text.

    The intent gate is not applied; the response lists both the validated
    calls and every raw candidate.

    Raises:
        HTTPException: 400 for unknown strategy names, 503 if validation is
            requested and the registry cannot be loaded
    """
    unknown = sorted(set(request_body.enabled_strategies or []) - set(detector.strategy_names))
    if unknown:
        raise HTTPException(
            status_code=400,
            detail={
                "error": {
                    "code": "unknown_strategy",
                    "message": f"Unknown detection strategies: {', '.join(unknown)}",
                    "details": {"available": detector.strategy_names},
                }
            },
        )

    snapshot = None
    if request_body.validate_calls:
        try:
            snapshot = await registry.snapshot()
        except RegistryError as e:
            raise _registry_unavailable(e)

    candidates = detector.detect_candidates(request_body.text, request_body.enabled_strategies)
    calls = detector.detect(
        request_body.text,
        snapshot,
        enabled_strategies=request_body.enabled_strategies,
        validate=request_body.validate_calls,
    )

    return DetectResponse(
        tool_calls=[ToolCallModel(**call.to_dict()) for call in calls],
        candidates=[
            CandidateModel(
                name=c.name,
                parameters=c.parameters,
                source_format=c.source_format.value,
                confidence=c.confidence,
                position=c.position,
                raw_span=c.raw_span,
            )
            for c in candidates
        ],
        stats=DetectionStats(**detector.stats(candidates)),
        strategies=request_body.enabled_strategies or detector.strategy_names,
    )
