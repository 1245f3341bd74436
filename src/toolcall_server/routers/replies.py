"""Reply processing endpoint.

Runs tool-call detection, execution and response composition on a model
reply that was generated elsewhere.
"""

import logging

from fastapi import APIRouter, Depends

from toolcall_server.dependencies import get_orchestrator
from toolcall_server.models.chat import OrchestrationResponse, ReplyProcessRequest
from toolcall_server.orchestration import ChatOrchestrator
from toolcall_server.routers.chat import build_request_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/replies", tags=["replies"])


@router.post("/process", response_model=OrchestrationResponse)
async def process_reply(
    request_body: ReplyProcessRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> OrchestrationResponse:
    """Process a model reply.

    Args:
        request_body: The reply and its request context
        orchestrator: Injected chat orchestrator

    Returns:
        OrchestrationResponse: The processing result. Pipeline failures are
        reported in its error field rather than as an HTTP error.
    """
    context = build_request_context(
        request_body.user_id,
        request_body.conversation_id,
        request_body.user_question,
        request_body.attachments,
        request_body.model,
    )
    result = await orchestrator.process_reply(request_body.reply, context)
    logger.info(
        f"Processed reply: {len(result.tool_calls)} tool call(s), "
        f"secondary pass: {result.used_secondary_pass}"
    )
    return OrchestrationResponse(**result.to_dict())
