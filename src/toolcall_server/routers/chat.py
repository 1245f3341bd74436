"""Chat API endpoints.

This module provides the endpoints that run a full chat turn: the primary
model call with the tool system prompt, followed by reply processing. Both a
non-streaming variant and a streaming variant via SSE are provided.
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from toolcall_server.config import ToolcallServerSettings
from toolcall_server.dependencies import (
    get_app_settings,
    get_ollama_client,
    get_orchestrator,
    get_registry,
)
from toolcall_server.models.chat import (
    AttachmentModel,
    ChatRequest,
    ChatResponse,
    OrchestrationResponse,
)
from toolcall_server.models.events import PROGRESS_EVENTS, DoneEvent, ErrorEvent
from toolcall_server.ollama.client import OllamaClient
from toolcall_server.orchestration import ChatOrchestrator, build_tool_system_prompt
from toolcall_server.tools import ModelCallError, RegistryError, ToolRegistry
from toolcall_server.tools.types import RequestContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])

# Seconds between client-disconnect checks while waiting for pipeline events
EVENT_POLL_INTERVAL = 0.1


def build_request_context(
    user_id: str | None,
    conversation_id: str | None,
    user_question: str | None,
    attachments: list[AttachmentModel],
    model: str | None,
) -> RequestContext:
    """Convert request fields into the pipeline's request context."""
    return RequestContext(
        user_id=user_id,
        conversation_id=conversation_id,
        user_question=user_question,
        attachments=[attachment.to_attachment() for attachment in attachments],
        model=model,
    )


async def _build_messages(request_body: ChatRequest, registry: ToolRegistry) -> list[dict[str, Any]]:
    """Assemble the primary-pass messages in Ollama format.

    The system prompt lists the enabled tools; when the registry cannot be
    loaded, the base prompt is used alone.
    """
    base_prompt = request_body.system_prompt or ""
    try:
        tools = await registry.list_enabled_tools()
        system_prompt = build_tool_system_prompt(tools, base_prompt)
    except RegistryError as e:
        logger.warning(f"Tool registry unavailable, sending prompt without tools: {e}")
        system_prompt = base_prompt

    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.extend({"role": m.role, "content": m.content} for m in request_body.history)
    messages.append({"role": "user", "content": request_body.message})
    return messages


def _model_error(e: ModelCallError) -> HTTPException:
    return HTTPException(status_code=502, detail={"error": e.to_dict()})


@router.post("", response_model=ChatResponse)
async def chat_non_streaming(
    request_body: ChatRequest,
    settings: ToolcallServerSettings = Depends(get_app_settings),
    ollama_client: OllamaClient = Depends(get_ollama_client),
    registry: ToolRegistry = Depends(get_registry),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> ChatResponse:
    """Send a message and receive the processed reply.

    This endpoint uses Ollama's streaming API internally but collects
    all chunks before running tool detection on the complete reply.

    Args:
        request_body: Chat request containing the message and context
        settings: Application settings
        ollama_client: Injected Ollama client
        registry: Injected tool registry
        orchestrator: Injected chat orchestrator

    Returns:
        ChatResponse with the orchestration result

    Raises:
        HTTPException: 502 if the model call fails
    """
    model = request_body.model or settings.default_model
    messages = await _build_messages(request_body, registry)

    logger.info(f"Sending {len(messages)} messages to Ollama with model {model}")

    try:
        reply = await ollama_client.chat(model=model, messages=messages)
    except ModelCallError as e:
        logger.error(f"Primary model call failed: {e}")
        raise _model_error(e)

    logger.info(f"Received complete response: {len(reply.content)} characters")

    context = build_request_context(
        request_body.user_id,
        request_body.conversation_id,
        request_body.message,
        request_body.attachments,
        model,
    )
    result = await orchestrator.process_reply(reply.content, context, thinking=reply.thinking)

    return ChatResponse(
        model=reply.model,
        eval_count=reply.eval_count,
        prompt_eval_count=reply.prompt_eval_count,
        result=OrchestrationResponse(**result.to_dict()),
    )


@router.post("/stream")
async def chat_streaming(
    request_body: ChatRequest,
    request: Request,
    settings: ToolcallServerSettings = Depends(get_app_settings),
    ollama_client: OllamaClient = Depends(get_ollama_client),
    registry: ToolRegistry = Depends(get_registry),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> EventSourceResponse:
    """Stream the progress of a chat turn via Server-Sent Events (SSE).

    The model reply is collected first, then pipeline progress is emitted as
    it happens. A client disconnect cancels the remaining work: running tool
    calls finish but no secondary pass is started.

    Args:
        request_body: Chat request containing the message and context
        request: FastAPI request object
        settings: Application settings
        ollama_client: Injected Ollama client
        registry: Injected tool registry
        orchestrator: Injected chat orchestrator

    Returns:
        EventSourceResponse with SSE events

    SSE Events:
        - thinking: Reasoning removed from the reply
        - tool_detected: Validated tool calls
        - tool_execution_start: A tool call is starting
        - tool_execution_complete: A tool call finished
        - formatted_results: The combined tool report
        - summary: The secondary-pass answer
        - error: If the model call fails
        - done: Stream is complete, with the full result
    """
    model = request_body.model or settings.default_model
    messages = await _build_messages(request_body, registry)
    context = build_request_context(
        request_body.user_id,
        request_body.conversation_id,
        request_body.message,
        request_body.attachments,
        model,
    )

    logger.info(f"Starting streaming chat with {len(messages)} messages (model: {model})")

    async def event_generator():
        """Generate SSE events from the model reply and the pipeline."""
        content_parts: list[str] = []
        thinking_parts: list[str] = []
        final_chunk = None
        cancel_event = asyncio.Event()

        try:
            async for chunk in ollama_client.chat_stream(model=model, messages=messages):
                # Check if client disconnected
                if await request.is_disconnected():
                    logger.warning("Client disconnected during model streaming")
                    return

                message = chunk.get("message") or {}
                if message.get("content"):
                    content_parts.append(message["content"])
                if message.get("thinking"):
                    thinking_parts.append(message["thinking"])

                if chunk.get("done"):
                    final_chunk = chunk
                    break
        except Exception as e:
            logger.error(f"Error during model streaming: {e}")
            error_event = ErrorEvent(
                code=ModelCallError.code,
                message=f"Failed to get response from Ollama: {str(e)}",
                details={"model": model},
            )
            yield {"event": "error", "data": error_event.model_dump_json()}
            return

        if final_chunk is None:
            error_event = ErrorEvent(
                code=ModelCallError.code,
                message="Stream ended without completion marker",
                details={"model": model},
            )
            yield {"event": "error", "data": error_event.model_dump_json()}
            return

        queue: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue()

        async def on_event(name: str, payload: dict[str, Any]) -> None:
            await queue.put((name, payload))

        task = asyncio.create_task(
            orchestrator.process_reply(
                "".join(content_parts),
                context,
                cancel_event=cancel_event,
                on_event=on_event,
                thinking="".join(thinking_parts) or None,
            )
        )

        while not task.done() or not queue.empty():
            if await request.is_disconnected():
                logger.warning("Client disconnected, cancelling remaining pipeline work")
                cancel_event.set()
                await task
                return
            try:
                name, payload = await asyncio.wait_for(queue.get(), timeout=EVENT_POLL_INTERVAL)
            except asyncio.TimeoutError:
                continue
            event_data = PROGRESS_EVENTS[name](**payload)
            yield {"event": name, "data": event_data.model_dump_json()}

        result = await task
        done_event = DoneEvent(
            model=final_chunk.get("model") or model,
            eval_count=final_chunk.get("eval_count"),
            prompt_eval_count=final_chunk.get("prompt_eval_count"),
            result=OrchestrationResponse(**result.to_dict()),
        )
        yield {"event": "done", "data": done_event.model_dump_json()}

    return EventSourceResponse(event_generator())
