"""Chat orchestrator: from a model reply to a verified final response.

The orchestrator runs one reply through reasoning removal, tool-call
detection, execution, formatting and the optional secondary pass. Every
tool, formatting and summarization failure is recorded in the result; only
cancellation of the calling task propagates.

Invariant: once tools have run and all of them failed, the model's own text
is never returned as the answer.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from toolcall_server.formatters.factory import FormatterFactory
from toolcall_server.formatters.report import build_failure_report, build_report
from toolcall_server.orchestration.completeness import CompletenessPredicate, never_complete
from toolcall_server.orchestration.metrics import FlowMetrics
from toolcall_server.orchestration.prompts import strip_tool_syntax
from toolcall_server.orchestration.summarizer import SecondaryPass
from toolcall_server.orchestration.thinking import merge_thinking, strip_thinking
from toolcall_server.tools.detector import ToolCallDetector
from toolcall_server.tools.errors import SecondaryPassError
from toolcall_server.tools.executor import ToolExecutor
from toolcall_server.tools.registry import ToolRegistry
from toolcall_server.tools.types import RequestContext, ToolExecutionResult, ValidatedToolCall

logger = logging.getLogger(__name__)

ALL_FAILED_MESSAGE = (
    "I could not retrieve the requested data: none of the tool calls succeeded, "
    "so no answer can be given from verified results."
)
ANALYSIS_UNAVAILABLE_NOTE = (
    "> Analysis is temporarily unavailable. The tool results above are shown without a summary."
)
CANCELLED_MESSAGE = "The request was cancelled before the tool results were processed."

EventCallback = Callable[[str, dict[str, Any]], Awaitable[None] | None]


class FlowState(str, Enum):
    """Stages a reply passes through."""

    RECEIVED = "received"
    THINKING_STRIPPED = "thinking_stripped"
    DETECTED = "detected"
    NO_CALLS = "no_calls"
    CALLS_FOUND = "calls_found"
    EXECUTED = "executed"
    ALL_FAILED = "all_failed"
    SOME_SUCCEEDED = "some_succeeded"
    FORMATTED = "formatted"
    DIRECT_RETURN = "direct_return"
    SECONDARY_PASS = "secondary_pass"
    CANCELLED = "cancelled"
    FAILED = "failed"
    DONE = "done"


@dataclass
class OrchestrationResult:
    """Outcome of processing one model reply.

    Attributes:
        original_response: The reply exactly as received
        has_tool_calls: Whether at least one validated call was found
        tool_calls: Validated calls in detection order
        tool_results: Execution results, index-aligned with tool_calls
        formatted_results: Combined Markdown report over all results
        final_response: Text to show the user
        used_secondary_pass: Whether final_response came from the secondary pass
        thinking_content: Reasoning removed from the reply, if any
        preamble: The reply's prose with tool syntax removed; not verified
        error: Set only when the pipeline itself failed or was cancelled
        states: Stages visited, in order
        processing_time_ms: Wall time spent in the orchestrator
    """

    original_response: str
    has_tool_calls: bool = False
    tool_calls: list[ValidatedToolCall] = field(default_factory=list)
    tool_results: list[ToolExecutionResult] = field(default_factory=list)
    formatted_results: str = ""
    final_response: str = ""
    used_secondary_pass: bool = False
    thinking_content: str | None = None
    preamble: str = ""
    error: str | None = None
    states: list[FlowState] = field(default_factory=list)
    processing_time_ms: float = 0.0

    @property
    def successful_results(self) -> list[ToolExecutionResult]:
        return [result for result in self.tool_results if result.success]

    def to_dict(self) -> dict[str, Any]:
        """Serialize the result for API responses."""
        return {
            "original_response": self.original_response,
            "has_tool_calls": self.has_tool_calls,
            "tool_calls": [call.to_dict() for call in self.tool_calls],
            "tool_results": [result.to_dict() for result in self.tool_results],
            "formatted_results": self.formatted_results,
            "final_response": self.final_response,
            "used_secondary_pass": self.used_secondary_pass,
            "thinking_content": self.thinking_content,
            "preamble": self.preamble,
            "error": self.error,
            "states": [state.value for state in self.states],
            "processing_time_ms": self.processing_time_ms,
        }


class ChatOrchestrator:
    """Runs the detection, execution and response pipeline for model replies.

    Attributes:
        detector: Tool-call detector
        executor: Tool executor
        registry: Tool registry; one snapshot is taken per reply
        formatter_factory: Renders tool payloads
        summarizer: Secondary pass, or None to always return the report
        is_complete: Predicate deciding whether the report skips the secondary pass
        metrics: Flow counters
        concurrent_execution: Run independent calls concurrently
        default_model: Model for the secondary pass when the request names none
    """

    def __init__(
        self,
        detector: ToolCallDetector,
        executor: ToolExecutor,
        registry: ToolRegistry,
        formatter_factory: FormatterFactory,
        summarizer: SecondaryPass | None = None,
        is_complete: CompletenessPredicate | None = None,
        metrics: FlowMetrics | None = None,
        concurrent_execution: bool = False,
        default_model: str = "llama3.2:latest",
    ) -> None:
        """Initialize the orchestrator.

        Args:
            detector: Tool-call detector
            executor: Tool executor
            registry: Tool registry
            formatter_factory: Renders tool payloads
            summarizer: Secondary pass (optional)
            is_complete: Report completeness predicate (default: never complete)
            metrics: Flow counters (default: a fresh FlowMetrics)
            concurrent_execution: Run independent calls concurrently
            default_model: Model for the secondary pass when the request names none
        """
        self.detector = detector
        self.executor = executor
        self.registry = registry
        self.formatter_factory = formatter_factory
        self.summarizer = summarizer
        self.is_complete = is_complete or never_complete
        self.metrics = metrics or FlowMetrics()
        self.concurrent_execution = concurrent_execution
        self.default_model = default_model

    async def process_reply(
        self,
        reply: str,
        context: RequestContext,
        cancel_event: asyncio.Event | None = None,
        on_event: EventCallback | None = None,
        thinking: str | None = None,
    ) -> OrchestrationResult:
        """Process one model reply end to end.

        Args:
            reply: The model's reply text
            context: Request context (user, conversation, question, attachments)
            cancel_event: Set when the caller gave up on the request
            on_event: Progress callback, called as on_event(name, payload);
                may be sync or async
            thinking: Reasoning the model streamed outside the reply text

        Returns:
            OrchestrationResult: Never raises for pipeline failures; those are
            reported in the result's error field
        """
        started = time.perf_counter()
        result = OrchestrationResult(original_response=reply or "")
        result.states.append(FlowState.RECEIVED)
        self.metrics.record_start()

        try:
            await self._run(result, context, cancel_event, on_event, thinking)
        except Exception as e:
            logger.exception(f"Reply processing failed: {e}")
            result.error = str(e) or type(e).__name__
            result.states.append(FlowState.FAILED)
            if not result.tool_results:
                # No tool ran, so there is nothing the original text could contradict
                result.final_response, _ = strip_thinking(result.original_response)
            elif result.formatted_results and result.successful_results:
                result.final_response = f"{result.formatted_results.rstrip()}\n\n{ANALYSIS_UNAVAILABLE_NOTE}"
            else:
                result.final_response = self._all_failed_response(result.tool_results)

        result.states.append(FlowState.DONE)
        result.processing_time_ms = round((time.perf_counter() - started) * 1000, 2)
        self.metrics.record_finish(
            result.processing_time_ms,
            failed=result.error is not None,
            had_tools=result.has_tool_calls,
            direct_return=FlowState.DIRECT_RETURN in result.states,
            secondary_pass=result.used_secondary_pass,
        )
        return result

    async def _run(
        self,
        result: OrchestrationResult,
        context: RequestContext,
        cancel_event: asyncio.Event | None,
        on_event: EventCallback | None,
        streamed_thinking: str | None,
    ) -> None:
        cleaned, thinking = strip_thinking(result.original_response)
        result.thinking_content = merge_thinking(streamed_thinking, thinking)
        result.preamble = strip_tool_syntax(cleaned)
        result.states.append(FlowState.THINKING_STRIPPED)
        if result.thinking_content:
            await self._emit(on_event, "thinking", {"content": result.thinking_content})

        snapshot = await self.registry.snapshot()
        calls = self.detector.detect(cleaned, snapshot, context)
        result.states.append(FlowState.DETECTED)

        if not calls:
            result.final_response = cleaned
            result.states.append(FlowState.NO_CALLS)
            return

        result.has_tool_calls = True
        result.tool_calls = calls
        result.states.append(FlowState.CALLS_FOUND)
        logger.info(
            f"Detected {len(calls)} tool call(s): {', '.join(call.tool_name for call in calls)} "
            f"(conversation: {context.conversation_id})"
        )
        await self._emit(on_event, "tool_detected", {"tool_calls": [call.to_dict() for call in calls]})

        if self._cancelled(cancel_event):
            self._mark_cancelled(result)
            return

        async def on_start(tool_name: str, index: int, total: int) -> None:
            await self._emit(
                on_event, "tool_execution_start", {"tool_name": tool_name, "index": index, "total": total}
            )

        async def on_complete(tool_name: str, tool_result: ToolExecutionResult) -> None:
            await self._emit(on_event, "tool_execution_complete", tool_result.to_dict())

        results = await self.executor.execute(
            calls,
            context,
            snapshot,
            concurrent=self.concurrent_execution,
            on_start=on_start,
            on_complete=on_complete,
        )
        result.states.append(FlowState.EXECUTED)

        if self._cancelled(cancel_event):
            self._mark_cancelled(result)
            return

        result.tool_results = results

        if not any(r.success for r in results):
            result.states.append(FlowState.ALL_FAILED)
            result.formatted_results = build_report(
                results, self.formatter_factory, context={"user_question": context.user_question}
            )
            result.final_response = self._all_failed_response(results)
            logger.warning(f"All {len(results)} tool call(s) failed")
            await self._emit(on_event, "formatted_results", {"content": result.formatted_results})
            return

        result.states.append(FlowState.SOME_SUCCEEDED)
        report = build_report(
            results, self.formatter_factory, context={"user_question": context.user_question}
        )
        result.formatted_results = report
        result.states.append(FlowState.FORMATTED)
        await self._emit(on_event, "formatted_results", {"content": report})

        if self.summarizer is None or self.is_complete(report) or self._cancelled(cancel_event):
            result.final_response = report
            result.states.append(FlowState.DIRECT_RETURN)
            return

        result.states.append(FlowState.SECONDARY_PASS)
        model = context.model or self.default_model
        try:
            answer = await self.summarizer.summarize(context.user_question or "", results, model)
        except SecondaryPassError as e:
            logger.warning(f"Secondary pass failed, returning formatted results: {e.message}")
            result.final_response = f"{report.rstrip()}\n\n{ANALYSIS_UNAVAILABLE_NOTE}"
            return

        result.used_secondary_pass = True
        result.final_response = f"{answer}\n\n{report}"
        await self._emit(on_event, "summary", {"content": answer})

    @staticmethod
    def _all_failed_response(results: list[ToolExecutionResult]) -> str:
        report = build_failure_report(results)
        return f"{ALL_FAILED_MESSAGE}\n\n{report}" if report else ALL_FAILED_MESSAGE

    @staticmethod
    def _cancelled(cancel_event: asyncio.Event | None) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    @staticmethod
    def _mark_cancelled(result: OrchestrationResult) -> None:
        logger.info("Request cancelled, discarding tool results")
        result.states.append(FlowState.CANCELLED)
        result.error = "cancelled"
        result.final_response = CANCELLED_MESSAGE

    @staticmethod
    async def _emit(on_event: EventCallback | None, name: str, payload: dict[str, Any]) -> None:
        if on_event is None:
            return
        try:
            outcome = on_event(name, payload)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Event callback for {name} failed: {e}")
