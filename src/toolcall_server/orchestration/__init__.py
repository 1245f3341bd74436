"""Reply orchestration layer.

This package sequences tool-call detection, execution, result formatting and
the optional secondary summarization pass for one model reply.
"""

from toolcall_server.orchestration.completeness import MarkerCompleteness, never_complete
from toolcall_server.orchestration.metrics import FlowMetrics
from toolcall_server.orchestration.orchestrator import (
    ALL_FAILED_MESSAGE,
    ANALYSIS_UNAVAILABLE_NOTE,
    ChatOrchestrator,
    FlowState,
    OrchestrationResult,
)
from toolcall_server.orchestration.prompts import (
    build_secondary_messages,
    build_tool_system_prompt,
    strip_tool_syntax,
)
from toolcall_server.orchestration.summarizer import SecondaryPass
from toolcall_server.orchestration.thinking import strip_thinking

__all__ = [
    # Core classes
    "ChatOrchestrator",
    "OrchestrationResult",
    "FlowState",
    "SecondaryPass",
    "FlowMetrics",
    # Completeness predicates
    "MarkerCompleteness",
    "never_complete",
    # Prompts and text helpers
    "build_tool_system_prompt",
    "build_secondary_messages",
    "strip_tool_syntax",
    "strip_thinking",
    # Messages
    "ALL_FAILED_MESSAGE",
    "ANALYSIS_UNAVAILABLE_NOTE",
]
