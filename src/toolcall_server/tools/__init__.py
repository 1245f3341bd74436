"""Tool registry, detection and execution layer.

This package recovers tool calls written as text in model replies, validates
them against the registered tools, and runs them on their remote services.
"""

from toolcall_server.tools.detector import ToolCallDetector, normalize_text
from toolcall_server.tools.errors import (
    FieldMappingError,
    ModelCallError,
    RegistryError,
    SecondaryPassError,
    ToolcallError,
    ToolInvocationError,
)
from toolcall_server.tools.executor import HttpToolInvoker, ToolExecutor
from toolcall_server.tools.intent import GateDecision, IntentGate
from toolcall_server.tools.registry import (
    FileToolSource,
    HttpToolSource,
    RegistrySnapshot,
    ToolRegistry,
)
from toolcall_server.tools.strategies import DetectionStrategy, default_strategies
from toolcall_server.tools.types import (
    Attachment,
    RequestContext,
    SourceFormat,
    ToolCallCandidate,
    ToolDefinition,
    ToolExecutionResult,
    ValidatedToolCall,
)

__all__ = [
    # Core classes
    "ToolCallDetector",
    "ToolExecutor",
    "ToolRegistry",
    "IntentGate",
    # Registry
    "RegistrySnapshot",
    "FileToolSource",
    "HttpToolSource",
    "HttpToolInvoker",
    # Detection
    "DetectionStrategy",
    "default_strategies",
    "normalize_text",
    "GateDecision",
    # Data types
    "Attachment",
    "RequestContext",
    "SourceFormat",
    "ToolCallCandidate",
    "ToolDefinition",
    "ToolExecutionResult",
    "ValidatedToolCall",
    # Errors
    "ToolcallError",
    "RegistryError",
    "FieldMappingError",
    "ModelCallError",
    "ToolInvocationError",
    "SecondaryPassError",
]
