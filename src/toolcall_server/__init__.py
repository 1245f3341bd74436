"""toolcall-server: tool-call detection, execution and response orchestration.

This package provides a REST API and SSE streaming interface that recovers
tool calls written as text in LLM replies, runs them on remote services, and
composes a verified answer from their results.
"""

__version__ = "0.1.0"

from toolcall_server.app import create_app  # noqa: E402

__all__ = ["create_app", "__version__"]
