"""Ollama client wrapper and integration layer.

This package provides the async client used for the primary model pass and
the secondary summarization pass.
"""

from toolcall_server.ollama.client import OllamaClient
from toolcall_server.ollama.types import ChatReply

__all__ = ["OllamaClient", "ChatReply"]
