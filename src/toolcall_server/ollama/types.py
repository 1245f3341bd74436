"""Type definitions for Ollama integration."""

from dataclasses import dataclass


@dataclass
class ChatReply:
    """A complete model reply assembled from streamed chunks.

    Attributes:
        content: Concatenated message content
        model: Model that produced the reply
        thinking: Reasoning content streamed separately by thinking models
        eval_count: Tokens generated, from the final chunk
        prompt_eval_count: Prompt tokens evaluated, from the final chunk
    """

    content: str
    model: str
    thinking: str | None = None
    eval_count: int | None = None
    prompt_eval_count: int | None = None
