"""Secondary summarization pass over verified tool output.

This module provides the SecondaryPass service, which issues one tightly
scoped model call to compress successful tool payloads into a short answer.
Sampling is deterministic and the input is restricted to the user's question
and the raw payloads.
"""

import logging

from toolcall_server.ollama import OllamaClient
from toolcall_server.orchestration.prompts import build_secondary_messages
from toolcall_server.orchestration.thinking import strip_thinking
from toolcall_server.tools.errors import ModelCallError, SecondaryPassError
from toolcall_server.tools.types import ToolExecutionResult

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.0
DEFAULT_MAX_TOKENS = 800
DEFAULT_TIMEOUT = 60.0  # seconds


class SecondaryPass:
    """Service for the optional follow-up model call.

    Attributes:
        ollama_client: Client used for the model call
        model: Model override; None uses the model of the request
        temperature: Sampling temperature
        max_tokens: Upper bound on generated tokens
        timeout: Seconds to wait for the complete reply
    """

    def __init__(
        self,
        ollama_client: OllamaClient,
        model: str | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the secondary pass.

        Args:
            ollama_client: Client used for the model call
            model: Model override; None uses the model of the request
            temperature: Sampling temperature
            max_tokens: Upper bound on generated tokens
            timeout: Seconds to wait for the complete reply
        """
        self.ollama_client = ollama_client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    @property
    def options(self) -> dict[str, float | int]:
        """Ollama sampling options for the call."""
        return {"temperature": self.temperature, "num_predict": self.max_tokens}

    async def summarize(
        self,
        user_question: str,
        results: list[ToolExecutionResult],
        model: str,
    ) -> str:
        """Compress successful tool payloads into a short answer.

        Args:
            user_question: The user's original question
            results: Execution results; only successes are sent
            model: Model of the request, used when no override is set

        Returns:
            str: The answer, with any reasoning block removed

        Raises:
            SecondaryPassError: If the call fails, times out or returns nothing
        """
        target_model = self.model or model
        messages = build_secondary_messages(user_question, results)

        logger.debug(f"Starting secondary pass with model: {target_model}")
        try:
            reply = await self.ollama_client.chat(
                model=target_model,
                messages=messages,
                options=self.options,
                timeout=self.timeout,
            )
        except ModelCallError as e:
            raise SecondaryPassError(e.message, details=e.details) from e

        answer, _ = strip_thinking(reply.content)
        if not answer:
            raise SecondaryPassError(
                "Secondary pass returned an empty answer",
                details={"model": target_model},
            )

        logger.debug(f"Secondary pass completed ({len(answer)} chars)")
        return answer
