"""Async Ollama client wrapper.

This module provides an async wrapper around the ollama.AsyncClient for the
primary and secondary model calls. The client is created once at startup
and reused; every call streams and is collected by `chat` when a complete
reply is needed.
"""

import asyncio
import logging
from typing import Any, AsyncIterator

import ollama

from toolcall_server.ollama.types import ChatReply
from toolcall_server.tools.errors import ModelCallError

logger = logging.getLogger(__name__)


class OllamaClient:
    """Async client for interacting with Ollama API.

    Attributes:
        host: The Ollama server URL (e.g., "http://localhost:11434")
        _client: The underlying ollama.AsyncClient instance
    """

    def __init__(self, host: str) -> None:
        """Initialize the Ollama client.

        Args:
            host: The Ollama server URL
        """
        self.host = host
        self._client = ollama.AsyncClient(host=host)
        logger.info(f"OllamaClient initialized with host: {host}")

    async def check_connection(self) -> bool:
        """Check if the Ollama server is reachable.

        Returns:
            bool: True if connection is successful, False otherwise
        """
        try:
            await self._client.list()
            logger.debug("Ollama connection check: successful")
            return True
        except Exception as e:
            logger.warning(f"Ollama connection check failed: {e}")
            return False

    async def chat_stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        options: dict[str, Any] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream chat responses from Ollama.

        Args:
            model: The model name to use for the chat
            messages: List of message dicts in Ollama format:
                      [{"role": "user", "content": "..."}, ...]
            options: Optional model parameters (temperature, num_predict, etc.)

        Yields:
            dict: Response chunks from Ollama. Each chunk contains:
                  - model: str - The model name
                  - message: dict - Contains role, content and optionally thinking
                  - done: bool - True on the final chunk
                  - (final chunk includes eval_count, prompt_eval_count, etc.)

        Raises:
            Exception: If the Ollama API request fails
        """
        try:
            logger.debug(f"Starting chat stream with model: {model} ({len(messages)} messages)")

            async for chunk in await self._client.chat(
                model=model,
                messages=messages,
                stream=True,
                options=options,
            ):
                if hasattr(chunk, "model_dump"):
                    chunk_dict = chunk.model_dump()
                elif isinstance(chunk, dict):
                    chunk_dict = chunk
                else:
                    chunk_dict = vars(chunk)

                yield chunk_dict

            logger.debug("Chat stream completed")

        except Exception as e:
            logger.error(f"Chat stream failed: {e}")
            raise

    async def chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        options: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ChatReply:
        """Collect a complete reply from the streaming API.

        Args:
            model: The model name to use
            messages: Messages in Ollama format
            options: Optional model parameters
            timeout: Seconds to wait for the whole reply (default: no limit)

        Returns:
            ChatReply: The assembled reply

        Raises:
            ModelCallError: If the call fails, times out, or the stream ends
                without a completion marker
        """
        try:
            return await asyncio.wait_for(self._collect(model, messages, options), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ModelCallError(
                f"timeout: model {model} did not answer within {timeout:g}s",
                details={"model": model},
            ) from e
        except ModelCallError:
            raise
        except Exception as e:
            raise ModelCallError(
                f"Failed to get response from Ollama: {e}",
                details={"model": model},
            ) from e

    async def _collect(
        self,
        model: str,
        messages: list[dict[str, Any]],
        options: dict[str, Any] | None,
    ) -> ChatReply:
        content_parts: list[str] = []
        thinking_parts: list[str] = []
        final_chunk = None

        async for chunk in self.chat_stream(model=model, messages=messages, options=options):
            message = chunk.get("message") or {}
            if message.get("content"):
                content_parts.append(message["content"])
            if message.get("thinking"):
                thinking_parts.append(message["thinking"])
            if chunk.get("done"):
                final_chunk = chunk

        if final_chunk is None:
            raise ModelCallError(
                "Stream ended without completion marker",
                details={"model": model},
            )

        return ChatReply(
            content="".join(content_parts),
            model=final_chunk.get("model") or model,
            thinking="".join(thinking_parts) or None,
            eval_count=final_chunk.get("eval_count"),
            prompt_eval_count=final_chunk.get("prompt_eval_count"),
        )

    async def close(self) -> None:
        """Close the client and clean up resources.

        ollama.AsyncClient uses httpx internally which handles cleanup.
        """
        logger.debug("OllamaClient closed")
