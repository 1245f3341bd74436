"""Execution of validated tool calls against remote services.

Each call is sent as `POST {service_endpoint}/{tool_name}` with the call's
parameters as a JSON body. Every outcome, including timeouts, transport
errors and error payloads, becomes a ToolExecutionResult; nothing raised by
a single tool reaches the caller.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Protocol

import httpx

from toolcall_server.tools.errors import ToolInvocationError
from toolcall_server.tools.registry import RegistrySnapshot, ToolRegistry
from toolcall_server.tools.types import (
    RequestContext,
    ToolDefinition,
    ToolExecutionResult,
    ValidatedToolCall,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0  # seconds

# Execution metadata copied from the remote payload when present
METADATA_KEYS = ("module", "executionTime", "fromCache", "executionId", "version")

StartCallback = Callable[[str, int, int], Awaitable[None] | None]
CompleteCallback = Callable[[str, ToolExecutionResult], Awaitable[None] | None]


def _error_message(value: Any) -> str | None:
    if not value:
        return None
    if isinstance(value, dict):
        return str(value.get("message") or value.get("detail") or value)
    return str(value)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (dict, list, str)) and len(value) == 0)


def interpret_payload(tool_name: str, payload: Any) -> tuple[bool, Any, str | None, dict[str, Any]]:
    """Split a remote tool response into outcome, business data and metadata.

    Services either answer with a flat envelope or nest it under `result`.
    The envelope minus its status and metadata keys is the data handed to
    the formatters.

    Args:
        tool_name: Name of the invoked tool
        payload: Parsed JSON response body

    Returns:
        Tuple of (success, data, error, metadata)
    """
    if not isinstance(payload, dict):
        return True, payload, None, {}

    execution = payload["result"] if isinstance(payload.get("result"), dict) else payload
    metadata = {
        key: source[key]
        for source in (payload, execution)
        for key in METADATA_KEYS
        if key in source
    }

    error = _error_message(execution.get("error")) or _error_message(payload.get("error"))
    if execution.get("success") is False or payload.get("success") is False or error:
        return False, None, error or f"{tool_name} reported a failure", metadata

    # Envelope extras such as statistics, filters and aiInstructions stay with
    # the data; an envelope holding only `data` is unwrapped
    data: Any = {
        key: value
        for key, value in execution.items()
        if key not in ("success", "error", *METADATA_KEYS)
    }
    if set(data) == {"data"}:
        data = data["data"]

    # Lookup tools answer "not found" with an empty successful payload
    business = data.get("data", data) if isinstance(data, dict) else data
    if tool_name.startswith("get_") and _is_empty(business):
        return False, None, f"{tool_name} failed: no data found", metadata

    return True, data, None, metadata


class ToolInvoker(Protocol):
    """Transport that runs one tool on its owning service."""

    async def invoke(
        self,
        tool: ToolDefinition,
        parameters: dict[str, Any],
        context: RequestContext,
        timeout: float,
    ) -> Any:
        """Invoke the tool and return the parsed response body."""
        ...


class HttpToolInvoker:
    """Invokes tools over HTTP with a shared httpx.AsyncClient."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def invoke(
        self,
        tool: ToolDefinition,
        parameters: dict[str, Any],
        context: RequestContext,
        timeout: float,
    ) -> Any:
        """POST the parameters to the tool's endpoint.

        Args:
            tool: Tool definition holding the service endpoint
            parameters: JSON body
            context: Request context, forwarded as headers
            timeout: Transport timeout in seconds

        Returns:
            The parsed JSON response body

        Raises:
            ToolInvocationError: On transport errors, error statuses or
                non-JSON bodies
        """
        url = f"{tool.service_endpoint.rstrip('/')}/{tool.name}"
        headers = {}
        if context.user_id:
            headers["X-User-Id"] = str(context.user_id)
        if context.conversation_id:
            headers["X-Conversation-Id"] = str(context.conversation_id)

        try:
            response = await self._client.post(url, json=parameters, headers=headers, timeout=timeout)
        except httpx.TimeoutException as e:
            raise ToolInvocationError(
                f"timeout: {tool.name} did not respond within {timeout:g}s",
                details={"url": url},
            ) from e
        except httpx.RequestError as e:
            raise ToolInvocationError(
                f"Could not reach service {tool.service_name}: {e}",
                details={"url": url},
            ) from e

        if response.status_code >= 400:
            message = response.reason_phrase
            try:
                body = response.json()
                if isinstance(body, dict):
                    message = _error_message(body.get("error") or body.get("detail") or body.get("message")) or message
            except ValueError:
                pass
            raise ToolInvocationError(
                f"HTTP {response.status_code}: {message}",
                details={"url": url, "status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise ToolInvocationError(
                f"{tool.name} returned a non-JSON response",
                details={"url": url},
            ) from e


class ToolExecutor:
    """Runs validated calls and records their outcomes in call order.

    Attributes:
        invoker: Transport used to reach remote services
        registry: Registry whose usage counters are bumped on success
        default_timeout: Timeout for tools without an override
        tool_timeouts: Per-tool timeout overrides in seconds
    """

    def __init__(
        self,
        invoker: ToolInvoker,
        registry: ToolRegistry | None = None,
        default_timeout: float = DEFAULT_TIMEOUT,
        tool_timeouts: dict[str, float] | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            invoker: Transport used to reach remote services
            registry: Registry for usage counting (optional)
            default_timeout: Timeout for tools without an override
            tool_timeouts: Per-tool timeout overrides in seconds
        """
        self.invoker = invoker
        self.registry = registry
        self.default_timeout = default_timeout
        self.tool_timeouts = dict(tool_timeouts or {})

    def get_timeout(self, tool_name: str) -> float:
        """Timeout in seconds for one tool."""
        return self.tool_timeouts.get(tool_name, self.default_timeout)

    async def execute(
        self,
        calls: list[ValidatedToolCall],
        context: RequestContext,
        tools: RegistrySnapshot,
        concurrent: bool = False,
        on_start: StartCallback | None = None,
        on_complete: CompleteCallback | None = None,
    ) -> list[ToolExecutionResult]:
        """Execute calls and return one result per call, index-aligned.

        In-flight invocations are shielded from cancellation of the caller so
        remote side effects and usage counters stay consistent; after a
        cancellation no further call is started.

        Args:
            calls: Validated calls in detection order
            context: Request context
            tools: Registry snapshot the calls were validated against
            concurrent: Run all calls at once instead of one by one
            on_start: Called as on_start(tool_name, index, total) before each call
            on_complete: Called as on_complete(tool_name, result) after each call

        Returns:
            list[ToolExecutionResult]: results[i] belongs to calls[i]
        """
        total = len(calls)
        if total == 0:
            return []

        logger.info(f"Executing {total} tool call(s) ({'concurrent' if concurrent else 'sequential'})")

        if concurrent:
            tasks = [
                asyncio.ensure_future(
                    self._execute_one(call, index, total, context, tools, on_start, on_complete)
                )
                for index, call in enumerate(calls)
            ]
            results = list(await asyncio.shield(asyncio.gather(*tasks)))
        else:
            results = []
            for index, call in enumerate(calls):
                task = asyncio.ensure_future(
                    self._execute_one(call, index, total, context, tools, on_start, on_complete)
                )
                results.append(await asyncio.shield(task))

        succeeded = sum(1 for result in results if result.success)
        logger.info(f"Tool execution finished: {succeeded}/{total} succeeded")
        return results

    async def _execute_one(
        self,
        call: ValidatedToolCall,
        index: int,
        total: int,
        context: RequestContext,
        tools: RegistrySnapshot,
        on_start: StartCallback | None,
        on_complete: CompleteCallback | None,
    ) -> ToolExecutionResult:
        await self._notify(on_start, call.tool_name, index, total)
        result = await self.execute_call(call, context, tools)
        await self._notify(on_complete, call.tool_name, result)
        return result

    async def execute_call(
        self,
        call: ValidatedToolCall,
        context: RequestContext,
        tools: RegistrySnapshot,
    ) -> ToolExecutionResult:
        """Execute one call. Never raises for tool-level failures.

        Args:
            call: The validated call
            context: Request context
            tools: Registry snapshot used to resolve the call's tool

        Returns:
            ToolExecutionResult: The recorded outcome
        """
        started = time.perf_counter()

        def elapsed_ms() -> float:
            return round((time.perf_counter() - started) * 1000, 2)

        tool = tools.get(call.tool_id)
        if tool is None or not tool.enabled:
            logger.warning(f"Refusing to execute unknown or disabled tool: {call.tool_name}")
            return ToolExecutionResult(
                tool_call=call,
                tool_id=call.tool_id,
                tool_name=call.tool_name,
                service_name=tool.service_name if tool else "unknown",
                success=False,
                error=f"Tool '{call.tool_name}' is unknown or disabled",
                execution_time_ms=elapsed_ms(),
            )

        timeout = self.get_timeout(tool.name)
        logger.info(f"Executing tool: {tool.name} (service: {tool.service_name}, timeout: {timeout:g}s)")

        try:
            payload = await asyncio.wait_for(
                self.invoker.invoke(tool, call.parameters, context, timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Tool {tool.name} timed out after {timeout:g}s")
            return self._failure(call, tool, f"timeout: {tool.name} did not respond within {timeout:g}s", elapsed_ms())
        except ToolInvocationError as e:
            logger.warning(f"Tool {tool.name} failed: {e.message}")
            return self._failure(call, tool, e.message, elapsed_ms())
        except Exception as e:
            logger.warning(f"Tool {tool.name} raised {type(e).__name__}: {e}")
            return self._failure(call, tool, f"{type(e).__name__}: {e}", elapsed_ms())

        success, data, error, metadata = interpret_payload(tool.name, payload)
        if not success:
            logger.warning(f"Tool {tool.name} reported an error: {error}")
            return self._failure(call, tool, error or "unknown error", elapsed_ms(), metadata)

        if self.registry is not None:
            try:
                self.registry.increment_usage(tool.tool_id)
            except Exception as e:
                logger.warning(f"Failed to record usage for {tool.name}: {e}")

        return ToolExecutionResult(
            tool_call=call,
            tool_id=tool.tool_id,
            tool_name=tool.name,
            service_name=tool.service_name,
            success=True,
            data=data,
            execution_time_ms=elapsed_ms(),
            metadata=metadata,
        )

    @staticmethod
    def _failure(
        call: ValidatedToolCall,
        tool: ToolDefinition,
        error: str,
        execution_time_ms: float,
        metadata: dict[str, Any] | None = None,
    ) -> ToolExecutionResult:
        return ToolExecutionResult(
            tool_call=call,
            tool_id=tool.tool_id,
            tool_name=tool.name,
            service_name=tool.service_name,
            success=False,
            error=error,
            execution_time_ms=execution_time_ms,
            metadata=metadata or {},
        )

    @staticmethod
    async def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")
