"""Tool registry with periodically refreshed, immutable snapshots.

The registry document lists remote services and the tools each one exposes:

    {
        "services": [
            {
                "id": "records",
                "name": "Record Service",
                "endpoint": "http://localhost:9000/tools",
                "enabled": true,
                "tools": [
                    {
                        "name": "lookup_record",
                        "description": "Fetch one record by id",
                        "category": "records",
                        "priority": 2,
                        "enabled": true,
                        "parameters": {"type": "object", "properties": {...}}
                    }
                ]
            }
        ]
    }

A refresh builds a new RegistrySnapshot and swaps the reference in one
assignment, so a pipeline that already holds a snapshot keeps using it.
"""

import json
import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Protocol

import httpx

from toolcall_server.tools.errors import RegistryError
from toolcall_server.tools.types import ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 300.0  # seconds


def normalize_tool_name(name: str) -> str:
    """Reduce a tool name to its lookup form.

    Lowercases the name and keeps only the trailing segment of a dotted
    `module.tool` name.
    """
    return name.strip().rsplit(".", 1)[-1].lower()


class RegistrySnapshot:
    """Immutable view of the registered tools at one point in time."""

    def __init__(self, tools: list[ToolDefinition], version: int = 0) -> None:
        self.tools: tuple[ToolDefinition, ...] = tuple(tools)
        self.version = version
        self.loaded_at = time.time()
        self._by_name: dict[str, ToolDefinition] = {}
        self._by_id: dict[str, ToolDefinition] = {}
        for tool in self.tools:
            self._by_id[tool.tool_id] = tool
            # Enabled tools win name collisions with disabled ones
            existing = self._by_name.get(tool.lookup_key)
            if existing is None or (tool.enabled and not existing.enabled):
                self._by_name[tool.lookup_key] = tool

    @property
    def enabled_tools(self) -> list[ToolDefinition]:
        """Enabled tools in registry order."""
        return [tool for tool in self.tools if tool.enabled]

    def find(self, name: str) -> ToolDefinition | None:
        """Find a tool by name, case-insensitively.

        A dotted name falls back to its trailing segment when the full name
        is not registered.

        Args:
            name: The tool name as written by the model

        Returns:
            The matching definition (enabled or not), or None
        """
        key = name.strip().lower()
        tool = self._by_name.get(key)
        if tool is None and "." in key:
            tool = self._by_name.get(normalize_tool_name(key))
        return tool

    def find_enabled(self, name: str) -> ToolDefinition | None:
        """Find an enabled tool by name, or None."""
        tool = self.find(name)
        if tool is None or not tool.enabled:
            return None
        return tool

    def get(self, tool_id: str) -> ToolDefinition | None:
        """Get a tool by its id."""
        return self._by_id.get(tool_id)

    def __len__(self) -> int:
        return len(self.tools)


def parse_registry_document(document: Any) -> list[ToolDefinition]:
    """Build tool definitions from a registry document.

    Args:
        document: Parsed registry JSON

    Returns:
        list[ToolDefinition]: All tools, enabled and disabled

    Raises:
        RegistryError: If the document does not have the expected shape
    """
    if not isinstance(document, dict) or not isinstance(document.get("services"), list):
        raise RegistryError("Registry document must contain a 'services' list")

    tools: list[ToolDefinition] = []
    for index, service in enumerate(document["services"]):
        if not isinstance(service, dict):
            raise RegistryError(f"Service entry {index} is not an object")

        service_id = str(service.get("id") or service.get("name") or index)
        service_name = str(service.get("name") or service_id)
        endpoint = service.get("endpoint")
        if not endpoint:
            raise RegistryError(
                f"Service '{service_name}' has no endpoint",
                details={"service_id": service_id},
            )
        service_enabled = bool(service.get("enabled", True))

        for tool in service.get("tools", []):
            if not isinstance(tool, dict) or not tool.get("name"):
                raise RegistryError(
                    f"Service '{service_name}' has a tool without a name",
                    details={"service_id": service_id},
                )
            name = str(tool["name"])
            schema = tool.get("parameters") or tool.get("input_schema") or {}
            tools.append(
                ToolDefinition(
                    tool_id=str(tool.get("id") or f"{service_id}:{name}"),
                    name=name,
                    service_id=service_id,
                    service_name=service_name,
                    service_endpoint=str(endpoint),
                    parameter_schema=schema if isinstance(schema, dict) else {},
                    description=str(tool.get("description") or ""),
                    category=str(tool.get("category") or "general"),
                    enabled=service_enabled and bool(tool.get("enabled", True)),
                    priority=int(tool.get("priority", 1)),
                    usage_count=int(tool.get("usage_count", 0)),
                )
            )
    return tools


class ToolSource(Protocol):
    """Where the registry document comes from."""

    async def load(self) -> Any:
        """Load and return the parsed registry document."""
        ...


class FileToolSource:
    """Registry document stored as a local JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    async def load(self) -> Any:
        """Read the registry file.

        A missing file is treated as an empty registry.

        Raises:
            RegistryError: If the file exists but is not valid JSON
        """
        if not self.path.exists():
            logger.warning(f"Registry file not found: {self.path}, no tools registered")
            return {"services": []}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise RegistryError(
                f"Failed to read registry file {self.path}: {e}",
                details={"path": str(self.path)},
            ) from e


class HttpToolSource:
    """Registry document served by an HTTP endpoint."""

    def __init__(self, url: str, client: httpx.AsyncClient) -> None:
        self.url = url
        self._client = client

    async def load(self) -> Any:
        """Fetch the registry document.

        Raises:
            RegistryError: If the request fails or the body is not JSON
        """
        try:
            response = await self._client.get(self.url)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RegistryError(
                f"Failed to fetch registry from {self.url}: {e}",
                details={"url": self.url},
            ) from e


class ToolRegistry:
    """Cached access to the registered tools.

    Attributes:
        source: Where the registry document is loaded from
        refresh_interval: Seconds a snapshot stays fresh
    """

    def __init__(
        self,
        source: ToolSource,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the registry.

        Args:
            source: Registry document source
            refresh_interval: Seconds before a snapshot is reloaded
            clock: Monotonic clock, injectable for tests
        """
        self.source = source
        self.refresh_interval = refresh_interval
        self._clock = clock
        self._snapshot: RegistrySnapshot | None = None
        self._refreshed_at = 0.0
        self._version = 0
        # Best-effort counters; concurrent increments may be lost
        self._usage: dict[str, int] = {}

    @property
    def current(self) -> RegistrySnapshot | None:
        """The latest loaded snapshot, without triggering a refresh."""
        return self._snapshot

    def is_stale(self) -> bool:
        """Whether the cached snapshot is missing or older than the interval."""
        if self._snapshot is None:
            return True
        return self._clock() - self._refreshed_at >= self.refresh_interval

    async def refresh(self) -> RegistrySnapshot:
        """Reload the registry document and swap in a new snapshot.

        Returns:
            RegistrySnapshot: The newly loaded snapshot

        Raises:
            RegistryError: If the document cannot be loaded or parsed
        """
        document = await self.source.load()
        tools = parse_registry_document(document)
        self._version += 1
        snapshot = RegistrySnapshot(tools, version=self._version)
        self._snapshot = snapshot
        self._refreshed_at = self._clock()
        logger.info(
            f"Tool registry refreshed: {len(snapshot.enabled_tools)} enabled "
            f"of {len(snapshot)} tools (version {snapshot.version})"
        )
        return snapshot

    async def snapshot(self, force_refresh: bool = False) -> RegistrySnapshot:
        """Get a snapshot, reloading it when stale or when forced.

        A failed reload keeps serving the previous snapshot.

        Args:
            force_refresh: Reload even if the cached snapshot is fresh

        Returns:
            RegistrySnapshot: The snapshot to use for one pipeline run

        Raises:
            RegistryError: If no snapshot has ever been loaded and loading fails
        """
        if self._snapshot is not None and not force_refresh and not self.is_stale():
            return self._snapshot

        try:
            return await self.refresh()
        except RegistryError as e:
            if self._snapshot is None:
                raise
            logger.warning(f"Registry refresh failed, keeping version {self._snapshot.version}: {e}")
            return self._snapshot

    async def list_enabled_tools(self, force_refresh: bool = False) -> list[ToolDefinition]:
        """List enabled tools with their current usage counts.

        Args:
            force_refresh: Reload the registry before listing

        Returns:
            list[ToolDefinition]: Enabled tools in registry order
        """
        snapshot = await self.snapshot(force_refresh=force_refresh)
        return [self._with_usage(tool) for tool in snapshot.enabled_tools]

    def increment_usage(self, tool_id: str) -> None:
        """Count one successful use of a tool."""
        self._usage[tool_id] = self._usage.get(tool_id, 0) + 1

    def usage_count(self, tool: ToolDefinition) -> int:
        """Usage count of a tool, including uses since the last load."""
        return tool.usage_count + self._usage.get(tool.tool_id, 0)

    def _with_usage(self, tool: ToolDefinition) -> ToolDefinition:
        delta = self._usage.get(tool.tool_id, 0)
        if delta == 0:
            return tool
        return replace(tool, usage_count=tool.usage_count + delta)

    async def stats(self) -> dict[str, Any]:
        """Summarize registered tools by category.

        Returns:
            dict: total_tools, enabled_tools, total_usage and category_stats
        """
        snapshot = await self.snapshot()
        category_stats: dict[str, dict[str, int]] = {}
        total_usage = 0

        for tool in snapshot.enabled_tools:
            usage = self.usage_count(tool)
            bucket = category_stats.setdefault(tool.category, {"count": 0, "usage": 0})
            bucket["count"] += 1
            bucket["usage"] += usage
            total_usage += usage

        return {
            "total_tools": len(snapshot),
            "enabled_tools": len(snapshot.enabled_tools),
            "total_usage": total_usage,
            "category_stats": category_stats,
            "version": snapshot.version,
        }
