"""Prompt construction for the primary and secondary model passes.

The tool system prompt is rebuilt from the registry snapshot handed in by
the caller; nothing here caches between requests.
"""

import json
import re
from typing import Any

from toolcall_server.formatters.base import clean_data_for_model
from toolcall_server.tools.types import ToolDefinition, ToolExecutionResult

UNKNOWN_SERVICE = "Unknown service"

SECONDARY_SYSTEM_PROMPT = (
    "You answer questions using only the tool results provided to you.\n"
    "Rules:\n"
    "1. Answer in a few short sentences.\n"
    "2. Use only facts, fields and numbers that appear in the tool results.\n"
    "3. Never invent fields, records or values that are not in the tool results.\n"
    "4. If the results do not answer the question, say so plainly.\n"
    "5. Do not call any tools and do not repeat the raw data."
)

_FENCED_TOOL_BLOCK = re.compile(
    r"```(?:json|tool_call|tool)?[ \t]*\n?\s*[\[{][^`]*?\"tool\"\s*:[^`]*?```",
    re.DOTALL | re.IGNORECASE,
)
_TOOL_CALL_ELEMENT = re.compile(r"<tool_call\b[^>]*?(?:/>|>.*?</tool_call>)", re.DOTALL | re.IGNORECASE)
_BLANK_RUNS = re.compile(r"\n{3,}")


def group_tools_by_service(tools: list[ToolDefinition]) -> dict[str, list[ToolDefinition]]:
    """Group enabled tools by service name, highest priority first."""
    grouped: dict[str, list[ToolDefinition]] = {}
    for tool in tools:
        if not tool.enabled:
            continue
        grouped.setdefault(tool.service_name or UNKNOWN_SERVICE, []).append(tool)

    for service_tools in grouped.values():
        service_tools.sort(key=lambda tool: tool.priority or 1, reverse=True)
    return grouped


def describe_parameters(schema: dict[str, Any] | None) -> str:
    """Render a parameter schema as a one-line description.

    Args:
        schema: JSON-schema object with "properties" and "required", or a
            plain name-to-description mapping

    Returns:
        str: Comma separated parameter descriptions, empty when there are none
    """
    if not isinstance(schema, dict) or not schema:
        return ""

    params = []
    properties = schema.get("properties")
    if isinstance(properties, dict):
        required = set(schema.get("required") or [])
        for name, prop in properties.items():
            text = name
            if isinstance(prop, dict):
                if prop.get("type"):
                    text += f" ({prop['type']})"
                if prop.get("description"):
                    text += f" - {prop['description']}"
            if name in required:
                text += " *required*"
            params.append(text)
    else:
        for name, value in schema.items():
            params.append(f"{name} - {value}" if isinstance(value, str) else name)

    return ", ".join(params)


def _call_format_section() -> list[str]:
    return [
        "## Tool call formats",
        "",
        "Call a tool with any one of these formats:",
        "",
        "### 1. JSON block (preferred)",
        "```json",
        "{",
        '  "tool": "tool_name",',
        '  "parameters": {',
        '    "param1": "value1",',
        '    "param2": "value2"',
        "  }",
        "}",
        "```",
        "",
        "### 2. XML element",
        "<tool_call>",
        "  <name>tool_name</name>",
        '  <parameters>{"param1": "value1", "param2": "value2"}</parameters>',
        "</tool_call>",
        "",
        "### 3. Attribute tag",
        '<tool_call name="tool_name" params=\'{"param1": "value1"}\'/>',
        "",
    ]


def _rules_section() -> list[str]:
    return [
        "## Rules",
        "",
        "1. **When to call**: only call a tool when the user needs data or an action it provides",
        "2. **Parameters**: use only the parameters listed for the tool, in the documented types",
        "3. **No guessing**: never state record data before the tool result is available",
        "4. **Failures**: if a tool fails, tell the user and do not make up the missing data",
        "5. **Privacy**: do not put sensitive personal information into tool parameters",
        "",
    ]


def build_tool_system_prompt(tools: list[ToolDefinition], base_prompt: str = "") -> str:
    """Build the system prompt describing the available tools.

    Args:
        tools: Tools from the current registry snapshot
        base_prompt: Prompt to prepend (e.g. a user-chosen persona)

    Returns:
        str: The combined prompt, or base_prompt alone when no tool is enabled
    """
    grouped = group_tools_by_service(tools)
    if not grouped:
        return base_prompt

    sections = [
        "## Available tools",
        "",
        "You can use the following tools to help the user:",
        "",
    ]

    for service_name, service_tools in grouped.items():
        sections.append(f"### {service_name}")
        endpoint = service_tools[0].service_endpoint
        if endpoint:
            sections.append(f"**Endpoint**: {endpoint}")
        sections.append("")

        for tool in service_tools:
            sections.append(f"#### {tool.name}")
            if tool.description:
                sections.append(f"**Description**: {tool.description}")
            if tool.category and tool.category != "general":
                sections.append(f"**Category**: {tool.category}")
            params = describe_parameters(tool.parameter_schema)
            if params:
                sections.append(f"**Parameters**: {params}")
            if tool.usage_count > 0:
                sections.append(f"**Usage count**: {tool.usage_count}")
            sections.append("")

    sections.extend(_call_format_section())
    sections.extend(_rules_section())
    tool_prompt = "\n".join(sections)

    if not base_prompt:
        return tool_prompt
    return f"{base_prompt}\n\n{tool_prompt}"


def build_secondary_messages(
    user_question: str,
    results: list[ToolExecutionResult],
) -> list[dict[str, str]]:
    """Build the narrowly scoped messages for the secondary pass.

    Only the question and the raw payloads of successful calls are sent,
    with large binary fields masked.

    Args:
        user_question: The user's original question
        results: Execution results; failures are left out

    Returns:
        list[dict]: Messages in Ollama format
    """
    payloads = [
        {"tool": result.tool_name, "data": clean_data_for_model(result.data)}
        for result in results
        if result.success
    ]
    tool_data = json.dumps(payloads, ensure_ascii=False, indent=2, default=str)
    question = user_question.strip() if user_question else "Summarize the tool results."

    return [
        {"role": "system", "content": SECONDARY_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": f"Question:\n{question}\n\nTool results (JSON):\n{tool_data}",
        },
    ]


def strip_tool_syntax(text: str) -> str:
    """Remove tool-call blocks and elements from a reply."""
    if not text:
        return ""
    cleaned = _FENCED_TOOL_BLOCK.sub("", text)
    cleaned = _TOOL_CALL_ELEMENT.sub("", cleaned)
    cleaned = _BLANK_RUNS.sub("\n\n", cleaned)
    return cleaned.strip()
