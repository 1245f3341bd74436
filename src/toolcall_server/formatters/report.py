"""Combined report over every tool result of one reply."""

import logging
from typing import Any

from toolcall_server.formatters.factory import FormatterFactory
from toolcall_server.formatters.field_mapping import FieldMappingTable
from toolcall_server.tools.types import ToolExecutionResult

logger = logging.getLogger(__name__)

TOOL_RESULTS_HEADER = "## Tool results"
SECTION_SEPARATOR = "\n---\n\n"


def format_failure(result: ToolExecutionResult) -> str:
    """One failed call: tool name and error."""
    return (
        f"**{result.tool_call.name}** failed\n"
        f"- **Error**: {result.error or 'unknown error'}\n"
    )


def format_success(result: ToolExecutionResult, body: str) -> str:
    """One successful call: service, timing and the formatter's output."""
    return (
        f"**{result.tool_name}** succeeded\n"
        f"- **Service**: {result.service_name}\n"
        f"- **Execution time**: {result.execution_time_ms:.0f} ms\n\n"
        f"{body.rstrip()}\n"
    )


def build_report(
    results: list[ToolExecutionResult],
    factory: FormatterFactory,
    mappings: FieldMappingTable | None = None,
    context: dict[str, Any] | None = None,
) -> str:
    """Render all results, successes and failures alike, in call order.

    Args:
        results: Execution results, index-aligned with the calls
        factory: Formatter factory for successful payloads
        mappings: Mapping snapshot shared by every section of the report
        context: Formatting hints passed to the factory

    Returns:
        str: The combined Markdown report, empty when there are no results
    """
    if not results:
        return ""

    table = mappings or factory.current_mappings()
    sections = []
    for result in results:
        if result.success:
            body = factory.format_tool_result(result.data, result.tool_name, context, mappings=table)
            sections.append(format_success(result, body))
        else:
            sections.append(format_failure(result))

    return f"{TOOL_RESULTS_HEADER}\n\n" + SECTION_SEPARATOR.join(sections)


def build_failure_report(results: list[ToolExecutionResult]) -> str:
    """List only the failed calls."""
    failures = [format_failure(result) for result in results if not result.success]
    return SECTION_SEPARATOR.join(failures)
