"""Formatter selection and fault isolation.

The factory walks its formatters in priority order and uses the first one
that claims the tool; the generic formatter renders everything else. A
formatter that raises is replaced by a short apology so formatting never
aborts the pipeline.
"""

import logging
from typing import Any

from toolcall_server.formatters.base import BaseFormatter, FormatContext
from toolcall_server.formatters.field_mapping import FieldMappingStore, FieldMappingTable
from toolcall_server.formatters.generic import GenericFormatter
from toolcall_server.formatters.records import RecordFormatter
from toolcall_server.formatters.statistical import StatisticalFormatter

logger = logging.getLogger(__name__)


def default_formatters() -> list[BaseFormatter]:
    """Domain formatters in selection order."""
    return [RecordFormatter(), StatisticalFormatter()]


class FormatterFactory:
    """Selects a formatter per tool and renders its result.

    Attributes:
        store: Source of the field mapping table
        formatters: Domain formatters, tried in order
        default_formatter: Formatter used when no domain formatter matches
    """

    def __init__(
        self,
        store: FieldMappingStore | None = None,
        formatters: list[BaseFormatter] | None = None,
        default_formatter: BaseFormatter | None = None,
    ) -> None:
        self.store = store
        self.formatters = formatters if formatters is not None else default_formatters()
        self.default_formatter = default_formatter or GenericFormatter()
        logger.info(
            f"Formatter factory ready: {[f.name for f in self.formatters]} "
            f"(default: {self.default_formatter.name})"
        )

    def register(self, formatter: BaseFormatter) -> None:
        """Add a formatter ahead of the default formatter."""
        self.formatters.append(formatter)
        logger.debug(f"Registered formatter: {formatter.name}")

    def current_mappings(self) -> FieldMappingTable:
        """The mapping table new formatting calls will use."""
        if self.store is None:
            return FieldMappingTable.empty()
        return self.store.current

    def get_formatter(self, tool_name: str, category: str) -> BaseFormatter:
        """Pick the first formatter that claims the tool."""
        for formatter in self.formatters:
            try:
                if formatter.can_handle(tool_name, category):
                    return formatter
            except Exception as e:
                logger.warning(f"Formatter {formatter.name} failed its handler check: {e}")
        return self.default_formatter

    def format_tool_result(
        self,
        data: Any,
        tool_name: str,
        context: dict[str, Any] | None = None,
        mappings: FieldMappingTable | None = None,
    ) -> str:
        """Render one tool payload as Markdown.

        Args:
            data: The tool's business data
            tool_name: Name of the tool that produced the data
            context: Optional hints: `category` overrides the inferred
                category, `user_question` is passed to the formatter
            mappings: Mapping snapshot to use (default: the store's current one)

        Returns:
            str: The rendered report, or an apology naming the tool and the
            error when rendering fails
        """
        context = context or {}
        table = mappings or self.current_mappings()
        try:
            category = context.get("category") or table.infer_category(tool_name)
            formatter = self.get_formatter(tool_name, category)
            format_context = FormatContext(
                mappings=table,
                category=category,
                user_question=context.get("user_question"),
                options={k: v for k, v in context.items() if k not in ("category", "user_question")},
            )
            result = formatter.format(data, tool_name, format_context)
            logger.debug(f"Formatted {tool_name} with {formatter.name} ({len(result)} chars)")
            return result
        except Exception as e:
            logger.error(f"Failed to format result of {tool_name}: {e}")
            return f"Sorry, the result of {tool_name} could not be formatted: {e}"

    def info(self) -> list[dict[str, Any]]:
        """Describe the registered formatters in selection order."""
        entries = [
            {"name": f.name, "category": f.category, "default": False} for f in self.formatters
        ]
        entries.append(
            {"name": self.default_formatter.name, "category": None, "default": True}
        )
        return entries

    def health_check(self) -> dict[str, Any]:
        """Report whether formatters and mappings are usable."""
        table = self.current_mappings()
        report: dict[str, Any] = {
            "status": "healthy",
            "formatters_count": len(self.formatters),
            "has_default_formatter": self.default_formatter is not None,
            "formatters": self.info(),
            "mappings_version": table.version,
            "mapping_categories": table.categories,
            "warnings": [],
        }
        if not self.formatters:
            report["warnings"].append("No domain formatters registered")
        if not table.categories:
            report["warnings"].append("No field mappings loaded")
        if report["warnings"]:
            report["status"] = "warning"
        return report

    def reload(self) -> FieldMappingTable:
        """Hot-reload the field mappings.

        Raises:
            FieldMappingError: If the mapping file cannot be loaded; the
                previous table stays active
        """
        if self.store is None:
            return FieldMappingTable.empty()
        return self.store.reload()
