"""Fallback formatter for payloads no domain formatter claims."""

import json
import logging
from typing import Any

from toolcall_server.formatters.base import (
    BaseFormatter,
    FormatContext,
    clean_data_for_model,
    is_empty,
    table_header,
    table_row,
    to_json,
)

logger = logging.getLogger(__name__)

TABLE_CELL_LENGTH = 25
MAX_TABLE_ROWS = 50
MAX_NESTING_DEPTH = 3

# Envelope keys rendered in the metadata section rather than as data
META_KEYS = ("count", "totalRecords", "currentPage", "totalPages", "timestamp")


class GenericFormatter(BaseFormatter):
    """Renders any JSON-like payload as headings, lists and tables."""

    def can_handle(self, tool_name: str, category: str) -> bool:
        return True

    def format(self, data: Any, tool_name: str, context: FormatContext) -> str:
        formatted = f"## {tool_name} result\n\n"
        formatted += self.render_ai_guidance(data)

        if is_empty(data):
            return formatted + "No data returned.\n"

        if isinstance(data, str):
            try:
                parsed = json.loads(data)
            except json.JSONDecodeError:
                return formatted + data.strip() + "\n"
            if isinstance(parsed, (dict, list)):
                data = parsed
            else:
                return formatted + data.strip() + "\n"

        formatted += self.render_image(data)
        data = clean_data_for_model(data)

        if isinstance(data, list):
            return formatted + self.format_list(data, context)
        if isinstance(data, dict):
            return formatted + self.format_object(data, context)
        return formatted + f"{data}\n"

    def format_list(self, items: list[Any], context: FormatContext) -> str:
        """Render a list as a table of objects or a bullet list of values."""
        if not items:
            return "No records.\n"
        if all(isinstance(item, dict) for item in items):
            return self.format_table(items, context)

        max_items = context.mappings.display_rule(context.category, "max_list_items", 10)
        lines = [f"{len(items)} item(s):", ""]
        if len(items) <= max_items:
            lines += [f"- {self._scalar(item)}" for item in items]
        else:
            half = max_items // 2
            lines += [f"- {self._scalar(item)}" for item in items[:half]]
            lines.append(f"- ... ({len(items) - 2 * half} more)")
            lines += [f"- {self._scalar(item)}" for item in items[-half:]]
        return "\n".join(lines) + "\n"

    def format_table(self, records: list[dict[str, Any]], context: FormatContext) -> str:
        """Render records as a table of their highest-priority fields."""
        mappings, category = context.mappings, context.category

        fields: list[str] = []
        for record in records:
            fields.extend(key for key in record if key not in fields)
        fields = mappings.sort_fields(fields, category)

        max_fields = mappings.display_rule(category, "max_table_fields", 8)
        shown, hidden = fields[:max_fields], fields[max_fields:]

        lines = [table_header([mappings.label(f, category) for f in shown])]
        for record in records[:MAX_TABLE_ROWS]:
            cells = [
                self.truncate(mappings.format_value(record.get(f), f, category), TABLE_CELL_LENGTH)
                for f in shown
            ]
            lines.append(table_row(cells))

        formatted = "\n".join(lines) + "\n\n"
        if len(records) > MAX_TABLE_ROWS:
            formatted += f"_{len(records) - MAX_TABLE_ROWS} more record(s) not shown._\n\n"
        if hidden:
            labels = ", ".join(mappings.label(f, category) for f in hidden)
            formatted += f"**Other fields**: {labels}\n"
        return formatted

    def format_object(self, data: dict[str, Any], context: FormatContext) -> str:
        """Render a dict, recognizing list envelopes and result wrappers."""
        if isinstance(data.get("data"), list):
            return self._format_envelope(data, context)

        for key in ("result", "results"):
            if isinstance(data.get(key), (dict, list)):
                inner = data[key]
                if isinstance(inner, list):
                    return self.format_list(inner, context)
                return "\n".join(self._nested_lines(inner, context, 0)) + "\n"

        lines = self._nested_lines(data, context, 0)
        if not lines:
            return f"```json\n{to_json(data)}\n```\n"
        return "\n".join(lines) + "\n"

    def _format_envelope(self, data: dict[str, Any], context: FormatContext) -> str:
        mappings, category = context.mappings, context.category
        formatted = ""

        meta = [
            f"- **{mappings.label(key, category)}**: {mappings.format_value(data[key], key, category)}"
            for key in META_KEYS
            if key in data
        ]
        if meta:
            formatted += "### Query information\n" + "\n".join(meta) + "\n\n"

        filters = data.get("filters")
        if isinstance(filters, dict) and filters:
            formatted += "### Filters\n"
            for key, value in filters.items():
                if value not in (None, ""):
                    formatted += f"- **{mappings.label(key, category)}**: {self._scalar(value)}\n"
            formatted += "\n"

        statistics = data.get("statistics")
        if isinstance(statistics, dict) and statistics:
            formatted += "### Statistics\n"
            formatted += "\n".join(self._nested_lines(statistics, context, 0)) + "\n\n"

        formatted += f"### Data ({len(data['data'])} record(s))\n\n"
        formatted += self.format_list(data["data"], context)
        return formatted

    def _nested_lines(self, data: dict[str, Any], context: FormatContext, depth: int) -> list[str]:
        mappings, category = context.mappings, context.category
        indent = "  " * depth
        lines: list[str] = []
        for key, value in data.items():
            if key in ("aiInstructions", "ai_instructions", "success"):
                continue
            label = mappings.label(key, category)
            if isinstance(value, dict) and value:
                if depth >= MAX_NESTING_DEPTH:
                    lines.append(f"{indent}- **{label}**: {json.dumps(value, default=str)}")
                    continue
                lines.append(f"{indent}- **{label}**:")
                lines.extend(self._nested_lines(value, context, depth + 1))
            elif isinstance(value, list) and value and all(isinstance(v, dict) for v in value):
                lines.append(f"{indent}- **{label}**: {len(value)} item(s)")
                for item in value[:MAX_TABLE_ROWS]:
                    summary = ", ".join(
                        f"{mappings.label(k, category)}: {self._scalar(v)}" for k, v in item.items()
                    )
                    lines.append(f"{indent}  - {summary}")
            else:
                lines.append(f"{indent}- **{label}**: {mappings.format_value(value, key, category)}")
        return lines

    @staticmethod
    def _scalar(value: Any) -> str:
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False, default=str)
        return str(value)
