"""Formatter for record-management tools (issue, project and ticket lookups).

Record services answer with an envelope such as:

    {
        "data": [{"SerialNumber": "R-001", "Status": "OnGoing", ...}],
        "count": 20,
        "totalRecords": 134,
        "statistics": {"summary": "...", "details": {...}},
        "filters": {"status": "OnGoing"},
        "aiInstructions": "..."
    }

List reports carry a "### Summary" and a "### Records" section; together
they mark a report as a complete answer.
"""

import logging
import re
from typing import Any

from toolcall_server.formatters.base import (
    BaseFormatter,
    FormatContext,
    clean_data_for_model,
    safe_get,
    table_header,
    table_row,
)
from toolcall_server.formatters.field_mapping import CATEGORY_RECORDS

logger = logging.getLogger(__name__)

CORE_PRIORITY = 2
TABLE_TEXT_CELL_LENGTH = 50
TABLE_CELL_LENGTH = 20
# At most this many records with long text switch from a table to a list
LIST_LAYOUT_MAX_RECORDS = 3
HIGHLIGHT_MARKER = "⚠️"

_UNKNOWN_PARAMS = re.compile(r"Unknown parameter\(s\):\s*([^.]+)")
_ALLOWED_PARAMS = re.compile(r"Allowed parameters:\s*(.+)$")


class RecordFormatter(BaseFormatter):
    """Renders record lists, single-record details and status reports."""

    category = CATEGORY_RECORDS

    def can_handle(self, tool_name: str, category: str) -> bool:
        return category == self.category

    def format(self, data: Any, tool_name: str, context: FormatContext) -> str:
        if data is None:
            return "No record data returned.\n"
        if self.is_error_payload(data):
            return self.format_error(data, tool_name, context)

        logger.debug(f"Formatting record result for {tool_name}")
        data = clean_data_for_model(data)
        name = tool_name.lower()

        if isinstance(data, list):
            return self.format_list_report({"data": data}, context)
        if not isinstance(data, dict):
            return self.render_fallback(data, tool_name)

        if "status_report" in name or "status-report" in name or "statusDistribution" in data:
            return self.format_status_report(data, context)
        if isinstance(data.get("data"), list):
            return self.format_list_report(data, context)
        if "detail" in name or isinstance(data.get("data"), dict):
            return self.format_details(data, context)
        return self.format_general(data, context)

    # --- Variants ---

    def format_list_report(self, data: dict[str, Any], context: FormatContext) -> str:
        """Summary, statistics, query information, filters and the records."""
        records = data["data"]
        formatted = "## Record list\n\n"
        formatted += self.render_ai_guidance(data)

        formatted += "### Summary\n"
        total = data.get("totalRecords")
        if total is not None:
            formatted += f"{len(records)} record(s) returned out of {self.format_number(total)} matching.\n"
        else:
            formatted += f"{len(records)} record(s) returned.\n"
        summary = safe_get(data, "statistics.summary")
        if summary:
            formatted += f"{summary}\n"
        formatted += "\n"

        formatted += self.format_statistics(data.get("statistics"))
        formatted += self.format_query_info(data)
        formatted += self.format_filters(data.get("filters"), context)
        formatted += self.format_records(records, context)
        return formatted

    def format_details(self, data: dict[str, Any], context: FormatContext) -> str:
        """Every field of one record, in priority order, highlights annotated."""
        mappings, category = context.mappings, context.category
        record = data["data"] if isinstance(data.get("data"), dict) else data

        formatted = "## Record details\n\n"
        formatted += self.render_ai_guidance(data)
        formatted += "### Record\n\n"
        for field in mappings.sort_fields(list(record), category):
            if field in ("aiInstructions", "ai_instructions"):
                continue
            value = record[field]
            label = mappings.label(field, category)
            rendered = mappings.format_value(value, field, category)
            rule = mappings.check_highlight(field, value, category)
            if rule is not None:
                note = f" ({rule.message})" if rule.message else ""
                formatted += f"- **{label}**: {HIGHLIGHT_MARKER} {rendered}{note}\n"
            else:
                formatted += f"- **{label}**: {rendered}\n"
        return formatted + "\n"

    def format_status_report(self, data: dict[str, Any], context: FormatContext) -> str:
        """Overall counts and the distribution of records by status."""
        mappings, category = context.mappings, context.category
        formatted = "## Record status report\n\n"
        formatted += self.render_ai_guidance(data)

        summary = data.get("summary")
        if isinstance(summary, dict) and summary:
            formatted += "### Summary\n"
            for key, value in summary.items():
                formatted += f"- **{mappings.label(key, category)}**: {self.format_number(value)}\n"
            formatted += "\n"

        distribution = data.get("statusDistribution")
        if isinstance(distribution, dict) and distribution:
            total = data.get("total") or sum(
                v for v in distribution.values() if isinstance(v, (int, float))
            )
            formatted += "### Status distribution\n\n"
            formatted += table_header(["Status", "Count", "Share"]) + "\n"
            for status, count in distribution.items():
                share = (count / total * 100) if total else 0
                formatted += table_row([status, str(count), f"{share:.1f}%"]) + "\n"
            formatted += "\n"
        return formatted

    def format_general(self, data: dict[str, Any], context: FormatContext) -> str:
        """Key/value listing for payloads without a record list."""
        mappings, category = context.mappings, context.category
        formatted = "## Record result\n\n"
        formatted += self.render_ai_guidance(data)
        formatted += "### Result\n"
        for key, value in data.items():
            if key in ("aiInstructions", "ai_instructions"):
                continue
            formatted += f"- **{mappings.label(key, category)}**: {mappings.format_value(value, key, category)}\n"
        return formatted + "\n"

    # --- Sections ---

    def format_statistics(self, statistics: Any) -> str:
        details = safe_get(statistics, "details")
        if not isinstance(details, dict):
            return ""

        formatted = "### Analysis\n"
        if "totalCount" in details:
            formatted += f"- **Total records**: {self.format_number(details['totalCount'])}\n"
        if "avgDelayDays" in details:
            formatted += f"- **Average delay**: {self.format_number(details['avgDelayDays'], 1)} days\n"
        delay_range = details.get("delayRange")
        if isinstance(delay_range, dict):
            formatted += f"- **Delay range**: {delay_range.get('min')} to {delay_range.get('max')} days\n"
        formatted += "\n"

        risk = details.get("riskAnalysis")
        if isinstance(risk, dict):
            formatted += "### Risk analysis\n"
            if "highRisk" in risk:
                formatted += f"- **High risk**: {self.format_number(risk['highRisk'])} (delayed more than 10 days)\n"
            if "delayed" in risk:
                formatted += f"- **Delayed**: {self.format_number(risk['delayed'])}\n"
            if "onTimeOrEarly" in risk:
                formatted += f"- **On time or early**: {self.format_number(risk['onTimeOrEarly'])}\n"
            formatted += "\n"

        responsibility = details.get("responsibility")
        if isinstance(responsibility, dict):
            formatted += "### Responsibility\n"
            if "uniqueDRICount" in responsibility:
                formatted += f"- **Owners involved**: {self.format_number(responsibility['uniqueDRICount'])}\n"
            if "uniqueDeptCount" in responsibility:
                formatted += f"- **Departments involved**: {self.format_number(responsibility['uniqueDeptCount'])}\n"
            formatted += "\n"
        return formatted

    def format_query_info(self, data: dict[str, Any]) -> str:
        if data.get("totalRecords") is None:
            return ""
        formatted = "### Query information\n"
        formatted += (
            f"- **Returned**: {self.format_number(data.get('count') or 0)} / "
            f"{self.format_number(data['totalRecords'])}\n"
        )
        if data.get("currentPage") and data.get("totalPages"):
            formatted += f"- **Page**: {data['currentPage']} of {data['totalPages']}\n"
        formatted += f"- **Queried at**: {self.format_timestamp(data.get('timestamp'))}\n\n"
        return formatted

    def format_filters(self, filters: Any, context: FormatContext) -> str:
        if not isinstance(filters, dict):
            return ""
        entries = [
            f"- **{context.mappings.label(key, context.category)}**: {value}"
            for key, value in filters.items()
            if value not in (None, "")
        ]
        if not entries:
            return ""
        return "### Filters\n" + "\n".join(entries) + "\n\n"

    def format_records(self, records: list[Any], context: FormatContext) -> str:
        """Core fields as a table (or list), then untruncated detail fields."""
        if not records:
            return "### Records\n\nNo records found.\n"

        mappings, category = context.mappings, context.category
        records = [r for r in records if isinstance(r, dict)]
        formatted = f"### Records ({len(records)} total)\n\n"

        fields: list[str] = []
        for record in records:
            fields.extend(key for key in record if key not in fields)

        missing = self.missing_important_fields(fields, context)
        if missing:
            formatted += f"{HIGHLIGHT_MARKER} **Note**: these important fields are missing: {', '.join(missing)}\n\n"

        fields = mappings.sort_fields(fields, category)
        core = [f for f in fields if mappings.priority(f, category) <= CORE_PRIORITY]
        details = [f for f in fields if mappings.priority(f, category) > CORE_PRIORITY]
        max_fields = mappings.display_rule(category, "max_table_fields", 8)
        shown = core[:max_fields]
        title_field = mappings.display_rule(category, "title_field")

        has_text = any(mappings.get(f, category).type == "text" for f in shown)
        if has_text and len(records) <= LIST_LAYOUT_MAX_RECORDS:
            for index, record in enumerate(records, start=1):
                title = record.get(title_field) if title_field else None
                formatted += f"**{index}. {title or 'Record'}**\n"
                for field in shown:
                    line = self._field_line(record, field, context, highlight=True)
                    if line:
                        formatted += line
                formatted += "\n"
        elif shown:
            formatted += table_header([mappings.label(f, category) for f in shown]) + "\n"
            for record in records:
                formatted += table_row([self._table_cell(record, f, context) for f in shown]) + "\n"
            formatted += "\n"

        if details:
            formatted += "### Details\n\n"
            for index, record in enumerate(records, start=1):
                if len(records) > 1:
                    title = record.get(title_field) if title_field else None
                    formatted += f"**{index}. {title or 'Record'}**\n"
                for field in details:
                    line = self._field_line(record, field, context, highlight=False)
                    if line:
                        formatted += line
                if len(records) > 1:
                    formatted += "\n"
            formatted += "\n"

        if len(core) > len(shown):
            hidden = ", ".join(mappings.label(f, category) for f in core[len(shown):])
            formatted += f"**Other core fields**: {hidden}\n\n"
        return formatted

    def missing_important_fields(self, fields: list[str], context: FormatContext) -> list[str]:
        """Labels of configured important fields absent from the records."""
        important = context.mappings.display_rule(context.category, "important_fields", [])
        return [
            context.mappings.label(f, context.category) for f in important if f not in fields
        ]

    def format_error(self, data: Any, tool_name: str, context: FormatContext) -> str:
        """Error report that spells out rejected query parameters."""
        formatted = self.render_error(data, tool_name)
        message = data.get("error") if isinstance(data, dict) else None
        if isinstance(message, str):
            unknown = _UNKNOWN_PARAMS.search(message)
            allowed = _ALLOWED_PARAMS.search(message)
            if unknown and allowed:
                formatted += f"{HIGHLIGHT_MARKER} **Unknown parameter(s)**: `{unknown.group(1).strip()}`\n\n"
                formatted += "**Accepted parameters**:\n"
                for param in (p.strip() for p in allowed.group(1).split(",")):
                    if param:
                        label = context.mappings.label(param, context.category)
                        formatted += f"- `{param}`" + (f": {label}" if label != param else "") + "\n"
                formatted += "\n"
        formatted += f"**Tool**: {tool_name}\n"
        formatted += "Check the query parameters and try again.\n"
        return formatted

    # --- Cells ---

    def _rendered(self, record: dict[str, Any], field: str, context: FormatContext) -> str:
        value = record.get(field)
        if context.mappings.get(field, context.category).type == "text" and value not in (None, ""):
            return str(value)
        return context.mappings.format_value(value, field, context.category)

    def _field_line(self, record: dict[str, Any], field: str, context: FormatContext, highlight: bool) -> str:
        value = record.get(field)
        if value in (None, ""):
            return ""
        rendered = self._rendered(record, field, context)
        if highlight and context.mappings.check_highlight(field, value, context.category):
            rendered = f"{HIGHLIGHT_MARKER} {rendered}"
        return f"- **{context.mappings.label(field, context.category)}**: {rendered}\n"

    def _table_cell(self, record: dict[str, Any], field: str, context: FormatContext) -> str:
        mappings, category = context.mappings, context.category
        value = record.get(field)
        rendered = mappings.format_value(value, field, category)
        limit = TABLE_TEXT_CELL_LENGTH if mappings.get(field, category).type == "text" else TABLE_CELL_LENGTH
        cell = self.truncate(rendered, limit)
        if mappings.check_highlight(field, value, category):
            return f"{HIGHLIGHT_MARKER} {cell}"
        return cell
