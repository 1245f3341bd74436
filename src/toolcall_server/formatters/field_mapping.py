"""Field mapping reference data for result formatting.

A field mapping gives each known payload field a display label, an ordering
priority (lower numbers first) and a type-specific rendering rule. Mappings
are partitioned by category; a field missing from its category falls back to
the `common` category and then to its raw name with priority 99.

The table is loaded from JSON into an immutable FieldMappingTable. Reloading
builds a new table and swaps the reference, so a formatter that already holds
a table keeps rendering with it.
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from toolcall_server.tools.errors import FieldMappingError

logger = logging.getLogger(__name__)

CATEGORY_COMMON = "common"
CATEGORY_RECORDS = "record_management"
CATEGORY_STATISTICS = "statistical_analysis"

DEFAULT_PRIORITY = 99
DEFAULT_TRUNCATE_LENGTH = 50
NOT_PROVIDED = "Not provided"

FieldType = Literal["string", "number", "integer", "date", "email", "phone", "text", "array"]

_CONDITION = re.compile(r"^\s*(>=|<=|==|!=|>|<)\s*(.+?)\s*$")


class FieldSpec(BaseModel):
    """Display rule for one field."""

    label: str
    priority: int = DEFAULT_PRIORITY
    type: FieldType = "string"
    decimals: int = 0
    suffix: str = ""
    format: str | None = None
    max_length: int | None = None


class HighlightRule(BaseModel):
    """Condition such as "> 10" or "== 'H'" that flags a value."""

    condition: str
    message: str = ""


class DisplayRules(BaseModel):
    """Per-category display settings. Unset values fall back to `general`."""

    truncate_text_length: int | None = None
    max_table_fields: int | None = None
    max_list_items: int | None = None
    title_field: str | None = None
    important_fields: list[str] = Field(default_factory=list)
    highlight_rules: dict[str, HighlightRule] = Field(default_factory=dict)


class FieldMappingDocument(BaseModel):
    """Schema of the field mapping JSON file."""

    version: str = "1"
    category_keywords: dict[str, list[str]] = Field(default_factory=dict)
    categories: dict[str, dict[str, FieldSpec]] = Field(default_factory=dict)
    display_rules: dict[str, DisplayRules] = Field(default_factory=dict)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def is_blank(value: Any) -> bool:
    """Whether a value renders as "Not provided"."""
    return value is None or (isinstance(value, str) and value.strip() == "")


def format_number(value: Any, decimals: int = 0, suffix: str = "", scientific: bool = False) -> str:
    """Render a number with thousands grouping and fixed decimals.

    With scientific=True, magnitudes below 0.001 or above one million use
    exponent notation.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return _stringify(value)
    if scientific and number != 0 and (abs(number) < 0.001 or abs(number) > 1_000_000):
        return f"{number:.{decimals}e}{suffix}"
    return f"{number:,.{decimals}f}{suffix}"


def format_integer(value: Any) -> str:
    """Render an integer with thousands grouping."""
    try:
        return f"{int(float(value)):,}"
    except (TypeError, ValueError, OverflowError):
        return _stringify(value)


def format_date(value: Any) -> str:
    """Render an ISO 8601 date or datetime as YYYY-MM-DD[ HH:MM]."""
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    if len(text) <= 10:
        return parsed.strftime("%Y-%m-%d")
    return parsed.strftime("%Y-%m-%d %H:%M")


def format_phone(value: Any) -> str:
    """Group the digits of a phone number."""
    digits = re.sub(r"\D", "", str(value))
    if len(digits) == 10 and digits.startswith("09"):
        return f"{digits[:4]}-{digits[4:7]}-{digits[7:]}"
    if len(digits) >= 8:
        return f"{digits[:2]}-{digits[2:6]}-{digits[6:]}"
    return str(value)


def truncate(text: str, max_length: int, suffix: str = "...") -> str:
    """Cut text to max_length characters, suffix included."""
    if len(text) <= max_length:
        return text
    return text[: max(max_length - len(suffix), 0)] + suffix


def format_array(value: Any) -> str:
    """Render a list; a pair of numbers reads as an interval."""
    if not isinstance(value, (list, tuple)):
        return _stringify(value)
    if len(value) == 0:
        return "Empty list"
    if len(value) == 2 and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value):
        return f"[{value[0]:.3f}, {value[1]:.3f}]"
    return ", ".join(_stringify(v) for v in value)


class FieldMappingTable:
    """Immutable, versioned view of the field mapping document."""

    def __init__(self, document: FieldMappingDocument, version: int = 0, source: str | None = None) -> None:
        self.document = document
        self.version = version
        self.source = source
        self.loaded_at = datetime.now().isoformat()

    @classmethod
    def empty(cls) -> "FieldMappingTable":
        """A table with no mappings, used when the file cannot be loaded."""
        return cls(FieldMappingDocument(), version=0, source=None)

    @property
    def categories(self) -> list[str]:
        """Categories that define at least one field."""
        return list(self.document.categories)

    def get(self, field: str, category: str = CATEGORY_COMMON) -> FieldSpec:
        """Get the display rule of a field.

        Args:
            field: Payload field name
            category: Category to look in before `common`

        Returns:
            FieldSpec: The mapped rule, or a default using the raw name
        """
        for name in (category, CATEGORY_COMMON):
            field_spec = self.document.categories.get(name, {}).get(field)
            if field_spec is not None:
                return field_spec
        return FieldSpec(label=field)

    def label(self, field: str, category: str = CATEGORY_COMMON) -> str:
        return self.get(field, category).label or field

    def priority(self, field: str, category: str = CATEGORY_COMMON) -> int:
        return self.get(field, category).priority

    def sort_fields(self, fields: list[str], category: str = CATEGORY_COMMON) -> list[str]:
        """Order fields by ascending priority, keeping payload order on ties."""
        return sorted(fields, key=lambda field: self.priority(field, category))

    def display_rule(self, category: str, name: str, default: Any = None) -> Any:
        """Look up a display rule, falling back to the `general` rules."""
        for rules_name in (category, "general"):
            rules = self.document.display_rules.get(rules_name)
            if rules is None:
                continue
            value = getattr(rules, name, None)
            if value not in (None, [], {}):
                return value
        return default

    def format_value(self, value: Any, field: str, category: str = CATEGORY_COMMON) -> str:
        """Render a field value according to its mapped type.

        Args:
            value: Raw payload value
            field: Payload field name
            category: Category used for the lookup

        Returns:
            str: Display text, "Not provided" for empty values
        """
        if is_blank(value):
            return NOT_PROVIDED

        field_spec = self.get(field, category)
        try:
            if field_spec.type == "number":
                return format_number(value, field_spec.decimals, field_spec.suffix, field_spec.format == "scientific")
            if field_spec.type == "integer":
                return format_integer(value) + field_spec.suffix
            if field_spec.type == "date":
                return format_date(value)
            if field_spec.type == "phone":
                return format_phone(value)
            if field_spec.type == "text":
                limit = field_spec.max_length or self.display_rule(
                    category, "truncate_text_length", DEFAULT_TRUNCATE_LENGTH
                )
                return truncate(_stringify(value), limit)
            if field_spec.type == "array":
                return format_array(value)
            return _stringify(value) + field_spec.suffix
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to format field {field}: {e}")
            return _stringify(value)

    def check_highlight(self, field: str, value: Any, category: str = CATEGORY_COMMON) -> HighlightRule | None:
        """Return the highlight rule a value triggers, if any."""
        rules = self.display_rule(category, "highlight_rules", {})
        rule = rules.get(field)
        if rule is None or is_blank(value):
            return None

        match = _CONDITION.match(rule.condition)
        if match is None:
            logger.warning(f"Ignoring malformed highlight condition for {field}: {rule.condition!r}")
            return None
        operator, operand = match.groups()

        if operator in ("==", "!="):
            expected = operand.strip("'\"")
            equal = _stringify(value) == expected
            return rule if equal == (operator == "==") else None

        try:
            actual, threshold = float(value), float(operand)
        except (TypeError, ValueError):
            return None
        hit = {
            ">": actual > threshold,
            "<": actual < threshold,
            ">=": actual >= threshold,
            "<=": actual <= threshold,
        }[operator]
        return rule if hit else None

    def infer_category(self, tool_name: Any) -> str:
        """Derive a coarse category from a tool name.

        Keyword lists are checked in document order; the first list with a
        keyword contained in the lowercased name wins.

        Args:
            tool_name: Tool name as registered or written by the model

        Returns:
            str: A category key, `common` when nothing matches
        """
        if not tool_name:
            return CATEGORY_COMMON
        if isinstance(tool_name, dict):
            tool_name = tool_name.get("name") or tool_name.get("tool_name") or ""
        name = str(tool_name).lower()
        for category, keywords in self.document.category_keywords.items():
            if any(keyword.lower() in name for keyword in keywords):
                return category
        return CATEGORY_COMMON


class FieldMappingStore:
    """Loads the field mapping file and serves the current table.

    Attributes:
        path: Location of the field mapping JSON file
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._table: FieldMappingTable | None = None
        self._version = 0

    @property
    def current(self) -> FieldMappingTable:
        """The loaded table, loading it on first access.

        If the first load fails an empty table is served so formatting keeps
        working with raw field names.
        """
        if self._table is None:
            try:
                self.load()
            except FieldMappingError as e:
                logger.error(f"Using empty field mappings: {e.message}")
                self._table = FieldMappingTable.empty()
        return self._table

    def load(self) -> FieldMappingTable:
        """Read and validate the mapping file, then swap in the new table.

        Returns:
            FieldMappingTable: The newly loaded table

        Raises:
            FieldMappingError: If the file cannot be read or is invalid. The
                previously loaded table stays in place.
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            document = FieldMappingDocument.model_validate(raw)
        except (OSError, json.JSONDecodeError) as e:
            raise FieldMappingError(
                f"Failed to read field mappings {self.path}: {e}",
                details={"path": str(self.path)},
            ) from e
        except ValidationError as e:
            raise FieldMappingError(
                f"Invalid field mappings {self.path}: {e.error_count()} error(s)",
                details={
                    "path": str(self.path),
                    "errors": [
                        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                        for err in e.errors()
                    ],
                },
            ) from e

        self._version += 1
        self._table = FieldMappingTable(document, version=self._version, source=str(self.path))
        logger.debug(f"Field mappings loaded: categories={self._table.categories}")
        return self._table

    def reload(self) -> FieldMappingTable:
        """Hot-reload the mapping file."""
        table = self.load()
        logger.info(f"Field mappings reloaded (version {table.version})")
        return table
