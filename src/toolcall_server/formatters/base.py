"""Shared building blocks for result formatters."""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from toolcall_server.formatters.field_mapping import (
    CATEGORY_COMMON,
    NOT_PROVIDED,
    FieldMappingTable,
    format_date,
    format_number,
    truncate,
)

logger = logging.getLogger(__name__)

# Strings longer than this that look like base64 are never shown verbatim
BASE64_MASK_THRESHOLD = 1000
# Images above this many base64 characters are elided instead of embedded
MAX_EMBEDDED_IMAGE_CHARS = 2_000_000

_BASE64 = re.compile(r"^(data:image/[a-z+]+;base64,)?[A-Za-z0-9+/=\s]+$")
_DATA_URI_PREFIX = re.compile(r"^data:image/[a-z+]+;base64,")
_GUIDANCE_MARKER = re.compile(r"AI (analysis )?guidance\s*[:：]\s*", re.IGNORECASE)

IMAGE_KEYS = ("image_data", "imageData", "image_base64", "imageBase64", "chart_base64")


@dataclass
class FormatContext:
    """Inputs a formatter needs besides the payload itself.

    Attributes:
        mappings: Field mapping snapshot used for labels and rendering
        category: Category inferred from the tool name
        user_question: The user's question, when known
        options: Free-form caller options
    """

    mappings: FieldMappingTable
    category: str = CATEGORY_COMMON
    user_question: str | None = None
    options: dict[str, Any] = field(default_factory=dict)


def safe_get(data: Any, path: str, default: Any = None) -> Any:
    """Read a dotted path such as "statistics.details.totalCount"."""
    current = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return default if current is None else current


def is_empty(data: Any) -> bool:
    """Whether a payload carries nothing to show."""
    if data is None:
        return True
    if isinstance(data, str):
        return data.strip() == ""
    if isinstance(data, (list, dict)):
        return len(data) == 0
    return False


def looks_like_base64(value: str) -> bool:
    return len(value) > BASE64_MASK_THRESHOLD and bool(_BASE64.match(value[:4096]))


def estimate_base64_size(value: str) -> str:
    """Human-readable decoded size of a base64 string."""
    size = len(_DATA_URI_PREFIX.sub("", value)) * 3 / 4
    if size < 1024:
        return f"{round(size)} B"
    if size < 1024 * 1024:
        return f"{round(size / 1024)} KB"
    return f"{round(size / (1024 * 1024), 2)} MB"


def clean_data_for_model(data: Any) -> Any:
    """Copy a payload with base64 blobs replaced by a size note.

    Args:
        data: Raw tool payload

    Returns:
        A JSON-compatible copy safe to put in a prompt
    """
    if isinstance(data, dict):
        cleaned = {}
        for key, value in data.items():
            if isinstance(value, str) and (
                "base64" in key.lower() or key in IMAGE_KEYS or looks_like_base64(value)
            ) and len(value) > 64:
                cleaned[key] = f"[base64 data omitted, {estimate_base64_size(value)}]"
            else:
                cleaned[key] = clean_data_for_model(value)
        return cleaned
    if isinstance(data, list):
        return [clean_data_for_model(item) for item in data]
    if isinstance(data, str) and looks_like_base64(data):
        return f"[base64 data omitted, {estimate_base64_size(data)}]"
    return data


def to_json(data: Any) -> str:
    """Pretty JSON with base64 blobs masked."""
    return json.dumps(clean_data_for_model(data), ensure_ascii=False, indent=2, default=str)


def table_header(headers: list[str]) -> str:
    """Markdown table header and separator rows."""
    return f"| {' | '.join(headers)} |\n| {' | '.join('---' for _ in headers)} |"


def table_row(cells: list[str]) -> str:
    """Markdown table row with pipes and newlines escaped."""
    escaped = [str(cell).replace("|", "\\|").replace("\n", " ") for cell in cells]
    return f"| {' | '.join(escaped)} |"


def yes_no(value: Any) -> str:
    return "yes" if value else "no"


class BaseFormatter(ABC):
    """Renders one family of tool payloads as Markdown.

    Subclasses declare which tools they handle and how to render them.
    Formatting is pure: no I/O, no shared mutable state.
    """

    category: str | None = None

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def can_handle(self, tool_name: str, category: str) -> bool:
        """Whether this formatter renders results of the given tool."""

    @abstractmethod
    def format(self, data: Any, tool_name: str, context: FormatContext) -> str:
        """Render a tool payload as Markdown."""

    # --- Helpers shared by all formatters ---

    @staticmethod
    def format_number(value: Any, decimals: int = 0) -> str:
        if value is None or value == "":
            return NOT_PROVIDED
        return format_number(value, decimals)

    @staticmethod
    def format_timestamp(value: Any) -> str:
        if not value:
            return NOT_PROVIDED
        return format_date(value)

    @staticmethod
    def truncate(text: Any, max_length: int = 50) -> str:
        if not isinstance(text, str):
            return ""
        return truncate(text, max_length)

    @staticmethod
    def extract_ai_guidance(data: Any) -> str:
        """Pull analysis guidance carried in the payload, if any.

        Services may attach `aiInstructions` to steer the summarization step.
        When the text contains an "AI guidance:" marker only the part after
        it is kept.
        """
        if not isinstance(data, dict):
            return ""
        guidance = data.get("aiInstructions") or data.get("ai_instructions")
        if isinstance(guidance, list):
            guidance = "\n".join(str(item) for item in guidance)
        if not isinstance(guidance, str) or not guidance.strip():
            return ""
        marker = _GUIDANCE_MARKER.search(guidance)
        if marker:
            guidance = guidance[marker.end():].split("\n\n", 1)[0]
        return guidance.strip()

    def render_ai_guidance(self, data: Any) -> str:
        guidance = self.extract_ai_guidance(data)
        if not guidance:
            return ""
        return f"### Analysis guidance\n{guidance}\n\n---\n\n"

    @staticmethod
    def find_image(data: Any) -> dict[str, Any] | None:
        """Locate an embedded chart image at the root, `_meta` or `data` level.

        Returns:
            dict with base64, format and chart_type keys, or None
        """
        if not isinstance(data, dict):
            return None
        for level in (data, data.get("_meta"), data.get("data")):
            if not isinstance(level, dict):
                continue
            for key in IMAGE_KEYS:
                image = level.get(key)
                if isinstance(image, dict):
                    image = image.get("base64")
                if isinstance(image, str) and image:
                    return {
                        "base64": image,
                        "format": level.get("image_format") or level.get("imageFormat") or "png",
                        "chart_type": level.get("chart_type") or level.get("chartType"),
                    }
        return None

    def render_image(self, data: Any, default_title: str = "Chart") -> str:
        """Embed the payload's chart image, or note its size when too large."""
        image = self.find_image(data)
        if image is None:
            return ""

        encoded = image["base64"]
        title = image["chart_type"] or default_title
        size = estimate_base64_size(encoded)
        if len(encoded) > MAX_EMBEDDED_IMAGE_CHARS:
            return f"_{title} image omitted ({size})_\n\n"

        uri = encoded if encoded.startswith("data:image") else f"data:image/{image['format']};base64,{encoded}"
        return f"![{title}]({uri})\n\n- **Image**: {str(image['format']).upper()}, {size}\n\n"

    def render_fallback(self, data: Any, tool_name: str) -> str:
        """Raw rendering used when a structured layout does not apply."""
        formatted = f"## {tool_name} result\n\n"
        if isinstance(data, str):
            return formatted + data
        return formatted + f"```json\n{to_json(data)}\n```\n"

    def render_error(self, data: Any, tool_name: str) -> str:
        """Render an error payload that reached the formatter."""
        message = data.get("error") if isinstance(data, dict) else None
        if isinstance(message, dict):
            message = message.get("message") or json.dumps(message, default=str)
        formatted = f"## {tool_name} failed\n\n"
        if message:
            formatted += f"**Error**: {message}\n\n"
        return formatted

    @staticmethod
    def is_error_payload(data: Any) -> bool:
        return isinstance(data, dict) and (data.get("success") is False or bool(data.get("error")))
