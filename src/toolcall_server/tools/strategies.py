"""Detection strategies for tool calls written as plain text.

Each strategy recognizes one textual convention a model may use to request a
tool and turns every matching span into a ToolCallCandidate. Strategies are
independent: a span that looks like the convention but does not parse is
skipped, never raised.

Supported conventions:
- Structured block: a fenced ```json block holding {"tool": ..., "parameters": {...}}
- Inline literal: a bare {"tool": ..., "parameters": {...}} object in prose
- Tagged element: <tool_call><name>x</name><parameters>...</parameters></tool_call>
- Simple tagged: <tool_call>x\\nparameters</tool_call>
- Attribute tag: <tool_call name="x" params="..."/>
"""

import html
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from toolcall_server.tools.types import SourceFormat, ToolCallCandidate

logger = logging.getLogger(__name__)

_TOOL_NAME = re.compile(r"^[A-Za-z_][\w.\-]*$")
_NUMBER = re.compile(r"^-?\d+(\.\d+)?([eE][+-]?\d+)?$")
_PAIR = re.compile(
    r"""([A-Za-z_][\w.\-]*)\s*[:=]\s*
    ("(?:[^"\\]|\\.)*"|'[^']*'|\[[^\]]*\]|\{[^}]*\}|[^,\n]+)""",
    re.VERBOSE,
)

# Keys accepted for the parameter object, in lookup order
PARAMETER_KEYS = ("parameters", "params", "arguments")


def parse_scalar(value: str) -> Any:
    """Convert a textual parameter value to a JSON-like Python value.

    Args:
        value: Raw value text, possibly quoted

    Returns:
        bool, None, int, float, dict, list or str
    """
    text = value.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        inner = text[1:-1]
        if text[0] == '"':
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return inner
        return inner

    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("null", "none"):
        return None
    if _NUMBER.match(text):
        return float(text) if any(c in text for c in ".eE") else int(text)
    if (text.startswith("{") and text.endswith("}")) or (
        text.startswith("[") and text.endswith("]")
    ):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return text


def parse_key_value_pairs(text: str) -> dict[str, Any]:
    """Parse `key: value` or `key=value` pairs separated by commas or newlines."""
    return {key: parse_scalar(value) for key, value in _PAIR.findall(text)}


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Parse text as a JSON object, or return None."""
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def parse_parameters(text: str | None) -> dict[str, Any] | None:
    """Parse a parameter body written as JSON or as key/value pairs.

    Returns:
        The parameters, an empty dict for a blank body, or None when the
        body is non-empty but yields nothing
    """
    if text is None:
        return {}
    body = text.strip()
    if not body:
        return {}
    if body.startswith("{"):
        return parse_json_object(body)
    pairs = parse_key_value_pairs(body)
    return pairs or None


def extract_parameters(obj: dict[str, Any]) -> dict[str, Any] | None:
    """Pull the parameter object out of a parsed call literal."""
    for key in PARAMETER_KEYS:
        if key in obj:
            value = obj[key]
            if isinstance(value, str):
                return parse_json_object(value)
            return value if isinstance(value, dict) else None
    return {}


class DetectionStrategy(ABC):
    """Recognizes one textual tool-call convention.

    Attributes:
        source_format: The convention this strategy recognizes
        confidence: Fixed weight reflecting how unambiguous the convention is
    """

    source_format: SourceFormat
    confidence: float

    @abstractmethod
    def detect(self, text: str) -> list[ToolCallCandidate]:
        """Return a candidate for every well-formed span in normalized text."""

    @property
    def name(self) -> str:
        """Identifier used to enable or disable the strategy."""
        return self.source_format.value

    def _candidate(
        self,
        name: Any,
        parameters: Any,
        raw_span: str,
        position: int,
    ) -> ToolCallCandidate | None:
        if not isinstance(name, str) or not _TOOL_NAME.match(name.strip()):
            logger.debug(f"{self.name}: skipped span with invalid tool name {name!r}")
            return None
        if not isinstance(parameters, dict):
            logger.debug(f"{self.name}: skipped '{name}' with unparseable parameters")
            return None
        return ToolCallCandidate(
            name=name.strip(),
            parameters=parameters,
            source_format=self.source_format,
            confidence=self.confidence,
            raw_span=raw_span,
            position=position,
        )


class StructuredBlockStrategy(DetectionStrategy):
    """Fenced code block holding one call object or a list of them."""

    source_format = SourceFormat.STRUCTURED_BLOCK
    confidence = 0.9

    _pattern = re.compile(r"```(?:json|tool_call|tool)?[ \t]*\n?(.*?)```", re.DOTALL | re.IGNORECASE)

    def detect(self, text: str) -> list[ToolCallCandidate]:
        candidates: list[ToolCallCandidate] = []
        for match in self._pattern.finditer(text):
            try:
                payload = json.loads(match.group(1))
            except json.JSONDecodeError:
                continue
            items = payload if isinstance(payload, list) else [payload]
            for item in items:
                if not isinstance(item, dict):
                    continue
                name = item.get("tool", item.get("name"))
                if name is None:
                    continue
                candidate = self._candidate(
                    name, extract_parameters(item), match.group(0), match.start()
                )
                if candidate:
                    candidates.append(candidate)
        return candidates


class InlineLiteralStrategy(DetectionStrategy):
    """Bare JSON object with a "tool" key embedded in prose."""

    source_format = SourceFormat.INLINE_LITERAL
    confidence = 0.8

    def __init__(self) -> None:
        self._decoder = json.JSONDecoder()

    def detect(self, text: str) -> list[ToolCallCandidate]:
        if '"tool"' not in text:
            return []

        candidates: list[ToolCallCandidate] = []
        consumed_until = 0
        for match in re.finditer(r"\{", text):
            start = match.start()
            if start < consumed_until:
                continue
            try:
                obj, end = self._decoder.raw_decode(text, start)
            except json.JSONDecodeError:
                continue
            if not isinstance(obj, dict) or not isinstance(obj.get("tool"), str):
                continue
            candidate = self._candidate(obj["tool"], extract_parameters(obj), text[start:end], start)
            if candidate:
                candidates.append(candidate)
            consumed_until = end
        return candidates


class TaggedElementStrategy(DetectionStrategy):
    """<tool_call> element with <name> and <parameters> children."""

    source_format = SourceFormat.TAGGED_ELEMENT
    confidence = 0.9

    _pattern = re.compile(
        r"<tool_call>\s*<name>\s*(.*?)\s*</name>\s*"
        r"(?:<(parameters|arguments|params)>(.*?)</\2>\s*)?</tool_call>",
        re.DOTALL | re.IGNORECASE,
    )

    def detect(self, text: str) -> list[ToolCallCandidate]:
        candidates: list[ToolCallCandidate] = []
        for match in self._pattern.finditer(text):
            parameters = parse_parameters(match.group(3))
            candidate = self._candidate(match.group(1), parameters, match.group(0), match.start())
            if candidate:
                candidates.append(candidate)
        return candidates


class SimpleTaggedStrategy(DetectionStrategy):
    """<tool_call> wrapping the tool name followed by its parameters."""

    source_format = SourceFormat.SIMPLE_TAGGED
    confidence = 0.7

    _pattern = re.compile(r"<tool_call>(.*?)</tool_call>", re.DOTALL | re.IGNORECASE)

    def detect(self, text: str) -> list[ToolCallCandidate]:
        candidates: list[ToolCallCandidate] = []
        for match in self._pattern.finditer(text):
            body = match.group(1).strip()
            # Child elements belong to the tagged-element convention
            if not body or body.startswith("<"):
                continue
            parts = body.split("\n", 1) if "\n" in body else body.split(None, 1)
            name = parts[0].strip()
            parameters = parse_parameters(parts[1] if len(parts) > 1 else None)
            candidate = self._candidate(name, parameters, match.group(0), match.start())
            if candidate:
                candidates.append(candidate)
        return candidates


class AttributeTagStrategy(DetectionStrategy):
    """Self-describing tag: <tool_call name="x" params="..."/>."""

    source_format = SourceFormat.ATTRIBUTE_TAG
    confidence = 0.8

    # Quoted values may contain ">"
    _pattern = re.compile(r"""<tool_call\s+((?:[^>"']|"[^"]*"|'[^']*')*?)\s*/?>""", re.IGNORECASE)
    _attribute = re.compile(r"""([\w-]+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
    _parameter_attribute = re.compile(r"\b(?:params|parameters|arguments)\s*=", re.IGNORECASE)

    def detect(self, text: str) -> list[ToolCallCandidate]:
        candidates: list[ToolCallCandidate] = []
        for match in self._pattern.finditer(text):
            attributes = {
                key.lower(): html.unescape(double or single)
                for key, double, single in self._attribute.findall(match.group(1))
            }
            name = attributes.get("name") or attributes.get("tool")
            if not name:
                continue
            raw_params = next(
                (attributes[key] for key in ("params", "parameters", "arguments") if key in attributes),
                None,
            )
            if raw_params is None and self._parameter_attribute.search(match.group(1)):
                logger.debug(f"{self.name}: skipped '{name}' with a malformed parameter attribute")
                continue
            parameters = parse_parameters(raw_params)
            candidate = self._candidate(name, parameters, match.group(0), match.start())
            if candidate:
                candidates.append(candidate)
        return candidates


def default_strategies() -> list[DetectionStrategy]:
    """Create one instance of every built-in strategy."""
    return [
        StructuredBlockStrategy(),
        InlineLiteralStrategy(),
        TaggedElementStrategy(),
        SimpleTaggedStrategy(),
        AttributeTagStrategy(),
    ]
