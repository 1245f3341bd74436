"""Tool-call detection over model output.

The detector normalizes the text, runs every enabled detection strategy,
merges and deduplicates the candidates, and validates them against a
registry snapshot. Detection is pure: it never performs I/O.
"""

import json
import logging
import re
from collections import Counter
from typing import Any, Iterable

from toolcall_server.tools.intent import IntentGate
from toolcall_server.tools.registry import RegistrySnapshot
from toolcall_server.tools.strategies import DetectionStrategy, default_strategies
from toolcall_server.tools.types import RequestContext, ToolCallCandidate, ValidatedToolCall

logger = logging.getLogger(__name__)

_INVISIBLE = re.compile(r"[\u200b\u200c\u200d\ufeff]")
# String literals are matched first so comment markers inside them survive.
# Line comments count only on their own line or after a JSON separator, so URLs survive.
_COMMENT_OR_STRING = re.compile(
    r'"(?:\\.|[^"\\\n])*"'
    r"|/\*(?:(?!\*/|```).)*\*/"
    r"|^[ \t]*//[^\n]*$"
    r"|(?<=[,{\[])[ \t]+//[^\n]*$",
    re.DOTALL | re.MULTILINE,
)
_TRAILING_SPACE = re.compile(r"[ \t]+$", re.MULTILINE)
_BLANK_RUNS = re.compile(r"\n{3,}")


def _drop_comment(match: re.Match[str]) -> str:
    token = match.group(0)
    return token if token.startswith('"') else ""


def normalize_text(text: str) -> str:
    """Strip comments and whitespace noise from model output.

    Line structure is kept because the simple tagged convention separates the
    tool name from its parameters with a newline.

    Args:
        text: Raw model output

    Returns:
        str: Normalized text
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\u00a0", " ")
    text = _INVISIBLE.sub("", text)
    text = _COMMENT_OR_STRING.sub(_drop_comment, text)
    text = _TRAILING_SPACE.sub("", text)
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


def parameters_are_valid(parameters: Any) -> bool:
    """Whether parameters form a JSON-serializable object."""
    if not isinstance(parameters, dict):
        return False
    try:
        json.dumps(parameters)
    except (TypeError, ValueError):
        return False
    return True


class ToolCallDetector:
    """Extracts validated tool calls from free-form model output.

    Attributes:
        strategies: Registered detection strategies, run in order
        intent_gate: Optional policy consulted before any strategy runs
    """

    def __init__(
        self,
        strategies: Iterable[DetectionStrategy] | None = None,
        intent_gate: IntentGate | None = None,
    ) -> None:
        """Initialize the detector.

        Args:
            strategies: Strategies to run (default: all built-in conventions)
            intent_gate: Gate to consult when a request context is given
        """
        self.strategies: list[DetectionStrategy] = (
            list(strategies) if strategies is not None else default_strategies()
        )
        self.intent_gate = intent_gate

    def register_strategy(self, strategy: DetectionStrategy) -> None:
        """Add a strategy, replacing any registered for the same convention."""
        self.strategies = [s for s in self.strategies if s.name != strategy.name]
        self.strategies.append(strategy)

    @property
    def strategy_names(self) -> list[str]:
        """Names of the registered strategies."""
        return [strategy.name for strategy in self.strategies]

    def detect_candidates(
        self,
        text: str,
        enabled_strategies: Iterable[str] | None = None,
    ) -> list[ToolCallCandidate]:
        """Run strategies and return deduplicated candidates.

        Args:
            text: Model output
            enabled_strategies: Names of the strategies to run (default: all)

        Returns:
            list[ToolCallCandidate]: Candidates in order of first appearance
        """
        if not text or not text.strip():
            return []

        normalized = normalize_text(text)
        enabled = set(enabled_strategies) if enabled_strategies is not None else None

        found: list[ToolCallCandidate] = []
        for strategy in self.strategies:
            if enabled is not None and strategy.name not in enabled:
                continue
            try:
                found.extend(strategy.detect(normalized))
            except Exception as e:
                logger.warning(f"Detection strategy {strategy.name} failed: {e}")

        # Stable sort keeps strategy order for spans starting at the same offset
        found.sort(key=lambda candidate: candidate.position)

        unique: list[ToolCallCandidate] = []
        seen: set[str] = set()
        for candidate in found:
            if candidate.dedup_key in seen:
                continue
            seen.add(candidate.dedup_key)
            unique.append(candidate)

        if unique:
            logger.debug(
                f"Detected {len(unique)} candidate(s): {[c.name for c in unique]}"
            )
        return unique

    def validate(
        self,
        candidates: list[ToolCallCandidate],
        tools: RegistrySnapshot,
    ) -> list[ValidatedToolCall]:
        """Keep candidates that match an enabled tool and carry sane parameters.

        Args:
            candidates: Deduplicated candidates
            tools: Registry snapshot to validate against

        Returns:
            list[ValidatedToolCall]: Validated calls in candidate order
        """
        validated: list[ValidatedToolCall] = []
        seen: set[str] = set()

        for candidate in candidates:
            tool = tools.find_enabled(candidate.name)
            if tool is None:
                logger.warning(f"Dropping call to unknown or disabled tool: {candidate.name!r}")
                continue
            if not parameters_are_valid(candidate.parameters):
                logger.warning(f"Dropping call to {candidate.name!r}: parameters are not a JSON object")
                continue

            # `svc.tool` and `tool` with equal parameters resolve to the same call
            key = f"{tool.tool_id}:{json.dumps(candidate.parameters, sort_keys=True)}"
            if key in seen:
                continue
            seen.add(key)

            validated.append(
                ValidatedToolCall(candidate=candidate, tool_id=tool.tool_id, tool_name=tool.name)
            )
        return validated

    def detect(
        self,
        text: str,
        tools: RegistrySnapshot | None = None,
        context: RequestContext | None = None,
        enabled_strategies: Iterable[str] | None = None,
        validate: bool = True,
    ) -> list[ValidatedToolCall]:
        """Detect tool calls in model output.

        Args:
            text: Model output with reasoning content already removed
            tools: Registry snapshot, required when validating
            context: Request context consulted by the intent gate
            enabled_strategies: Names of the strategies to run (default: all)
            validate: Whether to validate candidates against the registry

        Returns:
            list[ValidatedToolCall]: Calls in order of first appearance. When
            validate is False every candidate is returned with validated=False.

        Raises:
            ValueError: If validate is True and no snapshot is given
        """
        if not text or not text.strip():
            return []

        if context is not None and self.intent_gate is not None:
            decision = self.intent_gate.evaluate(context.user_question, context.has_attachments)
            if not decision.allowed:
                logger.info(f"Intent gate skipped tool detection (rule: {decision.rule})")
                return []

        candidates = self.detect_candidates(text, enabled_strategies)

        if not validate:
            return [
                ValidatedToolCall(candidate=c, tool_id="", tool_name=c.name, validated=False)
                for c in candidates
            ]

        if tools is None:
            raise ValueError("A registry snapshot is required to validate tool calls")

        return self.validate(candidates, tools)

    @staticmethod
    def stats(candidates: list[ToolCallCandidate]) -> dict[str, Any]:
        """Summarize candidates by convention and confidence."""
        by_format = Counter(c.source_format.value for c in candidates)
        average = sum(c.confidence for c in candidates) / len(candidates) if candidates else 0.0
        return {
            "total": len(candidates),
            "by_format": dict(by_format),
            "average_confidence": round(average, 3),
        }
