"""Intent gate deciding whether a reply should be scanned for tool calls.

Uploading a document and asking about it, or asking a textbook question, is
not a request for a live lookup, even when the model's reply happens to
contain text shaped like a tool call. The gate looks at the user's literal
question and rejects those cases before any strategy runs.

Rules, in evaluation order:
1. No question available: allow.
2. Explicit tool-call syntax or an explicit tool request in the question: allow.
3. Attached files with a question shorter than the minimum length: reject.
4. Attached files with a bare file-analysis or file-sharing message: reject.
5. Theory or definition question: reject.
6. Otherwise: allow.
"""

import logging
import re
from dataclasses import dataclass

from toolcall_server.config import IntentGateSettings

logger = logging.getLogger(__name__)

RULE_DISABLED = "disabled"
RULE_NO_QUESTION = "no_question"
RULE_EXPLICIT_REQUEST = "explicit_request"
RULE_SHORT_WITH_ATTACHMENT = "short_message_with_attachment"
RULE_FILE_ANALYSIS = "file_analysis_request"
RULE_THEORY_QUESTION = "theory_question"
RULE_DEFAULT = "default"


@dataclass(frozen=True)
class GateDecision:
    """Outcome of the intent gate."""

    allowed: bool
    rule: str


class IntentGate:
    """Heuristic policy run before tool-call detection.

    Attributes:
        settings: Thresholds and pattern lists the rules are built from
    """

    def __init__(self, settings: IntentGateSettings | None = None) -> None:
        """Initialize the gate, compiling every configured pattern.

        Args:
            settings: Gate configuration (default: built-in rules)
        """
        self.settings = settings or IntentGateSettings()
        self._explicit_syntax = self._compile(self.settings.explicit_syntax_patterns)
        self._explicit_request = self._compile(self.settings.explicit_request_patterns)
        self._file_analysis = self._compile(
            self.settings.file_analysis_patterns + self.settings.file_sharing_patterns
        )
        self._theory = self._compile(self.settings.theory_patterns)

    @staticmethod
    def _compile(patterns) -> list[re.Pattern[str]]:
        return [re.compile(pattern, re.IGNORECASE) for pattern in patterns]

    @staticmethod
    def _matches(patterns: list[re.Pattern[str]], text: str) -> bool:
        return any(pattern.search(text) for pattern in patterns)

    def has_explicit_tool_syntax(self, text: str) -> bool:
        """Whether the text itself contains tool-call syntax."""
        return self._matches(self._explicit_syntax, text)

    def evaluate(self, question: str | None, has_attachments: bool = False) -> GateDecision:
        """Decide whether tool-call detection should run.

        Args:
            question: The user's literal message, if known
            has_attachments: Whether the user attached files

        Returns:
            GateDecision: Whether detection may run and which rule decided
        """
        if not self.settings.enabled:
            return GateDecision(True, RULE_DISABLED)

        text = (question or "").strip()
        if not text:
            return GateDecision(True, RULE_NO_QUESTION)

        if self.has_explicit_tool_syntax(text) or self._matches(self._explicit_request, text):
            return GateDecision(True, RULE_EXPLICIT_REQUEST)

        if has_attachments:
            if len(text) < self.settings.min_attachment_message_length:
                return GateDecision(False, RULE_SHORT_WITH_ATTACHMENT)
            if self._matches(self._file_analysis, text):
                return GateDecision(False, RULE_FILE_ANALYSIS)

        if self._matches(self._theory, text):
            return GateDecision(False, RULE_THEORY_QUESTION)

        return GateDecision(True, RULE_DEFAULT)
