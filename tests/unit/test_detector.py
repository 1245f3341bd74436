"""Unit tests for ToolCallDetector."""

import pytest

from toolcall_server.config import IntentGateSettings
from toolcall_server.tools import IntentGate, ToolCallDetector
from toolcall_server.tools.detector import normalize_text, parameters_are_valid
from toolcall_server.tools.strategies import DetectionStrategy
from toolcall_server.tools.types import Attachment, RequestContext, SourceFormat

STRUCTURED = '```json\n{"tool": "lookup_record", "parameters": {"id": "A1"}}\n```'
INLINE = 'Let me check. {"tool": "lookup_record", "parameters": {"id": "A1"}}'
TAGGED = "<tool_call>\n<name>lookup_record</name>\n<parameters>{\"id\": \"A1\"}</parameters>\n</tool_call>"
SIMPLE = '<tool_call>lookup_record\n{"id": "A1"}</tool_call>'
ATTRIBUTE = "<tool_call name=\"lookup_record\" params='{\"id\": \"A1\"}'/>"


@pytest.fixture
def detector():
    """A detector with every built-in strategy and no intent gate."""
    return ToolCallDetector()


class TestNormalizeText:
    """Tests for text normalization."""

    def test_strips_comments(self):
        """Test removal of block comments and whole-line comments."""
        text = '{\n  // the call\n  "tool": "x", /* note */ "parameters": {}\n}'
        assert normalize_text(text) == '{\n\n  "tool": "x",  "parameters": {}\n}'

    def test_keeps_urls(self):
        """Test that // inside a value is not treated as a comment."""
        text = '{"url": "https://example.com/a"}'
        assert normalize_text(text) == text

    def test_keeps_comment_markers_in_strings(self):
        """Test that glob and cron values are left untouched."""
        text = '{"tool": "x", "parameters": {"path": "logs/*/a*/b", "cron": "*/5 * * * *"}}'
        assert normalize_text(text) == text

    def test_block_comment_stays_inside_its_fence(self):
        """Test that an unclosed /* does not swallow a following block."""
        text = 'Use a/* wildcard.\n```json\n{"tool": "x"} /* done */\n```'
        assert normalize_text(text) == 'Use a/* wildcard.\n```json\n{"tool": "x"}\n```'

    def test_removes_invisible_characters(self):
        """Test zero-width characters and non-breaking spaces."""
        assert normalize_text("look\u200bup\u00a0record\ufeff") == "lookup record"

    def test_collapses_blank_runs(self):
        """Test that runs of blank lines shrink to one blank line."""
        assert normalize_text("a   \n\n\n\nb") == "a\n\nb"


def test_parameters_are_valid():
    """Test the JSON-object check for parameters."""
    assert parameters_are_valid({"id": "A1", "n": [1, 2]}) is True
    assert parameters_are_valid(["id"]) is False
    assert parameters_are_valid({"when": object()}) is False


class TestDetect:
    """Tests for detect() against a registry snapshot."""

    @pytest.mark.parametrize(
        "text",
        [
            "Hello, how can I help you today?",
            "Record A1 belongs to the finance team and is still open.",
            "Templates use curly braces {like this} for placeholders.",
            "See https://example.com/docs // for details",
            "   ",
            "",
        ],
    )
    def test_plain_prose_has_no_calls(self, detector, registry_snapshot, text):
        """Test that text without tool-call syntax yields nothing."""
        assert detector.detect(text, registry_snapshot) == []

    @pytest.mark.parametrize(
        "text,source_format",
        [
            (STRUCTURED, SourceFormat.STRUCTURED_BLOCK),
            (INLINE, SourceFormat.INLINE_LITERAL),
            (TAGGED, SourceFormat.TAGGED_ELEMENT),
            (SIMPLE, SourceFormat.SIMPLE_TAGGED),
            (ATTRIBUTE, SourceFormat.ATTRIBUTE_TAG),
        ],
    )
    def test_each_convention_yields_one_call(self, detector, registry_snapshot, text, source_format):
        """Test a minimal example of every supported convention."""
        calls = detector.detect(text, registry_snapshot)

        assert len(calls) == 1
        assert calls[0].name == "lookup_record"
        assert calls[0].tool_name == "lookup_record"
        assert calls[0].tool_id == "records:lookup_record"
        assert calls[0].parameters == {"id": "A1"}
        assert calls[0].source_format == source_format
        assert calls[0].validated is True

    def test_same_call_in_two_conventions_is_deduplicated(self, detector, registry_snapshot):
        """Test that one call written twice collapses to a single call."""
        text = f"{STRUCTURED}\n\nOr, in the other format:\n{TAGGED}"
        calls = detector.detect(text, registry_snapshot)

        assert len(calls) == 1
        assert calls[0].source_format == SourceFormat.STRUCTURED_BLOCK

    def test_calls_keep_order_of_appearance(self, detector, registry_snapshot):
        """Test that distinct calls come back in text order."""
        text = (
            "<tool_call name=\"perform_ttest\" params='{\"alpha\": 0.05}'/>\n"
            '```json\n{"tool": "lookup_record", "parameters": {"id": "B2"}}\n```'
        )
        calls = detector.detect(text, registry_snapshot)

        assert [call.tool_name for call in calls] == ["perform_ttest", "lookup_record"]

    def test_unknown_and_disabled_tools_are_dropped(self, detector, registry_snapshot):
        """Test validation against enabled registry tools."""
        text = (
            '{"tool": "delete_everything", "parameters": {}}\n'
            '{"tool": "archived_lookup", "parameters": {"id": "A1"}}\n'
            '{"tool": "lookup_record", "parameters": {"id": "A1"}}'
        )
        calls = detector.detect(text, registry_snapshot)

        assert [call.tool_name for call in calls] == ["lookup_record"]

    def test_dotted_and_cased_names_resolve(self, detector, registry_snapshot):
        """Test service-qualified and differently cased tool names."""
        text = '{"tool": "records.LOOKUP_RECORD", "parameters": {"id": "A1"}}'
        calls = detector.detect(text, registry_snapshot)

        assert len(calls) == 1
        assert calls[0].name == "records.LOOKUP_RECORD"
        assert calls[0].tool_name == "lookup_record"

    def test_qualified_duplicate_collapses_after_validation(self, detector, registry_snapshot):
        """Test that qualified and plain names for one tool count once."""
        text = (
            '{"tool": "records.lookup_record", "parameters": {"id": "A1"}}\n'
            '{"tool": "lookup_record", "parameters": {"id": "A1"}}'
        )
        assert len(detector.detect(text, registry_snapshot)) == 1

    def test_without_validation(self, detector):
        """Test that unvalidated detection returns every candidate."""
        text = '{"tool": "delete_everything", "parameters": {"all": true}}'
        calls = detector.detect(text, validate=False)

        assert len(calls) == 1
        assert calls[0].validated is False
        assert calls[0].tool_id == ""

    def test_validation_requires_snapshot(self, detector):
        """Test that validating without a registry snapshot is an error."""
        with pytest.raises(ValueError):
            detector.detect(STRUCTURED)

    def test_enabled_strategies(self, detector, registry_snapshot):
        """Test restricting detection to named strategies."""
        assert detector.detect(STRUCTURED, registry_snapshot, enabled_strategies=["attribute-tag"]) == []
        assert len(detector.detect(ATTRIBUTE, registry_snapshot, enabled_strategies=["attribute-tag"])) == 1

    def test_comments_inside_call(self, detector, registry_snapshot):
        """Test a call whose JSON carries comments."""
        text = (
            "```json\n{\n  // look the record up\n"
            '  "tool": "lookup_record", /* by id */\n  "parameters": {"id": "A1"}\n}\n```'
        )
        calls = detector.detect(text, registry_snapshot)

        assert len(calls) == 1
        assert calls[0].parameters == {"id": "A1"}

    def test_comment_markers_in_parameter_values(self, detector, registry_snapshot):
        """Test that a glob parameter reaches the tool unchanged."""
        text = '```json\n{"tool": "lookup_record", "parameters": {"id": "logs/*/a*/b"}}\n```'
        calls = detector.detect(text, registry_snapshot)

        assert len(calls) == 1
        assert calls[0].parameters == {"id": "logs/*/a*/b"}


class TestIntentGateIntegration:
    """Tests for the gate consulted when a request context is given."""

    @pytest.fixture
    def gated_detector(self):
        return ToolCallDetector(intent_gate=IntentGate(IntentGateSettings()))

    def test_theory_question_skips_detection(self, gated_detector, registry_snapshot):
        """Test that a definition question suppresses tool calls."""
        context = RequestContext(user_question="What is a control chart?")
        assert gated_detector.detect(STRUCTURED, registry_snapshot, context) == []

    def test_short_message_with_attachment(self, gated_detector, registry_snapshot):
        """Test that a short message with a file suppresses tool calls."""
        context = RequestContext(
            user_question="see file",
            attachments=[Attachment(filename="data.csv")],
        )
        assert gated_detector.detect(STRUCTURED, registry_snapshot, context) == []

    def test_explicit_request_overrides(self, gated_detector, registry_snapshot):
        """Test that asking for a tool by name always allows detection."""
        context = RequestContext(
            user_question="Use the lookup_record tool",
            attachments=[Attachment(filename="data.csv")],
        )
        assert len(gated_detector.detect(STRUCTURED, registry_snapshot, context)) == 1

    def test_no_context_skips_gate(self, gated_detector, registry_snapshot):
        """Test that the gate only runs when a context is given."""
        assert len(gated_detector.detect(STRUCTURED, registry_snapshot)) == 1


class TestStrategyManagement:
    """Tests for registering strategies and detection statistics."""

    def test_failing_strategy_is_ignored(self, registry_snapshot):
        """Test that a strategy raising does not stop the others."""

        class BrokenStrategy(DetectionStrategy):
            source_format = SourceFormat.SIMPLE_TAGGED
            confidence = 0.1

            def detect(self, text):
                raise RuntimeError("boom")

        detector = ToolCallDetector()
        detector.register_strategy(BrokenStrategy())

        assert len(detector.detect(STRUCTURED, registry_snapshot)) == 1
        assert detector.strategy_names.count("simple-tagged") == 1

    def test_stats(self, detector):
        """Test candidate statistics by convention."""
        candidates = detector.detect_candidates(
            f'{ATTRIBUTE}\n{{"tool": "perform_ttest", "parameters": {{"alpha": 0.05}}}}'
        )
        stats = ToolCallDetector.stats(candidates)

        assert stats["total"] == 2
        assert stats["by_format"] == {"attribute-tag": 1, "inline-literal": 1}
        assert stats["average_confidence"] == 0.8

    def test_stats_empty(self):
        """Test statistics of no candidates."""
        assert ToolCallDetector.stats([]) == {"total": 0, "by_format": {}, "average_confidence": 0.0}
