"""Unit tests for the generic, record and statistical formatters."""

import pytest

from toolcall_server.formatters import (
    FormatContext,
    GenericFormatter,
    RecordFormatter,
    StatisticalFormatter,
    clean_data_for_model,
)
from toolcall_server.formatters.base import BaseFormatter, estimate_base64_size, safe_get
from toolcall_server.formatters.field_mapping import (
    CATEGORY_COMMON,
    CATEGORY_RECORDS,
    CATEGORY_STATISTICS,
)
from toolcall_server.formatters.records import HIGHLIGHT_MARKER

BASE64_BLOB = "QUJD" * 400


@pytest.fixture
def common_context(mappings):
    return FormatContext(mappings=mappings, category=CATEGORY_COMMON)


@pytest.fixture
def record_context(mappings):
    return FormatContext(mappings=mappings, category=CATEGORY_RECORDS)


@pytest.fixture
def stats_context(mappings):
    return FormatContext(mappings=mappings, category=CATEGORY_STATISTICS)


class TestBaseHelpers:
    """Tests for helpers shared by every formatter."""

    def test_safe_get(self):
        data = {"statistics": {"details": {"totalCount": 3, "empty": None}}}

        assert safe_get(data, "statistics.details.totalCount") == 3
        assert safe_get(data, "statistics.details.empty", "n/a") == "n/a"
        assert safe_get(data, "statistics.missing.key") is None

    def test_clean_data_masks_base64(self):
        """Test that long base64 strings never reach a prompt."""
        data = {"chart": {"imageBase64": BASE64_BLOB}, "rows": [{"blob": BASE64_BLOB}], "id": "A1"}
        cleaned = clean_data_for_model(data)

        assert cleaned["id"] == "A1"
        assert cleaned["chart"]["imageBase64"] == "[base64 data omitted, 1 KB]"
        assert cleaned["rows"][0]["blob"].startswith("[base64 data omitted")
        assert data["chart"]["imageBase64"] == BASE64_BLOB

    def test_estimate_base64_size(self):
        assert estimate_base64_size("QUJD") == "3 B"
        assert estimate_base64_size("data:image/png;base64," + "A" * 4096) == "3 KB"

    def test_extract_ai_guidance(self):
        data = {"aiInstructions": "Internal notes.\n\nAI guidance: Focus on delays.\n\nIgnore this."}
        assert BaseFormatter.extract_ai_guidance(data) == "Focus on delays."
        assert BaseFormatter.extract_ai_guidance({"aiInstructions": ["a", "b"]}) == "a\nb"
        assert BaseFormatter.extract_ai_guidance({"value": 1}) == ""


class TestGenericFormatter:
    """Tests for the fallback formatter."""

    def test_empty(self, common_context):
        assert GenericFormatter().format([], "weather", common_context) == "## weather result\n\nNo data returned.\n"

    def test_plain_string(self, common_context):
        assert GenericFormatter().format("Sunny", "weather", common_context) == "## weather result\n\nSunny\n"

    def test_json_string_is_parsed(self, common_context):
        result = GenericFormatter().format('{"city": "Oslo"}', "weather", common_context)
        assert "- **city**: Oslo" in result

    def test_table_of_objects(self, common_context):
        """Test column order by priority and mapped labels."""
        data = [{"id": 1, "name": "Alpha", "extra": "x"}, {"id": 2, "name": "Beta|Gamma"}]
        result = GenericFormatter().format(data, "list_things", common_context)

        assert "| ID | Name | extra |" in result
        assert "| 1 | Alpha | x |" in result
        assert "| 2 | Beta\\|Gamma | Not provided |" in result

    def test_long_scalar_list_is_elided(self, common_context):
        result = GenericFormatter().format(list(range(25)), "numbers", common_context)

        assert "25 item(s):" in result
        assert "- 4\n- ... (15 more)\n- 20" in result

    def test_envelope(self, common_context):
        """Test query information, filters and data sections of a list envelope."""
        data = {"data": [{"id": 1}], "count": 1, "filters": {"status": "open", "owner": None}}
        result = GenericFormatter().format(data, "list_things", common_context)

        assert "### Query information\n- **Count**: 1" in result
        assert "### Filters\n- **Status**: open\n" in result
        assert "owner" not in result
        assert "### Data (1 record(s))" in result

    def test_nested_object(self, common_context):
        data = {"city": {"temp": 21, "wind": {"speed": 3}}, "aiInstructions": "AI guidance: be brief"}
        result = GenericFormatter().format(data, "weather", common_context)

        assert "### Analysis guidance\nbe brief" in result
        assert "- **city**:\n  - **temp**: 21\n  - **wind**:\n    - **speed**: 3" in result
        assert "aiInstructions" not in result

    def test_already_formatted_text(self, common_context):
        """Test that generic output fed back through the formatter stays intact."""
        formatter = GenericFormatter()
        first = formatter.format([{"id": 1, "name": "Alpha"}], "list_things", common_context)

        second = formatter.format(first, "list_things", common_context)

        assert second.startswith("## list_things result\n\n")
        assert first.strip() in second

    def test_base64_is_masked(self, common_context):
        result = GenericFormatter().format({"blob": BASE64_BLOB}, "export", common_context)

        assert "base64 data omitted" in result
        assert "QUJDQUJD" not in result


class TestRecordFormatter:
    """Tests for record-management payloads."""

    @pytest.fixture
    def list_payload(self):
        return {
            "data": [
                {
                    "SerialNumber": "R-001",
                    "TypeName": "Audit",
                    "Status": "OnGoing",
                    "DelayDay": 12,
                    "Importance": "H",
                    "IssueDescription": "Supplier certificates expired before the audit window closed",
                },
                {
                    "SerialNumber": "R-002",
                    "TypeName": "Safety",
                    "Status": "Closed",
                    "DelayDay": 0,
                    "Importance": "L",
                },
            ],
            "count": 2,
            "totalRecords": 10,
            "statistics": {"summary": "One record is delayed.", "details": {"totalCount": 10, "avgDelayDays": 4.5}},
            "filters": {"Status": "OnGoing", "DRI_Dept": ""},
            "timestamp": "2024-05-01T08:00:00Z",
        }

    def test_can_handle(self):
        formatter = RecordFormatter()
        assert formatter.can_handle("lookup_record", CATEGORY_RECORDS) is True
        assert formatter.can_handle("perform_ttest", CATEGORY_STATISTICS) is False

    def test_list_report_sections(self, list_payload, record_context):
        result = RecordFormatter().format(list_payload, "get_record_list", record_context)

        assert result.startswith("## Record list\n\n### Summary\n")
        assert "2 record(s) returned out of 10 matching.\nOne record is delayed." in result
        assert "- **Total records**: 10" in result
        assert "- **Average delay**: 4.5 days" in result
        assert "- **Returned**: 2 / 10" in result
        assert "- **Queried at**: 2024-05-01 08:00" in result
        assert "### Filters\n- **Status**: OnGoing\n\n" in result
        assert "### Records (2 total)" in result

    def test_list_report_table_and_highlights(self, list_payload, record_context):
        """Test the core-field table, highlight markers and untruncated details."""
        result = RecordFormatter().format(list_payload, "get_record_list", record_context)

        assert "| Serial number | Type | Status | Delay | Importance |" in result
        assert f"| R-001 | Audit | OnGoing | {HIGHLIGHT_MARKER} 12 days | {HIGHLIGHT_MARKER} H |" in result
        assert "| R-002 | Safety | Closed | 0 days | L |" in result
        assert "### Details\n\n**1. R-001**\n" in result
        assert "- **Issue description**: Supplier certificates expired before the audit window closed" in result

    def test_missing_important_fields(self, list_payload, record_context):
        result = RecordFormatter().format(list_payload, "get_record_list", record_context)
        assert "these important fields are missing: Closure requested, Subtype, Recorded" in result

    def test_list_layout_for_text_fields(self, record_context):
        """Test that few records with long text render as a list."""
        data = {"data": [{"SerialNumber": "R-009", "Solution": "Replace the gasket and retest", "DelayDay": 11}]}
        result = RecordFormatter().format(data, "get_record_list", record_context)

        assert "**1. R-009**\n" in result
        assert "- **Solution**: Replace the gasket and retest" in result
        assert f"- **Delay**: {HIGHLIGHT_MARKER} 11 days" in result
        assert "| Serial number |" not in result

    def test_bare_list(self, record_context):
        result = RecordFormatter().format([{"SerialNumber": "R-1"}], "get_record_list", record_context)
        assert "### Summary\n1 record(s) returned." in result

    def test_empty_list(self, record_context):
        result = RecordFormatter().format({"data": []}, "get_record_list", record_context)
        assert result.endswith("### Records\n\nNo records found.\n")

    def test_details(self, record_context):
        data = {"data": {"Status": "OnGoing", "SerialNumber": "R-001", "DelayDay": 3, "Importance": "H"}}
        result = RecordFormatter().format(data, "lookup_record", record_context)

        assert result.startswith("## Record details\n\n### Record\n\n- **Status**: OnGoing")
        assert f"- **Importance**: {HIGHLIGHT_MARKER} H (high importance)" in result
        assert "- **Delay**: 3 days" in result

    def test_status_report(self, record_context):
        data = {"summary": {"total": 4, "completed": 1}, "statusDistribution": {"Open": 3, "Closed": 1}}
        result = RecordFormatter().format(data, "get_record_status_report", record_context)

        assert "## Record status report" in result
        assert "- **Total**: 4" in result
        assert "| Open | 3 | 75.0% |" in result
        assert "| Closed | 1 | 25.0% |" in result

    def test_unknown_parameter_error(self, record_context):
        data = {"success": False, "error": "Unknown parameter(s): colour. Allowed parameters: status, DelayDay"}
        result = RecordFormatter().format(data, "get_record_list", record_context)

        assert result.startswith("## get_record_list failed\n\n**Error**: Unknown parameter(s)")
        assert "**Unknown parameter(s)**: `colour`" in result
        assert "- `status`: Status\n- `DelayDay`: Delay\n" in result

    def test_no_data(self, record_context):
        assert RecordFormatter().format(None, "lookup_record", record_context) == "No record data returned.\n"


class TestStatisticalFormatter:
    """Tests for statistical test and chart payloads."""

    def test_ttest(self, stats_context):
        data = {
            "test_type": "Welch",
            "statistical_results": {
                "t_statistic": 2.5,
                "p_value": 0.0123,
                "degrees_of_freedom": 18,
                "alpha": 0.05,
                "significant": True,
            },
            "descriptive_stats": [{"group": "A", "count": 10, "mean": 5, "std": 1, "min": 3, "max": 7}],
            "conclusion": "The groups differ.",
        }
        result = StatisticalFormatter().format(data, "perform_ttest", stats_context)

        assert result.startswith("## t test\n\n### Test: Welch\n\n### Results\n\n")
        assert "- **t statistic**: 2.5000" in result
        assert "- **p-value**: 0.012300" in result
        assert "- **Degrees of freedom**: 18" in result
        assert "- **Significant**: yes" in result
        assert "| A | 10 | 5.000 | 1.000 | 3.000 | 7.000 |" in result
        assert "### Conclusion\n\nThe groups differ." in result

    def test_anova_degrees_of_freedom(self, stats_context):
        data = {
            "statistical_results": {"f_statistic": 4.1, "degrees_of_freedom": {"between": 2, "within": 27}},
            "group_comparisons": [{"group1": "A", "group2": "B", "mean_difference": 1.5, "p_value": 0.03}],
        }
        result = StatisticalFormatter().format(data, "perform_anova", stats_context)

        assert "- **Degrees of freedom**: 2 (between groups), 27 (within groups)" in result
        assert "- **A vs B**: difference = 1.500, p = 0.0300" in result

    def test_histogram_embeds_image(self, stats_context):
        data = {"title": "Cycle time", "image_data": "iVBORw0KGgo=", "distribution_analysis": {"mean": 3.14159}}
        result = StatisticalFormatter().format(data, "create_histogram", stats_context)

        assert "### Cycle time" in result
        assert "![Histogram](data:image/png;base64,iVBORw0KGgo=)" in result
        assert "- **Mean**: 3.14" in result

    def test_chisquare_table(self, stats_context):
        data = {
            "statistical_results": {"chi2_statistic": 4.2},
            "contingency_table": [[1, 2], [3, 4]],
            "row_labels": ["M", "F"],
            "col_labels": ["Yes", "No"],
        }
        result = StatisticalFormatter().format(data, "run_chisquare", stats_context)

        assert "|  | Yes | No |" in result
        assert "| M | 1.00 | 2.00 |" in result
        assert "| F | 3.00 | 4.00 |" in result

    def test_general_listing(self, stats_context):
        data = {"mean": 2.5, "valid": True, "success": True, "module": "stats"}
        result = StatisticalFormatter().format(data, "compute_stat_summary", stats_context)

        assert result.startswith("## Statistical analysis\n\n### Tool: compute_stat_summary\n\n")
        assert "- **Mean**: 2.500" in result
        assert "- **valid**: yes" in result
        assert "success" not in result
        assert "### Execution\n- **Module**: stats" in result

    def test_error(self, stats_context):
        result = StatisticalFormatter().format({"error": "Not enough samples"}, "perform_ttest", stats_context)
        assert result == "## perform_ttest failed\n\n**Error**: Not enough samples\n\n**Tool**: perform_ttest\n"
