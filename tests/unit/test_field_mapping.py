"""Unit tests for field mapping reference data."""

import json

import pytest

from toolcall_server.config import DEFAULT_FIELD_MAPPINGS_PATH
from toolcall_server.formatters import FieldMappingStore
from toolcall_server.formatters.field_mapping import (
    CATEGORY_COMMON,
    CATEGORY_RECORDS,
    CATEGORY_STATISTICS,
    FieldMappingDocument,
    FieldMappingTable,
    format_array,
    format_date,
    format_integer,
    format_number,
    format_phone,
    truncate,
)
from toolcall_server.tools import FieldMappingError


class TestValueHelpers:
    """Tests for the type-specific rendering helpers."""

    def test_format_number(self):
        assert format_number(1234.5, 1) == "1,234.5"
        assert format_number("7", 0, "%") == "7%"
        assert format_number(0.0001, 4, scientific=True) == "1.0000e-04"
        assert format_number(0.5, 2, scientific=True) == "0.50"
        assert format_number("abc") == "abc"

    def test_format_integer(self):
        assert format_integer("1234.0") == "1,234"
        assert format_integer("x") == "x"

    def test_format_date(self):
        assert format_date("2024-03-05") == "2024-03-05"
        assert format_date("2024-03-05T14:30:00Z") == "2024-03-05 14:30"
        assert format_date("next week") == "next week"

    def test_format_phone(self):
        assert format_phone("0912345678") == "0912-345-678"
        assert format_phone("02-12345678") == "02-1234-5678"
        assert format_phone("123") == "123"

    def test_truncate(self):
        assert truncate("abcdefghij", 6) == "abc..."
        assert truncate("short", 10) == "short"

    def test_format_array(self):
        assert format_array([0.1, 0.25]) == "[0.100, 0.250]"
        assert format_array([]) == "Empty list"
        assert format_array(["a", 1, True]) == "a, 1, true"


class TestFieldMappingTable:
    """Tests for lookups against the packaged mapping file."""

    def test_label_with_common_fallback(self, mappings):
        assert mappings.label("SerialNumber", CATEGORY_RECORDS) == "Serial number"
        assert mappings.label("id", CATEGORY_RECORDS) == "ID"
        assert mappings.label("colour", CATEGORY_RECORDS) == "colour"

    def test_unknown_field_defaults(self, mappings):
        """Test that unmapped fields keep their raw name and sort last."""
        field_spec = mappings.get("colour", CATEGORY_STATISTICS)

        assert field_spec.label == "colour"
        assert field_spec.priority == 99
        assert field_spec.type == "string"

    def test_sort_fields(self, mappings):
        """Test ascending priority with payload order kept on ties."""
        fields = ["Remark", "SerialNumber", "colour", "Status"]
        assert mappings.sort_fields(fields, CATEGORY_RECORDS) == ["SerialNumber", "Status", "Remark", "colour"]

    @pytest.mark.parametrize(
        "value,field,category,expected",
        [
            (None, "Status", CATEGORY_RECORDS, "Not provided"),
            ("  ", "Status", CATEGORY_RECORDS, "Not provided"),
            (12, "DelayDay", CATEGORY_RECORDS, "12 days"),
            ("2024-01-31", "RecordDate", CATEGORY_RECORDS, "2024-01-31"),
            (True, "is_APPLY", CATEGORY_RECORDS, "true"),
            (0.00001, "p_value", CATEGORY_STATISTICS, "1.0000e-05"),
            (0.0312, "p_value", CATEGORY_STATISTICS, "0.0312"),
            (2.5, "mean", CATEGORY_STATISTICS, "2.500"),
            (15000, "count", CATEGORY_COMMON, "15,000"),
        ],
    )
    def test_format_value(self, mappings, value, field, category, expected):
        assert mappings.format_value(value, field, category) == expected

    def test_text_truncation(self, mappings):
        """Test per-field and category-wide text length limits."""
        solution = mappings.format_value("x" * 100, "Solution", CATEGORY_RECORDS)
        description = mappings.format_value("y" * 60, "description", CATEGORY_COMMON)

        assert solution == "x" * 77 + "..."
        assert description == "y" * 47 + "..."

    def test_display_rule_falls_back_to_general(self, mappings):
        assert mappings.display_rule(CATEGORY_RECORDS, "max_table_fields") == 8
        assert mappings.display_rule(CATEGORY_RECORDS, "title_field") == "SerialNumber"
        assert mappings.display_rule(CATEGORY_STATISTICS, "title_field", "none") == "none"

    @pytest.mark.parametrize(
        "field,value,category,hit",
        [
            ("DelayDay", 12, CATEGORY_RECORDS, True),
            ("DelayDay", 5, CATEGORY_RECORDS, False),
            ("DelayDay", "n/a", CATEGORY_RECORDS, False),
            ("Importance", "H", CATEGORY_RECORDS, True),
            ("Importance", "L", CATEGORY_RECORDS, False),
            ("p_value", 0.01, CATEGORY_STATISTICS, True),
            ("p_value", 0.2, CATEGORY_STATISTICS, False),
            ("Status", "Open", CATEGORY_RECORDS, False),
        ],
    )
    def test_check_highlight(self, mappings, field, value, category, hit):
        assert (mappings.check_highlight(field, value, category) is not None) is hit

    def test_malformed_highlight_condition(self):
        document = FieldMappingDocument.model_validate(
            {"display_rules": {"general": {"highlight_rules": {"score": {"condition": "about 5"}}}}}
        )
        table = FieldMappingTable(document)

        assert table.check_highlight("score", 5) is None

    @pytest.mark.parametrize(
        "tool_name,category",
        [
            ("lookup_record", CATEGORY_RECORDS),
            ("get_project_list", CATEGORY_RECORDS),
            ("perform_ttest", CATEGORY_STATISTICS),
            ({"name": "create_histogram"}, CATEGORY_STATISTICS),
            ("get_employee_info", "employee"),
            ("weather_lookup", CATEGORY_COMMON),
            (None, CATEGORY_COMMON),
        ],
    )
    def test_infer_category(self, mappings, tool_name, category):
        assert mappings.infer_category(tool_name) == category


class TestFieldMappingStore:
    """Tests for loading and hot-reloading the mapping file."""

    @pytest.fixture
    def mapping_file(self, tmp_path):
        path = tmp_path / "field_mappings.json"
        path.write_text(DEFAULT_FIELD_MAPPINGS_PATH.read_text(encoding="utf-8"), encoding="utf-8")
        return path

    def test_packaged_file_loads(self, mapping_store):
        table = mapping_store.current

        assert table.version == 1
        assert table.document.version == "1.0"
        assert {"common", CATEGORY_RECORDS, CATEGORY_STATISTICS} <= set(table.categories)

    def test_reload_swaps_table(self, mapping_file):
        """Test that reload serves the new file while held tables stay intact."""
        store = FieldMappingStore(mapping_file)
        held = store.current

        document = json.loads(mapping_file.read_text())
        document["categories"]["record_management"]["SerialNumber"]["label"] = "Record no."
        mapping_file.write_text(json.dumps(document))
        reloaded = store.reload()

        assert reloaded.version == 2
        assert store.current is reloaded
        assert reloaded.label("SerialNumber", CATEGORY_RECORDS) == "Record no."
        assert held.label("SerialNumber", CATEGORY_RECORDS) == "Serial number"

    def test_failed_reload_keeps_previous_table(self, mapping_file):
        store = FieldMappingStore(mapping_file)
        previous = store.current

        mapping_file.write_text("{broken")

        with pytest.raises(FieldMappingError):
            store.reload()
        assert store.current is previous

    def test_invalid_document_reports_fields(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"categories": {"common": {"id": {"priority": 1}}}}))

        with pytest.raises(FieldMappingError) as exc_info:
            FieldMappingStore(path).load()

        assert exc_info.value.code == "field_mapping_error"
        assert any(error.startswith("categories.common.id.label") for error in exc_info.value.details["errors"])

    def test_missing_file_serves_empty_table(self, tmp_path):
        """Test that formatting keeps working without a mapping file."""
        table = FieldMappingStore(tmp_path / "missing.json").current

        assert table.version == 0
        assert table.categories == []
        assert table.label("SerialNumber", CATEGORY_RECORDS) == "SerialNumber"
