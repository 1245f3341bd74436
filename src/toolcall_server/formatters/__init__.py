"""Result formatting layer.

This package renders heterogeneous tool payloads into Markdown reports,
using a hot-reloadable field mapping table for labels, ordering and value
rendering.
"""

from toolcall_server.formatters.base import BaseFormatter, FormatContext, clean_data_for_model
from toolcall_server.formatters.factory import FormatterFactory
from toolcall_server.formatters.field_mapping import (
    FieldMappingStore,
    FieldMappingTable,
    FieldSpec,
)
from toolcall_server.formatters.generic import GenericFormatter
from toolcall_server.formatters.records import RecordFormatter
from toolcall_server.formatters.report import build_failure_report, build_report
from toolcall_server.formatters.statistical import StatisticalFormatter

__all__ = [
    "BaseFormatter",
    "FormatContext",
    "FormatterFactory",
    "FieldMappingStore",
    "FieldMappingTable",
    "FieldSpec",
    "GenericFormatter",
    "RecordFormatter",
    "StatisticalFormatter",
    "build_report",
    "build_failure_report",
    "clean_data_for_model",
]
