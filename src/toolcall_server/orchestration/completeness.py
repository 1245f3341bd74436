"""Predicates deciding whether a formatted report can be returned as-is.

A complete report skips the secondary summarization pass. The default
predicate looks for marker sections and a minimum length; callers may plug
in any callable taking the report text and returning a bool.
"""

from typing import Callable

from toolcall_server.config import CompletenessSettings

CompletenessPredicate = Callable[[str], bool]


class MarkerCompleteness:
    """Report is complete when it has every marker and is long enough.

    Attributes:
        required_markers: Section headings that must all appear
        min_length: Minimum report length in characters
    """

    def __init__(self, required_markers: list[str], min_length: int) -> None:
        self.required_markers = list(required_markers)
        self.min_length = min_length

    @classmethod
    def from_settings(cls, settings: CompletenessSettings) -> "MarkerCompleteness":
        """Build the predicate from configuration."""
        return cls(settings.required_markers, settings.min_length)

    def __call__(self, report: str) -> bool:
        if not report or len(report) <= self.min_length:
            return False
        return all(marker in report for marker in self.required_markers)

    def __repr__(self) -> str:
        return f"MarkerCompleteness(markers={self.required_markers!r}, min_length={self.min_length})"


def never_complete(report: str) -> bool:
    """Always request the secondary pass."""
    return False
