"""In-process counters over orchestration runs."""

from dataclasses import dataclass


@dataclass
class FlowMetrics:
    """Running totals for processed replies.

    Updates are plain attribute writes; under concurrency an occasional lost
    update is accepted.
    """

    total_flows: int = 0
    completed_flows: int = 0
    failed_flows: int = 0
    flows_with_tools: int = 0
    direct_returns: int = 0
    secondary_passes: int = 0
    total_processing_ms: float = 0.0

    @property
    def average_processing_ms(self) -> float:
        finished = self.completed_flows + self.failed_flows
        if finished == 0:
            return 0.0
        return round(self.total_processing_ms / finished, 2)

    def record_start(self) -> None:
        self.total_flows += 1

    def record_finish(
        self,
        elapsed_ms: float,
        failed: bool = False,
        had_tools: bool = False,
        direct_return: bool = False,
        secondary_pass: bool = False,
    ) -> None:
        """Count one finished run."""
        if failed:
            self.failed_flows += 1
        else:
            self.completed_flows += 1
        if had_tools:
            self.flows_with_tools += 1
        if direct_return:
            self.direct_returns += 1
        if secondary_pass:
            self.secondary_passes += 1
        self.total_processing_ms += elapsed_ms

    def to_dict(self) -> dict[str, int | float]:
        return {
            "total_flows": self.total_flows,
            "completed_flows": self.completed_flows,
            "failed_flows": self.failed_flows,
            "flows_with_tools": self.flows_with_tools,
            "direct_returns": self.direct_returns,
            "secondary_passes": self.secondary_passes,
            "average_processing_ms": self.average_processing_ms,
        }
