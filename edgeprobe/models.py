"""Data models for edgeprobe probe runs."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class ProbeSample:
    """A single timed reachability attempt against one candidate."""

    ts: datetime
    address: str
    latency_ms: float | None  # None is the "no result" marker
    loss: bool

    def __post_init__(self):
        """Ensure consistency between latency_ms and loss fields."""
        if self.loss:
            self.latency_ms = None
        elif self.latency_ms is None:
            self.loss = True

    @classmethod
    def lost(cls, address: str) -> "ProbeSample":
        """Build a no-result sample stamped with the current time."""
        return cls(ts=datetime.now(), address=address, latency_ms=None, loss=True)


@dataclass(frozen=True)
class CandidateResult:
    """Aggregate of one candidate's samples that survived rejection."""

    address: str
    average_latency_ms: int
    loss_ratio: float
    estimated_throughput_mbps: float
    classification: str
    samples_sent: int
    samples_received: int

    @property
    def loss_percent(self) -> int:
        """Loss ratio as a rounded whole percentage."""
        return round(self.loss_ratio * 100)

    @property
    def throughput_label(self) -> str:
        return f"{self.estimated_throughput_mbps:.1f} MB/s"


@dataclass(frozen=True)
class RunProgress:
    """Progress snapshot handed to the progress callback."""

    current_candidate: str
    percent_complete: int
