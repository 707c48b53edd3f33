"""Deployment metrics: Prometheus counters and per-phase timings."""

from dataclasses import dataclass, field
from time import perf_counter_ns
from typing import Dict

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, write_to_textfile


DEPLOYMENT_COUNT = Counter(
    "app_stager_deployments_total",
    "Total deployment attempts",
    ["outcome"],
)

UNPACK_ATTEMPTS = Counter(
    "app_stager_unpack_attempts_total",
    "Archive extraction attempts",
    ["result"],
)

ROLLBACK_COUNT = Counter(
    "app_stager_rollbacks_total",
    "Rollbacks of the previous app from holding",
)

DEPLOYMENT_DURATION = Histogram(
    "app_stager_deployment_duration_seconds",
    "Deployment attempt duration",
)


@dataclass
class DeploymentTimings:
    start_ns: int = field(default_factory=perf_counter_ns)
    phase_starts: Dict[str, int] = field(default_factory=dict)
    phase_durations_ns: Dict[str, int] = field(default_factory=dict)
    end_ns: int | None = None

    def start_phase(self, name: str) -> None:
        """Mark the start of a phase."""
        self.phase_starts[name] = perf_counter_ns()

    def end_phase(self, name: str) -> None:
        """Mark the end of a phase and record its duration."""
        if name in self.phase_starts:
            self.phase_durations_ns[name] = perf_counter_ns() - self.phase_starts[name]

    def finish(self) -> None:
        self.end_ns = perf_counter_ns()

    @property
    def total_seconds(self) -> float:
        end = self.end_ns if self.end_ns is not None else perf_counter_ns()
        return (end - self.start_ns) / 1_000_000_000.0

    def to_dict(self) -> Dict[str, object]:
        """Convert timings to a dictionary with millisecond precision."""
        total_ms = None
        if self.end_ns is not None:
            total_ms = (self.end_ns - self.start_ns) / 1_000_000.0
        phases_ms = {k: v / 1_000_000.0 for k, v in self.phase_durations_ns.items()}
        return {
            "total_ms": total_ms,
            "phases_ms": phases_ms,
        }


def export_metrics(path: str, registry: CollectorRegistry = REGISTRY) -> None:
    """Write the registry in the Prometheus text format (node_exporter textfile collector)."""
    write_to_textfile(path, registry)
