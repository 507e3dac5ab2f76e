"""Metric aggregation dataclasses for usersbench."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

# Raw per-event records live next to the client that emits them; they are
# re-exported here so consumers can import every metric type from one place.
from usersbench.dsl.checks import CheckResult
from usersbench.dsl.http_client import RequestMetric

__all__ = [
    "CheckResult",
    "CheckSummary",
    "EndpointMetrics",
    "MetricSnapshot",
    "RequestMetric",
    "TestResult",
    "ThresholdResult",
]


@dataclass
class EndpointMetrics:
    """Aggregated metrics for a single endpoint (logical request name).

    Attributes:
        name: Logical endpoint name (e.g., "GET /users").
        request_count: Total number of requests to this endpoint.
        error_count: Number of failed requests (transport error or status
            outside 200-399).
        error_rate: Fraction of requests that failed (0.0 to 1.0).
        requests_per_second: Requests per second to this endpoint.
        latency_min: Minimum response time in milliseconds.
        latency_max: Maximum response time in milliseconds.
        latency_avg: Mean response time in milliseconds.
        latency_p50: 50th percentile response time in milliseconds.
        latency_p90: 90th percentile response time in milliseconds.
        latency_p95: 95th percentile response time in milliseconds.
        latency_p99: 99th percentile response time in milliseconds.
    """

    name: str
    request_count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    requests_per_second: float = 0.0
    latency_min: float = 0.0
    latency_max: float = 0.0
    latency_avg: float = 0.0
    latency_p50: float = 0.0
    latency_p90: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0


@dataclass
class MetricSnapshot:
    """Aggregated metrics for one tick interval, or for the whole run.

    Attributes:
        timestamp: Monotonic timestamp of the snapshot.
        elapsed_seconds: Seconds since the test started.
        active_users: Number of active virtual users.
        total_requests: Requests in the covered period.
        requests_per_second: Overall RPS in the covered period.
        latency_min: Minimum latency in milliseconds.
        latency_max: Maximum latency in milliseconds.
        latency_avg: Mean latency in milliseconds.
        latency_p50: 50th percentile latency (ms).
        latency_p75: 75th percentile latency (ms).
        latency_p90: 90th percentile latency (ms).
        latency_p95: 95th percentile latency (ms).
        latency_p99: 99th percentile latency (ms).
        latency_p999: 99.9th percentile latency (ms).
        total_errors: Failed request count.
        error_rate: Fraction of requests that failed (0.0 to 1.0).
        errors_by_status: Failed request count by HTTP status code.
        errors_by_type: Transport error count by exception type.
        total_iterations: Completed task iterations.
        checks_passed: Checks that passed.
        checks_failed: Checks that failed.
        endpoints: Per-endpoint metrics keyed by endpoint name.
    """

    timestamp: float
    elapsed_seconds: float
    active_users: int
    total_requests: int = 0
    requests_per_second: float = 0.0
    latency_min: float = 0.0
    latency_max: float = 0.0
    latency_avg: float = 0.0
    latency_p50: float = 0.0
    latency_p75: float = 0.0
    latency_p90: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0
    latency_p999: float = 0.0
    total_errors: int = 0
    error_rate: float = 0.0
    errors_by_status: dict[int, int] = field(default_factory=dict)
    errors_by_type: dict[str, int] = field(default_factory=dict)
    total_iterations: int = 0
    checks_passed: int = 0
    checks_failed: int = 0
    endpoints: dict[str, EndpointMetrics] = field(default_factory=dict)

    @property
    def check_pass_rate(self) -> float:
        """Fraction of checks that passed, 0.0 when none ran."""
        total = self.checks_passed + self.checks_failed
        return self.checks_passed / total if total else 0.0


@dataclass
class CheckSummary:
    """Pass/fail tally for one named check over the whole run."""

    name: str
    passes: int = 0
    fails: int = 0

    @property
    def pass_rate(self) -> float:
        total = self.passes + self.fails
        return self.passes / total if total else 0.0


@dataclass(frozen=True)
class ThresholdResult:
    """Verdict for one threshold expression.

    Attributes:
        metric: Metric the threshold applies to, e.g. ``"http_req_duration"``.
        expression: Expression source, e.g. ``"p(95)<500"``.
        observed: Aggregated value the expression was evaluated against.
        passed: Whether the expression held.
    """

    metric: str
    expression: str
    observed: float
    passed: bool


@dataclass
class TestResult:
    """Complete result of a load test run.

    Attributes:
        scenario_name: Name of the scenario that was executed.
        start_time: Monotonic time when the test started.
        end_time: Monotonic time when the test completed.
        duration_seconds: Total wall-clock duration of the test.
        pattern_description: Human-readable description of the load pattern.
        snapshots: Time-series of per-tick MetricSnapshot objects.
        final_summary: Cumulative MetricSnapshot for the entire run.
        checks: Per-check tallies keyed by check name.
        thresholds: Threshold verdicts in declaration order.
    """

    __test__ = False  # not a pytest test class

    scenario_name: str
    start_time: float
    end_time: float
    duration_seconds: float
    pattern_description: str
    snapshots: list[MetricSnapshot] = field(default_factory=list)
    final_summary: MetricSnapshot | None = None
    checks: dict[str, CheckSummary] = field(default_factory=dict)
    thresholds: list[ThresholdResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        """True when every threshold held (vacuously true with none declared)."""
        return all(t.passed for t in self.thresholds)

    @property
    def failed_thresholds(self) -> list[ThresholdResult]:
        return [t for t in self.thresholds if not t.passed]

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable summary (per-tick snapshots omitted)."""
        return {
            "scenario": self.scenario_name,
            "duration_seconds": self.duration_seconds,
            "pattern": self.pattern_description,
            "passed": self.passed,
            "summary": asdict(self.final_summary) if self.final_summary else None,
            "checks": {
                name: {"passes": c.passes, "fails": c.fails, "pass_rate": c.pass_rate}
                for name, c in self.checks.items()
            },
            "thresholds": [asdict(t) for t in self.thresholds],
        }
