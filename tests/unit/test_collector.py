"""Tests for the MetricCollector."""

from __future__ import annotations

import time

import pytest

from usersbench._internal.errors import ConfigError
from usersbench.dsl.checks import CheckResult
from usersbench.dsl.http_client import RequestMetric
from usersbench.metrics.collector import MetricCollector, _compute_latency_stats


def _make_metric(
    name: str = "GET /users",
    latency_ms: float = 10.0,
    status_code: int = 200,
    error: str | None = None,
) -> RequestMetric:
    """Create a RequestMetric with sensible defaults."""
    return RequestMetric(
        timestamp=time.monotonic(),
        name=name,
        method="GET",
        url="http://localhost:3000/users",
        status_code=status_code,
        latency_ms=latency_ms,
        content_length=0,
        error=error,
    )


def _check(name: str = "status is 200", passed: bool = True) -> CheckResult:
    return CheckResult(name=name, passed=passed, timestamp=time.monotonic())


class TestComputeLatencyStats:
    def test_empty(self) -> None:
        assert _compute_latency_stats([]) == (0.0,) * 9

    def test_values(self) -> None:
        lat_min, lat_max, lat_avg, p50, *_ = _compute_latency_stats([1.0, 2.0, 3.0, 4.0, 5.0])
        assert lat_min == 1.0
        assert lat_max == 5.0
        assert lat_avg == 3.0
        assert p50 == 3.0


class TestRecordAndFlush:
    def test_record_buffers_until_flush(self) -> None:
        collector = MetricCollector()
        collector.record(_make_metric())
        collector.record(_make_metric())
        assert collector.pending_count == 2
        assert collector.total_requests == 0

        snapshot = collector.flush(elapsed_seconds=1.0, active_users=3)

        assert collector.pending_count == 0
        assert collector.total_requests == 2
        assert snapshot.total_requests == 2
        assert snapshot.active_users == 3
        assert snapshot.elapsed_seconds == 1.0

    def test_empty_flush(self) -> None:
        snapshot = MetricCollector().flush(elapsed_seconds=0.0, active_users=0)
        assert snapshot.total_requests == 0
        assert snapshot.latency_p95 == 0.0

    def test_interval_percentiles(self) -> None:
        collector = MetricCollector()
        for i in range(1, 101):
            collector.record(_make_metric(latency_ms=float(i)))
        snapshot = collector.flush(elapsed_seconds=1.0, active_users=1)
        assert snapshot.latency_min == 1.0
        assert snapshot.latency_max == 100.0
        assert snapshot.latency_p50 == pytest.approx(50.5)
        assert 94.0 <= snapshot.latency_p95 <= 96.0

    def test_failed_requests(self) -> None:
        collector = MetricCollector()
        collector.record(_make_metric(status_code=200))
        collector.record(_make_metric(status_code=302))
        collector.record(_make_metric(status_code=500))
        collector.record(_make_metric(status_code=0, error="ClientConnectorError: refused"))

        snapshot = collector.flush(elapsed_seconds=1.0, active_users=1)

        assert snapshot.total_errors == 2
        assert snapshot.error_rate == 0.5
        assert snapshot.errors_by_status == {500: 1}
        assert snapshot.errors_by_type == {"ClientConnectorError": 1}

    def test_per_endpoint_breakdown(self) -> None:
        collector = MetricCollector()
        collector.record(_make_metric(name="GET /users"))
        collector.record(_make_metric(name="GET /users", status_code=503))
        collector.record(_make_metric(name="GET /health"))

        snapshot = collector.flush(elapsed_seconds=1.0, active_users=1)

        assert set(snapshot.endpoints) == {"GET /users", "GET /health"}
        assert snapshot.endpoints["GET /users"].request_count == 2
        assert snapshot.endpoints["GET /users"].error_rate == 0.5

    def test_checks_and_iterations(self) -> None:
        collector = MetricCollector()
        collector.record_check(_check(passed=True))
        collector.record_check(_check(passed=False))
        collector.record_iteration()
        collector.record_iteration()

        snapshot = collector.flush(elapsed_seconds=1.0, active_users=1)

        assert snapshot.checks_passed == 1
        assert snapshot.checks_failed == 1
        assert snapshot.check_pass_rate == 0.5
        assert snapshot.total_iterations == 2

        # Counted once only
        assert collector.flush(elapsed_seconds=2.0, active_users=1).total_iterations == 0


class TestCumulative:
    def test_accumulates_across_flushes(self) -> None:
        collector = MetricCollector()
        collector.record(_make_metric(latency_ms=10.0))
        collector.flush(elapsed_seconds=1.0, active_users=1)
        collector.record(_make_metric(latency_ms=30.0, status_code=500))
        collector.record_iteration()
        collector.flush(elapsed_seconds=2.0, active_users=1)

        summary = collector.get_cumulative_snapshot(elapsed_seconds=2.0, active_users=0)

        assert summary.total_requests == 2
        assert summary.total_errors == 1
        assert summary.error_rate == 0.5
        assert summary.requests_per_second == pytest.approx(1.0)
        assert summary.latency_max == pytest.approx(30.0, rel=0.01)
        assert summary.total_iterations == 1
        assert summary.endpoints["GET /users"].request_count == 2

    def test_check_summaries(self) -> None:
        collector = MetricCollector()
        collector.record_check(_check(passed=True))
        collector.record_check(_check(passed=True))
        collector.record_check(_check(passed=False))
        collector.flush(elapsed_seconds=1.0, active_users=1)

        summaries = collector.check_summaries()

        assert list(summaries) == ["status is 200"]
        assert summaries["status is 200"].passes == 2
        assert summaries["status is 200"].fails == 1

    def test_reset(self) -> None:
        collector = MetricCollector()
        collector.record(_make_metric())
        collector.flush(elapsed_seconds=1.0, active_users=1)
        collector.record(_make_metric())
        collector.reset()

        assert collector.pending_count == 0
        assert collector.total_requests == 0
        assert collector.check_summaries() == {}


class TestResolve:
    @pytest.fixture
    def collector(self) -> MetricCollector:
        collector = MetricCollector()
        for i in range(1, 101):
            collector.record(_make_metric(latency_ms=float(i), status_code=500 if i <= 5 else 200))
            collector.record_check(_check(passed=i > 5))
            collector.record_iteration()
        collector.flush(elapsed_seconds=10.0, active_users=1)
        return collector

    def test_http_req_duration(self, collector: MetricCollector) -> None:
        resolve = collector.resolve
        assert resolve("http_req_duration", "p", 95.0, elapsed_seconds=10.0) == pytest.approx(
            95.0, rel=0.01
        )
        assert resolve("http_req_duration", "med", elapsed_seconds=10.0) == pytest.approx(
            50.0, rel=0.02
        )
        assert resolve("http_req_duration", "avg", elapsed_seconds=10.0) == pytest.approx(
            50.5, rel=0.01
        )
        assert resolve("http_req_duration", "min", elapsed_seconds=10.0) == pytest.approx(1.0)
        assert resolve("http_req_duration", "max", elapsed_seconds=10.0) == pytest.approx(
            100.0, rel=0.01
        )

    def test_rates_and_counts(self, collector: MetricCollector) -> None:
        assert collector.resolve("http_req_failed", "rate", elapsed_seconds=10.0) == 0.05
        assert collector.resolve("http_reqs", "count", elapsed_seconds=10.0) == 100.0
        assert collector.resolve("http_reqs", "rate", elapsed_seconds=10.0) == 10.0
        assert collector.resolve("iterations", "count", elapsed_seconds=10.0) == 100.0
        assert collector.resolve("iterations", "rate", elapsed_seconds=10.0) == 10.0
        assert collector.resolve("checks", "rate", elapsed_seconds=10.0) == 0.95

    def test_empty_run_resolves_to_zero(self) -> None:
        collector = MetricCollector()
        assert collector.resolve("http_req_failed", "rate", elapsed_seconds=1.0) == 0.0
        assert collector.resolve("http_req_duration", "p", 95.0, elapsed_seconds=1.0) == 0.0
        assert collector.resolve("checks", "rate", elapsed_seconds=1.0) == 0.0

    def test_unsupported(self) -> None:
        with pytest.raises(ConfigError, match="Cannot resolve"):
            MetricCollector().resolve("http_req_failed", "avg", elapsed_seconds=1.0)
