"""In-memory metric collection for one worker.

Request metrics and check results are buffered as they arrive and drained
once per tick.  Each drain produces an interval ``MetricSnapshot`` (exact
percentiles over the interval's samples via numpy) and folds the samples
into cumulative counters and HDR histograms that back the final summary and
threshold evaluation.
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import TYPE_CHECKING

import numpy as np

from usersbench._internal.errors import ConfigError
from usersbench.metrics.histogram import LatencyHistogram
from usersbench.metrics.models import CheckSummary, EndpointMetrics, MetricSnapshot

if TYPE_CHECKING:
    from usersbench.dsl.checks import CheckResult
    from usersbench.dsl.http_client import RequestMetric

_SNAPSHOT_PERCENTILES = (50.0, 75.0, 90.0, 95.0, 99.0, 99.9)


def _compute_latency_stats(latencies: list[float]) -> tuple[float, ...]:
    """Compute ``(min, max, avg, p50, p75, p90, p95, p99, p99.9)`` in ms.

    Returns all zeros for an empty list.
    """
    if not latencies:
        return (0.0,) * (3 + len(_SNAPSHOT_PERCENTILES))

    arr = np.array(latencies, dtype=np.float64)
    percentiles = np.percentile(arr, _SNAPSHOT_PERCENTILES)
    return (
        float(np.min(arr)),
        float(np.max(arr)),
        float(np.mean(arr)),
        *(float(p) for p in percentiles),
    )


def _error_type(metric: RequestMetric) -> str | None:
    """Extract the exception type from ``"ClientConnectorError: ..."``."""
    if metric.error is None:
        return None
    return metric.error.split(":")[0].strip()


class MetricCollector:
    """Collects request metrics, checks and iteration counts for a session.

    ``record`` and ``record_check`` are passed to ``HttpClient`` as its
    callbacks.  They only append to deques, so they are cheap enough to run
    inline on every request.

    Attributes:
        worker_id: Worker identifier for metric tagging.
    """

    def __init__(self, worker_id: int = 0) -> None:
        self.worker_id = worker_id
        self._buffer: deque[RequestMetric] = deque()
        self._check_buffer: deque[CheckResult] = deque()
        self._pending_iterations = 0
        self._last_flush_time = time.monotonic()
        self._init_cumulative()

    def _init_cumulative(self) -> None:
        self._latency = LatencyHistogram()
        self._endpoint_latency: dict[str, LatencyHistogram] = {}
        self._endpoint_counts: dict[str, int] = defaultdict(int)
        self._endpoint_errors: dict[str, int] = defaultdict(int)
        self._total_requests = 0
        self._total_errors = 0
        self._errors_by_status: dict[int, int] = defaultdict(int)
        self._errors_by_type: dict[str, int] = defaultdict(int)
        self._total_iterations = 0
        self._checks: dict[str, CheckSummary] = {}

    @property
    def pending_count(self) -> int:
        """Return the number of request metrics not yet flushed."""
        return len(self._buffer)

    @property
    def total_requests(self) -> int:
        """Return the number of flushed requests since the collector started."""
        return self._total_requests

    def record(self, metric: RequestMetric) -> None:
        """Buffer a request metric.  Used as ``HttpClient.metric_callback``."""
        self._buffer.append(metric)

    def record_check(self, result: CheckResult) -> None:
        """Buffer a check result.  Used as ``HttpClient.check_callback``."""
        self._check_buffer.append(result)

    def record_iteration(self) -> None:
        """Count one completed task iteration."""
        self._pending_iterations += 1

    def flush(
        self,
        elapsed_seconds: float,
        active_users: int,
    ) -> MetricSnapshot:
        """Drain the buffers and return a snapshot of the interval.

        The drained samples are also added to the cumulative state.

        Args:
            elapsed_seconds: Seconds elapsed since the test started.
            active_users: Current number of active virtual users.

        Returns:
            A MetricSnapshot covering everything recorded since the last flush.
        """
        metrics: list[RequestMetric] = []
        while self._buffer:
            metrics.append(self._buffer.popleft())
        checks: list[CheckResult] = []
        while self._check_buffer:
            checks.append(self._check_buffer.popleft())
        iterations, self._pending_iterations = self._pending_iterations, 0

        self._accumulate(metrics, checks, iterations)

        now = time.monotonic()
        interval = max(now - self._last_flush_time, 0.001)
        self._last_flush_time = now

        return self._build_interval_snapshot(
            metrics=metrics,
            checks=checks,
            iterations=iterations,
            elapsed_seconds=elapsed_seconds,
            active_users=active_users,
            interval=interval,
        )

    def get_cumulative_snapshot(
        self,
        elapsed_seconds: float,
        active_users: int,
    ) -> MetricSnapshot:
        """Return a snapshot covering every flushed sample since start.

        Unlike ``flush()`` this leaves the buffers untouched, so callers
        flush first to include the most recent samples.
        """
        interval = max(elapsed_seconds, 0.001)
        endpoints: dict[str, EndpointMetrics] = {}
        for name, hist in self._endpoint_latency.items():
            count = self._endpoint_counts[name]
            errors = self._endpoint_errors[name]
            endpoints[name] = EndpointMetrics(
                name=name,
                request_count=count,
                error_count=errors,
                error_rate=errors / count if count else 0.0,
                requests_per_second=count / interval,
                latency_min=hist.min,
                latency_max=hist.max,
                latency_avg=hist.mean,
                latency_p50=hist.percentile(50.0),
                latency_p90=hist.percentile(90.0),
                latency_p95=hist.percentile(95.0),
                latency_p99=hist.percentile(99.0),
            )

        passed = sum(c.passes for c in self._checks.values())
        failed = sum(c.fails for c in self._checks.values())
        p = self._latency.percentiles(*_SNAPSHOT_PERCENTILES)
        return MetricSnapshot(
            timestamp=time.monotonic(),
            elapsed_seconds=elapsed_seconds,
            active_users=active_users,
            total_requests=self._total_requests,
            requests_per_second=self._total_requests / interval,
            latency_min=self._latency.min,
            latency_max=self._latency.max,
            latency_avg=self._latency.mean,
            latency_p50=p[50.0],
            latency_p75=p[75.0],
            latency_p90=p[90.0],
            latency_p95=p[95.0],
            latency_p99=p[99.0],
            latency_p999=p[99.9],
            total_errors=self._total_errors,
            error_rate=self._total_errors / self._total_requests if self._total_requests else 0.0,
            errors_by_status=dict(self._errors_by_status),
            errors_by_type=dict(self._errors_by_type),
            total_iterations=self._total_iterations,
            checks_passed=passed,
            checks_failed=failed,
            endpoints=endpoints,
        )

    def check_summaries(self) -> dict[str, CheckSummary]:
        """Return per-check tallies, in first-seen order."""
        return {
            name: CheckSummary(name=name, passes=c.passes, fails=c.fails)
            for name, c in self._checks.items()
        }

    def resolve(
        self,
        metric: str,
        aggregation: str,
        percentile: float | None = None,
        *,
        elapsed_seconds: float,
    ) -> float:
        """Return the cumulative value a threshold expression compares against.

        Args:
            metric: Threshold metric name, e.g. ``"http_req_duration"``.
            aggregation: ``avg``, ``min``, ``max``, ``med``, ``p``, ``count``
                or ``rate``.
            percentile: Percentile for the ``p`` aggregation.
            elapsed_seconds: Run duration, used for per-second rates.

        Returns:
            The observed value.  Empty runs resolve to 0.0.

        Raises:
            ConfigError: If the metric/aggregation pair is not supported.
        """
        interval = max(elapsed_seconds, 0.001)
        if metric == "http_req_duration":
            if aggregation == "avg":
                return self._latency.mean
            if aggregation == "min":
                return self._latency.min
            if aggregation == "max":
                return self._latency.max
            if aggregation == "med":
                return self._latency.percentile(50.0)
            if aggregation == "p" and percentile is not None:
                return self._latency.percentile(percentile)
        elif metric == "http_req_failed" and aggregation == "rate":
            return self._total_errors / self._total_requests if self._total_requests else 0.0
        elif metric == "http_reqs":
            if aggregation == "count":
                return float(self._total_requests)
            if aggregation == "rate":
                return self._total_requests / interval
        elif metric == "iterations":
            if aggregation == "count":
                return float(self._total_iterations)
            if aggregation == "rate":
                return self._total_iterations / interval
        elif metric == "checks" and aggregation == "rate":
            passed = sum(c.passes for c in self._checks.values())
            total = passed + sum(c.fails for c in self._checks.values())
            return passed / total if total else 0.0

        msg = f"Cannot resolve {aggregation!r} for metric {metric!r}"
        raise ConfigError(msg)

    def reset(self) -> None:
        """Clear all buffered and cumulative state."""
        self._buffer.clear()
        self._check_buffer.clear()
        self._pending_iterations = 0
        self._last_flush_time = time.monotonic()
        self._init_cumulative()

    def _accumulate(
        self,
        metrics: list[RequestMetric],
        checks: list[CheckResult],
        iterations: int,
    ) -> None:
        """Fold drained samples into the cumulative state."""
        for metric in metrics:
            name = metric.name
            self._latency.record(metric.latency_ms)
            if name not in self._endpoint_latency:
                self._endpoint_latency[name] = LatencyHistogram()
            self._endpoint_latency[name].record(metric.latency_ms)
            self._endpoint_counts[name] += 1
            self._total_requests += 1

            if metric.failed:
                self._total_errors += 1
                self._endpoint_errors[name] += 1
                if metric.status_code:
                    self._errors_by_status[metric.status_code] += 1
                error_type = _error_type(metric)
                if error_type is not None:
                    self._errors_by_type[error_type] += 1

        for check in checks:
            summary = self._checks.get(check.name)
            if summary is None:
                summary = self._checks[check.name] = CheckSummary(name=check.name)
            if check.passed:
                summary.passes += 1
            else:
                summary.fails += 1

        self._total_iterations += iterations

    def _build_interval_snapshot(
        self,
        metrics: list[RequestMetric],
        checks: list[CheckResult],
        iterations: int,
        elapsed_seconds: float,
        active_users: int,
        interval: float,
    ) -> MetricSnapshot:
        """Aggregate one interval's samples into a MetricSnapshot."""
        checks_passed = sum(1 for c in checks if c.passed)
        if not metrics:
            return MetricSnapshot(
                timestamp=time.monotonic(),
                elapsed_seconds=elapsed_seconds,
                active_users=active_users,
                total_iterations=iterations,
                checks_passed=checks_passed,
                checks_failed=len(checks) - checks_passed,
            )

        by_endpoint: dict[str, list[RequestMetric]] = defaultdict(list)
        errors_by_status: dict[int, int] = defaultdict(int)
        errors_by_type: dict[str, int] = defaultdict(int)
        total_errors = 0

        for metric in metrics:
            by_endpoint[metric.name].append(metric)
            if metric.failed:
                total_errors += 1
                if metric.status_code:
                    errors_by_status[metric.status_code] += 1
                error_type = _error_type(metric)
                if error_type is not None:
                    errors_by_type[error_type] += 1

        (
            lat_min,
            lat_max,
            lat_avg,
            lat_p50,
            lat_p75,
            lat_p90,
            lat_p95,
            lat_p99,
            lat_p999,
        ) = _compute_latency_stats([m.latency_ms for m in metrics])

        endpoints: dict[str, EndpointMetrics] = {}
        for name, ep_metrics in by_endpoint.items():
            ep_count = len(ep_metrics)
            ep_errors = sum(1 for m in ep_metrics if m.failed)
            ep_min, ep_max, ep_avg, ep_p50, _, ep_p90, ep_p95, ep_p99, _ = (
                _compute_latency_stats([m.latency_ms for m in ep_metrics])
            )
            endpoints[name] = EndpointMetrics(
                name=name,
                request_count=ep_count,
                error_count=ep_errors,
                error_rate=ep_errors / ep_count,
                requests_per_second=ep_count / interval,
                latency_min=ep_min,
                latency_max=ep_max,
                latency_avg=ep_avg,
                latency_p50=ep_p50,
                latency_p90=ep_p90,
                latency_p95=ep_p95,
                latency_p99=ep_p99,
            )

        total_requests = len(metrics)
        return MetricSnapshot(
            timestamp=time.monotonic(),
            elapsed_seconds=elapsed_seconds,
            active_users=active_users,
            total_requests=total_requests,
            requests_per_second=total_requests / interval,
            latency_min=lat_min,
            latency_max=lat_max,
            latency_avg=lat_avg,
            latency_p50=lat_p50,
            latency_p75=lat_p75,
            latency_p90=lat_p90,
            latency_p95=lat_p95,
            latency_p99=lat_p99,
            latency_p999=lat_p999,
            total_errors=total_errors,
            error_rate=total_errors / total_requests,
            errors_by_status=dict(errors_by_status),
            errors_by_type=dict(errors_by_type),
            total_iterations=iterations,
            checks_passed=checks_passed,
            checks_failed=len(checks) - checks_passed,
            endpoints=endpoints,
        )
