"""Latency histogram backed by HdrHistogram.

Cumulative latency state for a whole run has to stay bounded no matter how
many requests a 2000-user stage produces, so run-level percentiles come from
an HDR histogram rather than from a list of raw samples.  The public API
works in milliseconds; the underlying histogram stores integer microseconds.
"""

from __future__ import annotations

from hdrh.histogram import HdrHistogram  # type: ignore[import-untyped]

# Trackable range: 1 microsecond to 2 minutes, above the longest request timeout.
_LOWEST_TRACKABLE_US = 1
_HIGHEST_TRACKABLE_US = 120_000_000
_SIGNIFICANT_DIGITS = 3


class LatencyHistogram:
    """Millisecond latency histogram with percentile queries.

    Values outside the trackable range are clamped rather than dropped, so
    every recorded request is counted.
    """

    def __init__(
        self,
        lowest_us: int = _LOWEST_TRACKABLE_US,
        highest_us: int = _HIGHEST_TRACKABLE_US,
        significant_digits: int = _SIGNIFICANT_DIGITS,
    ) -> None:
        self.lowest_us = lowest_us
        self.highest_us = highest_us
        self._histogram: HdrHistogram = HdrHistogram(  # type: ignore[no-any-unimported]
            lowest_us, highest_us, significant_digits
        )

    def __len__(self) -> int:
        return int(self._histogram.total_count)

    def record(self, latency_ms: float) -> None:
        """Record one latency sample in milliseconds."""
        value_us = int(latency_ms * 1000)
        value_us = max(self.lowest_us, min(value_us, self.highest_us))
        self._histogram.record_value(value_us)

    def percentile(self, percentile: float) -> float:
        """Return the latency at *percentile* (0-100) in ms, or 0.0 when empty."""
        if not len(self):
            return 0.0
        return float(self._histogram.get_value_at_percentile(percentile)) / 1000.0

    def percentiles(self, *percentiles: float) -> dict[float, float]:
        """Return ``{percentile: latency_ms}`` for several percentiles at once."""
        return {p: self.percentile(p) for p in percentiles}

    @property
    def min(self) -> float:
        if not len(self):
            return 0.0
        return float(self._histogram.get_min_value()) / 1000.0

    @property
    def max(self) -> float:
        if not len(self):
            return 0.0
        return float(self._histogram.get_max_value()) / 1000.0

    @property
    def mean(self) -> float:
        if not len(self):
            return 0.0
        return float(self._histogram.get_mean_value()) / 1000.0

    def reset(self) -> None:
        """Discard all recorded samples."""
        self._histogram.reset()
