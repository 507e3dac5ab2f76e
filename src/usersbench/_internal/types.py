"""Shared type aliases for usersbench."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

# HTTP headers dictionary.
Headers = dict[str, str]

# Think time range (min_seconds, max_seconds).
ThinkTime = tuple[float, float]

# Metric name -> threshold expressions, e.g. {"http_req_failed": ["rate<0.01"]}.
ThresholdSpec = Mapping[str, Sequence[str]]

# Stage duration: a k6-style string ("2m", "1m30s") or seconds.
DurationLike = str | float | int
