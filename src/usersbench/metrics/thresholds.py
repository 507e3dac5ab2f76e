"""Threshold expressions: parsing and pass/fail evaluation.

A threshold maps a metric name to one or more expressions of the form
``<aggregation> <operator> <value>``::

    {
        "http_req_failed": ["rate<0.01"],
        "http_req_duration": ["p(95)<500", "avg<200"],
    }

Supported metrics and aggregations:

==================== ===============================================
metric               aggregations
==================== ===============================================
``http_req_duration`` ``avg``, ``min``, ``max``, ``med``, ``p(N)`` (ms)
``http_req_failed``   ``rate`` (failed requests / all requests)
``http_reqs``         ``count``, ``rate`` (requests per second)
``iterations``        ``count``, ``rate`` (iterations per second)
``checks``            ``rate`` (passed checks / all checks)
==================== ===============================================
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from usersbench._internal.errors import ScenarioError
from usersbench._internal.logging import get_logger
from usersbench.metrics.models import ThresholdResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from usersbench._internal.types import ThresholdSpec

logger = get_logger("metrics.thresholds")

_EXPRESSION = re.compile(
    r"^\s*(?P<agg>avg|min|max|med|count|rate|p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\))"
    r"\s*(?P<op>===|==|!=|<=|>=|<|>)"
    r"\s*(?P<value>[-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)\s*$"
)

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "===": operator.eq,
    "!=": operator.ne,
}

METRIC_AGGREGATIONS: dict[str, frozenset[str]] = {
    "http_req_duration": frozenset({"avg", "min", "max", "med", "p"}),
    "http_req_failed": frozenset({"rate"}),
    "http_reqs": frozenset({"count", "rate"}),
    "iterations": frozenset({"count", "rate"}),
    "checks": frozenset({"rate"}),
}


@dataclass(frozen=True)
class ThresholdExpression:
    """One parsed threshold expression.

    Attributes:
        source: Original expression text.
        aggregation: ``avg``, ``min``, ``max``, ``med``, ``count``, ``rate``
            or ``p`` for percentiles.
        percentile: Percentile for ``p(N)`` expressions, otherwise None.
        operator: Comparison operator.
        value: Right-hand side of the comparison.
    """

    source: str
    aggregation: str
    percentile: float | None
    operator: str
    value: float

    def holds(self, observed: float) -> bool:
        """Return whether *observed* satisfies the expression."""
        return _OPERATORS[self.operator](observed, self.value)


@dataclass(frozen=True)
class Threshold:
    """All expressions declared for one metric."""

    metric: str
    expressions: tuple[ThresholdExpression, ...]


def parse_expression(metric: str, source: str) -> ThresholdExpression:
    """Parse *source* as a threshold expression for *metric*.

    Raises:
        ScenarioError: If the metric is unknown, the expression is malformed,
            or the aggregation does not apply to the metric.
    """
    allowed = METRIC_AGGREGATIONS.get(metric)
    if allowed is None:
        known = ", ".join(sorted(METRIC_AGGREGATIONS))
        msg = f"Unknown threshold metric {metric!r}. Known metrics: {known}"
        raise ScenarioError(msg)

    match = _EXPRESSION.match(source)
    if match is None:
        msg = f"Malformed threshold expression for {metric}: {source!r}"
        raise ScenarioError(msg)

    aggregation = match["agg"]
    percentile: float | None = None
    if match["pct"] is not None:
        aggregation = "p"
        percentile = float(match["pct"])
        if not 0.0 <= percentile <= 100.0:
            msg = f"Percentile must be between 0 and 100 in {source!r}"
            raise ScenarioError(msg)

    if aggregation not in allowed:
        msg = (
            f"Aggregation {match['agg']!r} is not supported for {metric} "
            f"(expression {source!r})"
        )
        raise ScenarioError(msg)

    return ThresholdExpression(
        source=source.strip(),
        aggregation=aggregation,
        percentile=percentile,
        operator=match["op"],
        value=float(match["value"]),
    )


def parse_thresholds(spec: ThresholdSpec | None) -> tuple[Threshold, ...]:
    """Parse a ``{metric: [expression, ...]}`` mapping.

    A single string is accepted in place of a one-element list.

    Raises:
        ScenarioError: If any metric or expression is invalid.
    """
    if not spec:
        return ()
    thresholds: list[Threshold] = []
    for metric, sources in spec.items():
        if isinstance(sources, str):
            sources = [sources]
        expressions = tuple(parse_expression(metric, source) for source in sources)
        if not expressions:
            msg = f"Threshold for {metric} has no expressions"
            raise ScenarioError(msg)
        thresholds.append(Threshold(metric=metric, expressions=expressions))
    return tuple(thresholds)


def evaluate_thresholds(
    thresholds: tuple[Threshold, ...],
    resolve: Callable[[str, str, float | None], float],
) -> list[ThresholdResult]:
    """Evaluate every expression against aggregated run metrics.

    Args:
        thresholds: Parsed thresholds.
        resolve: Returns the observed value for
            ``(metric, aggregation, percentile)``.

    Returns:
        One ``ThresholdResult`` per expression, in declaration order.
    """
    results: list[ThresholdResult] = []
    for threshold in thresholds:
        for expression in threshold.expressions:
            observed = resolve(threshold.metric, expression.aggregation, expression.percentile)
            passed = expression.holds(observed)
            results.append(
                ThresholdResult(
                    metric=threshold.metric,
                    expression=expression.source,
                    observed=observed,
                    passed=passed,
                )
            )
            log = logger.info if passed else logger.warning
            log(
                "Threshold %s: %s %s (observed %.4f)",
                "passed" if passed else "FAILED",
                threshold.metric,
                expression.source,
                observed,
            )
    return results
