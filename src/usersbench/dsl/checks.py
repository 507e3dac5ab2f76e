"""Named boolean assertions recorded once per iteration."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

T = TypeVar("T")


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one named check.

    Attributes:
        name: Check label, e.g. ``"status is 200"``.
        passed: Whether the predicate returned a truthy value.
        timestamp: Monotonic time when the check ran.
        worker_id: Worker that recorded the check.
    """

    name: str
    passed: bool
    timestamp: float
    worker_id: int = 0


def _noop_callback(result: CheckResult) -> None:
    """Default no-op check callback."""


def run_checks(
    value: T,
    checks: Mapping[str, Callable[[T], object]],
    *,
    callback: Callable[[CheckResult], None] | None = None,
    worker_id: int = 0,
) -> bool:
    """Evaluate each named predicate against *value* and record the outcome.

    Every predicate runs, even after one fails, and emits exactly one
    :class:`CheckResult`.  Exceptions raised by a predicate propagate to the
    caller.

    Args:
        value: Object under test, typically a :class:`Response`.
        checks: Mapping of check name to predicate.
        callback: Receives one ``CheckResult`` per check.
        worker_id: Worker identifier attached to each result.

    Returns:
        True if every predicate passed.

    Example::

        run_checks(response, {"status is 200": lambda r: r.status == 200})
    """
    emit = callback or _noop_callback
    all_passed = True
    for name, predicate in checks.items():
        passed = bool(predicate(value))
        emit(CheckResult(name=name, passed=passed, timestamp=time.monotonic(), worker_id=worker_id))
        all_passed = all_passed and passed
    return all_passed
