"""Abstract base class for all traffic patterns."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from usersbench._internal.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterator


class LoadPattern(ABC):
    """Abstract base for all traffic patterns.

    A traffic pattern defines how the target concurrency (number of virtual
    users) changes over time.  Concrete subclasses implement
    :meth:`iter_concurrency` to yield ``(elapsed_seconds, target_concurrency)``
    tuples at a configurable tick interval.

    Example::

        pattern = StagesPattern.from_spec([("30s", 20), ("1m", 20), ("10s", 0)])
        for elapsed, users in pattern.iter_concurrency():
            print(f"t={elapsed:.1f}s -> {users} users")
    """

    @property
    def total_duration(self) -> float | None:
        """Return the pattern's intrinsic length in seconds.

        ``None`` means the pattern is open-ended and a duration must be
        supplied to :meth:`iter_concurrency`.
        """
        return None

    @abstractmethod
    def iter_concurrency(
        self,
        duration_seconds: float | None = None,
        tick_interval: float = 1.0,
    ) -> Iterator[tuple[float, int]]:
        """Yield ``(elapsed_seconds, target_concurrency)`` at each tick.

        Args:
            duration_seconds: Total duration to generate ticks for.  Defaults
                to :attr:`total_duration` for patterns that have one.
            tick_interval: Seconds between each yielded tick.  Defaults to 1.0.

        Yields:
            A tuple of ``(elapsed_seconds, target_concurrency)`` where
            *elapsed_seconds* is the time offset from the start and
            *target_concurrency* is the number of virtual users that should be
            active at that moment.
        """

    @abstractmethod
    def describe(self) -> str:
        """Return a short summary of the pattern for logs and reports."""

    def _resolve_duration(self, duration_seconds: float | None) -> float:
        """Pick the explicit duration, falling back to :attr:`total_duration`.

        Raises:
            ConfigError: If neither is available or the value is negative.
        """
        if duration_seconds is None:
            duration_seconds = self.total_duration
        if duration_seconds is None:
            msg = f"{type(self).__name__} requires an explicit duration_seconds"
            raise ConfigError(msg)
        _validate_non_negative(duration_seconds, "duration_seconds")
        return duration_seconds


def _iter_ticks(duration_seconds: float, tick_interval: float) -> Iterator[float]:
    """Yield tick offsets ``0, tick, 2*tick, ...`` up to *duration_seconds*.

    Offsets are computed by multiplication so long runs do not accumulate
    floating point drift.
    """
    _validate_positive(tick_interval, "tick_interval")
    index = 0
    while True:
        elapsed = index * tick_interval
        if elapsed > duration_seconds + 1e-9:
            return
        yield elapsed
        index += 1


def _validate_positive(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is not strictly positive."""
    if value <= 0:
        msg = f"{name} must be positive, got {value}"
        raise ConfigError(msg)


def _validate_non_negative(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is negative."""
    if value < 0:
        msg = f"{name} must be non-negative, got {value}"
        raise ConfigError(msg)
