"""Constant traffic pattern: a fixed number of virtual users."""

from __future__ import annotations

from typing import TYPE_CHECKING

from usersbench._internal.errors import ConfigError
from usersbench.patterns.base import LoadPattern, _iter_ticks

if TYPE_CHECKING:
    from collections.abc import Iterator


class ConstantPattern(LoadPattern):
    """Hold a fixed number of virtual users for the whole run.

    Used for smoke runs (``usersbench run --vus 10 --duration 30``) where the
    staged ramp of a scenario is replaced by a flat level.

    Args:
        users: Number of concurrent virtual users.  Must be >= 1.
        duration: Optional intrinsic run length in seconds.

    Raises:
        ConfigError: If *users* < 1 or *duration* is not positive.
    """

    def __init__(self, users: int, duration: float | None = None) -> None:
        if users < 1:
            msg = f"users must be >= 1, got {users}"
            raise ConfigError(msg)
        if duration is not None and duration <= 0:
            msg = f"duration must be positive, got {duration}"
            raise ConfigError(msg)
        self._users = users
        self._duration = duration

    @property
    def users(self) -> int:
        """Return the configured virtual user count."""
        return self._users

    @property
    def total_duration(self) -> float | None:
        return self._duration

    def iter_concurrency(
        self,
        duration_seconds: float | None = None,
        tick_interval: float = 1.0,
    ) -> Iterator[tuple[float, int]]:
        """Yield ``(elapsed, users)`` at every tick.

        Raises:
            ConfigError: If no duration is known.
        """
        duration = self._resolve_duration(duration_seconds)
        for elapsed in _iter_ticks(duration, tick_interval):
            yield (elapsed, self._users)

    def describe(self) -> str:
        if self._duration is None:
            return f"Constant: {self._users} users"
        return f"Constant: {self._users} users for {self._duration:g}s"
