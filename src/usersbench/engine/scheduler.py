"""Per-tick virtual user targets for a session."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from usersbench.patterns.base import LoadPattern


@dataclass(frozen=True)
class ScaleCommand:
    """Target user count for one tick.

    Attributes:
        elapsed_seconds: Offset of the tick from the start of the run.
        target_concurrency: Virtual users that should be running.
        previous_concurrency: Target of the tick before (0 for the first).
    """

    elapsed_seconds: float
    target_concurrency: int
    previous_concurrency: int = 0

    @property
    def change(self) -> int:
        """Signed user delta: positive ramps up, negative ramps down."""
        return self.target_concurrency - self.previous_concurrency


class Scheduler:
    """Walks a pattern's timeline one tick at a time.

    Args:
        pattern: The traffic pattern to follow.
        duration_seconds: Run length in seconds.  Defaults to the pattern's
            own length (the sum of its stages).
        tick_interval: Seconds between concurrency adjustments.
    """

    def __init__(
        self,
        pattern: LoadPattern,
        duration_seconds: float | None = None,
        tick_interval: float = 1.0,
    ) -> None:
        self._pattern = pattern
        self._duration_seconds = duration_seconds
        self._tick_interval = tick_interval

    @property
    def duration_seconds(self) -> float | None:
        """Effective run length, or None for an open-ended pattern."""
        if self._duration_seconds is None:
            return self._pattern.total_duration
        return self._duration_seconds

    @property
    def total_ticks(self) -> int:
        duration = self.duration_seconds or 0.0
        return math.floor(duration / self._tick_interval + 1e-9) + 1

    def iter_commands(self) -> Iterator[ScaleCommand]:
        previous = 0
        ticks = self._pattern.iter_concurrency(self._duration_seconds, self._tick_interval)
        for elapsed, target in ticks:
            yield ScaleCommand(elapsed, target, previous)
            previous = target
