"""Staged ramp pattern: ordered ``(duration, target)`` stages.

Each stage linearly moves the virtual user count from the level reached at
the end of the previous stage to the stage's own target.  Stage order is
execution order, and the run ends when the last stage ends.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from usersbench._internal.errors import ConfigError
from usersbench.patterns.base import LoadPattern, _iter_ticks, _validate_non_negative

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from usersbench._internal.types import DurationLike

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: DurationLike) -> float:
    """Convert a duration to seconds.

    Accepts plain numbers (seconds) or strings made of ``<number><unit>``
    parts with units ``h``, ``m``, ``s`` and ``ms``, e.g. ``"2m"``,
    ``"1m30s"``, ``"1.5s"`` or ``"250ms"``.  A bare ``"0"`` needs no unit.

    Args:
        value: Duration string or number of seconds.

    Returns:
        Duration in seconds.

    Raises:
        ConfigError: If the value is negative or cannot be parsed.
    """
    if isinstance(value, bool):
        msg = f"Invalid duration: {value!r}"
        raise ConfigError(msg)

    if isinstance(value, int | float):
        _validate_non_negative(value, "duration")
        return float(value)

    text = value.strip()
    if not text:
        msg = "Invalid duration: empty string"
        raise ConfigError(msg)
    if text == "0":
        return 0.0

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        number, unit = match.groups()
        total += float(number) * _UNIT_SECONDS[unit]
        position = match.end()

    if position != len(text):
        msg = f"Invalid duration: {value!r} (expected e.g. '30s', '2m', '1m30s', '500ms')"
        raise ConfigError(msg)
    return total


@dataclass(frozen=True)
class Stage:
    """A time-boxed ramp target.

    Attributes:
        duration: Stage length in seconds.  Must be >= 0.
        target: Virtual user count reached at the end of the stage.  Must be >= 0.
    """

    duration: float
    target: int

    def __post_init__(self) -> None:
        _validate_non_negative(self.duration, "stage duration")
        if isinstance(self.target, bool) or not isinstance(self.target, int):
            msg = f"stage target must be an integer, got {self.target!r}"
            raise ConfigError(msg)
        _validate_non_negative(self.target, "stage target")

    @classmethod
    def parse(cls, duration: DurationLike, target: int) -> Stage:
        """Build a stage from a duration string such as ``"2m"``."""
        return cls(duration=parse_duration(duration), target=target)


def build_stages(
    stages: Iterable[Stage | tuple[DurationLike, int]],
) -> tuple[Stage, ...]:
    """Normalise stage declarations into an immutable tuple of :class:`Stage`.

    Args:
        stages: ``Stage`` objects or ``(duration, target)`` pairs.

    Returns:
        Stages in declaration order.

    Raises:
        ConfigError: If the sequence is empty or any entry is invalid.
    """
    built: list[Stage] = []
    for i, entry in enumerate(stages):
        if isinstance(entry, Stage):
            built.append(entry)
            continue
        try:
            duration, target = entry
        except (TypeError, ValueError):
            msg = f"stages[{i}] must be a Stage or a (duration, target) pair, got {entry!r}"
            raise ConfigError(msg) from None
        built.append(Stage.parse(duration, target))

    if not built:
        msg = "stages must contain at least one stage"
        raise ConfigError(msg)
    return tuple(built)


class StagesPattern(LoadPattern):
    """Ramp virtual users through ordered stages.

    Args:
        stages: Stages in execution order.  Must not be empty.
        start_users: Level the first stage ramps from.  Defaults to 1, the
            initial virtual user count of a staged run.

    Raises:
        ConfigError: If *stages* is empty or *start_users* is negative.

    Example::

        pattern = StagesPattern.from_spec([("2m", 200), ("2m", 0)])
        assert pattern.total_duration == 240.0
        assert pattern.target_at(120.0) == 200
    """

    def __init__(self, stages: Sequence[Stage], start_users: int = 1) -> None:
        if not stages:
            msg = "stages must contain at least one stage"
            raise ConfigError(msg)
        _validate_non_negative(start_users, "start_users")
        self._stages = tuple(stages)
        self._start_users = start_users

    @classmethod
    def from_spec(
        cls,
        stages: Iterable[Stage | tuple[DurationLike, int]],
        start_users: int = 1,
    ) -> StagesPattern:
        """Build a pattern from ``(duration, target)`` pairs."""
        return cls(build_stages(stages), start_users=start_users)

    @property
    def stages(self) -> tuple[Stage, ...]:
        """Return the configured stages in execution order."""
        return self._stages

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self._stages)

    @property
    def max_target(self) -> int:
        """Return the highest virtual user count the pattern reaches."""
        return max(self._start_users, *(stage.target for stage in self._stages))

    def target_at(self, elapsed: float) -> int:
        """Return the target concurrency at *elapsed* seconds.

        Zero-length stages jump straight to their target.  Past the final
        stage the last target holds.
        """
        level = self._start_users
        stage_start = 0.0
        for stage in self._stages:
            stage_end = stage_start + stage.duration
            if elapsed < stage_end:
                fraction = (elapsed - stage_start) / stage.duration
                return max(round(level + (stage.target - level) * fraction), 0)
            level = stage.target
            stage_start = stage_end
        return level

    def iter_concurrency(
        self,
        duration_seconds: float | None = None,
        tick_interval: float = 1.0,
    ) -> Iterator[tuple[float, int]]:
        """Yield ``(elapsed, target_concurrency)`` across all stages.

        Args:
            duration_seconds: Cut-off in seconds.  Defaults to the sum of
                stage durations.
            tick_interval: Seconds between ticks.

        Yields:
            ``(elapsed_seconds, target_concurrency)`` tuples.
        """
        duration = self._resolve_duration(duration_seconds)
        for elapsed in _iter_ticks(duration, tick_interval):
            yield (elapsed, self.target_at(elapsed))

    def describe(self) -> str:
        steps = ", ".join(f"{_format_duration(s.duration)}->{s.target}" for s in self._stages)
        return f"Stages: {steps} ({_format_duration(self.total_duration)} total)"


def _format_duration(seconds: float) -> str:
    """Render seconds compactly, e.g. ``180.0`` -> ``"3m"``, ``90.0`` -> ``"1m30s"``."""
    if 0 < seconds < 1:
        return f"{seconds * 1000:g}ms"
    minutes, secs = divmod(seconds, 60.0)
    if minutes and secs:
        return f"{minutes:g}m{secs:g}s"
    if minutes:
        return f"{minutes:g}m"
    return f"{secs:g}s"
