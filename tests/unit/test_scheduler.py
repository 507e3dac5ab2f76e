"""Tests for the per-tick scheduler."""

from __future__ import annotations

import pytest

from usersbench.engine.scheduler import ScaleCommand, Scheduler
from usersbench.patterns.constant import ConstantPattern
from usersbench.patterns.stages import StagesPattern


class TestScaleCommand:
    def test_frozen_dataclass(self) -> None:
        cmd = ScaleCommand(elapsed_seconds=0.0, target_concurrency=5)
        with pytest.raises(AttributeError):
            cmd.target_concurrency = 99  # type: ignore[misc]

    def test_change_is_signed(self) -> None:
        assert ScaleCommand(1.0, 8, previous_concurrency=3).change == 5
        assert ScaleCommand(1.0, 2, previous_concurrency=10).change == -8
        assert ScaleCommand(1.0, 4, previous_concurrency=4).change == 0


class TestScheduler:
    def test_first_command_starts_from_zero(self) -> None:
        scheduler = Scheduler(ConstantPattern(users=10), duration_seconds=5.0)
        first = next(scheduler.iter_commands())
        assert first.elapsed_seconds == 0.0
        assert first.target_concurrency == 10
        assert first.change == 10

    def test_constant_pattern_holds(self) -> None:
        scheduler = Scheduler(ConstantPattern(users=10), duration_seconds=5.0)
        assert [cmd.change for cmd in scheduler.iter_commands()][1:] == [0] * 5

    def test_previous_chains_ticks(self) -> None:
        pattern = StagesPattern.from_spec([("4s", 5), ("4s", 1)])
        commands = list(Scheduler(pattern).iter_commands())
        for before, after in zip(commands, commands[1:]):
            assert after.previous_concurrency == before.target_concurrency

    def test_stages_up_then_down(self) -> None:
        pattern = StagesPattern.from_spec([("4s", 5), ("4s", 1)])
        changes = [c.change for c in Scheduler(pattern).iter_commands()]
        first_up = next(i for i, c in enumerate(changes) if c > 0)
        first_down = next(i for i, c in enumerate(changes) if c < 0)
        assert first_up < first_down

    def test_drop_after_zero_length_stage(self) -> None:
        pattern = StagesPattern.from_spec([("0s", 10), ("1s", 2)])
        commands = list(Scheduler(pattern).iter_commands())
        assert commands[-1].target_concurrency == 2
        assert commands[-1].change == -8

    def test_duration_defaults_to_pattern(self) -> None:
        pattern = StagesPattern.from_spec([("2m", 200), ("2m", 0)])
        scheduler = Scheduler(pattern)
        assert scheduler.duration_seconds == 240.0
        assert scheduler.total_ticks == 241

    def test_explicit_duration_wins(self) -> None:
        pattern = StagesPattern.from_spec([("2m", 200)])
        scheduler = Scheduler(pattern, duration_seconds=3.0, tick_interval=0.5)
        assert scheduler.duration_seconds == 3.0
        assert scheduler.total_ticks == 7
        assert len(list(scheduler.iter_commands())) == 7

    def test_open_ended_pattern(self) -> None:
        assert Scheduler(ConstantPattern(users=1)).duration_seconds is None
