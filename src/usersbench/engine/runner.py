"""Top-level load test orchestrator."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from usersbench._internal.config import load_config
from usersbench._internal.errors import ConfigError, EngineError
from usersbench._internal.logging import get_logger, setup_logging
from usersbench.dsl.loader import load_scenario
from usersbench.dsl.scenario import registry
from usersbench.engine.session import TestSession
from usersbench.patterns.constant import ConstantPattern
from usersbench.patterns.stages import Stage, StagesPattern

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from typing import Any

    from usersbench._internal.config import UsersBenchConfig
    from usersbench.dsl.scenario import ScenarioDefinition
    from usersbench.metrics.models import MetricSnapshot, TestResult
    from usersbench.patterns.base import LoadPattern

logger = get_logger("engine.runner")

DEFAULT_SCENARIO_PATH = Path(__file__).resolve().parent.parent / "benchmarks" / "users.py"


def build_pattern(
    scenario: ScenarioDefinition,
    *,
    vus: int | None = None,
    duration_seconds: float | None = None,
) -> LoadPattern:
    """Choose the traffic pattern for a run.

    - ``vus`` set: a flat ``ConstantPattern`` replaces the scenario stages.
      The duration defaults to the stages' total length.
    - only ``duration_seconds`` set: the scenario stages, cut off at that
      length (one user if the scenario has no stages).
    - neither: the scenario stages as declared.

    Raises:
        ConfigError: If no run length can be determined.
    """
    stages_pattern = StagesPattern(scenario.stages) if scenario.stages else None

    if vus is not None:
        duration = duration_seconds
        if duration is None and stages_pattern is not None:
            duration = stages_pattern.total_duration
        if duration is None:
            msg = "--duration is required with --vus when the scenario declares no stages"
            raise ConfigError(msg)
        return ConstantPattern(users=vus, duration=duration)

    if stages_pattern is None:
        if duration_seconds is None:
            msg = f"Scenario {scenario.name!r} declares no stages; pass --vus and --duration"
            raise ConfigError(msg)
        return ConstantPattern(users=1, duration=duration_seconds)

    if duration_seconds is not None and duration_seconds < stages_pattern.total_duration:
        return StagesPattern(_truncate_stages(stages_pattern, duration_seconds))
    return stages_pattern


def _truncate_stages(pattern: StagesPattern, cutoff: float) -> list[Stage]:
    """Return the stages that fit in *cutoff* seconds, the last one shortened.

    The shortened stage keeps its slope, so its target becomes the level
    reached at the cut-off.
    """
    kept: list[Stage] = []
    start = 0.0
    for stage in pattern.stages:
        if start + stage.duration <= cutoff:
            kept.append(stage)
            start += stage.duration
            continue
        remaining = cutoff - start
        if remaining > 0:
            kept.append(Stage(duration=remaining, target=pattern.target_at(cutoff)))
        break
    return kept or [Stage(duration=cutoff, target=pattern.target_at(cutoff))]


def _run_event_loop(main: Coroutine[Any, Any, TestResult]) -> TestResult:
    """Run *main* on uvloop where available (every platform but Windows)."""
    if sys.platform == "win32":
        return asyncio.run(main)

    import uvloop

    return uvloop.run(main)


class LoadTestRunner:
    """Loads a scenario file, runs it, and returns the verdict.

    Attributes:
        scenario_path: Absolute path to the scenario file.
    """

    def __init__(
        self,
        scenario_path: str | Path | None = None,
        *,
        scenario_name: str | None = None,
        vus: int | None = None,
        duration_seconds: float | None = None,
        base_url: str | None = None,
        tick_interval: float = 1.0,
        config: UsersBenchConfig | None = None,
        on_snapshot: Callable[[MetricSnapshot], None] | None = None,
        log_level: int = logging.INFO,
        json_logs: bool = False,
    ) -> None:
        """Initialize the runner.

        Args:
            scenario_path: Scenario .py file.  Defaults to the bundled users
                benchmark.
            scenario_name: Scenario to pick when the file declares several.
            vus: Replace the stages with a flat virtual user count.
            duration_seconds: Override the run length.
            base_url: Override the scenario (and environment) base URL.
            tick_interval: Seconds between concurrency adjustments.
            config: Runtime configuration.  Defaults to ``load_config()``.
            on_snapshot: Called with every interval snapshot.
            log_level: Logging level.
            json_logs: Emit JSON log lines.

        Raises:
            EngineError: If the scenario file does not exist.
        """
        path = Path(scenario_path) if scenario_path is not None else DEFAULT_SCENARIO_PATH
        self.scenario_path = str(path.resolve())
        self._scenario_name = scenario_name
        self._vus = vus
        self._duration_seconds = duration_seconds
        self._base_url = base_url
        self._tick_interval = tick_interval
        self._config = config
        self.on_snapshot = on_snapshot
        self._log_level = log_level
        self._json_logs = json_logs

        if not Path(self.scenario_path).is_file():
            msg = f"Scenario file not found: {self.scenario_path}"
            raise EngineError(msg)

    def run(self) -> TestResult:
        """Execute the load test and return its result.

        Blocks until the schedule completes or SIGINT/SIGTERM arrives.

        Raises:
            ScenarioError: If the scenario file is invalid.
            ConfigError: If configuration or overrides are invalid.
            EngineError: If the test fails to execute.
        """
        setup_logging(level=self._log_level, json_format=self._json_logs)

        # The same file may be loaded more than once per process (tests, reruns)
        registry.clear()
        scenario = load_scenario(self.scenario_path, name=self._scenario_name)

        config = self._config or load_config()
        if self._base_url:
            config = dataclasses.replace(config, base_url=self._base_url)

        pattern = build_pattern(
            scenario,
            vus=self._vus,
            duration_seconds=self._duration_seconds,
        )

        session = TestSession(
            scenario=scenario,
            pattern=pattern,
            tick_interval=self._tick_interval,
            config=config,
            on_snapshot=self.on_snapshot,
        )
        result = _run_event_loop(session.run())

        verdict = "passed" if result.passed else "FAILED"
        logger.info(
            "Scenario %s %s: %d/%d thresholds passed",
            scenario.name,
            verdict,
            len(result.thresholds) - len(result.failed_thresholds),
            len(result.thresholds),
        )
        return result
