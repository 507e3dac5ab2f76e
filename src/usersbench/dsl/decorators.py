"""Decorators for declaring load test scenarios."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING

from usersbench._internal.errors import ConfigError, ScenarioError
from usersbench.dsl.scenario import (
    AsyncScenarioMethod,
    ScenarioDefinition,
    TaskDefinition,
    registry,
)
from usersbench.metrics.thresholds import parse_thresholds
from usersbench.patterns.stages import build_stages

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from usersbench._internal.types import DurationLike, Headers, ThinkTime, ThresholdSpec
    from usersbench.patterns.stages import Stage

# Marker attribute names set on decorated methods.
_TASK_MARKER = "_usersbench_task"
_TASK_WEIGHT = "_usersbench_task_weight"
_TASK_NAME = "_usersbench_task_name"


def scenario(
    *,
    name: str,
    base_url: str,
    stages: Iterable[Stage | tuple[DurationLike, int]] | None = None,
    thresholds: ThresholdSpec | None = None,
    discard_response_bodies: bool = False,
    default_headers: Headers | None = None,
    think_time: ThinkTime = (0.5, 1.5),
) -> Callable[[type], ScenarioDefinition]:
    """Declare a class as a usersbench scenario.

    The decorator collects the class's ``@task`` methods, validates stages
    and thresholds, builds a ``ScenarioDefinition`` and registers it in the
    global scenario registry.

    Args:
        name: Human-readable name for this scenario.
        base_url: Base URL for all HTTP requests.
        stages: Ordered ``(duration, target)`` ramp stages, e.g.
            ``[("2m", 200), ("2m", 0)]``.
        thresholds: ``{metric: [expression, ...]}`` pass/fail criteria, e.g.
            ``{"http_req_failed": ["rate<0.01"]}``.
        discard_response_bodies: Read and drop response bodies.
        default_headers: Headers applied to every request.
        think_time: Random pause range (min, max) in seconds between
            iterations.

    Returns:
        A class decorator that turns the class into a ScenarioDefinition.

    Raises:
        ScenarioError: If the class has no ``@task`` methods, a task is not a
            coroutine function, or the stages or thresholds are invalid.
    """
    try:
        built_stages = build_stages(stages) if stages is not None else None
    except ConfigError as exc:
        msg = f"Scenario {name!r} has invalid stages: {exc}"
        raise ScenarioError(msg) from exc
    parsed_thresholds = parse_thresholds(thresholds)

    min_think, max_think = think_time
    if min_think < 0 or max_think < min_think:
        msg = f"think_time must satisfy 0 <= min <= max, got {think_time}"
        raise ScenarioError(msg)

    def decorator(cls: type) -> ScenarioDefinition:
        tasks: list[TaskDefinition] = []

        for attr_name in dir(cls):
            if attr_name.startswith("__"):
                continue

            attr = getattr(cls, attr_name, None)
            if attr is None or not callable(attr) or not getattr(attr, _TASK_MARKER, False):
                continue

            if not inspect.iscoroutinefunction(attr):
                msg = f"Task method {cls.__name__}.{attr_name} must be an async function"
                raise ScenarioError(msg)
            tasks.append(
                TaskDefinition(
                    name=getattr(attr, _TASK_NAME, attr_name),
                    func=attr,
                    weight=getattr(attr, _TASK_WEIGHT, 1),
                )
            )

        if not tasks:
            msg = f"Scenario {cls.__name__} has no @task methods. At least one @task is required."
            raise ScenarioError(msg)

        definition = ScenarioDefinition(
            name=name,
            cls=cls,
            base_url=base_url,
            tasks=tuple(tasks),
            stages=built_stages,
            thresholds=parsed_thresholds,
            discard_response_bodies=discard_response_bodies,
            default_headers=dict(default_headers or {}),
            think_time=think_time,
        )

        registry.register(definition)
        return definition

    return decorator


def task(
    *,
    weight: int = 1,
    name: str | None = None,
) -> Callable[[AsyncScenarioMethod], AsyncScenarioMethod]:
    """Mark a method as a load test task.

    Each virtual user runs one task per iteration.  With several tasks, a
    task with ``weight=5`` is picked about five times as often as one with
    ``weight=1``.

    Args:
        weight: Relative selection weight. Must be >= 1.
        name: Optional display name. Defaults to the method name.

    Raises:
        ScenarioError: If weight is less than 1.
    """
    if weight < 1:
        msg = f"Task weight must be >= 1, got {weight}"
        raise ScenarioError(msg)

    def decorator(func: AsyncScenarioMethod) -> AsyncScenarioMethod:
        setattr(func, _TASK_MARKER, True)
        setattr(func, _TASK_WEIGHT, weight)
        setattr(func, _TASK_NAME, name or func.__name__)
        return func

    return decorator
