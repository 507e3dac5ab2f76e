"""Scenario and task definition dataclasses and the global scenario registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from usersbench._internal.errors import ScenarioError

if TYPE_CHECKING:
    from usersbench.metrics.thresholds import Threshold
    from usersbench.patterns.stages import Stage


class AsyncScenarioMethod(Protocol):
    """Protocol for async task methods.

    Matches unbound async methods with signature ``(self, client) -> None``.
    """

    @property
    def __name__(self) -> str: ...

    async def __call__(self, instance: object, client: object) -> None: ...


@dataclass
class TaskDefinition:
    """Definition of a single task within a scenario.

    Attributes:
        name: Human-readable name for this task.
        func: The unbound async method run once per iteration.
        weight: Relative weight for weighted-random task selection.
    """

    name: str
    func: AsyncScenarioMethod
    weight: int = 1


@dataclass(frozen=True)
class ScenarioDefinition:
    """Complete, immutable definition of a load test scenario.

    Created by the ``@scenario`` class decorator.

    Attributes:
        name: Human-readable name for this scenario.
        cls: The original class that was decorated.
        base_url: Base URL for all HTTP requests in this scenario.
        tasks: Task definitions discovered from @task-decorated methods.
        stages: Ramp stages in execution order, or None when the run length
            and user count come from the command line.
        thresholds: Parsed pass/fail thresholds.
        discard_response_bodies: Drop response bodies after reading them.
        default_headers: Default headers applied to every request.
        think_time: Random pause range (min, max) in seconds between
            iterations.  ``(0, 0)`` runs iterations back to back.
    """

    name: str
    cls: type
    base_url: str
    tasks: tuple[TaskDefinition, ...] = ()
    stages: tuple[Stage, ...] | None = None
    thresholds: tuple[Threshold, ...] = ()
    discard_response_bodies: bool = False
    default_headers: dict[str, str] = field(default_factory=dict)
    think_time: tuple[float, float] = (0.5, 1.5)


class ScenarioRegistry:
    """Registry of all declared scenario definitions.

    Scenarios are registered automatically by the ``@scenario`` decorator.
    The registry is a module-level singleton.
    """

    def __init__(self) -> None:
        self._scenarios: dict[str, ScenarioDefinition] = {}

    def register(self, definition: ScenarioDefinition) -> None:
        """Register a scenario definition.

        Raises:
            ScenarioError: If a scenario with the same name is already
                registered.
        """
        if definition.name in self._scenarios:
            msg = f"Scenario {definition.name!r} is already registered"
            raise ScenarioError(msg)
        self._scenarios[definition.name] = definition

    def get(self, name: str) -> ScenarioDefinition | None:
        """Look up a scenario by name."""
        return self._scenarios.get(name)

    def get_all(self) -> list[ScenarioDefinition]:
        """Return all registered scenarios."""
        return list(self._scenarios.values())

    def clear(self) -> None:
        """Remove all registered scenarios."""
        self._scenarios.clear()

    def __len__(self) -> int:
        return len(self._scenarios)


# Global singleton registry.
registry = ScenarioRegistry()
