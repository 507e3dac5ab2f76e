"""Virtual user helpers shared by the test session."""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING

from usersbench._internal.logging import get_logger

if TYPE_CHECKING:
    from usersbench.dsl.scenario import TaskDefinition

logger = get_logger("engine.user_utils")

# Seconds to let virtual users finish an in-flight iteration on shutdown.
_GRACEFUL_STOP_TIMEOUT = 5.0
_CANCEL_TIMEOUT = 2.0


def pick_weighted_task(tasks: tuple[TaskDefinition, ...]) -> TaskDefinition:
    """Select a task using weighted-random distribution."""
    if len(tasks) == 1:
        return tasks[0]
    weights = [t.weight for t in tasks]
    return random.choices(tasks, weights=weights, k=1)[0]  # noqa: S311


async def think(think_time: tuple[float, float]) -> None:
    """Pause between iterations.

    A ``(0, 0)`` range still yields to the event loop once so back-to-back
    iterations cannot starve other virtual users.
    """
    min_t, max_t = think_time
    if max_t <= 0:
        await asyncio.sleep(0)
        return
    await asyncio.sleep(random.uniform(min_t, max_t))  # noqa: S311


async def shutdown_all_users(
    user_tasks: list[tuple[int, asyncio.Task[None]]],
    stop_event: asyncio.Event,
) -> None:
    """Stop every virtual user.

    Sets the stop event so users exit after their current iteration, waits
    briefly, then cancels whatever is still running.
    """
    stop_event.set()

    if user_tasks:
        tasks = [t for _, t in user_tasks]
        _done, pending = await asyncio.wait(tasks, timeout=_GRACEFUL_STOP_TIMEOUT)

        for task in pending:
            task.cancel()

        if pending:
            logger.debug("Cancelled %d virtual users still running at shutdown", len(pending))
            await asyncio.wait(pending, timeout=_CANCEL_TIMEOUT)

    user_tasks.clear()
    logger.debug("All virtual users shut down")
