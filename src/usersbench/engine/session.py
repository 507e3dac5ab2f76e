"""One load test run inside the current event loop.

A session turns the scheduler's per-tick targets into running virtual
users, drains the metric collector once per tick, and judges the run
against the scenario thresholds once the schedule is exhausted.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import itertools
import signal
import sys
import threading
import time
from enum import Enum, auto
from typing import TYPE_CHECKING

from usersbench._internal.config import UsersBenchConfig
from usersbench._internal.errors import EngineError
from usersbench._internal.logging import get_logger
from usersbench.dsl.http_client import HttpClient
from usersbench.engine._user_utils import pick_weighted_task, shutdown_all_users, think
from usersbench.engine.scheduler import Scheduler
from usersbench.metrics.collector import MetricCollector
from usersbench.metrics.models import MetricSnapshot, TestResult
from usersbench.metrics.thresholds import evaluate_thresholds

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterator

    from usersbench.dsl.scenario import ScenarioDefinition
    from usersbench.patterns.base import LoadPattern

logger = get_logger("engine.session")

# Seconds to wait for scaled-down users to finish cancelling.
_SCALE_DOWN_TIMEOUT = 2.0


class SessionState(Enum):
    CREATED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()
    COMPLETED = auto()
    FAILED = auto()


class TestSession:
    """Drive a scenario through a traffic pattern.

    Virtual users are asyncio tasks, each owning one ``HttpClient`` and
    looping the scenario's tasks back to back (plus think time).  They are
    kept in start order so scale-downs cancel the newest users first.

    Lifecycle: CREATED -> STARTING -> RUNNING -> STOPPING -> COMPLETED,
    or FAILED if the tick loop raises.  SIGINT/SIGTERM and :meth:`stop`
    move a running session to STOPPING; the run then winds down and still
    produces a result.
    """

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        scenario: ScenarioDefinition,
        pattern: LoadPattern,
        duration_seconds: float | None = None,
        *,
        tick_interval: float = 1.0,
        config: UsersBenchConfig | None = None,
        on_snapshot: Callable[[MetricSnapshot], None] | None = None,
        worker_id: int = 0,
    ) -> None:
        """Initialize a test session.

        Args:
            scenario: Scenario to run.
            pattern: Traffic pattern giving the virtual user count per tick.
            duration_seconds: Run length.  Defaults to the pattern's length.
            tick_interval: Seconds between concurrency adjustments.
            config: Runtime configuration.  A non-empty ``config.base_url``
                replaces the scenario base URL.
            on_snapshot: Receives each per-tick snapshot.
            worker_id: Tag attached to every metric and check.
        """
        self._scenario = scenario
        self._scheduler = Scheduler(pattern, duration_seconds, tick_interval)
        self._pattern = pattern
        self._config = config or UsersBenchConfig()
        self._on_snapshot = on_snapshot
        self._worker_id = worker_id

        self._state = SessionState.CREATED
        self._collector = MetricCollector(worker_id=worker_id)
        self._users: dict[int, asyncio.Task[None]] = {}
        self._user_ids = itertools.count()
        self._stop_event = asyncio.Event()
        self._user_failure: Exception | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active_user_count(self) -> int:
        return len(self._users)

    @property
    def base_url(self) -> str:
        """URL the virtual users send requests to."""
        return self._config.base_url or self._scenario.base_url

    async def run(self) -> TestResult:
        """Run the whole schedule and return the judged result.

        Raises:
            EngineError: If the tick loop fails or a virtual user cannot start.
        """
        self._state = SessionState.STARTING
        logger.info(
            "Session %r starting against %s for %.1fs (%s)",
            self._scenario.name,
            self.base_url,
            self._scheduler.duration_seconds or 0.0,
            self._pattern.describe(),
        )

        started = time.monotonic()
        snapshots: list[MetricSnapshot] = []
        self._state = SessionState.RUNNING

        with self._graceful_signals():
            try:
                async for snapshot in self._ticks(started):
                    snapshots.append(snapshot)
                    if self._on_snapshot is not None:
                        self._on_snapshot(snapshot)
            except EngineError:
                self._state = SessionState.FAILED
                raise
            except Exception as exc:
                self._state = SessionState.FAILED
                logger.exception("Session %r failed", self._scenario.name)
                raise EngineError(f"Session {self._scenario.name!r} failed: {exc}") from exc
            finally:
                if self._state is not SessionState.FAILED:
                    self._state = SessionState.STOPPING
                user_tasks = list(self._users.items())
                self._users.clear()
                await shutdown_all_users(user_tasks, self._stop_event)

        if self._user_failure is not None:
            self._state = SessionState.FAILED
            self._raise_user_failure()

        result = self._judge(started, time.monotonic(), snapshots)
        self._state = SessionState.COMPLETED
        return result

    async def stop(self) -> None:
        """Ask a running session to wind down at its next tick."""
        if self._state is SessionState.RUNNING:
            logger.info("Stop requested for session %r", self._scenario.name)
            self._state = SessionState.STOPPING
            self._stop_event.set()

    async def _ticks(self, started: float) -> AsyncIterator[MetricSnapshot]:
        """Follow the schedule, yielding one interval snapshot per tick."""
        for command in self._scheduler.iter_commands():
            due = started + command.elapsed_seconds
            delay = due - time.monotonic()
            if delay > 0:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            self._raise_user_failure()
            if self._stop_event.is_set():
                return

            if command.change:
                logger.debug(
                    "Scaling %+d users to %d", command.change, command.target_concurrency
                )
            await self._scale_to(command.target_concurrency)

            elapsed = time.monotonic() - started
            snapshot = self._collector.flush(
                elapsed_seconds=elapsed,
                active_users=self.active_user_count,
            )
            logger.debug(
                "t=%.1fs users=%d rps=%.1f p95=%.1fms failed=%d",
                elapsed,
                snapshot.active_users,
                snapshot.requests_per_second,
                snapshot.latency_p95,
                snapshot.total_errors,
            )
            yield snapshot

    def _raise_user_failure(self) -> None:
        if self._user_failure is not None:
            msg = (
                f"Session {self._scenario.name!r} failed: "
                f"virtual user could not start: {self._user_failure}"
            )
            raise EngineError(msg) from self._user_failure

    def _judge(
        self,
        started: float,
        finished: float,
        snapshots: list[MetricSnapshot],
    ) -> TestResult:
        """Fold in late samples, build the run summary and evaluate thresholds."""
        duration = finished - started

        # Requests that completed while users were shutting down
        self._collector.flush(elapsed_seconds=duration, active_users=0)
        summary = self._collector.get_cumulative_snapshot(elapsed_seconds=duration, active_users=0)
        verdicts = evaluate_thresholds(
            self._scenario.thresholds,
            functools.partial(self._collector.resolve, elapsed_seconds=duration),
        )

        logger.info(
            "Session %r done in %.1fs: %d requests (%.1f/s), %d iterations, "
            "p95=%.1fms, failed=%.2f%%",
            self._scenario.name,
            duration,
            summary.total_requests,
            summary.requests_per_second,
            summary.total_iterations,
            summary.latency_p95,
            summary.error_rate * 100,
        )

        return TestResult(
            scenario_name=self._scenario.name,
            start_time=started,
            end_time=finished,
            duration_seconds=duration,
            pattern_description=self._pattern.describe(),
            snapshots=snapshots,
            final_summary=summary,
            checks=self._collector.check_summaries(),
            thresholds=verdicts,
        )

    async def _scale_to(self, target: int) -> None:
        """Start or cancel virtual users until *target* are running."""
        for user_id in [uid for uid, t in self._users.items() if t.done()]:
            del self._users[user_id]

        while len(self._users) < target:
            user_id = next(self._user_ids)
            self._users[user_id] = asyncio.create_task(
                self._virtual_user(user_id),
                name=f"virtual-user-{user_id}",
            )

        surplus = len(self._users) - target
        if surplus > 0:
            # popitem() is LIFO: newest users leave first
            cancelled = [self._users.popitem()[1] for _ in range(surplus)]
            for user in cancelled:
                user.cancel()
            await asyncio.wait(cancelled, timeout=_SCALE_DOWN_TIMEOUT)

    async def _virtual_user(self, user_id: int) -> None:
        """Set up one user, then iterate until stopped or cancelled.

        A setup failure stops the whole session; the tick loop re-raises it
        as an ``EngineError``.
        """
        with contextlib.suppress(asyncio.CancelledError):
            async with contextlib.AsyncExitStack() as stack:
                try:
                    instance = self._scenario.cls()
                    client = await stack.enter_async_context(
                        HttpClient(
                            base_url=self.base_url,
                            headers=dict(self._scenario.default_headers),
                            metric_callback=self._collector.record,
                            check_callback=self._collector.record_check,
                            worker_id=self._worker_id,
                            timeout=self._config.request_timeout,
                            pool_size=self._config.connection_pool_size,
                            discard_response_bodies=self._scenario.discard_response_bodies,
                        )
                    )
                except Exception as exc:
                    logger.exception("User %d could not start", user_id)
                    if self._user_failure is None:
                        self._user_failure = exc
                    self._stop_event.set()
                    return

                while not self._stop_event.is_set():
                    await self._iterate(user_id, instance, client)
                    await think(self._scenario.think_time)

    async def _iterate(self, user_id: int, instance: object, client: HttpClient) -> None:
        """Run one weighted-random task; failures are logged, not raised."""
        task_def = pick_weighted_task(self._scenario.tasks)
        try:
            await task_def.func(instance, client)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.debug("User %d: task %s raised", user_id, task_def.name, exc_info=True)
        else:
            self._collector.record_iteration()

    @contextlib.contextmanager
    def _graceful_signals(self) -> Iterator[None]:
        """Turn SIGINT/SIGTERM into a graceful stop for the duration of the block."""

        def _on_signal() -> None:
            logger.info("Signal received, stopping session %r", self._scenario.name)
            self._state = SessionState.STOPPING
            self._stop_event.set()

        if threading.current_thread() is not threading.main_thread():
            # Signals are only delivered to the main thread
            logger.debug(
                "Session %r runs off the main thread; signal handlers skipped",
                self._scenario.name,
            )
            yield
            return

        signals = (signal.SIGINT, signal.SIGTERM)
        if sys.platform == "win32":
            for sig in signals:
                signal.signal(sig, lambda _s, _f: _on_signal())
            try:
                yield
            finally:
                signal.signal(signal.SIGINT, signal.default_int_handler)
                signal.signal(signal.SIGTERM, signal.SIG_DFL)
            return

        loop = asyncio.get_running_loop()
        for sig in signals:
            loop.add_signal_handler(sig, _on_signal)
        try:
            yield
        finally:
            for sig in signals:
                loop.remove_signal_handler(sig)
