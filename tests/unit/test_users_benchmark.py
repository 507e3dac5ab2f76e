"""Tests for the bundled users benchmark declaration."""

from __future__ import annotations

import pytest

from usersbench.benchmarks import users
from usersbench.dsl.checks import CheckResult
from usersbench.dsl.http_client import HttpClient
from usersbench.dsl.loader import load_scenario
from usersbench.engine.runner import DEFAULT_SCENARIO_PATH
from usersbench.patterns.stages import Stage, StagesPattern


@pytest.fixture
def definition():
    return load_scenario(DEFAULT_SCENARIO_PATH)


def test_default_path_is_users_module():
    assert DEFAULT_SCENARIO_PATH.name == "users.py"
    assert DEFAULT_SCENARIO_PATH.is_file()


def test_target(definition):
    assert definition.base_url == "http://localhost:3000"
    assert users.USERS_PATH == "/users"


def test_discards_response_bodies(definition):
    assert definition.discard_response_bodies is True


def test_no_think_time(definition):
    assert definition.think_time == (0.0, 0.0)


def test_stage_sequence(definition):
    assert definition.stages == (
        Stage(120.0, 200),
        Stage(180.0, 500),
        Stage(180.0, 1000),
        Stage(180.0, 1500),
        Stage(180.0, 2000),
        Stage(120.0, 0),
    )
    assert StagesPattern(definition.stages).total_duration == 16 * 60


def test_thresholds(definition):
    declared = [(t.metric, [e.source for e in t.expressions]) for t in definition.thresholds]
    assert declared == [
        ("http_req_failed", ["rate<0.01"]),
        ("http_req_duration", ["p(95)<500"]),
    ]


def test_single_task(definition):
    assert len(definition.tasks) == 1
    assert definition.tasks[0].name == "GET /users"


async def test_task_issues_one_get_and_one_check(definition, users_server: str):
    checks: list[CheckResult] = []
    metrics = []

    async with HttpClient(
        base_url=users_server,
        metric_callback=metrics.append,
        check_callback=checks.append,
        discard_response_bodies=True,
    ) as client:
        await definition.tasks[0].func(definition.cls(), client)

    assert len(metrics) == 1
    assert metrics[0].method == "GET"
    assert metrics[0].url == f"{users_server}/users"
    assert [(c.name, c.passed) for c in checks] == [("status is 200", True)]


async def test_task_check_fails_when_unreachable(definition, closed_port_url: str):
    checks: list[CheckResult] = []

    async with HttpClient(
        base_url=closed_port_url,
        check_callback=checks.append,
        timeout=2.0,
    ) as client:
        await definition.tasks[0].func(definition.cls(), client)

    assert [(c.name, c.passed) for c in checks] == [("status is 200", False)]
