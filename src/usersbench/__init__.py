"""usersbench: staged load benchmark for the users API."""

from __future__ import annotations

from usersbench.dsl.checks import CheckResult
from usersbench.dsl.decorators import scenario, task
from usersbench.dsl.http_client import HttpClient, RequestMetric, Response
from usersbench.patterns.base import LoadPattern
from usersbench.patterns.constant import ConstantPattern
from usersbench.patterns.stages import Stage, StagesPattern, parse_duration

__version__ = "0.1.0"

__all__ = [
    "CheckResult",
    "ConstantPattern",
    "HttpClient",
    "LoadPattern",
    "RequestMetric",
    "Response",
    "Stage",
    "StagesPattern",
    "parse_duration",
    "scenario",
    "task",
]
