"""Traffic patterns for usersbench.

A pattern defines how the target concurrency (virtual user count) changes
over time.  All patterns implement :class:`LoadPattern` and yield
``(elapsed_seconds, target_concurrency)`` tuples via
:meth:`LoadPattern.iter_concurrency`.
"""

from __future__ import annotations

from usersbench.patterns.base import LoadPattern
from usersbench.patterns.constant import ConstantPattern
from usersbench.patterns.stages import Stage, StagesPattern, build_stages, parse_duration

__all__ = [
    "ConstantPattern",
    "LoadPattern",
    "Stage",
    "StagesPattern",
    "build_stages",
    "parse_duration",
]
