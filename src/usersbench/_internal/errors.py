"""Exception hierarchy for usersbench."""

from __future__ import annotations


class UsersBenchError(Exception):
    """Base exception for all usersbench errors.

    Failures of the system under test are never raised: they are recorded
    as failed requests and checks. Only problems with the benchmark itself
    (bad configuration, broken scenario files, engine failures) surface as
    subclasses of this exception.
    """


class ScenarioError(UsersBenchError):
    """Raised when a scenario definition is invalid.

    Examples:
        - A class decorated with @scenario has no @task methods.
        - A @task method is not a coroutine function.
        - A threshold expression cannot be parsed.
        - A scenario file cannot be loaded.
    """


class ConfigError(UsersBenchError):
    """Raised when configuration is invalid or missing.

    Examples:
        - A stage has a negative duration or target.
        - A duration string such as ``"2x"`` cannot be parsed.
        - An environment variable has an invalid value.
    """


class EngineError(UsersBenchError):
    """Raised when a test session or runner fails to execute."""
