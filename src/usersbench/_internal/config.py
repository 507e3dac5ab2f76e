"""Environment-driven configuration for usersbench."""

from __future__ import annotations

import os
from dataclasses import dataclass

from usersbench._internal.errors import ConfigError


@dataclass(frozen=True)
class UsersBenchConfig:
    """Global usersbench configuration.

    Attributes:
        base_url: Overrides the scenario base URL when non-empty.
        connection_pool_size: Connector limit for each virtual user's session.
        request_timeout: Total request timeout in seconds.
    """

    base_url: str = ""
    connection_pool_size: int = 100
    request_timeout: float = 60.0


def load_config() -> UsersBenchConfig:
    """Load configuration from environment variables with defaults.

    Environment variables:
        USERSBENCH_BASE_URL: Target base URL, e.g. ``http://10.0.0.5:3000``.
        USERSBENCH_POOL_SIZE: Connection pool size (default: 100).
        USERSBENCH_TIMEOUT: Request timeout in seconds (default: 60.0).

    Returns:
        Populated UsersBenchConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    pool_size_str = os.environ.get("USERSBENCH_POOL_SIZE", "100")
    timeout_str = os.environ.get("USERSBENCH_TIMEOUT", "60.0")

    try:
        pool_size = int(pool_size_str)
    except ValueError:
        msg = f"USERSBENCH_POOL_SIZE must be an integer, got: {pool_size_str!r}"
        raise ConfigError(msg) from None

    if pool_size < 1:
        msg = f"USERSBENCH_POOL_SIZE must be >= 1, got: {pool_size}"
        raise ConfigError(msg)

    try:
        timeout = float(timeout_str)
    except ValueError:
        msg = f"USERSBENCH_TIMEOUT must be a number, got: {timeout_str!r}"
        raise ConfigError(msg) from None

    if timeout <= 0:
        msg = f"USERSBENCH_TIMEOUT must be positive, got: {timeout}"
        raise ConfigError(msg)

    return UsersBenchConfig(
        base_url=os.environ.get("USERSBENCH_BASE_URL", "").strip(),
        connection_pool_size=pool_size,
        request_timeout=timeout,
    )
