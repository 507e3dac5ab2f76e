"""Instrumented HTTP client with auto-timing, metric emission and checks."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import aiohttp

from usersbench._internal.logging import get_logger
from usersbench.dsl.checks import CheckResult, run_checks

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = get_logger("dsl.http_client")


def _noop_callback(metric: RequestMetric) -> None:
    """Default no-op metric callback."""


@dataclass
class RequestMetric:
    """Raw metric emitted for every HTTP request.

    Attributes:
        timestamp: Monotonic timestamp when the request started.
        name: Logical name for metric grouping (e.g., "GET /users").
        method: HTTP method.
        url: Full request URL.
        status_code: HTTP response status code (0 if no response arrived).
        latency_ms: Time from sending the request to reading the body, in ms.
        content_length: Response body size in bytes.
        error: Transport error description, None if a response arrived.
        worker_id: ID of the worker that made the request.
    """

    timestamp: float
    name: str
    method: str
    url: str
    status_code: int
    latency_ms: float
    content_length: int
    error: str | None = None
    worker_id: int = 0

    @property
    def failed(self) -> bool:
        """True for transport errors and statuses outside 200-399."""
        return self.error is not None or not 200 <= self.status_code < 400


@dataclass
class Response:
    """Completed HTTP exchange as seen by a task.

    A request that never produced a response (connection refused, timeout)
    still yields a ``Response`` with ``status == 0`` and ``error`` set, so
    checks run and record a failure instead of aborting the iteration.

    Attributes:
        status: HTTP status code, 0 on transport failure.
        url: Full request URL.
        latency_ms: Request duration in milliseconds.
        headers: Response headers.
        body: Response payload, None when bodies are discarded or on error.
        error: Transport error description, None on success.
    """

    status: int
    url: str
    latency_ms: float
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    error: str | None = None

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body was discarded or is not valid JSON.
        """
        if self.body is None:
            msg = "Response body is not available (discarded or request failed)"
            raise ValueError(msg)
        return json.loads(self.body)


class HttpClient:
    """Instrumented async HTTP client wrapping ``aiohttp.ClientSession``.

    Every request is auto-timed and emits a ``RequestMetric`` via
    ``metric_callback``; every check emits a ``CheckResult`` via
    ``check_callback``.  Both default to no-ops and are wired to the metric
    collector by the engine.

    Attributes:
        base_url: Base URL prepended to all request paths.
        headers: Headers applied to every request.
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        metric_callback: Callable[[RequestMetric], None] | None = None,
        check_callback: Callable[[CheckResult], None] | None = None,
        worker_id: int = 0,
        timeout: float = 60.0,
        pool_size: int = 100,
        discard_response_bodies: bool = False,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            base_url: Base URL prepended to all request paths.
            headers: Default headers applied to every request.
            metric_callback: Receives a ``RequestMetric`` after each request.
            check_callback: Receives a ``CheckResult`` for each check.
            worker_id: Worker identifier for metric tagging.
            timeout: Total request timeout in seconds.
            pool_size: Maximum simultaneous connections for this client.
            discard_response_bodies: Read and drop response bodies instead of
                keeping them on the returned ``Response``.
        """
        self.base_url = base_url.rstrip("/")
        self.headers: dict[str, str] = dict(headers or {})
        self.discard_response_bodies = discard_response_bodies
        self._metric_callback = metric_callback or _noop_callback
        self._check_callback = check_callback
        self._worker_id = worker_id
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._pool_size = pool_size
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> HttpClient:
        self._session = aiohttp.ClientSession(
            timeout=self._timeout,
            connector=aiohttp.TCPConnector(limit=self._pool_size),
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def get(
        self,
        path: str,
        *,
        name: str | None = None,
        **kwargs: object,
    ) -> Response:
        """Send a GET request.

        Args:
            path: URL path appended to base_url.
            name: Logical name for metric grouping. Defaults to the path.
            **kwargs: Additional keyword arguments passed to aiohttp.

        Returns:
            The completed ``Response``.
        """
        return await self._request("GET", path, name=name, **kwargs)

    def check(
        self,
        response: Response,
        checks: Mapping[str, Callable[[Response], object]],
    ) -> bool:
        """Evaluate named predicates against *response* and record them.

        Returns:
            True if every check passed.
        """
        return run_checks(
            response,
            checks,
            callback=self._check_callback,
            worker_id=self._worker_id,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        name: str | None = None,
        **kwargs: object,
    ) -> Response:
        """Send an HTTP request with auto-timing and metric emission.

        Transport errors are converted into a ``Response`` with status 0.

        Raises:
            RuntimeError: If the client is used outside of an async context
                manager.
        """
        if self._session is None:
            msg = "HttpClient must be used as an async context manager"
            raise RuntimeError(msg)

        url = f"{self.base_url}{path}"
        headers = {**self.headers, **(kwargs.pop("headers", None) or {})}  # type: ignore[dict-item]
        status_code = 0
        response_headers: dict[str, str] = {}
        payload: bytes = b""
        error: str | None = None

        start = time.monotonic()
        try:
            async with self._session.request(
                method,
                url,
                headers=headers,
                **kwargs,  # type: ignore[arg-type]
            ) as resp:
                # Always drain the body so the connection goes back to the pool
                payload = await resp.read()
                status_code = resp.status
                response_headers = dict(resp.headers)
        except (aiohttp.ClientError, TimeoutError) as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.debug("%s %s failed: %s", method, url, error)
        latency_ms = (time.monotonic() - start) * 1000

        self._metric_callback(
            RequestMetric(
                timestamp=start,
                name=name or path,
                method=method,
                url=url,
                status_code=status_code,
                latency_ms=latency_ms,
                content_length=len(payload),
                error=error,
                worker_id=self._worker_id,
            )
        )

        keep_body = error is None and not self.discard_response_bodies
        return Response(
            status=status_code,
            url=url,
            latency_ms=latency_ms,
            headers=response_headers,
            body=payload if keep_body else None,
            error=error,
        )
