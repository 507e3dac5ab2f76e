"""Shared test fixtures for the usersbench test suite."""

from __future__ import annotations

import asyncio
import socket
import threading
from typing import TYPE_CHECKING

import pytest
from aiohttp import web

from usersbench.dsl.scenario import registry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterator
    from pathlib import Path


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


@pytest.fixture(autouse=True)
def _clean_registry() -> Iterator[None]:
    """Scenario names are global; start and end every test with an empty registry."""
    registry.clear()
    yield
    registry.clear()


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# =============================================================================
# Users API handlers
# =============================================================================

USERS = [
    {"id": 1, "name": "Ada Lovelace", "email": "ada@example.com"},
    {"id": 2, "name": "Alan Turing", "email": "alan@example.com"},
    {"id": 3, "name": "Grace Hopper", "email": "grace@example.com"},
]


async def _users_handler(request: web.Request) -> web.Response:
    """Return the user list (always 200)."""
    return web.json_response(USERS)


async def _delay_handler(request: web.Request) -> web.Response:
    """Respond after a configurable delay (query param: ?delay=0.5)."""
    delay = float(request.query.get("delay", "0.1"))
    await asyncio.sleep(delay)
    return web.json_response({"delayed_by": delay})


async def _error_handler(request: web.Request) -> web.Response:
    """Return a configurable error status (query param: ?status=500)."""
    status = int(request.query.get("status", "500"))
    return web.json_response({"error": True}, status=status)


async def _headers_handler(request: web.Request) -> web.Response:
    """Echo the request headers back as JSON."""
    return web.json_response(dict(request.headers))


async def _health_handler(request: web.Request) -> web.Response:
    """Simple health check endpoint."""
    return web.json_response({"status": "ok"})


def _create_users_app() -> web.Application:
    """Build the users API app with all test routes."""
    app = web.Application()
    app.router.add_get("/users", _users_handler)
    app.router.add_get("/delay", _delay_handler)
    app.router.add_route("*", "/error", _error_handler)
    app.router.add_get("/health", _health_handler)
    app.router.add_get("/headers", _headers_handler)
    return app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def users_server() -> AsyncIterator[str]:
    """Aiohttp users API running on the test's event loop.

    Returns the base URL (e.g., 'http://127.0.0.1:54321').
    """
    app = _create_users_app()
    port = _get_free_port()
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    yield f"http://127.0.0.1:{port}"
    await runner.cleanup()


@pytest.fixture
def closed_port_url() -> str:
    """Base URL of a port nothing listens on."""
    return f"http://127.0.0.1:{_get_free_port()}"


@pytest.fixture
def sync_users_server() -> Iterator[str]:
    """Users API running in a background thread for sync tests.

    The runner and the CLI start their own event loop on the main thread,
    so the server needs a loop of its own.
    """
    port = _get_free_port()
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        app = _create_users_app()
        runner = web.AppRunner(app)
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", port)
        loop.run_until_complete(site.start())
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    yield f"http://127.0.0.1:{port}"

    if loop_holder:
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)


def write_scenario(
    tmp_path: Path,
    base_url: str,
    *,
    path: str = "/users",
    stages: str = '[("1s", 2), ("1s", 2)]',
    thresholds: str = '{"http_req_failed": ["rate<0.01"], "http_req_duration": ["p(95)<500"]}',
    filename: str = "users_scenario.py",
) -> Path:
    """Write a users-style scenario file and return its path."""
    code = f'''\
from __future__ import annotations

from usersbench import HttpClient, scenario, task


@scenario(
    name="Test Users Scenario",
    base_url="{base_url}",
    stages={stages},
    thresholds={thresholds},
    discard_response_bodies=True,
    think_time=(0.01, 0.02),
)
class TestUsersScenario:

    @task(name="GET users")
    async def get_users(self, client: HttpClient) -> None:
        res = await client.get("{path}", name="GET users")
        client.check(res, {{"status is 200": lambda r: r.status == 200}})
'''
    target = tmp_path / filename
    target.write_text(code)
    return target


@pytest.fixture
def scenario_file(tmp_path: Path, sync_users_server: str) -> Path:
    """Short staged scenario pointing at the threaded users API."""
    return write_scenario(tmp_path, sync_users_server)


@pytest.fixture
def failing_scenario_file(tmp_path: Path, sync_users_server: str) -> Path:
    """Scenario whose every request returns 500."""
    return write_scenario(
        tmp_path,
        sync_users_server,
        path="/error?status=500",
        filename="failing_scenario.py",
    )


@pytest.fixture
def make_scenario(tmp_path: Path) -> Callable[..., Path]:
    """Factory fixture: ``make_scenario(base_url, path=..., stages=...)``."""

    def _make(base_url: str, **kwargs: str) -> Path:
        return write_scenario(tmp_path, base_url, **kwargs)

    return _make
