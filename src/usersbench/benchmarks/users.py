"""Staged load benchmark for ``GET /users``.

Ramps virtual users 200 -> 500 -> 1000 -> 1500 -> 2000 and back to 0 over
sixteen minutes.  The run passes when fewer than 1% of requests fail and
the 95th percentile response time stays under 500 ms.

Run with:
    usersbench run
    usersbench run --base-url http://10.0.0.5:3000
    usersbench run --vus 10 --duration 30      # smoke run, flat 10 users
"""

from __future__ import annotations

from usersbench import HttpClient, scenario, task

USERS_PATH = "/users"

STAGES = [
    ("2m", 200),
    ("3m", 500),
    ("3m", 1000),
    ("3m", 1500),
    ("3m", 2000),
    ("2m", 0),
]

THRESHOLDS = {
    "http_req_failed": ["rate<0.01"],
    "http_req_duration": ["p(95)<500"],
}


@scenario(
    name="Users API",
    base_url="http://localhost:3000",
    stages=STAGES,
    thresholds=THRESHOLDS,
    discard_response_bodies=True,
    think_time=(0.0, 0.0),
)
class UsersBenchmark:
    """One GET and one status check per iteration."""

    @task(name="GET /users")
    async def get_users(self, client: HttpClient) -> None:
        res = await client.get(USERS_PATH, name="GET /users")
        client.check(res, {"status is 200": lambda r: r.status == 200})
