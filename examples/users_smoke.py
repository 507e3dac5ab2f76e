"""Smoke test for the users API: a short, gentle ramp before the full benchmark.

Checks the response is JSON as well as the status, so bodies are kept.
Run it with:

    usersbench run examples/users_smoke.py
    usersbench run examples/users_smoke.py --base-url http://10.0.0.5:3000
"""

from __future__ import annotations

from usersbench import HttpClient, scenario, task


def _is_user_list(res) -> bool:
    try:
        return isinstance(res.json(), list)
    except ValueError:
        return False


@scenario(
    name="Users API smoke",
    base_url="http://localhost:3000",
    stages=[("10s", 5), ("20s", 5), ("10s", 0)],
    thresholds={
        "http_req_failed": ["rate<0.01"],
        "http_req_duration": ["p(95)<500", "avg<200"],
        "checks": ["rate>0.99"],
    },
    think_time=(0.5, 1.0),
)
class UsersSmoke:
    @task(name="GET /users")
    async def get_users(self, client: HttpClient) -> None:
        res = await client.get("/users", name="GET /users")
        client.check(
            res,
            {
                "status is 200": lambda r: r.status == 200,
                "body is a user list": _is_user_list,
            },
        )
