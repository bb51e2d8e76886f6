from __future__ import annotations

from redis.exceptions import RedisError

from session_engine import dependencies
from tests.utils.auth import build_auth_headers


def test_rate_limit_user(client, institution, monkeypatch):
    monkeypatch.setattr(dependencies.settings, "rate_limit_per_minute", 5)
    headers = build_auth_headers()
    for _ in range(5):
        resp = client.get("/v1/session-pool", headers=headers)
        assert resp.status_code == 200
    resp = client.get("/v1/session-pool", headers=headers)
    assert resp.status_code == 429
    assert resp.json()["code"] == "TOO_MANY_REQUESTS"

    # counters are per user
    other = build_auth_headers(user_id="admin-9")
    assert client.get("/v1/session-pool", headers=other).status_code == 200


def test_rate_limit_redis_unavailable(client, institution, monkeypatch):
    class _RedisFail:
        def pipeline(self):
            raise RedisError

    monkeypatch.setattr(dependencies, "redis_client", _RedisFail())
    resp = client.get("/v1/session-pool", headers=build_auth_headers())
    assert resp.status_code == 503
    assert resp.json() == {
        "success": False,
        "code": "SERVICE_UNAVAILABLE",
        "message": "Rate limiter unavailable",
    }
