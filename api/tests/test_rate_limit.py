import pytest

pytest.importorskip("fastapi")
from starlette.requests import Request

from free2free.errors import RateLimitedError
from free2free.services import rate_limit
from free2free.services.rate_limit import InMemoryRateLimiter, client_identifier


class FakeTime:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _request(session=None, headers=None, client=("10.0.0.1", 5000)):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    if session is not None:
        scope["session"] = session
    return Request(scope)


def test_sliding_window_expires_old_hits():
    fake_time = FakeTime()
    limiter = InMemoryRateLimiter(clock=fake_time)
    assert limiter.check("k", limit=2, window_seconds=60).allowed
    assert limiter.check("k", limit=2, window_seconds=60).allowed

    decision = limiter.check("k", limit=2, window_seconds=60)
    assert not decision.allowed
    assert decision.retry_after_seconds == 60
    assert limiter.check("other", limit=2, window_seconds=60).allowed

    fake_time.now += 61
    assert limiter.check("k", limit=2, window_seconds=60).allowed


def test_reset_clears_all_keys():
    limiter = InMemoryRateLimiter()
    limiter.check("k", limit=1, window_seconds=60)
    limiter.reset()
    assert limiter.check("k", limit=1, window_seconds=60).allowed


def test_client_identifier_precedence():
    assert client_identifier(_request(session={"user_id": 9}, headers={"Authorization": "Bearer abc"})) == "user:9"
    assert client_identifier(_request(headers={"Authorization": "Bearer abcdefghijklmnopqrs"})) == "token:abcdefghijklmnop"
    assert client_identifier(_request(headers={"X-Forwarded-For": "1.1.1.1, 2.2.2.2"})) == "1.1.1.1"
    assert client_identifier(_request()) == "10.0.0.1"
    assert client_identifier(_request(client=None)) == "unknown"


def test_dependency_raises_429(monkeypatch):
    monkeypatch.setattr(rate_limit, "limiter", InMemoryRateLimiter())
    check = rate_limit.rate_limit_dependency("join", 1, 60).dependency
    request = _request(session={"user_id": 1})

    check(request)
    with pytest.raises(RateLimitedError) as exc:
        check(request)
    assert exc.value.status_code == 429
    assert exc.value.headers == {"Retry-After": str(exc.value.retry_after_seconds)}
    assert exc.value.body()["code_error"] == "RATE_LIMITED"
