import base64
import json
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from itsdangerous import TimestampSigner

from free2free.config import SESSION_COOKIE_NAME
from free2free.context import build_context
from free2free.database import build_engine, build_session_factory
from free2free.services.rate_limit import limiter

TEST_JWT_SECRET = "test-secret-that-is-long-enough-for-hs256"
TEST_SESSION_KEY = "test-session-key"
TEST_OAUTH_CREDENTIALS = {"facebook": ("fb-client", "fb-secret"), "instagram": ("ig-client", "ig-secret")}


class FrozenClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: Any) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class Seeder:
    """Writes fixture rows straight through the store."""

    def __init__(self, ctx):
        self.ctx = ctx
        self._users = 0

    def user(self, name: str | None = None, is_admin: bool = False) -> dict[str, Any]:
        self._users += 1
        user_id = self.ctx.store.insert(
            "users",
            {
                "social_id": f"social-{self._users}",
                "social_provider": "facebook",
                "name": name or f"user{self._users}",
                "email": f"user{self._users}@example.com",
                "is_admin": is_admin,
            },
        )
        return self.ctx.store.find_by_id("users", user_id)

    def location(self) -> dict[str, Any]:
        location_id = self.ctx.store.insert(
            "locations",
            {"name": "Daan Park", "address": "No. 1 Park Rd", "latitude": 25.03, "longitude": 121.53},
        )
        return self.ctx.store.find_by_id("locations", location_id)

    def activity(self, created_by: int, location_id: int | None = None) -> dict[str, Any]:
        if location_id is None:
            location_id = self.location()["id"]
        activity_id = self.ctx.store.insert(
            "activities",
            {
                "title": "Boba run",
                "target_count": 2,
                "location_id": location_id,
                "description": "buy one get one",
                "created_by": created_by,
            },
        )
        return self.ctx.store.find_by_id("activities", activity_id)

    def match(self, organizer_id: int, status: str = "open", hours_from_now: float = 1) -> dict[str, Any]:
        activity = self.activity(created_by=organizer_id)
        match_id = self.ctx.store.insert(
            "matches",
            {
                "activity_id": activity["id"],
                "organizer_id": organizer_id,
                "match_time": self.ctx.now() + timedelta(hours=hours_from_now),
                "status": status,
            },
        )
        return self.ctx.store.find_by_id("matches", match_id)

    def participant(self, match_id: int, user_id: int, status: str = "pending") -> dict[str, Any]:
        participant_id = self.ctx.store.insert(
            "match_participants",
            {"match_id": match_id, "user_id": user_id, "status": status, "joined_at": self.ctx.now()},
        )
        return self.ctx.store.find_by_id("match_participants", participant_id)


@pytest.fixture
def clock():
    return FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def ctx(clock):
    session_factory = build_session_factory(build_engine("sqlite://"))
    context = build_context(session_factory, jwt_secret=TEST_JWT_SECRET, clock=clock, dev_mode=True)
    context.store.create_schema()
    limiter.reset()
    return context


@pytest.fixture
def seed(ctx):
    return Seeder(ctx)


@pytest.fixture
def app(ctx):
    pytest.importorskip("fastapi")
    from free2free.auth.oauth import build_oauth
    from free2free.main import create_app

    return create_app(ctx, session_key=TEST_SESSION_KEY, oauth=build_oauth(TEST_OAUTH_CREDENTIALS))


@pytest.fixture
def make_client(app):
    """Each client keeps its own cookie jar, so each one is a separate browser session."""
    from fastapi.testclient import TestClient

    def _make():
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def set_session():
    """Plant a session cookie signed the way SessionMiddleware signs it."""

    def _set(client, data: dict[str, Any]) -> None:
        payload = base64.b64encode(json.dumps(data).encode("utf-8"))
        client.cookies.set(SESSION_COOKIE_NAME, TimestampSigner(TEST_SESSION_KEY).sign(payload).decode("utf-8"))

    return _set
