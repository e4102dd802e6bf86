from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from .auth.identity import IdentityResolver
from .auth.security import TokenCodec
from .config import (
    ACCESS_TOKEN_TTL_MINUTES,
    DATABASE_URL,
    DEV_MODE,
    JWT_SECRET,
    REFRESH_TOKEN_TTL_DAYS,
    REVIEW_WINDOW_HOURS,
)
from .database import build_engine, build_session_factory
from .errors import ConfigurationError
from .repo import SqlStore
from .services.lifecycle import LifecycleEngine


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AppContext:
    """Process-wide collaborators, built once at startup and shared by every request."""

    store: SqlStore
    codec: TokenCodec
    resolver: IdentityResolver
    engine: LifecycleEngine
    clock: Callable[[], datetime]
    jwt_secret: str
    dev_mode: bool = False
    refresh_token_ttl_days: int = REFRESH_TOKEN_TTL_DAYS

    def now(self) -> datetime:
        return self.engine.now()


def build_context(
    session_factory: sessionmaker | None = None,
    *,
    database_url: str = DATABASE_URL,
    jwt_secret: str = JWT_SECRET,
    clock: Callable[[], datetime] = _now_utc,
    dev_mode: bool = DEV_MODE,
    access_token_ttl_minutes: int = ACCESS_TOKEN_TTL_MINUTES,
    refresh_token_ttl_days: int = REFRESH_TOKEN_TTL_DAYS,
    review_window_hours: int = REVIEW_WINDOW_HOURS,
) -> AppContext:
    if session_factory is None:
        session_factory = build_session_factory(build_engine(database_url))
    store = SqlStore(session_factory)
    codec = TokenCodec(jwt_secret, ttl_minutes=access_token_ttl_minutes)
    return AppContext(
        store=store,
        codec=codec,
        resolver=IdentityResolver.default(store, codec),
        engine=LifecycleEngine(store, clock=clock, review_window=timedelta(hours=review_window_hours)),
        clock=clock,
        jwt_secret=jwt_secret,
        dev_mode=dev_mode,
        refresh_token_ttl_days=refresh_token_ttl_days,
    )


def get_context(request: Request) -> AppContext:
    ctx = getattr(request.app.state, "ctx", None)
    if ctx is None:
        raise ConfigurationError("application context not initialised")
    return ctx
