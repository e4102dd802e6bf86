import logging
import time

from authlib.integrations.starlette_client import OAuth
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from .auth.oauth import build_oauth
from .config import (
    ALLOWED_ORIGINS,
    AUTO_MIGRATE,
    DEV_MODE,
    SECURE_COOKIE,
    SESSION_COOKIE_NAME,
    SESSION_KEY,
    SESSION_MAX_AGE_SECONDS,
)
from .context import AppContext, build_context
from .errors import ConfigurationError, PersistenceError, register_error_handlers
from .routes import include_routers

logger = logging.getLogger(__name__)


def wait_for_db(ctx: AppContext, max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            ctx.store.ping()
            return
        except PersistenceError as exc:
            last_err = exc
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


def create_app(
    ctx: AppContext | None = None,
    *,
    session_key: str = SESSION_KEY,
    dev_mode: bool | None = None,
    auto_migrate: bool = AUTO_MIGRATE,
    oauth: OAuth | None = None,
) -> FastAPI:
    if dev_mode is None:
        dev_mode = ctx.dev_mode if ctx is not None else DEV_MODE

    app = FastAPI(title="Free2Free API")
    app.state.ctx = ctx
    app.state.oauth = oauth if oauth is not None else build_oauth()

    # specific origins are required because clients send credentials
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_key or "unset",
        session_cookie=SESSION_COOKIE_NAME,
        max_age=SESSION_MAX_AGE_SECONDS,
        same_site="lax",
        https_only=SECURE_COOKIE,
    )
    register_error_handlers(app, dev_mode=dev_mode)
    include_routers(app)

    @app.on_event("startup")
    def on_startup() -> None:
        if not session_key:
            raise ConfigurationError("SESSION_KEY is not set")
        if app.state.ctx is None:
            app.state.ctx = build_context(dev_mode=dev_mode)
        app_ctx: AppContext = app.state.ctx
        app_ctx.codec.ensure_secret()
        wait_for_db(app_ctx)
        if auto_migrate:
            app_ctx.store.create_schema()
        purged = app_ctx.store.delete_expired_refresh_tokens(app_ctx.now())
        logger.info(f"[startup] ready dev_mode={dev_mode} expired_refresh_tokens_purged={purged}")

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
