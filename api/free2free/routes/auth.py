from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse

from ..auth.credentials import session_value
from ..auth.guards import GuardContext, is_authenticated, require
from ..auth.identity import coerce_user_id
from ..auth.oauth import begin_login, finish_login
from ..config import RL_AUTH_REFRESH_LIMIT, RL_WINDOW_SECONDS
from ..context import AppContext, get_context
from ..errors import NotFoundError
from ..schemas import RefreshRequest, TokenResponse
from ..services.accounts import (
    SocialProfile,
    clear_session,
    issue_tokens,
    public_user,
    revoke_user_tokens,
    rotate_refresh_token,
    save_or_update_user,
    start_session,
)
from ..services.rate_limit import rate_limit_dependency

router = APIRouter()

RL_AUTH_REFRESH = rate_limit_dependency("auth_refresh", RL_AUTH_REFRESH_LIMIT, RL_WINDOW_SECONDS)


def complete_social_login(ctx: AppContext, request: Request, profile: SocialProfile) -> dict[str, Any]:
    """Finish a federated login: persist the user, open a session and hand out tokens."""
    user = save_or_update_user(ctx.store, profile, now=ctx.now())
    start_session(request, user)
    tokens = issue_tokens(ctx, user)
    return {"user": public_user(user), **tokens}


@router.post("/auth/dev-login")
def dev_login(profile: SocialProfile, request: Request, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
    """Stand-in for the OAuth callback, only answered in dev mode."""
    if not ctx.dev_mode:
        raise NotFoundError()
    return complete_social_login(ctx, request, profile)


@router.get("/auth/token", response_model=TokenResponse)
def exchange_token(
    guard: GuardContext = require(is_authenticated),
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    user = ctx.store.find_by_id("users", guard.principal.id)
    if not user:
        raise NotFoundError("user not found")
    return issue_tokens(ctx, user)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh_tokens(
    payload: RefreshRequest,
    ctx: AppContext = Depends(get_context),
    _: None = RL_AUTH_REFRESH,
) -> dict[str, Any]:
    return rotate_refresh_token(ctx, payload.refresh_token.strip())


@router.get("/logout")
def logout(request: Request, ctx: AppContext = Depends(get_context)) -> RedirectResponse:
    user_id = coerce_user_id(session_value(request, "user_id"))
    if user_id is not None:
        revoke_user_tokens(ctx.store, user_id)
    clear_session(request)
    return RedirectResponse(url="/", status_code=307)


@router.get("/profile")
def profile(
    guard: GuardContext = require(is_authenticated),
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    user = ctx.store.find_by_id("users", guard.principal.id)
    if not user:
        raise NotFoundError("user not found")
    return public_user(user)


# registered last so /auth/token is not captured as a provider name
@router.get("/auth/{provider}")
async def oauth_begin(provider: str, request: Request):
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    return await begin_login(request.app.state.oauth, provider, request, redirect_uri)


@router.get("/auth/{provider}/callback", name="oauth_callback")
async def oauth_callback(provider: str, request: Request, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
    social_profile = await finish_login(request.app.state.oauth, provider, request)
    return await run_in_threadpool(complete_social_login, ctx, request, social_profile)
