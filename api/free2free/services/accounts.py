import logging
from datetime import timedelta
from typing import Any

from fastapi import Request
from pydantic import BaseModel, Field, field_validator

from ..auth.security import create_refresh_token, hash_refresh_token
from ..context import AppContext
from ..errors import AuthenticationError, ConflictError, PersistenceError
from ..repo import SqlStore

logger = logging.getLogger(__name__)

SOCIAL_PROVIDERS = {"facebook", "instagram"}


class SocialProfile(BaseModel):
    """What the federated-login library hands back once the provider handshake is done."""

    social_id: str = Field(min_length=1, max_length=255)
    provider: str
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=254)
    avatar_url: str | None = Field(default=None, max_length=500)

    @field_validator("provider")
    @classmethod
    def _known_provider(cls, value: str) -> str:
        provider = value.strip().lower()
        if provider not in SOCIAL_PROVIDERS:
            raise ValueError("provider must be one of: facebook, instagram")
        return provider

    @field_validator("email")
    @classmethod
    def _email_shape(cls, value: str) -> str:
        email = value.strip().lower()
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValueError("email must be a valid email")
        return email


def public_user(user: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": user["id"],
        "social_id": user["social_id"],
        "social_provider": user["social_provider"],
        "name": user["name"],
        "email": user["email"],
        "avatar_url": user.get("avatar_url"),
        "is_admin": bool(user.get("is_admin")),
        "created_at": user.get("created_at"),
        "updated_at": user.get("updated_at"),
    }


def save_or_update_user(store: SqlStore, profile: SocialProfile, now=None) -> dict[str, Any]:
    existing = store.find_one_where("users", social_id=profile.social_id, social_provider=profile.provider)
    fields = {"name": profile.name, "email": profile.email, "avatar_url": profile.avatar_url}
    if now is not None:
        fields["updated_at"] = now

    if existing:
        store.update("users", existing["id"], fields)
        return store.find_by_id("users", existing["id"])

    try:
        user_id = store.insert(
            "users",
            {"social_id": profile.social_id, "social_provider": profile.provider, "is_admin": False, **fields},
        )
    except ConflictError:
        # a concurrent first login created the row
        existing = store.find_one_where("users", social_id=profile.social_id, social_provider=profile.provider)
        if not existing:
            raise PersistenceError()
        store.update("users", existing["id"], fields)
        user_id = existing["id"]
    logger.info(f"[accounts] user upserted user_id={user_id} provider={profile.provider}")
    return store.find_by_id("users", user_id)


def start_session(request: Request, user: dict[str, Any]) -> None:
    request.session["user_id"] = int(user["id"])
    request.session["user_name"] = str(user.get("name") or "")


def clear_session(request: Request) -> None:
    if isinstance(request.scope.get("session"), dict):
        request.session.clear()


def revoke_user_tokens(store: SqlStore, user_id: int) -> int:
    return store.delete_where("refresh_tokens", user_id=user_id)


def issue_tokens(ctx: AppContext, user: dict[str, Any]) -> dict[str, Any]:
    """Issue an access token and a fresh refresh token, revoking the user's older refresh tokens."""
    access_token = ctx.codec.encode(
        user_id=int(user["id"]),
        user_name=str(user.get("name") or ""),
        is_admin=bool(user.get("is_admin")),
    )
    refresh_token = create_refresh_token()
    revoke_user_tokens(ctx.store, int(user["id"]))
    ctx.store.insert(
        "refresh_tokens",
        {
            "user_id": int(user["id"]),
            "token_hash": hash_refresh_token(refresh_token, ctx.jwt_secret),
            "expires_at": ctx.now() + timedelta(days=ctx.refresh_token_ttl_days),
            "created_at": ctx.now(),
        },
    )
    logger.info(f"[accounts] tokens issued user_id={user['id']}")
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": ctx.codec.ttl_minutes * 60,
    }


def rotate_refresh_token(ctx: AppContext, refresh_token: str) -> dict[str, Any]:
    if not refresh_token:
        raise AuthenticationError("missing refresh token", reason="missing_refresh_token")
    row = ctx.store.find_one_where("refresh_tokens", token_hash=hash_refresh_token(refresh_token, ctx.jwt_secret))
    if not row or row["expires_at"] <= ctx.now():
        raise AuthenticationError("invalid refresh token", reason="invalid_refresh_token")

    user = ctx.store.find_by_id("users", row["user_id"])
    if not user:
        raise AuthenticationError("invalid refresh token", reason="refresh_token_user_missing")

    if not ctx.store.delete("refresh_tokens", row["id"]):
        # already rotated by a concurrent request
        raise AuthenticationError("invalid refresh token", reason="refresh_token_reused")
    return issue_tokens(ctx, user)
