"""
Federated login through Facebook and Instagram.

Authlib drives the authorization-code handshake; its state lives in the
Starlette session. Once the provider hands back a token, the profile
endpoint is read and mapped onto a SocialProfile.
"""

import logging
from typing import Any

import httpx
from authlib.integrations.starlette_client import OAuth, OAuthError
from fastapi import Request
from pydantic import ValidationError as PydanticValidationError

from ..config import (
    FACEBOOK_CLIENT_ID,
    FACEBOOK_CLIENT_SECRET,
    INSTAGRAM_CLIENT_ID,
    INSTAGRAM_CLIENT_SECRET,
    OAUTH_PROVIDERS,
)
from ..errors import AuthenticationError, NotFoundError, ValidationError
from ..services.accounts import SocialProfile

logger = logging.getLogger(__name__)

GRAPH_API = "https://graph.facebook.com/v19.0/"

PROVIDER_SETTINGS: dict[str, dict[str, Any]] = {
    "facebook": {
        "authorize_url": "https://www.facebook.com/v19.0/dialog/oauth",
        "access_token_url": GRAPH_API + "oauth/access_token",
        "api_base_url": GRAPH_API,
        "client_kwargs": {"scope": "email public_profile"},
        "profile_path": "me",
        "profile_fields": "id,name,email,picture.type(large)",
    },
    "instagram": {
        "authorize_url": "https://api.instagram.com/oauth/authorize",
        "access_token_url": "https://api.instagram.com/oauth/access_token",
        "api_base_url": "https://graph.instagram.com/",
        "client_kwargs": {"scope": "user_profile", "token_endpoint_auth_method": "client_secret_post"},
        "profile_path": "me",
        "profile_fields": "id,username",
    },
}


def build_oauth(credentials: dict[str, tuple[str, str]] | None = None) -> OAuth:
    """Register every provider that has a client id; the others answer 404."""
    if credentials is None:
        credentials = {
            "facebook": (FACEBOOK_CLIENT_ID, FACEBOOK_CLIENT_SECRET),
            "instagram": (INSTAGRAM_CLIENT_ID, INSTAGRAM_CLIENT_SECRET),
        }
    oauth = OAuth()
    for provider, (client_id, client_secret) in credentials.items():
        if not client_id:
            continue
        settings = PROVIDER_SETTINGS[provider]
        oauth.register(
            name=provider,
            client_id=client_id,
            client_secret=client_secret,
            authorize_url=settings["authorize_url"],
            access_token_url=settings["access_token_url"],
            api_base_url=settings["api_base_url"],
            client_kwargs=settings["client_kwargs"],
        )
    return oauth


def provider_client(oauth: OAuth, provider: str):
    if provider not in OAUTH_PROVIDERS:
        raise ValidationError("invalid provider")
    client = oauth.create_client(provider)
    if client is None:
        raise NotFoundError(f"{provider} login is not configured")
    return client


def profile_from_userinfo(provider: str, userinfo: dict[str, Any]) -> SocialProfile:
    social_id = str(userinfo.get("id") or "").strip()
    if not social_id:
        raise AuthenticationError("OAuth authentication failed", reason="oauth_profile_missing_id")

    name = str(userinfo.get("name") or userinfo.get("username") or "").strip()[:100] or f"{provider}-{social_id}"
    # Instagram never shares an address; keep the column filled with an undeliverable one
    email = str(userinfo.get("email") or "").strip() or f"{social_id}@{provider}.invalid"
    picture = userinfo.get("picture")
    avatar_url = None
    if isinstance(picture, dict):
        avatar_url = (picture.get("data") or {}).get("url")
    try:
        return SocialProfile(social_id=social_id, provider=provider, name=name, email=email, avatar_url=avatar_url)
    except PydanticValidationError as exc:
        logger.warning(f"[oauth] unusable profile provider={provider} social_id={social_id}: {exc}")
        raise AuthenticationError("OAuth authentication failed", reason="oauth_profile_invalid") from exc


async def begin_login(oauth: OAuth, provider: str, request: Request, redirect_uri: str):
    client = provider_client(oauth, provider)
    return await client.authorize_redirect(request, redirect_uri)


async def finish_login(oauth: OAuth, provider: str, request: Request) -> SocialProfile:
    client = provider_client(oauth, provider)
    settings = PROVIDER_SETTINGS[provider]
    try:
        token = await client.authorize_access_token(request)
        res = await client.get(settings["profile_path"], token=token, params={"fields": settings["profile_fields"]})
        res.raise_for_status()
        userinfo = res.json()
    except (OAuthError, httpx.HTTPError) as exc:
        logger.warning(f"[oauth] handshake failed provider={provider} error={exc}")
        raise AuthenticationError("OAuth authentication failed", reason="oauth_failed") from exc
    return profile_from_userinfo(provider, userinfo)
