"""
Tests for the Facebook / Instagram login routes.

The provider round trip is replaced by patching the registered Authlib
client, so nothing here leaves the process.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

pytest.importorskip("fastapi")
from authlib.integrations.starlette_client import OAuthError
from fastapi.testclient import TestClient

from free2free.auth.oauth import build_oauth, profile_from_userinfo
from free2free.errors import AuthenticationError
from free2free.main import create_app

FACEBOOK_USERINFO = {
    "id": "10001",
    "name": "Dana",
    "email": "Dana@Example.com",
    "picture": {"data": {"url": "https://cdn.example.com/dana.jpg"}},
}


def _graph_response(status_code, payload=None):
    request = httpx.Request("GET", "https://graph.facebook.com/v19.0/me")
    return httpx.Response(status_code, json=payload, request=request)


@pytest.fixture
def provider(app, monkeypatch):
    """Swap the provider handshake for canned answers; returns the call log."""
    calls = {}

    def _install(name, userinfo=None, token_error=None, status_code=200):
        client = app.state.oauth.create_client(name)

        async def authorize_access_token(request, **kwargs):
            calls["code"] = request.query_params.get("code")
            if token_error is not None:
                raise token_error
            return {"access_token": "provider-token", "token_type": "bearer"}

        async def get(url, **kwargs):
            calls["url"] = url
            calls["params"] = kwargs.get("params")
            calls["token"] = kwargs.get("token")
            return _graph_response(status_code, userinfo)

        monkeypatch.setattr(client, "authorize_access_token", authorize_access_token)
        monkeypatch.setattr(client, "get", get)
        return calls

    return _install


class TestLoginRedirect:
    def test_facebook_redirects_to_the_dialog(self, client, ctx):
        ctx.dev_mode = False
        res = client.get("/auth/facebook", follow_redirects=False)
        assert res.status_code == 302

        location = urlparse(res.headers["location"])
        assert f"{location.scheme}://{location.netloc}{location.path}" == "https://www.facebook.com/v19.0/dialog/oauth"
        query = parse_qs(location.query)
        assert query["client_id"] == ["fb-client"]
        assert query["redirect_uri"] == ["http://testserver/auth/facebook/callback"]
        assert query["response_type"] == ["code"]
        assert query["state"]

    def test_instagram_redirects_to_its_authorize_page(self, client):
        res = client.get("/auth/instagram", follow_redirects=False)
        assert res.status_code == 302
        assert res.headers["location"].startswith("https://api.instagram.com/oauth/authorize?")

    def test_dev_login_is_gone_but_federated_login_stays(self, client, ctx):
        ctx.dev_mode = False
        assert client.post(
            "/auth/dev-login",
            json={"social_id": "10001", "provider": "facebook", "name": "Dana", "email": "dana@example.com"},
        ).status_code == 404
        assert client.get("/auth/facebook", follow_redirects=False).status_code == 302

    def test_unknown_provider_is_400(self, client):
        res = client.get("/auth/google", follow_redirects=False)
        assert res.status_code == 400
        assert res.json()["error"] == "invalid provider"

    def test_unconfigured_provider_is_404(self, ctx):
        app = create_app(ctx, session_key="k", oauth=build_oauth({"facebook": ("fb-client", "fb-secret")}))
        client = TestClient(app)
        res = client.get("/auth/instagram", follow_redirects=False)
        assert res.status_code == 404
        assert res.json()["error"] == "instagram login is not configured"

    def test_missing_client_id_leaves_provider_unregistered(self):
        oauth = build_oauth({"facebook": ("", ""), "instagram": ("ig-client", "ig-secret")})
        assert oauth.create_client("facebook") is None
        assert oauth.create_client("instagram") is not None

    def test_token_route_is_not_a_provider(self, client):
        res = client.get("/auth/token")
        assert res.status_code == 401
        assert res.json()["code_error"] == "AUTH_REQUIRED"


class TestCallback:
    def test_facebook_callback_logs_in(self, client, ctx, provider):
        ctx.dev_mode = False
        calls = provider("facebook", userinfo=FACEBOOK_USERINFO)

        res = client.get("/auth/facebook/callback", params={"code": "auth-code", "state": "s"})
        assert res.status_code == 200, res.text
        body = res.json()
        assert body["user"]["name"] == "Dana"
        assert body["user"]["email"] == "dana@example.com"
        assert body["token_type"] == "bearer"
        assert body["refresh_token"]

        assert calls["code"] == "auth-code"
        assert calls["url"] == "me"
        assert calls["params"] == {"fields": "id,name,email,picture.type(large)"}
        assert calls["token"]["access_token"] == "provider-token"

        users = ctx.store.find_all_where("users")
        assert len(users) == 1
        assert users[0]["social_id"] == "10001"
        assert users[0]["social_provider"] == "facebook"
        assert users[0]["avatar_url"] == "https://cdn.example.com/dana.jpg"

        assert client.get("/profile").json()["id"] == body["user"]["id"]

    def test_repeat_login_updates_the_same_user(self, client, ctx, provider):
        provider("facebook", userinfo=FACEBOOK_USERINFO)
        first = client.get("/auth/facebook/callback", params={"code": "a"}).json()
        provider("facebook", userinfo={**FACEBOOK_USERINFO, "name": "Dana R."})
        second = client.get("/auth/facebook/callback", params={"code": "b"}).json()

        assert first["user"]["id"] == second["user"]["id"]
        assert second["user"]["name"] == "Dana R."
        assert len(ctx.store.find_all_where("refresh_tokens")) == 1

    def test_instagram_callback_without_email(self, client, ctx, provider):
        provider("instagram", userinfo={"id": "778", "username": "dana.ig"})
        res = client.get("/auth/instagram/callback", params={"code": "c"})
        assert res.status_code == 200, res.text
        assert res.json()["user"]["name"] == "dana.ig"
        assert res.json()["user"]["email"] == "778@instagram.invalid"

    def test_denied_consent_is_401(self, client, ctx, provider):
        provider("facebook", token_error=OAuthError(error="access_denied"))
        res = client.get("/auth/facebook/callback", params={"error": "access_denied"})
        assert res.status_code == 401
        assert res.json()["reason"] == "oauth_failed"
        assert ctx.store.find_all_where("users") == []
        assert client.get("/profile").status_code == 401

    def test_failed_profile_fetch_is_401(self, client, ctx, provider):
        provider("facebook", userinfo={"error": "boom"}, status_code=500)
        res = client.get("/auth/facebook/callback", params={"code": "c"})
        assert res.status_code == 401
        assert res.json()["reason"] == "oauth_failed"
        assert ctx.store.find_all_where("users") == []

    def test_callback_for_unknown_provider_is_400(self, client):
        assert client.get("/auth/google/callback", params={"code": "c"}).status_code == 400


class TestProfileFromUserinfo:
    def test_facebook_fields(self):
        profile = profile_from_userinfo("facebook", FACEBOOK_USERINFO)
        assert profile.social_id == "10001"
        assert profile.provider == "facebook"
        assert profile.email == "dana@example.com"
        assert profile.avatar_url == "https://cdn.example.com/dana.jpg"

    def test_name_falls_back_to_provider_and_id(self):
        profile = profile_from_userinfo("facebook", {"id": 42, "email": "x@example.com"})
        assert profile.social_id == "42"
        assert profile.name == "facebook-42"

    def test_missing_id_is_rejected(self):
        with pytest.raises(AuthenticationError) as exc:
            profile_from_userinfo("facebook", {"name": "Dana"})
        assert exc.value.reason == "oauth_profile_missing_id"

    def test_malformed_email_is_rejected(self):
        with pytest.raises(AuthenticationError) as exc:
            profile_from_userinfo("facebook", {"id": "1", "name": "Dana", "email": "nobody"})
        assert exc.value.reason == "oauth_profile_invalid"
