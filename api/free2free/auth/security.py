import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from ..config import ACCESS_TOKEN_TTL_MINUTES, MIN_JWT_SECRET_BYTES
from ..errors import AuthFailure, AuthFailureReason, ConfigurationError

ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    user_name: str
    is_admin: bool
    issued_at: int
    expires_at: int


class TokenCodec:
    """Signs and verifies the compact access token handed to API clients."""

    def __init__(self, secret: str, ttl_minutes: int = ACCESS_TOKEN_TTL_MINUTES):
        self._secret = secret or ""
        self.ttl_minutes = ttl_minutes

    def ensure_secret(self) -> None:
        if not self._secret:
            raise ConfigurationError("JWT secret not configured")
        if len(self._secret.encode("utf-8")) < MIN_JWT_SECRET_BYTES:
            raise ConfigurationError(f"JWT secret must be at least {MIN_JWT_SECRET_BYTES} bytes")

    def encode(self, *, user_id: int, user_name: str, is_admin: bool, now: datetime | None = None) -> str:
        self.ensure_secret()
        now = now or datetime.now(timezone.utc)
        exp = now + timedelta(minutes=self.ttl_minutes)
        payload: dict[str, Any] = {
            "user_id": int(user_id),
            "user_name": user_name,
            "is_admin": bool(is_admin),
            "iat": int(now.timestamp()),
            "exp": int(exp.timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def decode(self, token: str) -> TokenClaims:
        self.ensure_secret()
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthFailure(AuthFailureReason.INVALID_TOKEN, "token expired") from exc
        except jwt.PyJWTError as exc:
            raise AuthFailure(AuthFailureReason.INVALID_TOKEN, "invalid token") from exc

        user_id = payload.get("user_id")
        if not isinstance(user_id, int) or isinstance(user_id, bool) or user_id <= 0:
            raise AuthFailure(AuthFailureReason.INVALID_TOKEN, "invalid token subject")
        return TokenClaims(
            user_id=user_id,
            user_name=str(payload.get("user_name") or ""),
            is_admin=bool(payload.get("is_admin")),
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )


def create_refresh_token() -> str:
    return secrets.token_urlsafe(32)


def hash_refresh_token(refresh_token: str, secret: str) -> str:
    if not secret:
        raise ConfigurationError("JWT secret not configured")
    return hashlib.sha256(f"{secret}:{refresh_token}".encode("utf-8")).hexdigest()
