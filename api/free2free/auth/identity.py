"""
Identity resolution for incoming requests.

Two credential sources compete:
1. Server-side session (set after the federated login completes): carries ``user_id``
2. Bearer token (API clients): ``Authorization: Bearer <jwt>``

The resolver walks an ordered chain of strategies. A strategy returns a
Principal when it resolved the caller, None when its credential is not present
(the chain moves on), or raises AuthFailure to stop the chain. The admin flag
always comes from the stored user row.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from ..errors import AuthFailure, AuthFailureReason, ConfigurationError, PersistenceError
from ..repo import SqlStore
from .credentials import IdentitySource, extract_bearer
from .security import TokenCodec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    id: int
    name: str
    is_admin: bool

    @classmethod
    def from_user(cls, user: dict[str, Any]) -> "Principal":
        return cls(id=int(user["id"]), name=str(user.get("name") or ""), is_admin=bool(user.get("is_admin")))


def _log_auth_failure(
    reason: str,
    trace_id: str,
    auth_source: str | None = None,
    token_prefix: str | None = None,
    user_id: int | None = None,
) -> None:
    log_data = {
        "trace_id": trace_id,
        "reason": reason,
        "auth_source": auth_source,
        "token_prefix": token_prefix,
        "user_id": user_id,
    }
    logger.warning(f"[AUTH_FAILURE] {log_data}")


def coerce_user_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def _load_user(store: SqlStore, user_id: int, trace_id: str, auth_source: str) -> dict[str, Any]:
    try:
        user = store.find_by_id("users", user_id)
    except PersistenceError as exc:
        _log_auth_failure("user_lookup_failed", trace_id, auth_source, user_id=user_id)
        raise AuthFailure(AuthFailureReason.INTERNAL) from exc
    if not user:
        _log_auth_failure("user_not_found", trace_id, auth_source, user_id=user_id)
        raise AuthFailure(AuthFailureReason.NOT_FOUND, "user not found")
    return user


class SessionStrategy:
    name = "session"

    def __init__(self, store: SqlStore):
        self.store = store

    def resolve(self, source: IdentitySource, trace_id: str) -> Principal | None:
        user_id = coerce_user_id(source.session_value("user_id"))
        if user_id is None:
            return None
        user = _load_user(self.store, user_id, trace_id, self.name)
        return Principal.from_user(user)


class BearerTokenStrategy:
    name = "bearer"

    def __init__(self, store: SqlStore, codec: TokenCodec):
        self.store = store
        self.codec = codec

    def resolve(self, source: IdentitySource, trace_id: str) -> Principal | None:
        authorization = source.header_value("Authorization")
        token = extract_bearer(authorization)
        if token is None:
            return None
        if not token:
            _log_auth_failure("empty_token", trace_id, self.name)
            raise AuthFailure(AuthFailureReason.INVALID_TOKEN, "invalid token")

        token_prefix = token[:8] + "..." if len(token) > 8 else token
        try:
            claims = self.codec.decode(token)
        except ConfigurationError as exc:
            _log_auth_failure("secret_misconfigured", trace_id, self.name, token_prefix)
            raise AuthFailure(AuthFailureReason.INTERNAL) from exc
        except AuthFailure as exc:
            _log_auth_failure(exc.message.replace(" ", "_"), trace_id, self.name, token_prefix)
            raise

        logger.debug(f"[auth] token valid, user_id={claims.user_id}")
        user = _load_user(self.store, claims.user_id, trace_id, self.name)
        return Principal.from_user(user)


class IdentityResolver:
    def __init__(self, strategies: list[Any]):
        self.strategies = strategies

    @classmethod
    def default(cls, store: SqlStore, codec: TokenCodec) -> "IdentityResolver":
        return cls([SessionStrategy(store), BearerTokenStrategy(store, codec)])

    def resolve(self, source: IdentitySource) -> Principal:
        trace_id = str(uuid.uuid4())
        for strategy in self.strategies:
            principal = strategy.resolve(source, trace_id)
            if principal is not None:
                logger.info(f"[auth] SUCCESS user_id={principal.id} source={strategy.name}")
                return principal

        _log_auth_failure("missing_credential", trace_id, auth_source="none")
        raise AuthFailure(AuthFailureReason.NO_CREDENTIAL, "Authentication required")
