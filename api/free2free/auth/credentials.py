from collections.abc import Mapping
from typing import Any, Protocol

from fastapi import Request

BEARER_PREFIX = "Bearer "


class IdentitySource(Protocol):
    def session_value(self, key: str) -> Any: ...

    def header_value(self, name: str) -> str | None: ...


def session_value(request: Request, key: str) -> Any:
    # request.session asserts when SessionMiddleware is missing; read the scope instead
    session = request.scope.get("session")
    if not isinstance(session, Mapping):
        return None
    return session.get(key)


def header_value(request: Request, name: str) -> str | None:
    return request.headers.get(name)


def extract_bearer(authorization: str | None) -> str | None:
    """Return the raw token, or None when the header is absent or not a Bearer header."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    return authorization[len(BEARER_PREFIX):].strip()


class RequestIdentitySource:
    def __init__(self, request: Request):
        self._request = request

    def session_value(self, key: str) -> Any:
        return session_value(self._request, key)

    def header_value(self, name: str) -> str | None:
        return header_value(self._request, name)
