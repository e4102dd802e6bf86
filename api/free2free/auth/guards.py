"""
Authorization guards for FastAPI routes.

A guard is a callable over the per-request GuardContext that raises on
failure. ``require(*guards)`` turns a sequence of guards into one dependency
that runs them left to right; the first failure stops the rest and the
handler. Path id guards go first so malformed ids are a 400 before identity
is checked. Every authorization failure is a uniform 401.
"""

import logging
from typing import Any, Callable

from fastapi import Depends, Request

from ..context import AppContext, get_context
from ..errors import AuthenticationError, AuthFailure, AuthFailureReason, ValidationError
from .credentials import RequestIdentitySource
from .identity import Principal

logger = logging.getLogger(__name__)


class GuardContext:
    def __init__(self, request: Request, ctx: AppContext):
        self.request = request
        self.ctx = ctx
        self.path_ids: dict[str, int] = {}
        self._principal: Principal | None = None

    @property
    def principal(self) -> Principal:
        if self._principal is None:
            try:
                self._principal = self.ctx.resolver.resolve(RequestIdentitySource(self.request))
            except AuthFailure as exc:
                if exc.failure is AuthFailureReason.INTERNAL:
                    raise
                raise AuthFailure(exc.failure, "unauthorized") from exc
        return self._principal

    def path_id(self, name: str = "id") -> int:
        if name not in self.path_ids:
            self.path_ids[name] = parse_path_id(self.request.path_params.get(name), name)
        return self.path_ids[name]


Guard = Callable[[GuardContext], None]


def parse_path_id(raw: Any, name: str = "id") -> int:
    value = str(raw or "").strip()
    if not value.isdigit() or int(value) <= 0:
        raise ValidationError(f"invalid {name}")
    return int(value)


def _deny(guard: GuardContext, reason: str) -> AuthenticationError:
    principal_id = guard._principal.id if guard._principal else None
    logger.warning(f"[AUTH_DENIED] reason={reason} user_id={principal_id} path={guard.request.url.path}")
    return AuthenticationError("unauthorized", reason=reason)


def path_id(name: str = "id") -> Guard:
    def _guard(guard: GuardContext) -> None:
        guard.path_id(name)

    return _guard


def is_authenticated(guard: GuardContext) -> None:
    guard.principal


def is_admin(guard: GuardContext) -> None:
    if not guard.principal.is_admin:
        raise _deny(guard, "admin_required")


def is_match_organizer(name: str = "id") -> Guard:
    def _guard(guard: GuardContext) -> None:
        match_id = guard.path_id(name)
        principal = guard.principal
        match = guard.ctx.store.find_by_id("matches", match_id)
        if not match or match["organizer_id"] != principal.id:
            raise _deny(guard, "not_match_organizer")

    return _guard


def can_review_match(name: str = "id") -> Guard:
    def _guard(guard: GuardContext) -> None:
        match_id = guard.path_id(name)
        principal = guard.principal
        allowed, reason = guard.ctx.engine.can_review(principal.id, match_id)
        if not allowed:
            raise _deny(guard, reason)

    return _guard


def require(*guards: Guard):
    def _dep(request: Request, ctx: AppContext = Depends(get_context)) -> GuardContext:
        guard = GuardContext(request, ctx)
        for check in guards:
            check(guard)
        return guard

    return Depends(_dep)
