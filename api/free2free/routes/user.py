from typing import Any

from fastapi import APIRouter, Depends

from ..auth.guards import GuardContext, is_authenticated, path_id, require
from ..config import RL_MATCH_JOIN_LIMIT, RL_WINDOW_SECONDS
from ..context import AppContext, get_context
from ..schemas import CreateMatchRequest
from ..services.rate_limit import rate_limit_dependency

router = APIRouter(prefix="/user")

RL_MATCH_JOIN = rate_limit_dependency("match_join", RL_MATCH_JOIN_LIMIT, RL_WINDOW_SECONDS)


@router.get("/matches")
def list_open_matches(
    guard: GuardContext = require(is_authenticated),
    ctx: AppContext = Depends(get_context),
) -> list[dict[str, Any]]:
    return ctx.engine.list_open_matches()


@router.post("/matches", status_code=201)
def create_match(
    payload: CreateMatchRequest,
    guard: GuardContext = require(is_authenticated),
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    return ctx.engine.create_match(guard.principal.id, payload.activity_id, payload.match_time)


@router.post("/matches/{id}/join", status_code=201)
def join_match(
    guard: GuardContext = require(path_id("id"), is_authenticated),
    ctx: AppContext = Depends(get_context),
    _: None = RL_MATCH_JOIN,
) -> dict[str, Any]:
    return ctx.engine.join_match(guard.principal.id, guard.path_id("id"))


@router.get("/past-matches")
def list_past_matches(
    guard: GuardContext = require(is_authenticated),
    ctx: AppContext = Depends(get_context),
) -> list[dict[str, Any]]:
    return ctx.engine.list_past_matches(guard.principal.id)
