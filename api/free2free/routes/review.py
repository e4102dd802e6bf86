from typing import Any

from fastapi import APIRouter, Depends, Response

from ..auth.guards import GuardContext, can_review_match, is_authenticated, path_id, require
from ..config import RL_REVIEW_CREATE_LIMIT, RL_REVIEW_REACTION_LIMIT, RL_WINDOW_SECONDS
from ..context import AppContext, get_context
from ..schemas import CreateReviewRequest
from ..services.lifecycle import ReactionResult
from ..services.rate_limit import rate_limit_dependency

router = APIRouter()

RL_REVIEW_CREATE = rate_limit_dependency("review_create", RL_REVIEW_CREATE_LIMIT, RL_WINDOW_SECONDS)
RL_REVIEW_REACTION = rate_limit_dependency("review_reaction", RL_REVIEW_REACTION_LIMIT, RL_WINDOW_SECONDS)


def _reaction_response(result: ReactionResult, response: Response) -> dict[str, Any]:
    # a new reaction row is a 201; flipping an existing one is a 200
    if result.created:
        response.status_code = 201
        return result.review_like
    response.status_code = 200
    return {"message": result.message, "review_like": result.review_like}


@router.post("/review/matches/{id}", status_code=201)
def create_review(
    payload: CreateReviewRequest,
    guard: GuardContext = require(path_id("id"), can_review_match("id")),
    ctx: AppContext = Depends(get_context),
    _: None = RL_REVIEW_CREATE,
) -> dict[str, Any]:
    return ctx.engine.create_review(
        guard.principal.id,
        guard.path_id("id"),
        payload.reviewee_id,
        payload.score,
        payload.comment,
    )


@router.post("/review-like/reviews/{id}/like")
def like_review(
    response: Response,
    guard: GuardContext = require(path_id("id"), is_authenticated),
    ctx: AppContext = Depends(get_context),
    _: None = RL_REVIEW_REACTION,
) -> dict[str, Any]:
    result = ctx.engine.like_review(guard.principal.id, guard.path_id("id"))
    return _reaction_response(result, response)


@router.post("/review-like/reviews/{id}/dislike")
def dislike_review(
    response: Response,
    guard: GuardContext = require(path_id("id"), is_authenticated),
    ctx: AppContext = Depends(get_context),
    _: None = RL_REVIEW_REACTION,
) -> dict[str, Any]:
    result = ctx.engine.dislike_review(guard.principal.id, guard.path_id("id"))
    return _reaction_response(result, response)
