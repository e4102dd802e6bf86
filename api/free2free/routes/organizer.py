from typing import Any

from fastapi import APIRouter, Depends

from ..auth.guards import GuardContext, is_match_organizer, path_id, require
from ..context import AppContext, get_context

router = APIRouter(prefix="/organizer/matches")

ORGANIZER = require(path_id("id"), is_match_organizer("id"))
ORGANIZER_OF_PARTICIPANT = require(path_id("id"), path_id("participant_id"), is_match_organizer("id"))


@router.get("/{id}/participants")
def list_participants(
    guard: GuardContext = ORGANIZER,
    ctx: AppContext = Depends(get_context),
) -> list[dict[str, Any]]:
    return ctx.engine.list_participants(guard.path_id("id"))


@router.put("/{id}/participants/{participant_id}/approve")
def approve_participant(
    guard: GuardContext = ORGANIZER_OF_PARTICIPANT,
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    return ctx.engine.approve_participant(guard.path_id("id"), guard.path_id("participant_id"))


@router.put("/{id}/participants/{participant_id}/reject")
def reject_participant(
    guard: GuardContext = ORGANIZER_OF_PARTICIPANT,
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    return ctx.engine.reject_participant(guard.path_id("id"), guard.path_id("participant_id"))


@router.put("/{id}/close")
def close_match(
    guard: GuardContext = ORGANIZER,
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    return ctx.engine.transition_match(guard.path_id("id"), "close")


@router.put("/{id}/complete")
def complete_match(
    guard: GuardContext = ORGANIZER,
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    return ctx.engine.transition_match(guard.path_id("id"), "complete")


@router.put("/{id}/cancel")
def cancel_match(
    guard: GuardContext = ORGANIZER,
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    return ctx.engine.transition_match(guard.path_id("id"), "cancel")
