from typing import Any

from fastapi import APIRouter, Depends

from ..auth.guards import GuardContext, is_admin, path_id, require
from ..context import AppContext, get_context
from ..errors import ConstraintError, NotFoundError, ReferenceNotFoundError
from ..schemas import ActivityInput, LocationInput

router = APIRouter(prefix="/admin")


def _require_location(ctx: AppContext, location_id: int) -> None:
    if not ctx.store.find_by_id("locations", location_id):
        raise ReferenceNotFoundError("location not found")


def _delete_or_404(ctx: AppContext, kind: str, row_id: int, label: str) -> dict[str, Any]:
    if not ctx.store.find_by_id(kind, row_id):
        raise NotFoundError(f"{label} not found")
    try:
        ctx.store.delete(kind, row_id)
    except ConstraintError as exc:
        raise ConstraintError(f"{label} is still referenced") from exc
    return {"message": f"{label} deleted"}


@router.get("/activities")
def list_activities(
    guard: GuardContext = require(is_admin),
    ctx: AppContext = Depends(get_context),
) -> list[dict[str, Any]]:
    return ctx.store.find_all_where("activities")


@router.post("/activities", status_code=201)
def create_activity(
    payload: ActivityInput,
    guard: GuardContext = require(is_admin),
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    _require_location(ctx, payload.location_id)
    activity_id = ctx.store.insert("activities", {**payload.model_dump(), "created_by": guard.principal.id})
    return ctx.store.find_by_id("activities", activity_id)


@router.put("/activities/{id}")
def update_activity(
    payload: ActivityInput,
    guard: GuardContext = require(path_id("id"), is_admin),
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    activity_id = guard.path_id("id")
    if not ctx.store.find_by_id("activities", activity_id):
        raise NotFoundError("activity not found")
    _require_location(ctx, payload.location_id)
    ctx.store.update("activities", activity_id, payload.model_dump())
    return ctx.store.find_by_id("activities", activity_id)


@router.delete("/activities/{id}")
def delete_activity(
    guard: GuardContext = require(path_id("id"), is_admin),
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    return _delete_or_404(ctx, "activities", guard.path_id("id"), "activity")


@router.get("/locations")
def list_locations(
    guard: GuardContext = require(is_admin),
    ctx: AppContext = Depends(get_context),
) -> list[dict[str, Any]]:
    return ctx.store.find_all_where("locations")


@router.post("/locations", status_code=201)
def create_location(
    payload: LocationInput,
    guard: GuardContext = require(is_admin),
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    location_id = ctx.store.insert("locations", payload.model_dump())
    return ctx.store.find_by_id("locations", location_id)


@router.put("/locations/{id}")
def update_location(
    payload: LocationInput,
    guard: GuardContext = require(path_id("id"), is_admin),
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    location_id = guard.path_id("id")
    if not ctx.store.find_by_id("locations", location_id):
        raise NotFoundError("location not found")
    ctx.store.update("locations", location_id, payload.model_dump())
    return ctx.store.find_by_id("locations", location_id)


@router.delete("/locations/{id}")
def delete_location(
    guard: GuardContext = require(path_id("id"), is_admin),
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    return _delete_or_404(ctx, "locations", guard.path_id("id"), "location")


@router.put("/matches/{id}/cancel")
def cancel_match(
    guard: GuardContext = require(path_id("id"), is_admin),
    ctx: AppContext = Depends(get_context),
) -> dict[str, Any]:
    return ctx.engine.transition_match(guard.path_id("id"), "cancel")


@router.post("/matches/close-elapsed")
def close_elapsed_matches(
    guard: GuardContext = require(is_admin),
    ctx: AppContext = Depends(get_context),
) -> dict[str, int]:
    return {"closed": ctx.engine.close_elapsed_matches()}
