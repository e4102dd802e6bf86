from ..errors import ValidationError

MATCH_STATUSES = ("open", "closed", "completed", "cancelled")
PARTICIPANT_STATUSES = ("pending", "approved", "rejected")

# action -> (allowed source statuses, target status)
_MATCH_ACTIONS: dict[str, tuple[frozenset[str], str]] = {
    "close": (frozenset({"open"}), "closed"),
    "complete": (frozenset({"open", "closed"}), "completed"),
    "cancel": (frozenset({"open"}), "cancelled"),
}

_PARTICIPANT_ACTIONS = {"approve": "approved", "reject": "rejected"}


def transition_match_status(current: str, action: str) -> str:
    if current not in MATCH_STATUSES:
        raise ValidationError(f"unknown match status: {current}")
    if action not in _MATCH_ACTIONS:
        raise ValidationError(f"unknown match action: {action}")
    sources, target = _MATCH_ACTIONS[action]
    if current == target:
        return current
    if current in sources:
        return target
    raise ValidationError(f"cannot {action} a {current} match")


def transition_participant_status(current: str, action: str) -> str:
    if current not in PARTICIPANT_STATUSES:
        raise ValidationError(f"unknown participant status: {current}")
    if action not in _PARTICIPANT_ACTIONS:
        raise ValidationError(f"unknown participant action: {action}")
    return _PARTICIPANT_ACTIONS[action]


def resolve_reaction(existing_is_like: bool | None, requested_is_like: bool) -> str:
    """Toggle-upsert decision for a review reaction: create, flip or duplicate."""
    if existing_is_like is None:
        return "create"
    if bool(existing_is_like) == bool(requested_is_like):
        return "duplicate"
    return "flip"
