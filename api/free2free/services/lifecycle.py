"""
State transitions for matches, participants, reviews and review reactions.

Every transition is a single row insert or update. Uniqueness checks are
read-then-write, so the database unique constraints settle races: a late
ConflictError from the store is reported with the same message as the
pre-check.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from ..config import REVIEW_WINDOW_HOURS
from ..errors import ConflictError, NotFoundError, ReferenceNotFoundError, ValidationError
from ..repo import SqlStore, as_utc
from .state_machine import resolve_reaction, transition_match_status, transition_participant_status

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 500
MIN_SCORE = 3
MAX_SCORE = 5


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@dataclass
class ReactionResult:
    review_like: dict[str, Any]
    created: bool

    @property
    def message(self) -> str:
        polarity = "like" if self.review_like["is_like"] else "dislike"
        return f"{polarity} recorded" if self.created else f"changed to {polarity}"


class LifecycleEngine:
    def __init__(
        self,
        store: SqlStore,
        clock: Callable[[], datetime] = _now_utc,
        review_window: timedelta = timedelta(hours=REVIEW_WINDOW_HOURS),
    ):
        self.store = store
        self.clock = clock
        self.review_window = review_window

    def now(self) -> datetime:
        return as_utc(self.clock())

    # -- matches -------------------------------------------------------------

    def create_match(self, actor_id: int, activity_id: Any, match_time: datetime | None) -> dict[str, Any]:
        if not _positive_int(activity_id):
            raise ValidationError("activity_id is required")
        if match_time is None:
            raise ValidationError("match_time is required")
        match_time = as_utc(match_time)
        if match_time <= self.now():
            raise ValidationError("match_time must be in the future")

        if not self.store.find_by_id("activities", activity_id):
            raise ReferenceNotFoundError("activity not found")

        match_id = self.store.insert(
            "matches",
            {
                "activity_id": activity_id,
                "organizer_id": actor_id,
                "match_time": match_time,
                "status": "open",
            },
        )
        logger.info(f"[lifecycle] match created match_id={match_id} organizer_id={actor_id}")
        return self.store.find_by_id("matches", match_id)

    def get_match(self, match_id: int) -> dict[str, Any]:
        match = self.store.find_by_id("matches", match_id)
        if not match:
            raise NotFoundError("match not found")
        return match

    def transition_match(self, match_id: int, action: str) -> dict[str, Any]:
        match = self.get_match(match_id)
        new_status = transition_match_status(match["status"], action)
        if new_status != match["status"]:
            updated = self.store.update("matches", match_id, {"status": new_status}, status=match["status"])
            if not updated:
                # someone moved the match first; re-validate against the fresh row
                match = self.get_match(match_id)
                new_status = transition_match_status(match["status"], action)
                if new_status != match["status"]:
                    raise ConflictError("match status changed concurrently")
            logger.info(f"[lifecycle] match {action} match_id={match_id} {match['status']} -> {new_status}")
        return {**match, "status": new_status}

    def close_elapsed_matches(self) -> int:
        closed = self.store.close_elapsed_matches(self.now())
        if closed:
            logger.info(f"[lifecycle] closed {closed} elapsed matches")
        return closed

    def list_open_matches(self) -> list[dict[str, Any]]:
        return self.store.list_open_matches(self.now())

    def list_past_matches(self, actor_id: int) -> list[dict[str, Any]]:
        return self.store.list_completed_matches_for_user(actor_id)

    # -- participants --------------------------------------------------------

    def join_match(self, actor_id: int, match_id: int) -> dict[str, Any]:
        match = self.store.find_by_id("matches", match_id)
        if not match:
            raise ReferenceNotFoundError("match not found or closed")
        if match["status"] != "open" or match["match_time"] <= self.now():
            raise ValidationError("match not found or closed")

        if self.store.find_one_where("match_participants", match_id=match_id, user_id=actor_id):
            raise ConflictError("already joined")

        try:
            participant_id = self.store.insert(
                "match_participants",
                {
                    "match_id": match_id,
                    "user_id": actor_id,
                    "status": "pending",
                    "joined_at": self.now(),
                },
            )
        except ConflictError as exc:
            raise ConflictError("already joined") from exc
        logger.info(f"[lifecycle] joined match_id={match_id} user_id={actor_id} participant_id={participant_id}")
        return self.store.find_by_id("match_participants", participant_id)

    def list_participants(self, match_id: int) -> list[dict[str, Any]]:
        return self.store.find_all_where("match_participants", order_by="joined_at", match_id=match_id)

    def _set_participant_status(self, match_id: int, participant_id: int, action: str) -> dict[str, Any]:
        participant = self.store.find_one_where("match_participants", id=participant_id, match_id=match_id)
        if not participant:
            raise NotFoundError("participant not found in this match")
        new_status = transition_participant_status(participant["status"], action)
        self.store.update("match_participants", participant_id, {"status": new_status})
        logger.info(f"[lifecycle] participant {action} match_id={match_id} participant_id={participant_id}")
        return {**participant, "status": new_status}

    def approve_participant(self, match_id: int, participant_id: int) -> dict[str, Any]:
        return self._set_participant_status(match_id, participant_id, "approve")

    def reject_participant(self, match_id: int, participant_id: int) -> dict[str, Any]:
        return self._set_participant_status(match_id, participant_id, "reject")

    # -- reviews -------------------------------------------------------------

    def can_review(self, actor_id: int, match_id: int) -> tuple[bool, str]:
        match = self.store.find_by_id("matches", match_id)
        if not match:
            return False, "match_not_found"
        if match["status"] != "completed":
            return False, "match_not_completed"
        if match["organizer_id"] != actor_id and not self.store.find_one_where(
            "match_participants", match_id=match_id, user_id=actor_id, status="approved"
        ):
            return False, "not_a_participant"
        if self.now() >= match["match_time"] + self.review_window:
            return False, "review_window_closed"
        return True, "ok"

    def create_review(
        self,
        actor_id: int,
        match_id: int,
        reviewee_id: Any,
        score: Any,
        comment: str | None = None,
    ) -> dict[str, Any]:
        if not _positive_int(reviewee_id):
            raise ValidationError("reviewee_id is required")
        if reviewee_id == actor_id:
            raise ValidationError("cannot review yourself")
        if not isinstance(score, int) or isinstance(score, bool) or not MIN_SCORE <= score <= MAX_SCORE:
            raise ValidationError(f"score must be between {MIN_SCORE} and {MAX_SCORE}")
        comment = (comment or "").strip()
        if len(comment) > MAX_COMMENT_LENGTH:
            raise ValidationError(f"comment must be {MAX_COMMENT_LENGTH} characters or fewer")

        if not self.store.find_by_id("users", reviewee_id):
            raise ReferenceNotFoundError("reviewee not found")
        if self.store.find_one_where("reviews", reviewer_id=actor_id, reviewee_id=reviewee_id, match_id=match_id):
            raise ConflictError("already reviewed")

        try:
            review_id = self.store.insert(
                "reviews",
                {
                    "match_id": match_id,
                    "reviewer_id": actor_id,
                    "reviewee_id": reviewee_id,
                    "score": score,
                    "comment": comment,
                    "created_at": self.now(),
                },
            )
        except ConflictError as exc:
            raise ConflictError("already reviewed") from exc
        logger.info(f"[lifecycle] review created review_id={review_id} match_id={match_id} reviewer_id={actor_id}")
        return self.store.find_by_id("reviews", review_id)

    def _react(self, actor_id: int, review_id: int, is_like: bool) -> ReactionResult:
        duplicate = "already liked" if is_like else "already disliked"
        if not self.store.find_by_id("reviews", review_id):
            raise ReferenceNotFoundError("review not found")

        existing = self.store.find_one_where("review_likes", review_id=review_id, user_id=actor_id)
        decision = resolve_reaction(existing["is_like"] if existing else None, is_like)

        if decision == "duplicate":
            raise ConflictError(duplicate)

        if decision == "flip":
            # compare-and-set keeps the row id; losing the race means the other request set our polarity
            updated = self.store.update("review_likes", existing["id"], {"is_like": is_like}, is_like=existing["is_like"])
            if not updated:
                raise ConflictError(duplicate)
            return ReactionResult(review_like={**existing, "is_like": is_like}, created=False)

        try:
            like_id = self.store.insert("review_likes", {"review_id": review_id, "user_id": actor_id, "is_like": is_like})
        except ConflictError as exc:
            raise ConflictError(duplicate) from exc
        return ReactionResult(
            review_like={"id": like_id, "review_id": review_id, "user_id": actor_id, "is_like": is_like},
            created=True,
        )

    def like_review(self, actor_id: int, review_id: int) -> ReactionResult:
        return self._react(actor_id, review_id, True)

    def dislike_review(self, actor_id: int, review_id: int) -> ReactionResult:
        return self._react(actor_id, review_id, False)
