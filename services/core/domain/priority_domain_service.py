"""
Priority Domain Service - pure domain layer
===========================================
No sessions, no commits, no async, no logging, no side effects.
Only business rules and invariants.

Author: Daily Priorities Core Team
Date: 2026-10-16
"""
import math
import re
from typing import Optional
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

from models import PriorityState
from exceptions import InvalidPriorityState, PriorityNotFound
from priority_config import SCORE_MIN, SCORE_MAX


class TransitionReason(Enum):
    """Typical transition reasons"""
    USER_DELETE = "User delete request"
    USER_RESTORE = "User restore request"
    USER_PERMANENT_DELETE = "User permanent delete request"
    GRACE_EXPIRED = "Soft delete grace window expired"
    DUPLICATE_REMOVED = "Duplicate priority removed"
    SIMILAR_DUPLICATE_REMOVED = "Similar priority removed"


@dataclass
class PriorityTransitioned:
    """Domain event - a state change was applied"""
    priority_id: str
    from_state: str
    to_state: str
    reason: str
    timestamp: str


def parse_priority_id(priority_id) -> UUID:
    """Malformed ids are indistinguishable from unknown ones"""
    if isinstance(priority_id, UUID):
        return priority_id
    try:
        return UUID(str(priority_id))
    except ValueError:
        raise PriorityNotFound(str(priority_id)) from None


def clamp_score(value) -> int:
    """
    Clamp any numeric score into [SCORE_MIN, SCORE_MAX] as an int.

    Infinities land on the nearest bound; NaN has no order and is refused.
    """
    if value is None:
        return SCORE_MIN
    if isinstance(value, float):
        if math.isnan(value):
            raise ValueError("score must be a number, got NaN")
        if math.isinf(value):
            return SCORE_MAX if value > 0 else SCORE_MIN
    return int(max(SCORE_MIN, min(SCORE_MAX, round(value))))


_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_title(title: str) -> str:
    """Lowercase, drop punctuation and symbols (the fires flame included), collapse whitespace"""
    text = _PUNCTUATION_RE.sub("", title.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def levenshtein_distance(a: str, b: str) -> int:
    """Single-character insertions, deletions and substitutions"""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (char_a != char_b),
            ))
        previous = current
    return previous[-1]


def title_similarity(a: str, b: str) -> float:
    """
    1 - distance / len(longer) on normalised titles.

    Two titles that both normalise to "" count as identical.
    """
    a, b = normalize_title(a), normalize_title(b)
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(a, b)) / longest


class PriorityDomainService:
    """
    Pure domain logic for priority state transitions.

    Responsibilities:
    - transition validation (invariants)
    - the column values a transition writes
    - domain events

    Does NOT:
    - commit/flush
    - async
    - logging
    """

    TERMINAL_STATES = {PriorityState.PURGED}

    # from_state -> allowed to_states. active -> purged is absent on purpose.
    ALLOWED_TRANSITIONS = {
        PriorityState.ACTIVE: {PriorityState.SOFT_DELETED},
        PriorityState.SOFT_DELETED: {PriorityState.ACTIVE, PriorityState.PURGED},
        PriorityState.PURGED: set(),
    }

    # Verb used in error messages
    ACTIONS = {
        PriorityState.SOFT_DELETED: "delete",
        PriorityState.ACTIVE: "restore",
        PriorityState.PURGED: "permanently delete",
    }

    def can_transition(self, from_state, to_state) -> bool:
        return PriorityState(to_state) in self.ALLOWED_TRANSITIONS[PriorityState(from_state)]

    def validate_transition(self, priority_id, from_state, to_state) -> None:
        """
        Raises:
            InvalidPriorityState: when from_state -> to_state is not allowed
        """
        if not self.can_transition(from_state, to_state):
            raise InvalidPriorityState(
                priority_id=str(priority_id),
                current_state=PriorityState(from_state).value,
                requested=self.ACTIONS[PriorityState(to_state)],
            )

    def transition_values(self, to_state, now: Optional[datetime] = None) -> dict:
        """
        Column values for entering `to_state`.

        Keeps `deleted_at` set iff the state is soft_deleted. Purge has no
        values - the row is removed.
        """
        now = now or datetime.now(timezone.utc)
        to_state = PriorityState(to_state)
        if to_state == PriorityState.SOFT_DELETED:
            return {"state": to_state.value, "deleted_at": now, "updated_at": now}
        if to_state == PriorityState.ACTIVE:
            return {"state": to_state.value, "deleted_at": None, "updated_at": now}
        raise ValueError(f"No column values for terminal state '{to_state.value}'")

    def event(self, priority_id, from_state, to_state, reason) -> PriorityTransitioned:
        return PriorityTransitioned(
            priority_id=str(priority_id),
            from_state=PriorityState(from_state).value,
            to_state=PriorityState(to_state).value,
            reason=reason.value if isinstance(reason, TransitionReason) else str(reason),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )


priority_domain_service = PriorityDomainService()
