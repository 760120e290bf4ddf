from __future__ import annotations

from typing import Dict, FrozenSet, Literal, Tuple

InsigneStatus = Literal["draft", "generating", "awaiting_approval", "approved", "delivered"]

DRAFT: InsigneStatus = "draft"
GENERATING: InsigneStatus = "generating"
AWAITING_APPROVAL: InsigneStatus = "awaiting_approval"
APPROVED: InsigneStatus = "approved"
DELIVERED: InsigneStatus = "delivered"

STATUS_ORDER: Tuple[InsigneStatus, ...] = (DRAFT, GENERATING, AWAITING_APPROVAL, APPROVED, DELIVERED)

# Statuses a record may be in for the transition into the key to be applied.
TRANSITION_SOURCES: Dict[InsigneStatus, FrozenSet[InsigneStatus]] = {
    GENERATING: frozenset({DRAFT}),
    AWAITING_APPROVAL: frozenset({GENERATING}),
    APPROVED: frozenset({AWAITING_APPROVAL}),
    DELIVERED: frozenset({AWAITING_APPROVAL, APPROVED}),
}


def status_rank(status: str) -> int:
    try:
        return STATUS_ORDER.index(status)
    except ValueError:
        return -1


def is_at_or_past(status: str, target: InsigneStatus) -> bool:
    return status_rank(status) >= status_rank(target)


def can_transition(current: str, target: InsigneStatus) -> bool:
    return current in TRANSITION_SOURCES.get(target, frozenset())
