"""
encore.engine.badges — Threshold Badge Rules
=============================================

Registry of badges earned by crossing a score threshold inside one lounge.
Each rule is a pure predicate over a :class:`ScoreSnapshot`; the badge
service evaluates every rule after each score update and upserts the
badges whose predicate holds.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from encore.database.models import BadgeType

logger = logging.getLogger(__name__)

ACTIVE_COMMENTER_THRESHOLD = 200  # comment_score; ~100 comments at 2 pts
CONTENT_CREATOR_THRESHOLD = 500   # post_score; ~50 posts at 10 pts


# ---------------------------------------------------------------------------
# Snapshot passed to every rule
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ScoreSnapshot:
    """Category subtotals of one FanScore row, after the latest update."""

    total_score: int = 0
    monthly_score: int = 0
    post_score: int = 0
    comment_score: int = 0
    vote_score: int = 0
    quest_score: int = 0

    @classmethod
    def from_row(cls, row) -> ScoreSnapshot:
        return cls(
            total_score=row.total_score,
            monthly_score=row.monthly_score,
            post_score=row.post_score,
            comment_score=row.comment_score,
            vote_score=row.vote_score,
            quest_score=row.quest_score,
        )


# ---------------------------------------------------------------------------
# Rules — pure functions (snapshot) → bool
# ---------------------------------------------------------------------------
def _active_commenter(snap: ScoreSnapshot) -> bool:
    return snap.comment_score >= ACTIVE_COMMENTER_THRESHOLD


def _content_creator(snap: ScoreSnapshot) -> bool:
    return snap.post_score >= CONTENT_CREATOR_THRESHOLD


THRESHOLD_RULES: dict[BadgeType, Callable[[ScoreSnapshot], bool]] = {
    BadgeType.ACTIVE_COMMENTER: _active_commenter,
    BadgeType.CONTENT_CREATOR: _content_creator,
}


def qualifying_badges(snap: ScoreSnapshot) -> list[BadgeType]:
    """Return every threshold badge type whose rule holds for *snap*."""
    earned = [badge for badge, rule in THRESHOLD_RULES.items() if rule(snap)]
    if earned:
        logger.debug("Threshold badges qualifying: %s", [b.value for b in earned])
    return earned
