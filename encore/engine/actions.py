"""
encore.engine.actions — Action Taxonomy
========================================

Closed mappings from an action type to what it feeds:

* :data:`SCORE_CATEGORY` — which FanScore category column a
  :class:`ScoreAction` increments.
* :data:`SCORE_POINTS` — default points per :class:`ScoreAction`.
* :data:`ACTIVITY_EFFECTS` — which score action and which quest action a
  user-facing :class:`Activity` produces.

Every enum member has an entry; ``tests/test_actions.py`` keeps it that way.
This module is pure data — no database I/O.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from encore.database.models import ScoreAction, QuestAction

__all__ = [
    "Activity",
    "ActivityEffect",
    "ACTIVITY_EFFECTS",
    "SCORE_CATEGORY",
    "SCORE_POINTS",
    "resolve_points",
]


# ---------------------------------------------------------------------------
# Score ledger mappings
# ---------------------------------------------------------------------------
SCORE_CATEGORY: dict[ScoreAction, str] = {
    ScoreAction.POST_CREATED: "post_score",
    ScoreAction.COMMENT_CREATED: "comment_score",
    ScoreAction.VOTE_RECEIVED: "vote_score",
    ScoreAction.QUEST_COMPLETED: "quest_score",
}

SCORE_POINTS: dict[ScoreAction, int] = {
    ScoreAction.POST_CREATED: 10,
    ScoreAction.COMMENT_CREATED: 2,
    ScoreAction.VOTE_RECEIVED: 1,
    ScoreAction.QUEST_COMPLETED: 0,  # each quest carries its own reward
}


def resolve_points(
    action: ScoreAction,
    custom_amount: int | None = None,
    overrides: dict[str, int] | None = None,
) -> int:
    """Points for *action*: explicit amount, then config override, then default."""
    if custom_amount is not None:
        return custom_amount
    if overrides and action.value in overrides:
        return overrides[action.value]
    return SCORE_POINTS[action]


# ---------------------------------------------------------------------------
# Activities — what collaborators report
# ---------------------------------------------------------------------------
class Activity(enum.StrEnum):
    """User-facing actions reported by the content/membership services."""
    POST_CREATED = "POST_CREATED"
    COMMENT_CREATED = "COMMENT_CREATED"
    VOTE_CAST = "VOTE_CAST"
    VOTE_RECEIVED = "VOTE_RECEIVED"
    LOUNGE_JOINED = "LOUNGE_JOINED"
    DAILY_LOGIN = "DAILY_LOGIN"


@dataclass(frozen=True, slots=True)
class ActivityEffect:
    score_action: ScoreAction | None
    quest_action: QuestAction | None


ACTIVITY_EFFECTS: dict[Activity, ActivityEffect] = {
    Activity.POST_CREATED: ActivityEffect(ScoreAction.POST_CREATED, QuestAction.WRITE_POST),
    Activity.COMMENT_CREATED: ActivityEffect(
        ScoreAction.COMMENT_CREATED, QuestAction.WRITE_COMMENT,
    ),
    Activity.VOTE_CAST: ActivityEffect(None, QuestAction.VOTE),
    Activity.VOTE_RECEIVED: ActivityEffect(ScoreAction.VOTE_RECEIVED, None),
    Activity.LOUNGE_JOINED: ActivityEffect(None, QuestAction.JOIN_LOUNGE),
    Activity.DAILY_LOGIN: ActivityEffect(None, QuestAction.DAILY_LOGIN),
}
