"""
encore.services.activity_service — Activity Entry Point
========================================================

Content and membership services report what a user just did; this module
maps the :class:`~encore.engine.actions.Activity` to its score credit and
quest action and applies both in one transaction.  A score credit needs a
lounge; quest progress does not (account-wide quests still advance).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import Engine

from encore.database.engine import get_session
from encore.database.models import FanScore, QuestProgress
from encore.engine.actions import ACTIVITY_EFFECTS, Activity
from encore.errors import ValidationError
from encore.services.quest_service import apply_progress
from encore.services.score_service import apply_score

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActivityResult:
    score: FanScore | None = None
    progress: list[QuestProgress] = field(default_factory=list)


def record_activity(
    engine: Engine,
    user_id: int,
    activity: Activity | str,
    lounge_id: int | None = None,
    *,
    score_overrides: dict[str, int] | None = None,
) -> ActivityResult:
    """Apply the score and quest effects of *activity* for *user_id*."""
    try:
        activity = Activity(activity)
    except ValueError as exc:
        raise ValidationError(f"Unknown activity: {activity}") from exc
    effect = ACTIVITY_EFFECTS[activity]

    with get_session(engine) as session:
        score = None
        if effect.score_action is not None and lounge_id is not None:
            score = apply_score(
                session, user_id, lounge_id, effect.score_action, overrides=score_overrides,
            )
        progress: list[QuestProgress] = []
        if effect.quest_action is not None:
            progress = apply_progress(session, user_id, effect.quest_action, lounge_id)

        session.flush()
        if score is not None:
            session.refresh(score)
        for row in progress:
            session.refresh(row)
        session.expunge_all()

    logger.info(
        "Activity %s by user %d (lounge=%s): score=%s quests=%d",
        activity.value, user_id, lounge_id,
        score.total_score if score is not None else None, len(progress),
    )
    return ActivityResult(score=score, progress=progress)
