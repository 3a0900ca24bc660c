"""
encore.services.ranking_service — Ranking Calculator
=====================================================

Read-only leaderboard for one lounge, sorted by lifetime or monthly score.

Two rank notions coexist:

* page entries use the **positional** rank ``skip + index + 1`` (ties
  broken by row id, matching :func:`score_service.update_rankings`);
* ``my_ranking`` uses the **competition** rank ``1 + count(strictly
  greater)``, so a user tied with others sees the best shared position
  regardless of the page requested.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import selectinload

from encore.database.engine import get_session
from encore.database.models import FanScore, Lounge
from encore.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

SORT_FIELDS: dict[str, str] = {
    "total": "total_score",
    "monthly": "monthly_score",
}


@dataclass(frozen=True, slots=True)
class RankingEntry:
    rank: int
    user_id: int
    nickname: str
    profile_image: str | None
    total_score: int
    monthly_score: int
    rank_change: int | None


@dataclass(frozen=True, slots=True)
class RankingPage:
    entries: list[RankingEntry] = field(default_factory=list)
    total_count: int = 0
    my_ranking: RankingEntry | None = None


def _entry(score: FanScore, rank: int) -> RankingEntry:
    return RankingEntry(
        rank=rank,
        user_id=score.user_id,
        nickname=score.user.nickname,
        profile_image=score.user.profile_image,
        total_score=score.total_score,
        monthly_score=score.monthly_score,
        rank_change=(
            score.previous_rank - rank if score.previous_rank is not None else None
        ),
    )


def get_ranking(
    engine: Engine,
    lounge_id: int,
    sort_by: str = "total",
    page: int = 1,
    limit: int = 20,
    requesting_user_id: int | None = None,
) -> RankingPage:
    """One page of *lounge_id*'s leaderboard, plus the caller's own position."""
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"sort_by must be one of {sorted(SORT_FIELDS)}")
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    column = getattr(FanScore, SORT_FIELDS[sort_by])
    skip = (page - 1) * limit

    with get_session(engine) as session:
        if session.get(Lounge, lounge_id) is None:
            raise NotFoundError(f"Lounge {lounge_id} not found")

        scores = session.scalars(
            select(FanScore)
            .options(selectinload(FanScore.user))
            .where(FanScore.lounge_id == lounge_id)
            .order_by(column.desc(), FanScore.id)
            .offset(skip)
            .limit(limit)
        ).all()
        entries = [_entry(score, skip + index + 1) for index, score in enumerate(scores)]

        total_count = session.scalar(
            select(func.count()).select_from(FanScore).where(FanScore.lounge_id == lounge_id)
        )

        my_ranking = None
        if requesting_user_id is not None:
            mine = session.scalar(
                select(FanScore)
                .options(selectinload(FanScore.user))
                .where(
                    FanScore.lounge_id == lounge_id,
                    FanScore.user_id == requesting_user_id,
                )
            )
            if mine is not None:
                ahead = session.scalar(
                    select(func.count()).select_from(FanScore).where(
                        FanScore.lounge_id == lounge_id,
                        column > getattr(mine, SORT_FIELDS[sort_by]),
                    )
                )
                my_ranking = _entry(mine, ahead + 1)

    logger.debug(
        "Ranking lounge=%d sort=%s page=%d → %d of %d",
        lounge_id, sort_by, page, len(entries), total_count,
    )
    return RankingPage(entries=entries, total_count=total_count, my_ranking=my_ranking)
