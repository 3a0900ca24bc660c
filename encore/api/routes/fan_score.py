"""
encore.api.routes.fan_score — Scores, rankings & badges
========================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from encore.api.deps import (
    get_config,
    get_current_user,
    get_engine,
    get_optional_user,
    page_limit,
)
from encore.config import EncoreConfig
from encore.constants import as_utc
from encore.database.models import FanBadge, FanScore
from encore.services import badge_service, ranking_service, score_service
from encore.services.ranking_service import RankingEntry

router = APIRouter(prefix="/fan-score", tags=["fan-score"])
logger = logging.getLogger(__name__)


def _iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


def score_dict(score: FanScore) -> dict:
    return {
        "id": score.id,
        "user_id": score.user_id,
        "lounge_id": score.lounge_id,
        "total_score": score.total_score,
        "monthly_score": score.monthly_score,
        "post_score": score.post_score,
        "comment_score": score.comment_score,
        "vote_score": score.vote_score,
        "quest_score": score.quest_score,
        "rank": score.rank,
        "previous_rank": score.previous_rank,
    }


def badge_dict(badge: FanBadge) -> dict:
    return {
        "id": badge.id,
        "user_id": badge.user_id,
        "lounge_id": badge.lounge_id,
        "type": badge.type,
        "name": badge.name,
        "description": badge.description,
        "icon_url": badge.icon_url,
        "awarded_at": _iso(badge.awarded_at),
        "expires_at": _iso(badge.expires_at),
    }


def _entry_dict(entry: RankingEntry) -> dict:
    return {
        "rank": entry.rank,
        "user_id": entry.user_id,
        "nickname": entry.nickname,
        "profile_image": entry.profile_image,
        "total_score": entry.total_score,
        "monthly_score": entry.monthly_score,
        "rank_change": entry.rank_change,
    }


# ---------------------------------------------------------------------------
# Rankings
# ---------------------------------------------------------------------------
@router.get("/lounge/{lounge_id}/ranking")
def lounge_ranking(
    lounge_id: int,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    sort_by: str = Query("total", pattern="^(total|monthly)$"),
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
    cfg: EncoreConfig = Depends(get_config),
):
    result = ranking_service.get_ranking(
        engine,
        lounge_id,
        sort_by=sort_by,
        page=page,
        limit=page_limit(cfg, limit),
        requesting_user_id=user["user_id"] if user else None,
    )
    return {
        "rankings": [_entry_dict(e) for e in result.entries],
        "total_count": result.total_count,
        "my_ranking": _entry_dict(result.my_ranking) if result.my_ranking else None,
    }


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------
@router.get("/lounge/{lounge_id}/my-score")
def my_lounge_score(
    lounge_id: int,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    score = score_service.get_or_create_score(engine, user["user_id"], lounge_id)
    return score_dict(score)


@router.get("/my-scores")
def my_scores(
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    scores = score_service.get_all_scores_for_user(engine, user["user_id"])
    return {
        "scores": [
            {
                **score_dict(s),
                "lounge": {
                    "id": s.lounge.id,
                    "name": s.lounge.name,
                    "slug": s.lounge.slug,
                    "icon": s.lounge.icon,
                },
            }
            for s in scores
        ]
    }


@router.get("/user/{user_id}/lounge/{lounge_id}")
def user_lounge_score(
    user_id: int,
    lounge_id: int,
    engine=Depends(get_engine),
):
    score = score_service.get_user_score(engine, user_id, lounge_id)
    if score is None:
        raise HTTPException(404, "No score for this user in this lounge")
    return score_dict(score)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------
def _badges_response(badges: list[FanBadge]) -> dict:
    return {"badges": [badge_dict(b) for b in badges], "total_count": len(badges)}


@router.get("/my-badges")
def my_badges(
    lounge_id: int | None = None,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return _badges_response(badge_service.get_user_badges(engine, user["user_id"], lounge_id))


@router.get("/user/{user_id}/badges")
def user_badges(
    user_id: int,
    lounge_id: int | None = None,
    engine=Depends(get_engine),
):
    return _badges_response(badge_service.get_user_badges(engine, user_id, lounge_id))
