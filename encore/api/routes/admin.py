"""
encore.api.routes.admin — Manual awards, activity hook & batch triggers
========================================================================

Everything here requires an admin token.  ``/activity`` is the hook the
content and membership services call after a user posts, comments, votes,
joins a lounge or logs in.  The ``/jobs`` routes run the same functions as
``python -m encore.jobs`` for operators who prefer a button to a cron line.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from encore import jobs
from encore.api.deps import get_config, get_current_admin, get_engine, get_session
from encore.api.routes.fan_score import badge_dict, score_dict
from encore.api.routes.quests import progress_dict
from encore.config import EncoreConfig
from encore.database.models import BadgeType, User
from encore.engine.actions import Activity
from encore.services import activity_service, badge_service

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class BadgeAward(BaseModel):
    user_id: int
    type: BadgeType
    lounge_id: int | None = None
    expires_at: datetime | None = None


class ActivityReport(BaseModel):
    user_id: int
    activity: Activity
    lounge_id: int | None = None


class MonthlyRun(BaseModel):
    lounge_ids: list[int] | None = None


# ---------------------------------------------------------------------------
# Badges & activity
# ---------------------------------------------------------------------------
@router.post("/badges", status_code=201)
def award_badge(
    body: BadgeAward,
    admin: dict = Depends(get_current_admin),
    session: Session = Depends(get_session),
    engine=Depends(get_engine),
):
    if session.get(User, body.user_id) is None:
        raise HTTPException(404, "User not found")
    badge = badge_service.award_badge(
        engine,
        body.user_id,
        body.lounge_id,
        body.type,
        body.expires_at,
        actor_id=admin["user_id"],
    )
    return badge_dict(badge)


@router.post("/activity")
def record_activity(
    body: ActivityReport,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
    cfg: EncoreConfig = Depends(get_config),
):
    result = activity_service.record_activity(
        engine,
        body.user_id,
        body.activity,
        body.lounge_id,
        score_overrides=cfg.score_points,
    )
    return {
        "score": score_dict(result.score) if result.score is not None else None,
        "progress": [progress_dict(p) for p in result.progress],
    }


# ---------------------------------------------------------------------------
# Batch jobs
# ---------------------------------------------------------------------------
@router.post("/jobs/monthly")
def run_monthly(
    body: MonthlyRun | None = None,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    lounge_ids = body.lounge_ids if body else None
    return jobs.run_monthly(engine, lounge_ids, actor_id=admin["user_id"])


@router.post("/jobs/rankings/{lounge_id}")
def run_rankings(
    lounge_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return jobs.run_rankings(engine, [lounge_id], actor_id=admin["user_id"])


@router.post("/jobs/top-fan/{lounge_id}")
def run_top_fan(
    lounge_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return jobs.run_top_fan(engine, [lounge_id], actor_id=admin["user_id"])


@router.post("/jobs/daily-quests")
def run_daily_quests(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return jobs.run_daily_quests(engine, actor_id=admin["user_id"])


@router.post("/jobs/weekly-quests")
def run_weekly_quests(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return jobs.run_weekly_quests(engine, actor_id=admin["user_id"])
