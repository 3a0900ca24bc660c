"""
encore.api.routes.quests — Quest CRUD & progress
=================================================
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field

from encore.api.deps import (
    get_config,
    get_current_user,
    get_engine,
    get_optional_user,
    page_limit,
)
from encore.config import EncoreConfig
from encore.constants import as_utc, progress_percentage
from encore.database.models import BadgeType, Quest, QuestAction, QuestProgress, QuestType
from encore.services import quest_service
from encore.services.quest_service import QuestFilter, QuestInput, QuestView

router = APIRouter(prefix="/quests", tags=["quests"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class QuestCreate(BaseModel):
    type: QuestType
    action_type: QuestAction
    title: str = Field(min_length=1, max_length=100)
    description: str = Field("", max_length=500)
    lounge_id: int | None = None
    icon_url: str | None = None
    target_count: int | None = Field(None, ge=1)
    reward_score: int | None = Field(None, ge=0)
    reward_badge_type: BadgeType | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None


class QuestUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    icon_url: str | None = None
    target_count: int | None = Field(None, ge=1)
    reward_score: int | None = Field(None, ge=0)
    reward_badge_type: BadgeType | None = None
    ends_at: datetime | None = None
    is_active: bool | None = None


def _iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


def quest_dict(quest: Quest) -> dict:
    return {
        "id": quest.id,
        "creator_id": quest.creator_id,
        "lounge_id": quest.lounge_id,
        "type": quest.type,
        "action_type": quest.action_type,
        "title": quest.title,
        "description": quest.description,
        "icon_url": quest.icon_url,
        "target_count": quest.target_count,
        "reward_score": quest.reward_score,
        "reward_badge_type": quest.reward_badge_type,
        "starts_at": _iso(quest.starts_at),
        "ends_at": _iso(quest.ends_at),
        "is_active": quest.is_active,
    }


def _view_dict(view: QuestView) -> dict:
    return {
        **quest_dict(view.quest),
        "current_count": view.current_count,
        "is_completed": view.is_completed,
        "completed_at": _iso(view.completed_at),
        "progress_percentage": view.progress_percentage,
    }


def progress_dict(progress: QuestProgress, *, with_quest: bool = False) -> dict:
    data = {
        "id": progress.id,
        "user_id": progress.user_id,
        "quest_id": progress.quest_id,
        "current_count": progress.current_count,
        "is_completed": progress.is_completed,
        "completed_at": _iso(progress.completed_at),
    }
    if with_quest:
        data["quest"] = quest_dict(progress.quest)
        data["progress_percentage"] = progress_percentage(
            progress.current_count, progress.quest.target_count,
        )
    return data


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_quest(
    body: QuestCreate,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    quest = quest_service.create_quest(
        engine, user["user_id"], QuestInput(**body.model_dump()),
    )
    return quest_dict(quest)


@router.get("")
def list_quests(
    type: QuestType | None = None,
    lounge_id: int | None = None,
    include_completed: bool = False,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
    cfg: EncoreConfig = Depends(get_config),
):
    listing = quest_service.list_quests(
        engine,
        QuestFilter(
            type=type,
            lounge_id=lounge_id,
            include_completed=include_completed,
            page=page,
            limit=page_limit(cfg, limit),
        ),
        user["user_id"] if user else None,
    )
    return {
        "quests": [_view_dict(v) for v in listing.quests],
        "total_count": listing.total_count,
    }


@router.get("/my-progress")
def my_progress(
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    rows = quest_service.get_user_progress(engine, user["user_id"])
    return {"progress": [progress_dict(p, with_quest=True) for p in rows]}


@router.get("/{quest_id}")
def get_quest(
    quest_id: int,
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    view = quest_service.get_quest(engine, quest_id, user["user_id"] if user else None)
    return _view_dict(view)


@router.patch("/{quest_id}")
def update_quest(
    quest_id: int,
    body: QuestUpdate,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    quest = quest_service.update_quest(
        engine, quest_id, user["user_id"], body.model_dump(exclude_unset=True),
    )
    return quest_dict(quest)


@router.delete("/{quest_id}", status_code=204)
def delete_quest(
    quest_id: int,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    quest_service.delete_quest(engine, quest_id, user["user_id"])
    return Response(status_code=204)
