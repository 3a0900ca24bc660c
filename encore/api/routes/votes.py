"""
encore.api.routes.votes — Post & comment voting
================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from encore.api.deps import get_config, get_current_user, get_engine, get_optional_user
from encore.config import EncoreConfig
from encore.database.engine import run_db
from encore.database.models import VoteTarget, VoteType
from encore.services.notification_service import DatabaseNotifier
from encore.services.vote_service import VoteStatus, cast_vote, get_vote_status

router = APIRouter(tags=["votes"])
logger = logging.getLogger(__name__)


class VoteBody(BaseModel):
    type: VoteType


def _status_dict(status: VoteStatus) -> dict:
    return {
        "upvote_count": status.upvote_count,
        "downvote_count": status.downvote_count,
        "user_vote": status.user_vote.value if status.user_vote else None,
    }


async def _cast(engine, cfg: EncoreConfig, target: VoteTarget, target_id: int, user: dict, body: VoteBody):
    status = await run_db(
        cast_vote,
        engine,
        target,
        target_id,
        user["user_id"],
        body.type,
        DatabaseNotifier(engine),
        milestone_interval=cfg.vote_milestone_interval,
    )
    return _status_dict(status)


@router.post("/posts/{post_id}/vote")
async def vote_post(
    post_id: int,
    body: VoteBody,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: EncoreConfig = Depends(get_config),
):
    return await _cast(engine, cfg, VoteTarget.POST, post_id, user, body)


@router.get("/posts/{post_id}/vote")
async def post_vote_status(
    post_id: int,
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    status = await run_db(
        get_vote_status, engine, VoteTarget.POST, post_id, user["user_id"] if user else None,
    )
    return _status_dict(status)


@router.post("/comments/{comment_id}/vote")
async def vote_comment(
    comment_id: int,
    body: VoteBody,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: EncoreConfig = Depends(get_config),
):
    return await _cast(engine, cfg, VoteTarget.COMMENT, comment_id, user, body)


@router.get("/comments/{comment_id}/vote")
async def comment_vote_status(
    comment_id: int,
    user: dict | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    status = await run_db(
        get_vote_status, engine, VoteTarget.COMMENT, comment_id,
        user["user_id"] if user else None,
    )
    return _status_dict(status)
