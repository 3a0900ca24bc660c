"""
encore.services.vote_service — Vote Ledger
===========================================

One active vote per (user, target), where a target is a post or a comment.
Casting a vote applies a three-way toggle:

1. no vote yet        → insert, matching counter +1
2. same type again    → delete (toggle-off), matching counter −1
3. opposite type      → flip type, old counter −1, new counter +1

The vote row and the target's denormalized counters change in the same
transaction.  The target row is locked ``FOR UPDATE`` first, which
serializes concurrent votes on one target; counters are adjusted with SQL
expressions and re-read after the write.

A vote-milestone notification goes to the target's author when a new
vote lands its own counter (upvotes or downvotes) on a multiple of the
configured interval.
It is sent after commit and is advisory: a failing notifier is logged and
never undoes the vote.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session

from encore.constants import VOTE_MILESTONE
from encore.database.engine import get_session
from encore.database.models import Comment, Post, Vote, VoteTarget, VoteType
from encore.errors import NotFoundError, ValidationError
from encore.services.notification_service import Notifier

logger = logging.getLogger(__name__)

DEFAULT_MILESTONE_INTERVAL = 10

_COUNTER: dict[VoteType, str] = {
    VoteType.UPVOTE: "upvote_count",
    VoteType.DOWNVOTE: "downvote_count",
}


@dataclass(frozen=True, slots=True)
class VoteStatus:
    """Counters of a target plus the caller's current vote (or ``None``)."""

    upvote_count: int
    downvote_count: int
    user_vote: VoteType | None


def _target_model(target_type: VoteTarget | str) -> type[Post] | type[Comment]:
    try:
        target_type = VoteTarget(target_type)
    except ValueError as exc:
        raise ValidationError(f"Unknown vote target: {target_type}") from exc
    return Post if target_type is VoteTarget.POST else Comment


def _vote_fk(model: type[Post] | type[Comment]):
    return Vote.post_id if model is Post else Vote.comment_id


def _read_status(
    session: Session,
    model: type[Post] | type[Comment],
    target_id: int,
    user_id: int | None,
) -> VoteStatus:
    counts = session.execute(
        select(model.upvote_count, model.downvote_count).where(model.id == target_id)
    ).one()
    user_vote = None
    if user_id is not None:
        vote_type = session.scalar(
            select(Vote.type).where(Vote.user_id == user_id, _vote_fk(model) == target_id)
        )
        user_vote = VoteType(vote_type) if vote_type is not None else None
    return VoteStatus(
        upvote_count=counts.upvote_count,
        downvote_count=counts.downvote_count,
        user_vote=user_vote,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def cast_vote(
    engine: Engine,
    target_type: VoteTarget | str,
    target_id: int,
    user_id: int,
    vote_type: VoteType | str,
    notifier: Notifier | None = None,
    *,
    milestone_interval: int = DEFAULT_MILESTONE_INTERVAL,
) -> VoteStatus:
    """Toggle *user_id*'s vote on a post or comment and return fresh counters.

    Raises :class:`NotFoundError` if the target is missing or soft-deleted.
    """
    model = _target_model(target_type)
    try:
        vote_type = VoteType(vote_type)
    except ValueError as exc:
        raise ValidationError(f"Unknown vote type: {vote_type}") from exc
    fk = _vote_fk(model)

    with get_session(engine) as session:
        target = session.scalar(
            select(model)
            .where(model.id == target_id, model.deleted_at.is_(None))
            .with_for_update()
        )
        if target is None:
            raise NotFoundError(f"{model.__name__} {target_id} not found")
        author_id = target.author_id

        existing = session.scalar(
            select(Vote).where(Vote.user_id == user_id, fk == target_id)
        )
        deltas: dict[str, int] = {}
        created = False
        if existing is None:
            session.add(Vote(user_id=user_id, type=vote_type.value, **{fk.key: target_id}))
            deltas[_COUNTER[vote_type]] = 1
            created = True
        elif existing.type == vote_type.value:
            session.delete(existing)
            deltas[_COUNTER[vote_type]] = -1
        else:
            old_type = VoteType(existing.type)
            existing.type = vote_type.value
            deltas[_COUNTER[old_type]] = -1
            deltas[_COUNTER[vote_type]] = 1
        session.flush()

        session.execute(
            update(model)
            .where(model.id == target_id)
            .values({
                getattr(model, column): getattr(model, column) + delta
                for column, delta in deltas.items()
            })
            .execution_options(synchronize_session=False)
        )
        status = _read_status(session, model, target_id, user_id)

    logger.debug(
        "Vote %s on %s %d by user %d → up=%d down=%d mine=%s",
        vote_type.value, model.__tablename__, target_id, user_id,
        status.upvote_count, status.downvote_count, status.user_vote,
    )

    if (
        created
        and notifier is not None
        and user_id != author_id
        and milestone_interval > 0
    ):
        count = getattr(status, _COUNTER[vote_type])
        if count > 0 and count % milestone_interval == 0:
            _emit_milestone(notifier, author_id, model, target_id, vote_type, count)

    return status


def _emit_milestone(
    notifier: Notifier,
    author_id: int,
    model: type[Post] | type[Comment],
    target_id: int,
    vote_type: VoteType,
    count: int,
) -> None:
    target = VoteTarget.POST if model is Post else VoteTarget.COMMENT
    payload = {
        "target_type": target.value,
        "target_id": target_id,
        "vote_type": vote_type.value,
        "count": count,
    }
    try:
        notifier.notify(author_id, VOTE_MILESTONE, payload)
    except Exception:
        logger.exception(
            "Vote milestone notification failed for %s %d (author %d)",
            target.value, target_id, author_id,
        )
    else:
        logger.info(
            "%s %d reached %d %s(s); author %d notified",
            target.value, target_id, count, vote_type.value, author_id,
        )


def get_vote_status(
    engine: Engine,
    target_type: VoteTarget | str,
    target_id: int,
    user_id: int | None = None,
) -> VoteStatus:
    """Current counters of a target and, if given, *user_id*'s vote."""
    model = _target_model(target_type)
    with get_session(engine) as session:
        if session.get(model, target_id) is None:
            raise NotFoundError(f"{model.__name__} {target_id} not found")
        return _read_status(session, model, target_id, user_id)
