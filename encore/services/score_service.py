"""
encore.services.score_service — Score Ledger
=============================================

Per-(user, lounge) fan score with category subtotals.  Every credit bumps
``total_score``, ``monthly_score`` and exactly one category column (see
:data:`encore.engine.actions.SCORE_CATEGORY`), so the total always equals
the sum of the categories.

Increments are SQL expressions (``col = col + n``), never read-modify-write
in Python, so concurrent credits to the same row cannot lose updates.  The
first credit for a pair inserts the row inside a SAVEPOINT; a concurrent
insert of the same pair trips the unique key and falls back to the UPDATE.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from encore.database.engine import get_session
from encore.database.models import FanScore, ScoreAction
from encore.engine.actions import SCORE_CATEGORY, resolve_points
from encore.errors import ValidationError
from encore.services.badge_service import check_threshold_badges, require_owner

logger = logging.getLogger(__name__)


def _select_score(user_id: int, lounge_id: int):
    return select(FanScore).where(
        FanScore.user_id == user_id, FanScore.lounge_id == lounge_id,
    )


# ---------------------------------------------------------------------------
# In-transaction forms
# ---------------------------------------------------------------------------
def apply_score(
    session: Session,
    user_id: int,
    lounge_id: int,
    action: ScoreAction | str,
    custom_amount: int | None = None,
    *,
    overrides: dict[str, int] | None = None,
) -> FanScore:
    """Credit *user_id* in *lounge_id* for *action* and re-check badges.

    Returns the refreshed row.  Raises :class:`ValidationError` for an
    unknown action or a negative amount.
    """
    try:
        action = ScoreAction(action)
    except ValueError as exc:
        raise ValidationError(f"Unknown score action: {action}") from exc

    amount = resolve_points(action, custom_amount, overrides)
    if amount < 0:
        raise ValidationError("Score amount must not be negative")

    category = SCORE_CATEGORY[action]
    stmt = (
        update(FanScore)
        .where(FanScore.user_id == user_id, FanScore.lounge_id == lounge_id)
        .values({
            FanScore.total_score: FanScore.total_score + amount,
            FanScore.monthly_score: FanScore.monthly_score + amount,
            getattr(FanScore, category): getattr(FanScore, category) + amount,
        })
        .execution_options(synchronize_session=False)
    )

    result = session.execute(stmt)
    if result.rowcount == 0:
        require_owner(session, user_id, lounge_id)
        row = FanScore(
            user_id=user_id,
            lounge_id=lounge_id,
            total_score=amount,
            monthly_score=amount,
            **{category: amount},
        )
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(row)
                session.flush()
        except IntegrityError:
            # Another transaction created the row first; credit it instead.
            if session.execute(stmt).rowcount == 0:
                raise

    score = session.scalar(
        _select_score(user_id, lounge_id).execution_options(populate_existing=True)
    )
    logger.debug(
        "Score +%d (%s) for user %d in lounge %d → total=%d",
        amount, action.value, user_id, lounge_id, score.total_score,
    )

    check_threshold_badges(session, score)
    return score


def ensure_score(session: Session, user_id: int, lounge_id: int) -> FanScore:
    """Fetch the row for the pair, inserting a zero row if absent."""
    score = session.scalar(_select_score(user_id, lounge_id))
    if score is not None:
        return score

    require_owner(session, user_id, lounge_id)
    score = FanScore(user_id=user_id, lounge_id=lounge_id)
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(score)
            session.flush()
    except IntegrityError:
        score = session.scalar(_select_score(user_id, lounge_id))
        if score is None:
            raise
    return score


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def add_score(
    engine: Engine,
    user_id: int,
    lounge_id: int,
    action: ScoreAction | str,
    custom_amount: int | None = None,
    *,
    overrides: dict[str, int] | None = None,
) -> FanScore:
    """Credit a score in its own transaction.  See :func:`apply_score`."""
    with get_session(engine) as session:
        score = apply_score(
            session, user_id, lounge_id, action, custom_amount, overrides=overrides,
        )
        session.flush()
        session.refresh(score)
        session.expunge(score)
        return score


def get_or_create_score(engine: Engine, user_id: int, lounge_id: int) -> FanScore:
    with get_session(engine) as session:
        score = ensure_score(session, user_id, lounge_id)
        session.flush()
        session.refresh(score)
        session.expunge(score)
        return score


def get_user_score(engine: Engine, user_id: int, lounge_id: int) -> FanScore | None:
    with get_session(engine) as session:
        score = session.scalar(_select_score(user_id, lounge_id))
        if score is not None:
            session.expunge(score)
        return score


def get_all_scores_for_user(engine: Engine, user_id: int) -> list[FanScore]:
    """Every lounge score of *user_id*, highest total first, lounge loaded."""
    with get_session(engine) as session:
        scores = list(session.scalars(
            select(FanScore)
            .options(selectinload(FanScore.lounge))
            .where(FanScore.user_id == user_id)
            .order_by(FanScore.total_score.desc(), FanScore.id)
        ).all())
        for score in scores:
            session.expunge(score)
        return scores


# ---------------------------------------------------------------------------
# Periodic batch operations
# ---------------------------------------------------------------------------
def reset_monthly_scores(engine: Engine) -> int:
    """Snapshot ``rank`` into ``previous_rank``, then zero ``monthly_score``.

    Lifetime totals and category subtotals are untouched.  Returns the
    number of rows reset.
    """
    with get_session(engine) as session:
        session.execute(
            update(FanScore)
            .values(previous_rank=FanScore.rank)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(
            update(FanScore)
            .values(monthly_score=0)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount
    logger.info("Monthly scores reset for %d fan score rows", count)
    return count


def update_rankings(engine: Engine, lounge_id: int) -> int:
    """Assign positional ranks 1..N by ``total_score`` within *lounge_id*.

    Ties get consecutive ranks in row-id order.  Returns rows ranked.
    """
    with get_session(engine) as session:
        ids = session.scalars(
            select(FanScore.id)
            .where(FanScore.lounge_id == lounge_id)
            .order_by(FanScore.total_score.desc(), FanScore.id)
        ).all()
        if ids:
            session.execute(
                update(FanScore),
                [{"id": score_id, "rank": index + 1} for index, score_id in enumerate(ids)],
            )
    logger.info("Rankings updated for lounge %d (%d rows)", lounge_id, len(ids))
    return len(ids)
