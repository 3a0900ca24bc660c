"""
encore.services.badge_service — Badge Awarder
==============================================

Idempotent badge grants keyed by (user, scope, type).  A badge is scoped
to a lounge or, when ``lounge_id`` is ``None``, global.  Re-awarding a held
badge only rewrites ``expires_at``; name and description are fixed at
creation from :data:`encore.constants.BADGE_INFO`.

Insert races are resolved the same way as every other upsert in the
engine: INSERT inside a SAVEPOINT, and on IntegrityError fall back to the
row the other transaction created.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from encore.constants import BADGE_INFO, add_one_month
from encore.database.engine import get_session
from encore.database.models import GLOBAL_SCOPE, BadgeType, FanBadge, FanScore, Lounge, User
from encore.engine.badges import ScoreSnapshot, qualifying_badges
from encore.errors import NotFoundError, ValidationError
from encore.services.audit import log_admin_action, row_to_dict

logger = logging.getLogger(__name__)


def scope_key_for(lounge_id: int | None) -> str:
    """Text key used in the badge unique constraint."""
    return GLOBAL_SCOPE if lounge_id is None else str(lounge_id)


def _coerce_badge_type(badge_type: BadgeType | str) -> BadgeType:
    try:
        return BadgeType(badge_type)
    except ValueError as exc:
        raise ValidationError(f"Unknown badge type: {badge_type}") from exc


def require_owner(session: Session, user_id: int, lounge_id: int | None = None) -> None:
    """Raise :class:`NotFoundError` unless the user (and lounge, if given) exist.

    Called on insert paths only, so a failed INSERT inside a SAVEPOINT can
    be read as a unique-key race.
    """
    if session.get(User, user_id) is None:
        raise NotFoundError(f"User {user_id} not found")
    if lounge_id is not None and session.get(Lounge, lounge_id) is None:
        raise NotFoundError(f"Lounge {lounge_id} not found")


def _find_badge(
    session: Session, user_id: int, scope_key: str, badge_type: BadgeType,
) -> FanBadge | None:
    return session.scalar(
        select(FanBadge).where(
            FanBadge.user_id == user_id,
            FanBadge.scope_key == scope_key,
            FanBadge.type == badge_type.value,
        )
    )


# ---------------------------------------------------------------------------
# In-transaction upsert
# ---------------------------------------------------------------------------
def upsert_badge(
    session: Session,
    user_id: int,
    lounge_id: int | None,
    badge_type: BadgeType | str,
    expires_at: datetime | None = None,
) -> FanBadge:
    """Create the badge or refresh its expiry, inside the caller's transaction."""
    badge_type = _coerce_badge_type(badge_type)
    scope_key = scope_key_for(lounge_id)

    badge = _find_badge(session, user_id, scope_key, badge_type)
    if badge is not None:
        badge.expires_at = expires_at
        session.flush()
        logger.debug(
            "Badge %s renewed for user %d (scope=%s, expires=%s)",
            badge_type.value, user_id, scope_key, expires_at,
        )
        return badge

    require_owner(session, user_id, lounge_id)
    info = BADGE_INFO[badge_type]
    badge = FanBadge(
        user_id=user_id,
        lounge_id=lounge_id,
        scope_key=scope_key,
        type=badge_type.value,
        name=info["name"],
        description=info["description"],
        awarded_at=datetime.now(UTC),
        expires_at=expires_at,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(badge)
            session.flush()
    except IntegrityError:
        # Lost the race: the other transaction's row wins, we refresh expiry.
        badge = _find_badge(session, user_id, scope_key, badge_type)
        if badge is None:
            raise
        badge.expires_at = expires_at
        session.flush()
        return badge

    logger.info(
        "Badge %s awarded to user %d (scope=%s)", badge_type.value, user_id, scope_key,
    )
    return badge


def check_threshold_badges(session: Session, score: FanScore) -> list[FanBadge]:
    """Award every threshold badge *score* currently qualifies for.

    Runs after each score update; repeated qualification only rewrites the
    expiry back to ``None``.
    """
    return [
        upsert_badge(session, score.user_id, score.lounge_id, badge_type)
        for badge_type in qualifying_badges(ScoreSnapshot.from_row(score))
    ]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def award_badge(
    engine: Engine,
    user_id: int,
    lounge_id: int | None,
    badge_type: BadgeType | str,
    expires_at: datetime | None = None,
    *,
    actor_id: int | None = None,
) -> FanBadge:
    """Idempotently grant a badge.  Manual grants (``actor_id`` set) are audited."""
    with get_session(engine) as session:
        before_badge = _find_badge(
            session, user_id, scope_key_for(lounge_id), _coerce_badge_type(badge_type),
        )
        before = row_to_dict(before_badge)
        badge = upsert_badge(session, user_id, lounge_id, badge_type, expires_at)
        if actor_id is not None:
            log_admin_action(
                session,
                actor_id=actor_id,
                action_type="AWARD_BADGE",
                target_table="fan_badges",
                target_id=str(badge.id),
                before=before,
                after=row_to_dict(badge),
            )
        session.flush()
        session.refresh(badge)
        session.expunge(badge)
        return badge


def award_top_fan_badge(engine: Engine, lounge_id: int) -> FanBadge | None:
    """Grant TOP_FAN to the lounge's monthly leader for one calendar month.

    Must run before :func:`~encore.services.score_service.reset_monthly_scores`.
    Returns ``None`` when the lounge has no scores or the leader has zero.
    """
    with get_session(engine) as session:
        leader = session.scalar(
            select(FanScore)
            .where(FanScore.lounge_id == lounge_id)
            .order_by(FanScore.monthly_score.desc(), FanScore.id)
            .limit(1)
        )
        if leader is None or leader.monthly_score <= 0:
            logger.info("No top fan for lounge %d this month", lounge_id)
            return None

        expires_at = add_one_month(datetime.now(UTC))
        badge = upsert_badge(
            session, leader.user_id, lounge_id, BadgeType.TOP_FAN, expires_at,
        )
        session.flush()
        session.refresh(badge)
        session.expunge(badge)
        logger.info(
            "Top fan of lounge %d: user %d (%d pts this month)",
            lounge_id, leader.user_id, leader.monthly_score,
        )
        return badge


def get_user_badges(engine: Engine, user_id: int, lounge_id: int | None = None) -> list[FanBadge]:
    """Unexpired badges held by *user_id*, newest first.

    With *lounge_id*, only that lounge's badges plus global ones.
    """
    now = datetime.now(UTC)
    stmt = select(FanBadge).where(
        FanBadge.user_id == user_id,
        or_(FanBadge.expires_at.is_(None), FanBadge.expires_at > now),
    )
    if lounge_id is not None:
        stmt = stmt.where(
            FanBadge.scope_key.in_([scope_key_for(lounge_id), GLOBAL_SCOPE])
        )
    stmt = stmt.order_by(FanBadge.awarded_at.desc(), FanBadge.id.desc())

    with get_session(engine) as session:
        badges = list(session.scalars(stmt).all())
        for badge in badges:
            session.expunge(badge)
        return badges
