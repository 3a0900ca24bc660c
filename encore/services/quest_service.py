"""
encore.services.quest_service — Quest Engine
=============================================

Quests are reward-bearing goals ("write 3 posts this week").  Each
(user, quest) pair moves through::

    NOT_STARTED ──action──▶ IN_PROGRESS ──count ≥ target──▶ COMPLETED

COMPLETED is terminal: the progress row is frozen and the reward (score
and/or badge) is granted exactly once, in the same transaction that flips
``is_completed``.  Progress rows are locked ``FOR UPDATE`` before they are
incremented, so two concurrent actions cannot both observe the
pre-completion state and double-grant.

Quest definitions are managed by creators (lounge owner / manager) and
admins; every definition change is written to ``admin_log``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from encore.constants import as_utc, progress_percentage
from encore.database.engine import get_session
from encore.database.models import (
    BadgeType,
    Lounge,
    LoungeManager,
    Quest,
    QuestAction,
    QuestProgress,
    QuestType,
    ScoreAction,
    User,
    UserRole,
)
from encore.errors import ForbiddenError, NotFoundError, ValidationError
from encore.services.audit import log_admin_action, row_to_dict
from encore.services.badge_service import upsert_badge
from encore.services.score_service import apply_score

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500

# Fields an owner or admin may change after creation
UPDATABLE_FIELDS: frozenset[str] = frozenset({
    "title",
    "description",
    "icon_url",
    "target_count",
    "reward_score",
    "reward_badge_type",
    "ends_at",
    "is_active",
})


# ---------------------------------------------------------------------------
# Inputs & views
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class QuestInput:
    """Fields accepted when creating a quest.  ``None`` means "use default"."""

    type: QuestType | str
    action_type: QuestAction | str
    title: str
    description: str = ""
    lounge_id: int | None = None
    icon_url: str | None = None
    target_count: int | None = None
    reward_score: int | None = None
    reward_badge_type: BadgeType | str | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class QuestFilter:
    type: QuestType | str | None = None
    lounge_id: int | None = None
    include_completed: bool = False
    page: int = 1
    limit: int = 20


@dataclass(frozen=True, slots=True)
class QuestView:
    """A quest joined with one caller's progress (zeros when absent)."""

    quest: Quest
    current_count: int = 0
    is_completed: bool = False
    completed_at: datetime | None = None
    progress_percentage: int = 0


@dataclass(frozen=True, slots=True)
class QuestListing:
    quests: list[QuestView] = field(default_factory=list)
    total_count: int = 0


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------
def _coerce(enum_cls: type, value: Any, label: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown {label}: {value}") from exc


def _check_text(title: str | None, description: str | None) -> None:
    if title is not None and not title.strip():
        raise ValidationError("Quest title must not be empty")
    if title is not None and len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Quest title exceeds {TITLE_MAX_LENGTH} characters")
    if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Quest description exceeds {DESCRIPTION_MAX_LENGTH} characters"
        )


def _check_numbers(target_count: int | None, reward_score: int | None) -> None:
    if target_count is not None and target_count < 1:
        raise ValidationError("target_count must be at least 1")
    if reward_score is not None and reward_score < 0:
        raise ValidationError("reward_score must not be negative")


def _check_window(starts_at: datetime | None, ends_at: datetime | None) -> None:
    if starts_at is not None and ends_at is not None and as_utc(ends_at) <= as_utc(starts_at):
        raise ValidationError("ends_at must be after starts_at")


def _require_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _can_manage_lounge(session: Session, user: User, lounge: Lounge) -> bool:
    if user.role == UserRole.ADMIN.value or lounge.creator_id == user.id:
        return True
    return session.get(LoungeManager, (user.id, lounge.id)) is not None


def _require_quest_owner(session: Session, quest_id: int, actor_id: int) -> Quest:
    quest = session.get(Quest, quest_id)
    if quest is None:
        raise NotFoundError(f"Quest {quest_id} not found")
    actor = session.get(User, actor_id)
    is_admin = actor is not None and actor.role == UserRole.ADMIN.value
    if quest.creator_id != actor_id and not is_admin:
        logger.warning("User %d denied mutation of quest %d", actor_id, quest_id)
        raise ForbiddenError("Only the quest creator or an admin may modify this quest")
    return quest


def _active_window(now: datetime):
    return (
        Quest.is_active.is_(True),
        Quest.starts_at <= now,
        or_(Quest.ends_at.is_(None), Quest.ends_at > now),
    )


# ---------------------------------------------------------------------------
# Quest definitions (creator / admin)
# ---------------------------------------------------------------------------
def create_quest(engine: Engine, creator_id: int, data: QuestInput) -> Quest:
    """Create a quest owned by *creator_id*.

    The creator must hold the CREATOR or ADMIN role; for a lounge-scoped
    quest they must also own or manage that lounge (admins may scope any
    lounge).
    """
    quest_type = _coerce(QuestType, data.type, "quest type")
    action_type = _coerce(QuestAction, data.action_type, "quest action")
    badge_type = (
        _coerce(BadgeType, data.reward_badge_type, "badge type")
        if data.reward_badge_type is not None else None
    )
    _check_text(data.title, data.description)
    _check_numbers(data.target_count, data.reward_score)
    starts_at = as_utc(data.starts_at) or datetime.now(UTC)
    _check_window(starts_at, data.ends_at)

    with get_session(engine) as session:
        creator = _require_user(session, creator_id)
        if creator.role not in (UserRole.CREATOR.value, UserRole.ADMIN.value):
            logger.warning("User %d (role=%s) denied quest creation", creator_id, creator.role)
            raise ForbiddenError("Only creators and admins can create quests")

        if data.lounge_id is not None:
            lounge = session.get(Lounge, data.lounge_id)
            if lounge is None:
                raise NotFoundError(f"Lounge {data.lounge_id} not found")
            if not _can_manage_lounge(session, creator, lounge):
                logger.warning(
                    "User %d denied quest creation in lounge %d", creator_id, lounge.id,
                )
                raise ForbiddenError("No permission to create quests in this lounge")

        quest = Quest(
            creator_id=creator_id,
            lounge_id=data.lounge_id,
            type=quest_type.value,
            action_type=action_type.value,
            title=data.title,
            description=data.description or "",
            icon_url=data.icon_url,
            target_count=data.target_count if data.target_count is not None else 1,
            reward_score=data.reward_score if data.reward_score is not None else 10,
            reward_badge_type=badge_type.value if badge_type else None,
            starts_at=starts_at,
            ends_at=as_utc(data.ends_at),
            is_active=True,
        )
        session.add(quest)
        session.flush()
        log_admin_action(
            session,
            actor_id=creator_id,
            action_type="CREATE",
            target_table="quests",
            target_id=str(quest.id),
            before=None,
            after=row_to_dict(quest),
        )
        session.flush()
        session.refresh(quest)
        session.expunge(quest)

    logger.info(
        "Quest %d created by user %d (%s/%s, target=%d, reward=%d)",
        quest.id, creator_id, quest.type, quest.action_type,
        quest.target_count, quest.reward_score,
    )
    return quest


def update_quest(
    engine: Engine, quest_id: int, actor_id: int, changes: dict[str, Any],
) -> Quest:
    """Apply *changes* to a quest.  Only :data:`UPDATABLE_FIELDS` are accepted."""
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not updatable: {', '.join(sorted(unknown))}")
    _check_text(changes.get("title"), changes.get("description"))
    _check_numbers(changes.get("target_count"), changes.get("reward_score"))
    if "title" in changes and changes["title"] is None:
        raise ValidationError("Quest title must not be empty")
    for required in ("target_count", "reward_score", "is_active"):
        if required in changes and changes[required] is None:
            raise ValidationError(f"{required} must not be null")

    values = dict(changes)
    if values.get("reward_badge_type") is not None:
        values["reward_badge_type"] = _coerce(
            BadgeType, values["reward_badge_type"], "badge type",
        ).value
    if "ends_at" in values:
        values["ends_at"] = as_utc(values["ends_at"])
    if "description" in values and values["description"] is None:
        values["description"] = ""

    with get_session(engine) as session:
        quest = _require_quest_owner(session, quest_id, actor_id)
        if "ends_at" in values:
            _check_window(quest.starts_at, values["ends_at"])

        before = row_to_dict(quest)
        for key, value in values.items():
            setattr(quest, key, value)
        session.flush()
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type="UPDATE",
            target_table="quests",
            target_id=str(quest.id),
            before=before,
            after=row_to_dict(quest),
        )
        session.flush()
        session.refresh(quest)
        session.expunge(quest)

    logger.info("Quest %d updated by user %d: %s", quest_id, actor_id, sorted(values))
    return quest


def delete_quest(engine: Engine, quest_id: int, actor_id: int) -> None:
    """Delete a quest and, by cascade, every progress row toward it."""
    with get_session(engine) as session:
        quest = _require_quest_owner(session, quest_id, actor_id)
        before = row_to_dict(quest)
        session.delete(quest)
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type="DELETE",
            target_table="quests",
            target_id=str(quest_id),
            before=before,
            after=None,
        )
    logger.info("Quest %d deleted by user %d", quest_id, actor_id)


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------
def _lock_or_create_progress(
    session: Session, user_id: int, quest_id: int,
) -> tuple[QuestProgress, bool]:
    """Return the locked progress row and whether this call created it.

    A new row starts at ``current_count = 1`` (the triggering action).
    """
    stmt = (
        select(QuestProgress)
        .where(QuestProgress.user_id == user_id, QuestProgress.quest_id == quest_id)
        .with_for_update()
    )
    progress = session.scalar(stmt)
    if progress is not None:
        return progress, False

    _require_user(session, user_id)
    progress = QuestProgress(user_id=user_id, quest_id=quest_id, current_count=1)
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(progress)
            session.flush()
    except IntegrityError:
        # A concurrent action created it; lock theirs and increment it.
        progress = session.scalar(stmt)
        if progress is None:
            raise
        return progress, False
    return progress, True


def _grant_reward(
    session: Session, user_id: int, quest: Quest, lounge_id: int | None,
) -> None:
    target_lounge = lounge_id if lounge_id is not None else quest.lounge_id

    if quest.reward_score > 0 and target_lounge is not None:
        apply_score(
            session, user_id, target_lounge, ScoreAction.QUEST_COMPLETED, quest.reward_score,
        )
    if quest.reward_badge_type:
        upsert_badge(session, user_id, target_lounge, quest.reward_badge_type)


def apply_progress(
    session: Session,
    user_id: int,
    action_type: QuestAction | str,
    lounge_id: int | None = None,
) -> list[QuestProgress]:
    """Advance every live quest matching *action_type*, inside the caller's transaction.

    With *lounge_id*, that lounge's quests and account-wide quests match;
    without, only account-wide quests.  Completed quests are skipped.
    Returns the progress rows that changed (possibly empty).
    """
    action_type = _coerce(QuestAction, action_type, "quest action")
    now = datetime.now(UTC)

    scope = (
        or_(Quest.lounge_id == lounge_id, Quest.lounge_id.is_(None))
        if lounge_id is not None else Quest.lounge_id.is_(None)
    )
    quests = session.scalars(
        select(Quest)
        .where(Quest.action_type == action_type.value, scope, *_active_window(now))
        .order_by(Quest.id)
    ).all()

    touched: list[QuestProgress] = []
    for quest in quests:
        progress, created = _lock_or_create_progress(session, user_id, quest.id)
        if progress.is_completed:
            continue
        if not created:
            progress.current_count += 1

        if progress.current_count >= quest.target_count:
            progress.is_completed = True
            progress.completed_at = now
            session.flush()
            _grant_reward(session, user_id, quest, lounge_id)
            logger.info(
                "Quest %d completed by user %d (reward=%d, badge=%s)",
                quest.id, user_id, quest.reward_score, quest.reward_badge_type,
            )
        touched.append(progress)

    session.flush()
    logger.debug(
        "Quest progress for user %d on %s: %d quest(s) advanced",
        user_id, action_type.value, len(touched),
    )
    return touched


def update_progress(
    engine: Engine,
    user_id: int,
    action_type: QuestAction | str,
    lounge_id: int | None = None,
) -> list[QuestProgress]:
    """Advance quest progress in its own transaction.  See :func:`apply_progress`."""
    with get_session(engine) as session:
        touched = apply_progress(session, user_id, action_type, lounge_id)
        for progress in touched:
            session.refresh(progress)
            session.expunge(progress)
        return touched


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def _view(quest: Quest, progress: QuestProgress | None) -> QuestView:
    current = progress.current_count if progress else 0
    return QuestView(
        quest=quest,
        current_count=current,
        is_completed=progress.is_completed if progress else False,
        completed_at=progress.completed_at if progress else None,
        progress_percentage=progress_percentage(current, quest.target_count),
    )


def list_quests(
    engine: Engine, filters: QuestFilter | None = None, user_id: int | None = None,
) -> QuestListing:
    """Live quests, newest first, joined with *user_id*'s progress.

    Completed quests are dropped from the page unless
    ``filters.include_completed``.  ``total_count`` is the full match count
    when completed quests are included, otherwise the number of returned
    entries.
    """
    filters = filters or QuestFilter()
    if filters.page < 1 or filters.limit < 1:
        raise ValidationError("page and limit must be positive")

    now = datetime.now(UTC)
    conditions = list(_active_window(now))
    if filters.type is not None:
        conditions.append(Quest.type == _coerce(QuestType, filters.type, "quest type").value)
    if filters.lounge_id is not None:
        conditions.append(Quest.lounge_id == filters.lounge_id)

    with get_session(engine) as session:
        quests = list(session.scalars(
            select(Quest)
            .where(*conditions)
            .order_by(Quest.created_at.desc(), Quest.id.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        ).all())
        total = session.scalar(select(func.count()).select_from(Quest).where(*conditions))

        progress_by_quest: dict[int, QuestProgress] = {}
        if user_id is not None and quests:
            progress_by_quest = {
                p.quest_id: p
                for p in session.scalars(
                    select(QuestProgress).where(
                        QuestProgress.user_id == user_id,
                        QuestProgress.quest_id.in_([q.id for q in quests]),
                    )
                ).all()
            }
        session.expunge_all()

    views = [_view(q, progress_by_quest.get(q.id)) for q in quests]
    if not filters.include_completed:
        views = [v for v in views if not v.is_completed]

    return QuestListing(
        quests=views,
        total_count=total if filters.include_completed else len(views),
    )


def get_quest(engine: Engine, quest_id: int, user_id: int | None = None) -> QuestView:
    with get_session(engine) as session:
        quest = session.get(Quest, quest_id)
        if quest is None:
            raise NotFoundError(f"Quest {quest_id} not found")
        progress = None
        if user_id is not None:
            progress = session.scalar(
                select(QuestProgress).where(
                    QuestProgress.user_id == user_id, QuestProgress.quest_id == quest_id,
                )
            )
        session.expunge_all()
    return _view(quest, progress)


def get_user_progress(engine: Engine, user_id: int) -> list[QuestProgress]:
    """All of *user_id*'s progress rows, most recently touched first, quest loaded."""
    with get_session(engine) as session:
        rows = list(session.scalars(
            select(QuestProgress)
            .options(selectinload(QuestProgress.quest))
            .where(QuestProgress.user_id == user_id)
            .order_by(QuestProgress.updated_at.desc(), QuestProgress.id.desc())
        ).all())
        session.expunge_all()
        return rows


# ---------------------------------------------------------------------------
# Periodic resets
# ---------------------------------------------------------------------------
def _reset_progress(engine: Engine, quest_type: QuestType) -> int:
    with get_session(engine) as session:
        result = session.execute(
            delete(QuestProgress)
            .where(QuestProgress.quest_id.in_(
                select(Quest.id).where(Quest.type == quest_type.value)
            ))
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount
    logger.info("%s quest progress reset: %d row(s) deleted", quest_type.value, count)
    return count


def reset_daily_quests(engine: Engine) -> int:
    return _reset_progress(engine, QuestType.DAILY)


def reset_weekly_quests(engine: Engine) -> int:
    return _reset_progress(engine, QuestType.WEEKLY)
