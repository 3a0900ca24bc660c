"""
encore.database.models — SQLAlchemy 2.0 Data Models
====================================================

Tables owned by the engine:
- votes            — One active vote per (user, post) / (user, comment)
- fan_scores       — Per-(user, lounge) score ledger with category subtotals
- fan_badges       — Awarded badges, lounge-scoped or global
- quests           — Reward-bearing goal definitions
- quest_progress   — Per-(user, quest) progress toward a quest goal
- admin_log        — Append-only audit trail for quest/badge/batch mutations

Collaborator tables (written by other services, read here):
- users, lounges, lounge_managers, posts, comments, notifications
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Scope key stored for badges that are not tied to a lounge
GLOBAL_SCOPE = "global"


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Encore ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class UserRole(enum.StrEnum):
    USER = "USER"
    CREATOR = "CREATOR"
    ADMIN = "ADMIN"


class VoteType(enum.StrEnum):
    UPVOTE = "UPVOTE"
    DOWNVOTE = "DOWNVOTE"


class VoteTarget(enum.StrEnum):
    """What a vote points at.  Never stored — selects the FK column."""
    POST = "post"
    COMMENT = "comment"


class ScoreAction(enum.StrEnum):
    """Actions that feed the score ledger (one category column each)."""
    POST_CREATED = "POST_CREATED"
    COMMENT_CREATED = "COMMENT_CREATED"
    VOTE_RECEIVED = "VOTE_RECEIVED"
    QUEST_COMPLETED = "QUEST_COMPLETED"


class QuestType(enum.StrEnum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    EVENT = "EVENT"
    SPECIAL = "SPECIAL"


class QuestAction(enum.StrEnum):
    """Actions a quest can count toward its target."""
    WRITE_POST = "WRITE_POST"
    WRITE_COMMENT = "WRITE_COMMENT"
    VOTE = "VOTE"
    JOIN_LOUNGE = "JOIN_LOUNGE"
    DAILY_LOGIN = "DAILY_LOGIN"


class BadgeType(enum.StrEnum):
    EARLY_BIRD = "EARLY_BIRD"
    TOP_FAN = "TOP_FAN"
    ACTIVE_COMMENTER = "ACTIVE_COMMENTER"
    CONTENT_CREATOR = "CONTENT_CREATOR"
    QUEST_MASTER = "QUEST_MASTER"
    SUPER_FAN = "SUPER_FAN"
    CREATOR_PICK = "CREATOR_PICK"


# ---------------------------------------------------------------------------
# Users — owned by the account service
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    nickname: Mapped[str] = mapped_column(String(50), nullable=False)
    profile_image: Mapped[str | None] = mapped_column(String(500), default=None)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.USER.value)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} nickname={self.nickname!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Lounges — owned by the lounge service
# ---------------------------------------------------------------------------
class Lounge(Base):
    __tablename__ = "lounges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    icon: Mapped[str | None] = mapped_column(String(500), default=None)
    creator_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Lounge id={self.id} slug={self.slug!r}>"


class LoungeManager(Base):
    __tablename__ = "lounge_managers"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    lounge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("lounges.id", ondelete="CASCADE"), primary_key=True
    )

    def __repr__(self) -> str:
        return f"<LoungeManager user={self.user_id} lounge={self.lounge_id}>"


# ---------------------------------------------------------------------------
# Posts & Comments — owned by the content service; counters owned here
# ---------------------------------------------------------------------------
class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lounge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("lounges.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    upvote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    downvote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    __table_args__ = (
        Index("ix_posts_lounge_id", "lounge_id"),
    )

    def __repr__(self) -> str:
        return f"<Post id={self.id} up={self.upvote_count} down={self.downvote_count}>"


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    upvote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    downvote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    __table_args__ = (
        Index("ix_comments_post_id", "post_id"),
    )

    def __repr__(self) -> str:
        return f"<Comment id={self.id} up={self.upvote_count} down={self.downvote_count}>"


# ---------------------------------------------------------------------------
# Vote — one active vote per (user, target)
# ---------------------------------------------------------------------------
class Vote(Base):
    __tablename__ = "votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    post_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=True
    )
    comment_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "post_id", name="uq_votes_user_post"),
        UniqueConstraint("user_id", "comment_id", name="uq_votes_user_comment"),
        CheckConstraint(
            "(post_id IS NULL) <> (comment_id IS NULL)",
            name="ck_votes_single_target",
        ),
        Index("ix_votes_post_id", "post_id"),
        Index("ix_votes_comment_id", "comment_id"),
    )

    def __repr__(self) -> str:
        target = f"post={self.post_id}" if self.post_id else f"comment={self.comment_id}"
        return f"<Vote user={self.user_id} {target} type={self.type}>"


# ---------------------------------------------------------------------------
# FanScore — per-(user, lounge) score ledger
# ---------------------------------------------------------------------------
class FanScore(Base):
    __tablename__ = "fan_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    lounge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("lounges.id", ondelete="CASCADE"), nullable=False
    )
    total_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    monthly_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    post_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vote_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quest_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    previous_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship()
    lounge: Mapped[Lounge] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "lounge_id", name="uq_fan_scores_user_lounge"),
        Index("ix_fan_scores_lounge_total", "lounge_id", "total_score"),
        Index("ix_fan_scores_lounge_monthly", "lounge_id", "monthly_score"),
    )

    def __repr__(self) -> str:
        return (
            f"<FanScore user={self.user_id} lounge={self.lounge_id} "
            f"total={self.total_score} monthly={self.monthly_score}>"
        )


# ---------------------------------------------------------------------------
# FanBadge — awarded badges (lounge-scoped or global)
# ---------------------------------------------------------------------------
class FanBadge(Base):
    """A badge held by a user.

    ``scope_key`` mirrors ``lounge_id`` as text (or ``"global"``) so the
    unique key also covers global badges; SQL treats NULLs as distinct.
    """
    __tablename__ = "fan_badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    lounge_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("lounges.id", ondelete="CASCADE"), nullable=True
    )
    scope_key: Mapped[str] = mapped_column(String(32), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon_url: Mapped[str | None] = mapped_column(String(500), default=None)
    awarded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    __table_args__ = (
        UniqueConstraint("user_id", "scope_key", "type", name="uq_fan_badges_user_scope_type"),
        Index("ix_fan_badges_user_awarded", "user_id", "awarded_at"),
    )

    def __repr__(self) -> str:
        return f"<FanBadge user={self.user_id} scope={self.scope_key} type={self.type}>"


# ---------------------------------------------------------------------------
# Quest — reward-bearing goal definitions
# ---------------------------------------------------------------------------
class Quest(Base):
    __tablename__ = "quests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    creator_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    lounge_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("lounges.id", ondelete="CASCADE"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    icon_url: Mapped[str | None] = mapped_column(String(500), default=None)
    target_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    reward_score: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    reward_badge_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    progresses: Mapped[list[QuestProgress]] = relationship(
        back_populates="quest", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("target_count >= 1", name="ck_quests_target_count_positive"),
        Index("ix_quests_action_active", "action_type", "is_active"),
        Index("ix_quests_lounge_id", "lounge_id"),
    )

    def __repr__(self) -> str:
        return f"<Quest id={self.id} type={self.type} action={self.action_type}>"


# ---------------------------------------------------------------------------
# QuestProgress — per-(user, quest) progress
# ---------------------------------------------------------------------------
class QuestProgress(Base):
    __tablename__ = "quest_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    quest_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False
    )
    current_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    quest: Mapped[Quest] = relationship(back_populates="progresses")

    __table_args__ = (
        UniqueConstraint("user_id", "quest_id", name="uq_quest_progress_user_quest"),
    )

    def __repr__(self) -> str:
        return (
            f"<QuestProgress user={self.user_id} quest={self.quest_id} "
            f"count={self.current_count} done={self.is_completed}>"
        )


# ---------------------------------------------------------------------------
# Notification — owned by the notification service; vote milestones land here
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} kind={self.kind}>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"
