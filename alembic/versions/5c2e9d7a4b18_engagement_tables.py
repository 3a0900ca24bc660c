"""Engagement tables: votes, fan scores, badges, quests, progress, admin log

Revision ID: 5c2e9d7a4b18
Revises:
Create Date: 2026-10-19 09:00:00.000000

Collaborator tables (users, lounges, lounge_managers, posts, comments,
notifications) are created here too so a fresh database is usable on its
own; deployments that share a schema with the content service can stamp
past this revision.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5c2e9d7a4b18"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), **kwargs)


def upgrade() -> None:
    # -- Collaborator tables --------------------------------------------------
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("nickname", sa.String(50), nullable=False),
        sa.Column("profile_image", sa.String(500), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="USER"),
        _timestamp("created_at", server_default=sa.func.now()),
    )
    op.create_table(
        "lounges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("icon", sa.String(500), nullable=True),
        sa.Column(
            "creator_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        ),
    )
    op.create_table(
        "lounge_managers",
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "lounge_id", sa.Integer(),
            sa.ForeignKey("lounges.id", ondelete="CASCADE"), primary_key=True,
        ),
    )
    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "lounge_id", sa.Integer(),
            sa.ForeignKey("lounges.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "author_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False, server_default=""),
        sa.Column("upvote_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("downvote_count", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("created_at", server_default=sa.func.now()),
        _timestamp("deleted_at", nullable=True),
    )
    op.create_index("ix_posts_lounge_id", "posts", ["lounge_id"])
    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "post_id", sa.Integer(),
            sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "author_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("upvote_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("downvote_count", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("created_at", server_default=sa.func.now()),
        _timestamp("deleted_at", nullable=True),
    )
    op.create_index("ix_comments_post_id", "comments", ["post_id"])
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("kind", sa.String(30), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.false()),
        _timestamp("created_at", server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "is_read"])

    # -- Votes ----------------------------------------------------------------
    op.create_table(
        "votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "post_id", sa.Integer(),
            sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column(
            "comment_id", sa.Integer(),
            sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("type", sa.String(10), nullable=False),
        _timestamp("created_at", server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "post_id", name="uq_votes_user_post"),
        sa.UniqueConstraint("user_id", "comment_id", name="uq_votes_user_comment"),
        sa.CheckConstraint(
            "(post_id IS NULL) <> (comment_id IS NULL)", name="ck_votes_single_target",
        ),
    )
    op.create_index("ix_votes_post_id", "votes", ["post_id"])
    op.create_index("ix_votes_comment_id", "votes", ["comment_id"])

    # -- Fan scores -----------------------------------------------------------
    op.create_table(
        "fan_scores",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "lounge_id", sa.Integer(),
            sa.ForeignKey("lounges.id", ondelete="CASCADE"), nullable=False,
        ),
        *[
            sa.Column(name, sa.Integer(), nullable=False, server_default="0")
            for name in (
                "total_score", "monthly_score", "post_score",
                "comment_score", "vote_score", "quest_score",
            )
        ],
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("previous_rank", sa.Integer(), nullable=True),
        _timestamp("created_at", server_default=sa.func.now()),
        _timestamp("updated_at", server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "lounge_id", name="uq_fan_scores_user_lounge"),
    )
    op.create_index("ix_fan_scores_lounge_total", "fan_scores", ["lounge_id", "total_score"])
    op.create_index(
        "ix_fan_scores_lounge_monthly", "fan_scores", ["lounge_id", "monthly_score"],
    )

    # -- Badges ---------------------------------------------------------------
    op.create_table(
        "fan_badges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "lounge_id", sa.Integer(),
            sa.ForeignKey("lounges.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("scope_key", sa.String(32), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon_url", sa.String(500), nullable=True),
        _timestamp("awarded_at", nullable=False),
        _timestamp("expires_at", nullable=True),
        sa.UniqueConstraint(
            "user_id", "scope_key", "type", name="uq_fan_badges_user_scope_type",
        ),
    )
    op.create_index("ix_fan_badges_user_awarded", "fan_badges", ["user_id", "awarded_at"])

    # -- Quests ---------------------------------------------------------------
    op.create_table(
        "quests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "creator_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column(
            "lounge_id", sa.Integer(),
            sa.ForeignKey("lounges.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("action_type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=False, server_default=""),
        sa.Column("icon_url", sa.String(500), nullable=True),
        sa.Column("target_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("reward_score", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("reward_badge_type", sa.String(30), nullable=True),
        _timestamp("starts_at", nullable=False),
        _timestamp("ends_at", nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        _timestamp("created_at", server_default=sa.func.now()),
        _timestamp("updated_at", server_default=sa.func.now()),
        sa.CheckConstraint("target_count >= 1", name="ck_quests_target_count_positive"),
    )
    op.create_index("ix_quests_action_active", "quests", ["action_type", "is_active"])
    op.create_index("ix_quests_lounge_id", "quests", ["lounge_id"])

    op.create_table(
        "quest_progress",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "quest_id", sa.Integer(),
            sa.ForeignKey("quests.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("current_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("completed_at", nullable=True),
        _timestamp("created_at", server_default=sa.func.now()),
        _timestamp("updated_at", server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "quest_id", name="uq_quest_progress_user_quest"),
    )

    # -- Audit ----------------------------------------------------------------
    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.BigInteger(), nullable=True),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        _timestamp("timestamp", server_default=sa.func.now()),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"],
    )


def downgrade() -> None:
    for table in (
        "admin_log",
        "quest_progress",
        "quests",
        "fan_badges",
        "fan_scores",
        "votes",
        "notifications",
        "comments",
        "posts",
        "lounge_managers",
        "lounges",
        "users",
    ):
        op.drop_table(table)
