"""
tests/test_vote_service.py — Vote Ledger Integration Tests
===========================================================

Three-way toggle, counter consistency, soft-deleted targets and the
vote-milestone notification.  Uses the in-memory SQLite engine.
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from conftest import make_comment, make_lounge, make_post, make_user
from encore.database.models import Comment, Notification, Post, Vote, VoteType
from encore.errors import NotFoundError, ValidationError
from encore.services.notification_service import DatabaseNotifier
from encore.services.vote_service import cast_vote, get_vote_status

AUTHOR = 1
VOTER = 2


@pytest.fixture
def engine(db_engine):
    return db_engine


@pytest.fixture
def post_id(engine):
    make_user(engine, AUTHOR)
    make_user(engine, VOTER)
    lounge_id = make_lounge(engine, creator_id=AUTHOR)
    return make_post(engine, lounge_id, AUTHOR)


def _live_counts(engine, model, target_id) -> tuple[int, int]:
    fk = Vote.post_id if model is Post else Vote.comment_id
    with Session(engine) as session:
        up = session.scalar(
            select(func.count()).select_from(Vote).where(fk == target_id, Vote.type == "UPVOTE")
        )
        down = session.scalar(
            select(func.count()).select_from(Vote).where(fk == target_id, Vote.type == "DOWNVOTE")
        )
        row = session.get(model, target_id)
        assert (row.upvote_count, row.downvote_count) == (up, down)
        return up, down


class TestToggle:
    def test_first_vote_creates(self, engine, post_id):
        status = cast_vote(engine, "post", post_id, VOTER, VoteType.UPVOTE)
        assert status.upvote_count == 1
        assert status.downvote_count == 0
        assert status.user_vote is VoteType.UPVOTE
        assert _live_counts(engine, Post, post_id) == (1, 0)

    def test_same_vote_twice_toggles_off(self, engine, post_id):
        cast_vote(engine, "post", post_id, VOTER, "UPVOTE")
        status = cast_vote(engine, "post", post_id, VOTER, "UPVOTE")
        assert (status.upvote_count, status.downvote_count) == (0, 0)
        assert status.user_vote is None
        assert _live_counts(engine, Post, post_id) == (0, 0)

    def test_opposite_vote_flips(self, engine, post_id):
        cast_vote(engine, "post", post_id, VOTER, VoteType.UPVOTE)
        status = cast_vote(engine, "post", post_id, VOTER, VoteType.DOWNVOTE)
        assert (status.upvote_count, status.downvote_count) == (0, 1)
        assert status.user_vote is VoteType.DOWNVOTE
        assert _live_counts(engine, Post, post_id) == (0, 1)
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(Vote)) == 1

    def test_counters_track_many_voters(self, engine, post_id):
        for uid in range(10, 16):
            make_user(engine, uid)
            cast_vote(engine, "post", post_id, uid, "UPVOTE" if uid % 2 else "DOWNVOTE")
        cast_vote(engine, "post", post_id, 11, "UPVOTE")     # toggle off
        cast_vote(engine, "post", post_id, 12, "UPVOTE")     # flip
        assert _live_counts(engine, Post, post_id) == (3, 2)

    def test_comment_targets(self, engine, post_id):
        comment_id = make_comment(engine, post_id, AUTHOR)
        status = cast_vote(engine, "comment", comment_id, VOTER, "DOWNVOTE")
        assert (status.upvote_count, status.downvote_count) == (0, 1)
        assert _live_counts(engine, Comment, comment_id) == (0, 1)
        # The post is untouched
        assert _live_counts(engine, Post, post_id) == (0, 0)


class TestPreconditions:
    def test_missing_target(self, engine, post_id):
        with pytest.raises(NotFoundError):
            cast_vote(engine, "post", 9999, VOTER, "UPVOTE")

    def test_soft_deleted_target(self, engine):
        make_user(engine, AUTHOR)
        lounge_id = make_lounge(engine, creator_id=AUTHOR)
        deleted = make_post(engine, lounge_id, AUTHOR, deleted_at=datetime.now(UTC))
        with pytest.raises(NotFoundError):
            cast_vote(engine, "post", deleted, VOTER, "UPVOTE")

    def test_unknown_vote_type(self, engine, post_id):
        with pytest.raises(ValidationError):
            cast_vote(engine, "post", post_id, VOTER, "SIDEWAYS")

    def test_unknown_target_type(self, engine, post_id):
        with pytest.raises(ValidationError):
            cast_vote(engine, "lounge", post_id, VOTER, "UPVOTE")


class TestVoteStatus:
    def test_anonymous_status(self, engine, post_id):
        cast_vote(engine, "post", post_id, VOTER, "UPVOTE")
        status = get_vote_status(engine, "post", post_id)
        assert status.upvote_count == 1
        assert status.user_vote is None

    def test_caller_status(self, engine, post_id):
        cast_vote(engine, "post", post_id, VOTER, "DOWNVOTE")
        assert get_vote_status(engine, "post", post_id, VOTER).user_vote is VoteType.DOWNVOTE

    def test_missing_target(self, engine):
        with pytest.raises(NotFoundError):
            get_vote_status(engine, "comment", 42)


class TestMilestone:
    def _seed_upvotes(self, engine, post_id, count):
        with Session(engine) as session:
            session.get(Post, post_id).upvote_count = count
            session.commit()

    def test_tenth_upvote_notifies_author(self, engine, post_id):
        self._seed_upvotes(engine, post_id, 9)
        notifier = MagicMock()
        cast_vote(engine, "post", post_id, VOTER, "UPVOTE", notifier)
        notifier.notify.assert_called_once()
        user_id, kind, payload = notifier.notify.call_args.args
        assert user_id == AUTHOR
        assert kind == "VOTE_MILESTONE"
        assert payload == {
            "target_type": "post", "target_id": post_id, "vote_type": "UPVOTE", "count": 10,
        }

    def test_tenth_downvote_notifies_author(self, engine, post_id):
        with Session(engine) as session:
            session.get(Post, post_id).downvote_count = 9
            session.commit()
        notifier = MagicMock()
        status = cast_vote(engine, "post", post_id, VOTER, "DOWNVOTE", notifier)
        assert status.downvote_count == 10
        _, _, payload = notifier.notify.call_args.args
        assert payload["vote_type"] == "DOWNVOTE"
        assert payload["count"] == 10

    def test_flip_landing_on_milestone_is_silent(self, engine, post_id):
        cast_vote(engine, "post", post_id, VOTER, "UPVOTE")
        with Session(engine) as session:
            session.get(Post, post_id).downvote_count = 9
            session.commit()
        notifier = MagicMock()
        status = cast_vote(engine, "post", post_id, VOTER, "DOWNVOTE", notifier)
        assert status.downvote_count == 10
        notifier.notify.assert_not_called()

    def test_non_milestone_is_silent(self, engine, post_id):
        self._seed_upvotes(engine, post_id, 4)
        notifier = MagicMock()
        cast_vote(engine, "post", post_id, VOTER, "UPVOTE", notifier)
        notifier.notify.assert_not_called()

    def test_self_vote_is_silent(self, engine, post_id):
        self._seed_upvotes(engine, post_id, 9)
        notifier = MagicMock()
        cast_vote(engine, "post", post_id, AUTHOR, "UPVOTE", notifier)
        notifier.notify.assert_not_called()

    def test_toggle_off_landing_on_milestone_is_silent(self, engine, post_id):
        cast_vote(engine, "post", post_id, VOTER, "UPVOTE")
        self._seed_upvotes(engine, post_id, 11)
        notifier = MagicMock()
        status = cast_vote(engine, "post", post_id, VOTER, "UPVOTE", notifier)
        assert status.upvote_count == 10
        notifier.notify.assert_not_called()

    def test_notifier_failure_does_not_undo_vote(self, engine, post_id):
        self._seed_upvotes(engine, post_id, 9)
        notifier = MagicMock()
        notifier.notify.side_effect = RuntimeError("queue down")
        status = cast_vote(engine, "post", post_id, VOTER, "UPVOTE", notifier)
        assert status.upvote_count == 10
        assert get_vote_status(engine, "post", post_id, VOTER).user_vote is VoteType.UPVOTE

    def test_custom_interval(self, engine, post_id):
        self._seed_upvotes(engine, post_id, 4)
        notifier = MagicMock()
        cast_vote(engine, "post", post_id, VOTER, "UPVOTE", notifier, milestone_interval=5)
        notifier.notify.assert_called_once()

    def test_database_notifier_writes_row(self, engine, post_id):
        self._seed_upvotes(engine, post_id, 9)
        cast_vote(engine, "post", post_id, VOTER, "UPVOTE", DatabaseNotifier(engine))
        with Session(engine) as session:
            note = session.scalar(select(Notification))
            assert note.user_id == AUTHOR
            assert note.kind == "VOTE_MILESTONE"


class TestAtomicity:
    def test_failure_after_counter_update_rolls_back_vote(self, engine, post_id):
        cast_vote(engine, "post", post_id, VOTER, "UPVOTE")
        with patch(
            "encore.services.vote_service._read_status", side_effect=RuntimeError("boom"),
        ):
            with pytest.raises(RuntimeError):
                cast_vote(engine, "post", post_id, VOTER, "DOWNVOTE")
        assert _live_counts(engine, Post, post_id) == (1, 0)
        assert get_vote_status(engine, "post", post_id, VOTER).user_vote is VoteType.UPVOTE

    def test_failed_first_vote_leaves_nothing(self, engine, post_id):
        with patch(
            "encore.services.vote_service._read_status", side_effect=RuntimeError("boom"),
        ):
            with pytest.raises(RuntimeError):
                cast_vote(engine, "post", post_id, VOTER, "UPVOTE")
        assert _live_counts(engine, Post, post_id) == (0, 0)
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(Vote)) == 0
