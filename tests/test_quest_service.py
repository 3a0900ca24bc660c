"""
tests/test_quest_service.py — Quest Engine Integration Tests
=============================================================

Creation rules and permissions, progress state machine, reward-once,
listing/percentages and the daily/weekly resets.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from conftest import make_lounge, make_manager, make_user
from encore.database.models import (
    AdminLog,
    BadgeType,
    FanBadge,
    QuestAction,
    QuestProgress,
    QuestType,
    UserRole,
)
from encore.errors import ForbiddenError, NotFoundError, ValidationError
from encore.services import quest_service, score_service
from encore.services.quest_service import QuestFilter, QuestInput

ADMIN = 1
CREATOR = 2
FAN = 3
OTHER_CREATOR = 4
MANAGER = 5


@pytest.fixture
def engine(db_engine):
    return db_engine


@pytest.fixture
def lounge_id(engine):
    make_user(engine, ADMIN, UserRole.ADMIN)
    make_user(engine, CREATOR, UserRole.CREATOR)
    make_user(engine, FAN)
    make_user(engine, OTHER_CREATOR, UserRole.CREATOR)
    make_user(engine, MANAGER, UserRole.CREATOR)
    lounge = make_lounge(engine, creator_id=CREATOR)
    make_manager(engine, MANAGER, lounge)
    return lounge


def _quest(engine, lounge_id=None, creator=CREATOR, **kwargs):
    data = {
        "type": QuestType.DAILY,
        "action_type": QuestAction.WRITE_POST,
        "title": "Write a post today",
        "lounge_id": lounge_id,
    }
    data.update(kwargs)
    return quest_service.create_quest(engine, creator, QuestInput(**data))


# ---------------------------------------------------------------------------
# Creation & permissions
# ---------------------------------------------------------------------------
class TestCreateQuest:
    def test_defaults(self, engine, lounge_id):
        before = datetime.now(UTC)
        quest = _quest(engine, lounge_id)
        assert quest.target_count == 1
        assert quest.reward_score == 10
        assert quest.is_active is True
        assert quest.creator_id == CREATOR
        starts = quest.starts_at.replace(tzinfo=UTC) if quest.starts_at.tzinfo is None \
            else quest.starts_at
        assert starts >= before - timedelta(seconds=1)

    def test_account_wide_by_creator(self, engine, lounge_id):
        assert _quest(engine, None).lounge_id is None

    def test_manager_may_scope_lounge(self, engine, lounge_id):
        assert _quest(engine, lounge_id, creator=MANAGER).lounge_id == lounge_id

    def test_admin_may_scope_any_lounge(self, engine, lounge_id):
        assert _quest(engine, lounge_id, creator=ADMIN).lounge_id == lounge_id

    def test_plain_user_forbidden(self, engine, lounge_id):
        with pytest.raises(ForbiddenError):
            _quest(engine, None, creator=FAN)

    def test_unrelated_creator_forbidden_in_lounge(self, engine, lounge_id):
        with pytest.raises(ForbiddenError):
            _quest(engine, lounge_id, creator=OTHER_CREATOR)

    def test_unknown_creator(self, engine, lounge_id):
        with pytest.raises(NotFoundError):
            _quest(engine, None, creator=777)

    def test_unknown_lounge(self, engine, lounge_id):
        with pytest.raises(NotFoundError):
            _quest(engine, 9999)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"target_count": 0},
            {"reward_score": -1},
            {"title": "x" * 101},
            {"title": "   "},
            {"description": "x" * 501},
            {"type": "YEARLY"},
            {"action_type": "DANCE"},
            {"reward_badge_type": "GOLDEN_TICKET"},
            {
                "starts_at": datetime(2026, 5, 1, tzinfo=UTC),
                "ends_at": datetime(2026, 5, 1, tzinfo=UTC),
            },
        ],
    )
    def test_validation(self, engine, lounge_id, overrides):
        with pytest.raises(ValidationError):
            _quest(engine, lounge_id, **overrides)

    def test_creation_is_audited(self, engine, lounge_id):
        quest = _quest(engine, lounge_id)
        with Session(engine) as session:
            log = session.scalar(select(AdminLog))
            assert (log.action_type, log.target_table, log.target_id) == (
                "CREATE", "quests", str(quest.id),
            )
            assert log.after_snapshot["title"] == "Write a post today"


class TestUpdateDeleteQuest:
    def test_owner_updates(self, engine, lounge_id):
        quest = _quest(engine, lounge_id)
        updated = quest_service.update_quest(
            engine, quest.id, CREATOR, {"title": "Two posts", "target_count": 2, "reward_score": 0},
        )
        assert updated.title == "Two posts"
        assert updated.target_count == 2
        assert updated.reward_score == 0

    def test_admin_updates(self, engine, lounge_id):
        quest = _quest(engine, lounge_id)
        assert quest_service.update_quest(
            engine, quest.id, ADMIN, {"is_active": False},
        ).is_active is False

    def test_other_user_forbidden(self, engine, lounge_id):
        quest = _quest(engine, lounge_id)
        with pytest.raises(ForbiddenError):
            quest_service.update_quest(engine, quest.id, MANAGER, {"title": "mine now"})
        with pytest.raises(ForbiddenError):
            quest_service.delete_quest(engine, quest.id, FAN)

    def test_missing_quest(self, engine, lounge_id):
        with pytest.raises(NotFoundError):
            quest_service.update_quest(engine, 404, ADMIN, {"title": "x"})
        with pytest.raises(NotFoundError):
            quest_service.delete_quest(engine, 404, ADMIN)

    def test_rejects_unknown_and_invalid_fields(self, engine, lounge_id):
        quest = _quest(engine, lounge_id)
        with pytest.raises(ValidationError):
            quest_service.update_quest(engine, quest.id, CREATOR, {"creator_id": FAN})
        with pytest.raises(ValidationError):
            quest_service.update_quest(engine, quest.id, CREATOR, {"target_count": 0})
        with pytest.raises(ValidationError):
            quest_service.update_quest(
                engine, quest.id, CREATOR,
                {"ends_at": datetime.now(UTC) - timedelta(days=3)},
            )

    def test_delete_cascades_progress(self, engine, lounge_id):
        quest = _quest(engine, lounge_id, target_count=3)
        quest_service.update_progress(engine, FAN, QuestAction.WRITE_POST, lounge_id)
        quest_service.delete_quest(engine, quest.id, CREATOR)
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(QuestProgress)) == 0
            actions = session.scalars(select(AdminLog.action_type)).all()
            assert actions == ["CREATE", "DELETE"]
        with pytest.raises(NotFoundError):
            quest_service.get_quest(engine, quest.id)


# ---------------------------------------------------------------------------
# Progress state machine
# ---------------------------------------------------------------------------
class TestProgress:
    def test_single_step_quest_completes_and_rewards(self, engine, lounge_id):
        _quest(engine, lounge_id, target_count=1, reward_score=10)
        touched = quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)
        assert len(touched) == 1
        progress = touched[0]
        assert progress.current_count == 1
        assert progress.is_completed is True
        assert progress.completed_at is not None
        assert score_service.get_user_score(engine, FAN, lounge_id).quest_score == 10

    def test_completed_quest_is_frozen(self, engine, lounge_id):
        _quest(engine, lounge_id, target_count=1, reward_score=10)
        first = quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)[0]
        assert quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id) == []
        assert quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id) == []

        rows = quest_service.get_user_progress(engine, FAN)
        assert len(rows) == 1
        assert rows[0].current_count == 1
        assert rows[0].completed_at == first.completed_at
        assert score_service.get_user_score(engine, FAN, lounge_id).quest_score == 10

    def test_multi_step_progress(self, engine, lounge_id):
        _quest(engine, lounge_id, target_count=3, reward_score=30)
        for expected in (1, 2):
            progress = quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)[0]
            assert progress.current_count == expected
            assert progress.is_completed is False
        assert score_service.get_user_score(engine, FAN, lounge_id) is None

        done = quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)[0]
        assert done.current_count == 3
        assert done.is_completed is True
        assert score_service.get_user_score(engine, FAN, lounge_id).quest_score == 30

    def test_other_actions_do_not_match(self, engine, lounge_id):
        _quest(engine, lounge_id)
        assert quest_service.update_progress(engine, FAN, "WRITE_COMMENT", lounge_id) == []

    def test_lounge_action_advances_lounge_and_global_quests(self, engine, lounge_id):
        _quest(engine, lounge_id, target_count=5)
        _quest(engine, None, target_count=5)
        touched = quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)
        assert len(touched) == 2

    def test_action_without_lounge_only_advances_global_quests(self, engine, lounge_id):
        lounge_quest = _quest(engine, lounge_id, target_count=5)
        global_quest = _quest(engine, None, target_count=5)
        touched = quest_service.update_progress(engine, FAN, "WRITE_POST")
        assert [p.quest_id for p in touched] == [global_quest.id]
        assert lounge_quest.id not in {p.quest_id for p in touched}

    def test_other_lounge_quests_ignored(self, engine, lounge_id):
        other = make_lounge(engine, creator_id=CREATOR)
        _quest(engine, other, target_count=5)
        assert quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id) == []

    def test_inactive_and_out_of_window_quests_ignored(self, engine, lounge_id):
        now = datetime.now(UTC)
        inactive = _quest(engine, lounge_id)
        quest_service.update_quest(engine, inactive.id, CREATOR, {"is_active": False})
        _quest(engine, lounge_id, starts_at=now + timedelta(days=1))
        _quest(
            engine, lounge_id,
            starts_at=now - timedelta(days=3), ends_at=now - timedelta(days=1),
        )
        assert quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id) == []

    def test_reward_badge_scoped_to_triggering_lounge(self, engine, lounge_id):
        _quest(engine, None, reward_score=0, reward_badge_type=BadgeType.QUEST_MASTER)
        quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)
        with Session(engine) as session:
            badge = session.scalar(select(FanBadge))
            assert badge.type == "QUEST_MASTER"
            assert badge.lounge_id == lounge_id
        # reward_score 0 → no score row created
        assert score_service.get_user_score(engine, FAN, lounge_id) is None

    def test_global_reward_without_lounge(self, engine, lounge_id):
        _quest(engine, None, reward_score=50, reward_badge_type="QUEST_MASTER")
        quest_service.update_progress(engine, FAN, "WRITE_POST")
        with Session(engine) as session:
            badge = session.scalar(select(FanBadge))
            assert badge.scope_key == "global"
            # No lounge known → no score credit anywhere
            assert session.scalar(select(func.count()).select_from(FanBadge)) == 1
        assert score_service.get_all_scores_for_user(engine, FAN) == []

    def test_unknown_action(self, engine, lounge_id):
        with pytest.raises(ValidationError):
            quest_service.update_progress(engine, FAN, "DANCE", lounge_id)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
class TestListing:
    def test_joined_with_progress(self, engine, lounge_id):
        quest = _quest(engine, lounge_id, target_count=3)
        quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)
        listing = quest_service.list_quests(engine, QuestFilter(), FAN)
        assert listing.total_count == 1
        view = listing.quests[0]
        assert view.quest.id == quest.id
        assert view.current_count == 1
        assert view.progress_percentage == 33
        assert view.is_completed is False

    def test_anonymous_sees_zero_progress(self, engine, lounge_id):
        _quest(engine, lounge_id, target_count=3)
        view = quest_service.list_quests(engine).quests[0]
        assert (view.current_count, view.progress_percentage) == (0, 0)

    def test_completed_hidden_unless_requested(self, engine, lounge_id):
        _quest(engine, lounge_id, target_count=1, title="easy")
        _quest(engine, lounge_id, target_count=5, title="hard")
        quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)

        hidden = quest_service.list_quests(engine, QuestFilter(), FAN)
        assert [v.quest.title for v in hidden.quests] == ["hard"]
        assert hidden.total_count == 1

        shown = quest_service.list_quests(engine, QuestFilter(include_completed=True), FAN)
        assert [v.quest.title for v in shown.quests] == ["hard", "easy"]
        assert shown.total_count == 2
        assert shown.quests[1].progress_percentage == 100

    def test_filters_and_pagination(self, engine, lounge_id):
        for i in range(3):
            _quest(engine, lounge_id, title=f"daily {i}")
        _quest(engine, None, type=QuestType.WEEKLY, title="weekly")

        weekly = quest_service.list_quests(engine, QuestFilter(type="WEEKLY"))
        assert [v.quest.title for v in weekly.quests] == ["weekly"]

        in_lounge = quest_service.list_quests(engine, QuestFilter(lounge_id=lounge_id))
        assert len(in_lounge.quests) == 3

        page2 = quest_service.list_quests(
            engine, QuestFilter(include_completed=True, page=2, limit=3),
        )
        assert [v.quest.title for v in page2.quests] == ["daily 0"]
        assert page2.total_count == 4

    def test_get_quest_with_progress(self, engine, lounge_id):
        quest = _quest(engine, lounge_id, target_count=2)
        quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)
        view = quest_service.get_quest(engine, quest.id, FAN)
        assert view.current_count == 1
        assert view.progress_percentage == 50
        assert quest_service.get_quest(engine, quest.id).current_count == 0

    def test_user_progress_loads_quest(self, engine, lounge_id):
        _quest(engine, lounge_id, target_count=2, title="loaded")
        quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)
        rows = quest_service.get_user_progress(engine, FAN)
        assert rows[0].quest.title == "loaded"


class TestResets:
    def test_daily_and_weekly_resets_are_selective(self, engine, lounge_id):
        _quest(engine, lounge_id, type="DAILY", target_count=5)
        _quest(engine, lounge_id, type="WEEKLY", target_count=5)
        _quest(engine, lounge_id, type="EVENT", target_count=5)
        quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)

        assert quest_service.reset_daily_quests(engine) == 1
        assert quest_service.reset_weekly_quests(engine) == 1
        remaining = quest_service.get_user_progress(engine, FAN)
        assert [p.quest.type for p in remaining] == ["EVENT"]

    def test_daily_reset_allows_completion_again(self, engine, lounge_id):
        _quest(engine, lounge_id, type="DAILY", reward_score=10)
        quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)
        quest_service.reset_daily_quests(engine)
        quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)
        assert score_service.get_user_score(engine, FAN, lounge_id).quest_score == 20


# ---------------------------------------------------------------------------
# Progress and reward commit together
# ---------------------------------------------------------------------------
class TestRewardAtomicity:
    def _progress_rows(self, engine):
        with Session(engine) as session:
            return list(session.scalars(select(QuestProgress)).all())

    def test_failed_score_reward_discards_new_progress(self, engine, lounge_id):
        _quest(engine, lounge_id, target_count=1, reward_score=10)
        with patch(
            "encore.services.quest_service.apply_score", side_effect=RuntimeError("boom"),
        ):
            with pytest.raises(RuntimeError):
                quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)
        assert self._progress_rows(engine) == []
        assert score_service.get_user_score(engine, FAN, lounge_id) is None

    def test_failed_badge_reward_keeps_prior_progress(self, engine, lounge_id):
        _quest(
            engine, lounge_id, target_count=2, reward_score=10,
            reward_badge_type=BadgeType.QUEST_MASTER,
        )
        quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)
        with patch(
            "encore.services.quest_service.upsert_badge", side_effect=RuntimeError("boom"),
        ):
            with pytest.raises(RuntimeError):
                quest_service.update_progress(engine, FAN, "WRITE_POST", lounge_id)

        [progress] = self._progress_rows(engine)
        assert progress.current_count == 1
        assert progress.is_completed is False
        assert progress.completed_at is None
        # the score half of the reward was rolled back with it
        assert score_service.get_user_score(engine, FAN, lounge_id) is None
        with Session(engine) as session:
            assert session.scalars(select(FanBadge)).all() == []

    def test_unknown_user_is_not_found(self, fk_engine, lounge_id):
        _quest(fk_engine, lounge_id, target_count=3)
        with pytest.raises(NotFoundError):
            quest_service.update_progress(fk_engine, 9999, "WRITE_POST", lounge_id)
        assert self._progress_rows(fk_engine) == []
