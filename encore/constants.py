"""
encore.constants — Shared Constants & Helpers
==============================================

Single source of truth for badge presentation, the quest progress
percentage, and calendar arithmetic used by the periodic jobs.
Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

import calendar
from datetime import UTC, datetime

from encore.database.models import BadgeType

# ---------------------------------------------------------------------------
# Badge presentation (static per type; copied onto FanBadge at creation)
# ---------------------------------------------------------------------------
BADGE_INFO: dict[BadgeType, dict[str, str]] = {
    BadgeType.EARLY_BIRD: {
        "name": "Early Bird",
        "description": "One of the first members of the lounge",
    },
    BadgeType.TOP_FAN: {
        "name": "Top Fan",
        "description": "Top contributor of the month",
    },
    BadgeType.ACTIVE_COMMENTER: {
        "name": "Active Commenter",
        "description": "Wrote 100 or more comments",
    },
    BadgeType.CONTENT_CREATOR: {
        "name": "Content Creator",
        "description": "Wrote 50 or more posts",
    },
    BadgeType.QUEST_MASTER: {
        "name": "Quest Master",
        "description": "Completed every quest",
    },
    BadgeType.SUPER_FAN: {
        "name": "Super Fan",
        "description": "VIP membership holder",
    },
    BadgeType.CREATOR_PICK: {
        "name": "Creator Pick",
        "description": "Hand-picked by the creator",
    },
}

# Vote milestone notification kind (see vote_service)
VOTE_MILESTONE = "VOTE_MILESTONE"


# ---------------------------------------------------------------------------
# Quest progress
# ---------------------------------------------------------------------------
def progress_percentage(current: int, target: int) -> int:
    """Percent of *target* reached, rounded and capped at 100."""
    if target <= 0:
        return 100
    # round() is banker's rounding; the display uses half-up.
    return min(100, int(current * 100 / target + 0.5))


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------
def as_utc(moment: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (some drivers drop the offset on read)."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def add_one_month(moment: datetime) -> datetime:
    """Same wall-clock time one calendar month later.

    The day is clamped to the end of the target month, so Jan 31 becomes
    Feb 28 (or 29).
    """
    year = moment.year + (1 if moment.month == 12 else 0)
    month = 1 if moment.month == 12 else moment.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))
