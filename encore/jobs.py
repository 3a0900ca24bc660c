"""
encore.jobs — Periodic batch entry point for ``python -m encore.jobs``
======================================================================

The engine owns no timer.  An external scheduler (cron, systemd timer,
Kubernetes CronJob) invokes one job per run; jobs for the same data must
not overlap.

Jobs::

    monthly [--lounge ID ...]   rankings → top fan → monthly reset
    rankings --lounge ID ...    positional ranks by lifetime score
    top-fan --lounge ID ...     TOP_FAN badge for the monthly leader
    daily-quests                drop progress of DAILY quests
    weekly-quests               drop progress of WEEKLY quests

Without ``--lounge``, ``monthly`` covers every lounge that has scores.
Each run is written to ``admin_log``.  The same functions back the admin
job routes in :mod:`encore.api.routes.admin`.

Run with::

    uv run python -m encore.jobs monthly
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from dotenv import load_dotenv
from sqlalchemy import Engine, select

from encore.database.engine import create_db_engine
from encore.database.models import FanScore
from encore.services.audit import log_batch_run
from encore.services.badge_service import award_top_fan_badge
from encore.services.quest_service import reset_daily_quests, reset_weekly_quests
from encore.services.score_service import reset_monthly_scores, update_rankings

logger = logging.getLogger(__name__)


def scored_lounges(engine: Engine) -> list[int]:
    """Every lounge id that has at least one fan score row."""
    with engine.connect() as conn:
        return list(conn.scalars(
            select(FanScore.lounge_id).distinct().order_by(FanScore.lounge_id)
        ).all())


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------
def run_rankings(
    engine: Engine, lounge_ids: Sequence[int], *, actor_id: int | None = None,
) -> dict:
    ranked = {lounge_id: update_rankings(engine, lounge_id) for lounge_id in lounge_ids}
    result = {"ranked": {str(k): v for k, v in ranked.items()}}
    log_batch_run(engine, "rankings", result, actor_id=actor_id)
    return result


def run_top_fan(
    engine: Engine, lounge_ids: Sequence[int], *, actor_id: int | None = None,
) -> dict:
    awarded = {}
    for lounge_id in lounge_ids:
        badge = award_top_fan_badge(engine, lounge_id)
        awarded[str(lounge_id)] = badge.user_id if badge is not None else None
    result = {"top_fans": awarded}
    log_batch_run(engine, "top-fan", result, actor_id=actor_id)
    return result


def run_monthly(
    engine: Engine,
    lounge_ids: Sequence[int] | None = None,
    *,
    actor_id: int | None = None,
) -> dict:
    """Month-end close: rank, crown the top fans, then reset monthly scores.

    TOP_FAN reads ``monthly_score``, so it must run before the reset.
    """
    lounges = list(lounge_ids) if lounge_ids else scored_lounges(engine)
    logger.info("Monthly close starting for %d lounge(s)", len(lounges))

    ranked: dict[str, int] = {}
    top_fans: dict[str, int | None] = {}
    for lounge_id in lounges:
        ranked[str(lounge_id)] = update_rankings(engine, lounge_id)
        badge = award_top_fan_badge(engine, lounge_id)
        top_fans[str(lounge_id)] = badge.user_id if badge is not None else None
    reset = reset_monthly_scores(engine)

    result = {"ranked": ranked, "top_fans": top_fans, "reset": reset}
    log_batch_run(engine, "monthly", result, actor_id=actor_id)
    logger.info("Monthly close finished: %s", result)
    return result


def run_daily_quests(engine: Engine, *, actor_id: int | None = None) -> dict:
    result = {"deleted": reset_daily_quests(engine)}
    log_batch_run(engine, "daily-quests", result, actor_id=actor_id)
    return result


def run_weekly_quests(engine: Engine, *, actor_id: int | None = None) -> dict:
    result = {"deleted": reset_weekly_quests(engine)}
    log_batch_run(engine, "weekly-quests", result, actor_id=actor_id)
    return result


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m encore.jobs", description="Run one Encore periodic job.",
    )
    sub = parser.add_subparsers(dest="job", required=True)

    monthly = sub.add_parser("monthly", help="rankings, top fan badge, monthly reset")
    monthly.add_argument("--lounge", type=int, action="append", dest="lounges")

    for name in ("rankings", "top-fan"):
        job = sub.add_parser(name)
        job.add_argument("--lounge", type=int, action="append", dest="lounges", required=True)

    sub.add_parser("daily-quests", help="reset DAILY quest progress")
    sub.add_parser("weekly-quests", help="reset WEEKLY quest progress")
    return parser


def main(argv: Sequence[str] | None = None, engine: Engine | None = None) -> int:
    """Parse *argv*, run the job, return a process exit code."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    args = build_parser().parse_args(argv)

    if engine is None:
        load_dotenv()
        engine = create_db_engine()

    if args.job == "monthly":
        run_monthly(engine, args.lounges)
    elif args.job == "rankings":
        run_rankings(engine, args.lounges)
    elif args.job == "top-fan":
        run_top_fan(engine, args.lounges)
    elif args.job == "daily-quests":
        run_daily_quests(engine)
    else:
        run_weekly_quests(engine)
    return 0


if __name__ == "__main__":
    sys.exit(main())
