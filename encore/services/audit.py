"""
encore.services.audit — Admin Log Helpers
==========================================

Every engine mutation that is not a user's own engagement (quest
create/update/delete, manual badge awards, batch runs) follows the pattern:
  1. Read "before" snapshot
  2. Apply change
  3. Write admin_log with before/after JSONB
  4. Commit together with the change
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from encore.database.engine import get_session
from encore.database.models import AdminLog

logger = logging.getLogger(__name__)


def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    *,
    actor_id: int | None,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))
    logger.debug(
        "admin_log: actor=%s %s %s/%s", actor_id, action_type, target_table, target_id,
    )


def log_batch_run(
    engine: Engine,
    job: str,
    result: dict,
    *,
    actor_id: int | None = None,
) -> None:
    """Record one periodic job run (scheduler or admin trigger)."""
    with get_session(engine) as session:
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type="BATCH",
            target_table="jobs",
            target_id=job,
            before=None,
            after=result,
        )
