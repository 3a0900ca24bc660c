"""
encore.services.notification_service — Notifier Port
=====================================================

The engine emits exactly one kind of notification today (vote milestones)
and never renders or delivers it.  Callers pass anything that satisfies
:class:`Notifier`; the default :class:`DatabaseNotifier` drops a row into
the ``notifications`` table owned by the notification service.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy import Engine

from encore.database.engine import get_session
from encore.database.models import Notification

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, user_id: int, kind: str, payload: dict[str, Any]) -> None: ...


class DatabaseNotifier:
    """Writes one ``notifications`` row per call, in its own transaction."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def notify(self, user_id: int, kind: str, payload: dict[str, Any]) -> None:
        with get_session(self._engine) as session:
            session.add(Notification(user_id=user_id, kind=kind, payload=payload))
        logger.info("Notification %s queued for user %d", kind, user_id)
