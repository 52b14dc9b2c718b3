"""Logging-backed audit and notification sinks, and a static user directory.

Audit persistence and notification delivery live outside this service;
these adapters write structured log records that a collector can ship.
"""

import json
import logging
from typing import Any, Optional
from uuid import UUID

from ..domain.entities import Actor
from ..domain.ports import IAuditSink, INotificationSink, IUserDirectory

logger = logging.getLogger(__name__)

audit_logger = logging.getLogger("rtb.audit")
notification_logger = logging.getLogger("rtb.notifications")


class LoggingAuditSink(IAuditSink):
    """Writes one JSON line per audit record to the ``rtb.audit`` logger."""

    async def record(
        self,
        actor: Actor,
        action_type: str,
        target_entity: str,
        target_id: UUID,
        changes: dict[str, Any],
    ) -> None:
        audit_logger.info(
            json.dumps(
                {
                    "user_id": str(actor.user_id),
                    "role": actor.role.value,
                    "action_type": action_type,
                    "target_entity": target_entity,
                    "target_id": str(target_id),
                    "changes": changes,
                },
                default=str,
            )
        )


class LoggingNotificationSink(INotificationSink):
    """Writes notifications to the ``rtb.notifications`` logger."""

    async def notify(
        self,
        user_id: UUID,
        notification_type: str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
    ) -> None:
        notification_logger.info(
            f"[{notification_type}] to {user_id}: {title} - {message}"
            + (f" ({action_url})" if action_url else "")
        )


class StaticUserDirectory(IUserDirectory):
    """Staff recipients configured up front (STAFF_NOTIFY_USER_IDS)."""

    def __init__(self, staff_ids: Optional[list[UUID]] = None):
        self._staff_ids = list(staff_ids or [])

    async def staff_user_ids(self) -> list[UUID]:
        return list(self._staff_ids)
