"""Event publisher adapter.

Turns committed domain events into audit records and in-app notifications.
Runs after the unit of work has committed, so a failing sink is logged
and skipped; it never undoes workflow state.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from ..domain.entities import ApplicationStatus
from ..domain.events import (
    ApplicationAssigned,
    ApplicationCancelled,
    ApplicationReviewed,
    ApplicationSubmitted,
    DomainEvent,
    ReceiptConfirmed,
)
from ..domain.ports import IAuditSink, IEventPublisher, INotificationSink, IUserDirectory

logger = logging.getLogger(__name__)

ADMIN_APPLICATIONS_URL = "/dashboard/admin/applications"
SCHOOL_APPLICATIONS_URL = "/dashboard/applications"


@dataclass
class Notification:
    """A notification to send; user_id None means all staff."""

    notification_type: str
    title: str
    message: str
    action_url: str
    user_id: Optional[UUID] = None


def notification_for(event: DomainEvent) -> Optional[Notification]:
    """Notification raised by an event, if any."""
    if isinstance(event, ApplicationSubmitted):
        return Notification(
            "application_submitted",
            "New Device Application",
            f"{event.school_name} has submitted a new device application",
            ADMIN_APPLICATIONS_URL,
        )

    if isinstance(event, ApplicationReviewed):
        if event.status == ApplicationStatus.APPROVED:
            notification_type = "application_approved"
        elif event.status == ApplicationStatus.REJECTED:
            notification_type = "application_rejected"
        else:
            notification_type = "application_reviewed"
        message = f"Your device application has been {event.status.value.lower()}."
        if event.review_notes:
            message = f"{message} {event.review_notes}"
        return Notification(
            notification_type,
            f"Application {event.status.value}",
            message,
            SCHOOL_APPLICATIONS_URL,
            user_id=event.applicant_id,
        )

    if isinstance(event, ApplicationAssigned):
        return Notification(
            "devices_assigned",
            "Devices Assigned",
            f"{len(event.devices)} device(s) have been assigned to your school. "
            "Please confirm receipt once you receive them.",
            SCHOOL_APPLICATIONS_URL,
            user_id=event.applicant_id,
        )

    if isinstance(event, ReceiptConfirmed):
        return Notification(
            "devices_received",
            "Devices Received Confirmation",
            f"School has confirmed receipt of devices for application "
            f"#{str(event.application_id)[:8]}",
            ADMIN_APPLICATIONS_URL,
        )

    if isinstance(event, ApplicationCancelled):
        who = event.actor.name or "School"
        return Notification(
            "system_alert",
            "Application Cancelled",
            f"{who} cancelled application #{str(event.application_id)[:8]} "
            f"from {event.school_name}",
            ADMIN_APPLICATIONS_URL,
        )

    return None


class SinkEventPublisher(IEventPublisher):
    """Publishes events to an audit sink and a notification sink."""

    def __init__(
        self,
        audit_sink: IAuditSink,
        notification_sink: INotificationSink,
        user_directory: IUserDirectory,
    ):
        self.audit = audit_sink
        self.notifications = notification_sink
        self.users = user_directory

    async def publish(self, events: list) -> None:
        for event in events:
            await self._audit(event)
            notification = notification_for(event)
            if notification is not None:
                await self._notify(notification)

    async def _audit(self, event: DomainEvent) -> None:
        try:
            await self.audit.record(
                actor=event.actor,
                action_type=event.audit_action.value,
                target_entity=event.target_entity.value,
                target_id=event.target_id,
                changes=event.changes(),
            )
        except Exception as e:
            logger.warning(f"Audit sink failed for {event.event_type} {event.target_id}: {e}")

    async def _notify(self, notification: Notification) -> None:
        try:
            if notification.user_id is not None:
                recipients = [notification.user_id]
            else:
                recipients = await self.users.staff_user_ids()
        except Exception as e:
            logger.warning(f"Could not resolve staff recipients: {e}")
            return

        for user_id in recipients:
            try:
                await self.notifications.notify(
                    user_id=user_id,
                    notification_type=notification.notification_type,
                    title=notification.title,
                    message=notification.message,
                    action_url=notification.action_url,
                )
            except Exception as e:
                logger.warning(
                    f"Notification sink failed ({notification.notification_type} "
                    f"to {user_id}): {e}"
                )
