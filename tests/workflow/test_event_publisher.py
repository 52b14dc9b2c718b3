"""Tests for event publishing to audit and notification sinks."""

import json
import logging
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from src.rtb.workflow.adapters import (
    LoggingAuditSink,
    LoggingNotificationSink,
    SinkEventPublisher,
    StaticUserDirectory,
)
from src.rtb.workflow.adapters.event_publisher import notification_for
from src.rtb.workflow.domain.entities import (
    ApplicationStatus,
    AssignedDevice,
    DeviceCategory,
    RequestedQuantities,
)
from src.rtb.workflow.domain.events import (
    ApplicationAssigned,
    ApplicationCancelled,
    ApplicationReviewed,
    ApplicationSubmitted,
    DeviceAssigned,
    ReceiptConfirmed,
)


class MockAuditSink:
    """Records audit calls in memory."""

    def __init__(self, fail: bool = False):
        self.records = []
        self.fail = fail

    async def record(self, actor, action_type, target_entity, target_id, changes):
        if self.fail:
            raise RuntimeError("audit store unavailable")
        self.records.append((action_type, target_entity, target_id, changes))


@pytest.fixture
def staff_ids():
    return [uuid4(), uuid4()]


@pytest.fixture
def notification_sink():
    return AsyncMock()


def submitted_event(school_actor, school):
    return ApplicationSubmitted(
        actor=school_actor,
        application_id=uuid4(),
        school_id=school.id,
        school_name=school.school_name,
        requested=RequestedQuantities(laptops=2),
    )


class TestNotificationFor:
    """Tests for event-to-notification mapping."""

    def test_submitted_goes_to_staff(self, school_actor, school):
        notification = notification_for(submitted_event(school_actor, school))
        assert notification.notification_type == "application_submitted"
        assert notification.user_id is None
        assert notification.message == "GS Kacyiru has submitted a new device application"
        assert notification.action_url == "/dashboard/admin/applications"

    @pytest.mark.parametrize(
        "status,notification_type",
        [
            (ApplicationStatus.APPROVED, "application_approved"),
            (ApplicationStatus.REJECTED, "application_rejected"),
            (ApplicationStatus.UNDER_REVIEW, "application_reviewed"),
        ],
    )
    def test_review_goes_to_applicant(self, staff, status, notification_type):
        applicant = uuid4()
        event = ApplicationReviewed(
            actor=staff,
            application_id=uuid4(),
            applicant_id=applicant,
            previous_status=ApplicationStatus.PENDING,
            status=status,
            is_eligible=None,
            review_notes="See notes",
        )
        notification = notification_for(event)
        assert notification.notification_type == notification_type
        assert notification.user_id == applicant
        assert notification.message.endswith("See notes")

    def test_assignment_counts_devices(self, staff):
        devices = tuple(
            AssignedDevice(uuid4(), f"SN{i}", DeviceCategory.LAPTOP, f"LAP/GAS/SCH1/000{i}")
            for i in range(1, 4)
        )
        event = ApplicationAssigned(
            actor=staff, application_id=uuid4(), applicant_id=uuid4(), devices=devices
        )
        notification = notification_for(event)
        assert notification.notification_type == "devices_assigned"
        assert notification.message.startswith("3 device(s)")

    def test_cancel_and_receipt_go_to_staff(self, school_actor):
        cancelled = notification_for(
            ApplicationCancelled(actor=school_actor, application_id=uuid4(), school_name="GS Kacyiru")
        )
        received = notification_for(
            ReceiptConfirmed(actor=school_actor, application_id=uuid4(), confirmation_notes=None)
        )
        assert cancelled.user_id is None
        assert "GS Kacyiru" in cancelled.message
        assert received.notification_type == "devices_received"

    def test_device_events_do_not_notify(self, staff, school):
        event = DeviceAssigned(
            actor=staff,
            device=AssignedDevice(uuid4(), "SN1", DeviceCategory.TABLET, "TAB/GAS/SCH1/0001"),
            school_id=school.id,
        )
        assert notification_for(event) is None


class TestSinkEventPublisher:
    """Tests for SinkEventPublisher."""

    @pytest.mark.asyncio
    async def test_audits_and_notifies_staff(
        self, school_actor, school, staff_ids, notification_sink
    ):
        audit = MockAuditSink()
        publisher = SinkEventPublisher(audit, notification_sink, StaticUserDirectory(staff_ids))
        event = submitted_event(school_actor, school)

        await publisher.publish([event])

        [(action, entity, target_id, changes)] = audit.records
        assert action == "CREATE"
        assert entity == "DeviceApplication"
        assert target_id == event.application_id
        assert changes["requested"]["laptops"] == 2
        assert notification_sink.notify.await_count == 2
        notified = [c.kwargs["user_id"] for c in notification_sink.notify.await_args_list]
        assert notified == staff_ids

    @pytest.mark.asyncio
    async def test_failing_audit_sink_does_not_block_notifications(
        self, school_actor, school, staff_ids, notification_sink, caplog
    ):
        publisher = SinkEventPublisher(
            MockAuditSink(fail=True), notification_sink, StaticUserDirectory(staff_ids)
        )

        with caplog.at_level(logging.WARNING):
            await publisher.publish([submitted_event(school_actor, school)])

        assert notification_sink.notify.await_count == 2
        assert "Audit sink failed" in caplog.text

    @pytest.mark.asyncio
    async def test_failing_recipient_does_not_stop_others(
        self, school_actor, school, staff_ids, notification_sink
    ):
        notification_sink.notify.side_effect = [RuntimeError("mailbox full"), None]
        publisher = SinkEventPublisher(
            MockAuditSink(), notification_sink, StaticUserDirectory(staff_ids)
        )

        await publisher.publish([submitted_event(school_actor, school)])

        assert notification_sink.notify.await_count == 2

    @pytest.mark.asyncio
    async def test_logging_sinks(self, school_actor, school, staff_ids, caplog):
        publisher = SinkEventPublisher(
            LoggingAuditSink(), LoggingNotificationSink(), StaticUserDirectory(staff_ids[:1])
        )

        with caplog.at_level(logging.INFO):
            await publisher.publish([submitted_event(school_actor, school)])

        audit_lines = [r.getMessage() for r in caplog.records if r.name == "rtb.audit"]
        record = json.loads(audit_lines[0])
        assert record["action_type"] == "CREATE"
        assert record["role"] == "school"
        assert any(
            r.name == "rtb.notifications" and "application_submitted" in r.getMessage()
            for r in caplog.records
        )
