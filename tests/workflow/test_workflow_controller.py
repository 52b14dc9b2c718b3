"""Tests for the workflow controller."""

from uuid import uuid4

import pytest

from src.rtb.core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from src.rtb.workflow.domain.entities import (
    ApplicationStatus,
    DeviceCategory,
    DeviceStatus,
    RequestedQuantities,
)
from src.rtb.workflow.domain.events import (
    ApplicationCancelled,
    ApplicationReviewed,
    ApplicationSubmitted,
    EligibilityUpdated,
    ReceiptConfirmed,
)
from src.rtb.workflow.domain.permissions import Operation
from src.rtb.workflow.use_cases import WorkflowController


@pytest.fixture
def controller(store, publisher):
    return WorkflowController(store.unit_of_work, publisher=publisher)


async def submit(controller, actor, **requested):
    return await controller.submit(
        actor,
        requested=RequestedQuantities(**(requested or {"laptops": 2, "tablets": 1})),
        purpose="Equip the new ICT lab",
        letter_document_ref="letter-0123.pdf",
    )


def published(publisher, event_type):
    return [
        event
        for call in publisher.publish.call_args_list
        for event in call[0][0]
        if isinstance(event, event_type)
    ]


class TestFullScenario:
    """Submit, review, assign and confirm one application end to end."""

    @pytest.mark.asyncio
    async def test_happy_path(
        self, controller, store, school, school_actor, staff, publisher, make_devices
    ):
        application = await submit(controller, school_actor, laptops=2, tablets=1)
        assert application.status == ApplicationStatus.PENDING
        assert application.is_eligible is None

        reviewed = await controller.review(
            staff, application.id, ApplicationStatus.APPROVED, review_notes="Approved for Q3"
        )
        assert reviewed.status == ApplicationStatus.APPROVED
        assert reviewed.is_eligible is True
        assert reviewed.reviewed_by == staff.user_id

        laptops = make_devices(DeviceCategory.LAPTOP, 2)
        tablet = make_devices(DeviceCategory.TABLET, 1)
        result = await controller.assign(
            staff, application.id, [laptops[0].id, laptops[1].id, tablet[0].id]
        )
        assert [d.asset_tag for d in result.devices] == [
            "LAP/GAS/SCH00012/0001",
            "LAP/GAS/SCH00012/0002",
            "TAB/GAS/SCH00012/0001",
        ]
        assert store.applications[application.id].status == ApplicationStatus.ASSIGNED

        received = await controller.confirm_receipt(
            school_actor, application.id, confirmation_notes="All in good condition"
        )
        assert received.status == ApplicationStatus.RECEIVED
        assert received.confirmed_at is not None

        before = store.applications[application.id]
        with pytest.raises(InvalidTransitionError) as exc_info:
            await controller.confirm_receipt(school_actor, application.id)
        assert exc_info.value.current == ApplicationStatus.RECEIVED

        after = store.applications[application.id]
        assert after.status == ApplicationStatus.RECEIVED
        assert after.confirmed_at == before.confirmed_at
        assert after.confirmation_notes == "All in good condition"

        for device in laptops + tablet:
            assert store.devices[device.id].status == DeviceStatus.ASSIGNED

        assert len(published(publisher, ApplicationSubmitted)) == 1
        assert len(published(publisher, ApplicationReviewed)) == 1
        assert len(published(publisher, ReceiptConfirmed)) == 1


class TestSubmit:
    """Tests for application submission."""

    @pytest.mark.asyncio
    async def test_publishes_submitted_event(self, controller, school, school_actor, publisher):
        application = await submit(controller, school_actor)

        [event] = published(publisher, ApplicationSubmitted)
        assert event.application_id == application.id
        assert event.school_name == "GS Kacyiru"
        assert event.requested.total == 3

    @pytest.mark.asyncio
    async def test_nothing_requested(self, controller, school_actor):
        with pytest.raises(ValidationError) as exc_info:
            await submit(controller, school_actor, laptops=0)
        assert exc_info.value.field == "requested"

    @pytest.mark.asyncio
    async def test_purpose_and_letter_required(self, controller, school_actor):
        with pytest.raises(ValidationError):
            await controller.submit(
                school_actor, RequestedQuantities(laptops=1), "  ", "letter-1.pdf"
            )
        with pytest.raises(ValidationError):
            await controller.submit(school_actor, RequestedQuantities(laptops=1), "Lab", "")

    def test_validate_submission_without_store(self, controller, store, school_actor, staff):
        purpose = controller.validate_submission(
            school_actor, RequestedQuantities(tablets=1), "  Library  "
        )
        assert purpose == "Library"
        assert store.applications == {}

        with pytest.raises(ValidationError):
            controller.validate_submission(school_actor, RequestedQuantities(), "Library")
        with pytest.raises(ForbiddenError):
            controller.validate_submission(staff, RequestedQuantities(tablets=1), "Library")

    @pytest.mark.asyncio
    async def test_staff_cannot_submit(self, controller, staff):
        with pytest.raises(ForbiddenError):
            await submit(controller, staff)

    @pytest.mark.asyncio
    async def test_one_open_application_per_school(self, controller, store, school, school_actor):
        first = await submit(controller, school_actor)

        with pytest.raises(ValidationError) as exc_info:
            await submit(controller, school_actor)
        assert exc_info.value.details["application_id"] == str(first.id)
        assert len(store.applications) == 1

    @pytest.mark.asyncio
    async def test_resubmit_after_rejection(self, controller, school_actor, staff):
        first = await submit(controller, school_actor)
        await controller.review(staff, first.id, ApplicationStatus.REJECTED, review_notes="No letterhead")

        second = await submit(controller, school_actor)
        assert second.id != first.id
        assert second.status == ApplicationStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_school(self, controller, school_actor, store):
        store.schools.clear()
        with pytest.raises(NotFoundError):
            await submit(controller, school_actor)


class TestReview:
    """Tests for review decisions and eligibility."""

    @pytest.mark.asyncio
    async def test_reject_marks_ineligible(self, controller, school_actor, staff, publisher):
        application = await submit(controller, school_actor)

        rejected = await controller.review(
            staff, application.id, ApplicationStatus.REJECTED, is_eligible=True
        )
        assert rejected.status == ApplicationStatus.REJECTED
        assert rejected.is_eligible is False

        [event] = published(publisher, ApplicationReviewed)
        assert event.previous_status == ApplicationStatus.PENDING
        assert event.audit_action.value == "REJECT"

    @pytest.mark.asyncio
    async def test_under_review_keeps_eligibility_open(self, controller, school_actor, staff):
        application = await submit(controller, school_actor)

        reviewed = await controller.review(staff, application.id, "under review")
        assert reviewed.status == ApplicationStatus.UNDER_REVIEW
        assert reviewed.is_eligible is None

        again = await controller.review(staff, application.id, ApplicationStatus.UNDER_REVIEW)
        assert again.status == ApplicationStatus.UNDER_REVIEW

    @pytest.mark.asyncio
    async def test_notes_never_change_eligibility(self, controller, school_actor, staff):
        application = await submit(controller, school_actor)

        approved = await controller.review(
            staff,
            application.id,
            ApplicationStatus.APPROVED,
            eligibility_notes="Not eligible: missing lab room",
        )
        assert approved.is_eligible is True
        assert approved.eligibility_notes == "Not eligible: missing lab room"

    @pytest.mark.asyncio
    async def test_approve_with_explicit_override(
        self, controller, store, school_actor, staff, make_devices
    ):
        application = await submit(controller, school_actor, laptops=1)
        approved = await controller.review(
            staff, application.id, ApplicationStatus.APPROVED, is_eligible=False
        )
        assert approved.is_eligible is False

        device = make_devices(DeviceCategory.LAPTOP, 1)[0]
        with pytest.raises(ValidationError):
            await controller.assign(staff, application.id, [device.id])

        await controller.set_eligibility(staff, application.id, True, notes="Lab inspected")
        result = await controller.assign(staff, application.id, [device.id])
        assert result.devices[0].asset_tag == "LAP/GAS/SCH00012/0001"

    @pytest.mark.asyncio
    async def test_not_a_review_decision(self, controller, school_actor, staff):
        application = await submit(controller, school_actor)
        for status in ("Assigned", "Received", "Cancelled", "bogus"):
            with pytest.raises(ValidationError):
                await controller.review(staff, application.id, status)

    @pytest.mark.asyncio
    async def test_cannot_review_closed_application(self, controller, school_actor, staff):
        application = await submit(controller, school_actor)
        await controller.review(staff, application.id, ApplicationStatus.APPROVED)

        with pytest.raises(InvalidTransitionError):
            await controller.review(staff, application.id, ApplicationStatus.REJECTED)

    @pytest.mark.asyncio
    async def test_school_cannot_review(self, controller, school_actor):
        application = await submit(controller, school_actor)
        with pytest.raises(ForbiddenError):
            await controller.review(school_actor, application.id, ApplicationStatus.APPROVED)


class TestSetEligibility:
    @pytest.mark.asyncio
    async def test_requires_approved(self, controller, school_actor, staff):
        application = await submit(controller, school_actor)
        with pytest.raises(InvalidTransitionError):
            await controller.set_eligibility(staff, application.id, True)

    @pytest.mark.asyncio
    async def test_requires_boolean(self, controller, school_actor, staff):
        application = await submit(controller, school_actor)
        await controller.review(staff, application.id, ApplicationStatus.APPROVED)
        with pytest.raises(ValidationError):
            await controller.set_eligibility(staff, application.id, "yes")

    @pytest.mark.asyncio
    async def test_publishes_previous_value(self, controller, school_actor, staff, publisher):
        application = await submit(controller, school_actor)
        await controller.review(staff, application.id, ApplicationStatus.APPROVED)
        updated = await controller.set_eligibility(staff, application.id, False, notes="Duplicate request")

        assert updated.is_eligible is False
        [event] = published(publisher, EligibilityUpdated)
        assert event.previous is True
        assert event.is_eligible is False


class TestConfirmAndCancel:
    @pytest.mark.asyncio
    async def test_confirm_requires_assigned(self, controller, school_actor, staff):
        application = await submit(controller, school_actor)
        await controller.review(staff, application.id, ApplicationStatus.APPROVED)

        with pytest.raises(InvalidTransitionError):
            await controller.confirm_receipt(school_actor, application.id)

    @pytest.mark.asyncio
    async def test_only_owner_confirms(
        self, controller, school, school_actor, other_school_actor, make_application
    ):
        application = make_application(school, school_actor, status=ApplicationStatus.ASSIGNED)

        with pytest.raises(ForbiddenError):
            await controller.confirm_receipt(other_school_actor, application.id)

    @pytest.mark.asyncio
    async def test_cancel_pending(self, controller, store, school_actor, publisher):
        application = await submit(controller, school_actor)

        cancelled = await controller.cancel(school_actor, application.id)
        assert cancelled.status == ApplicationStatus.CANCELLED
        assert store.applications[application.id].status == ApplicationStatus.CANCELLED

        [event] = published(publisher, ApplicationCancelled)
        assert event.school_name == "GS Kacyiru"

        # A cancelled application frees the school to submit again
        await submit(controller, school_actor)

    @pytest.mark.asyncio
    async def test_cancel_after_review(self, controller, school_actor, staff):
        application = await submit(controller, school_actor)
        await controller.review(staff, application.id, ApplicationStatus.UNDER_REVIEW)

        with pytest.raises(InvalidTransitionError):
            await controller.cancel(school_actor, application.id)

    @pytest.mark.asyncio
    async def test_cancel_other_school(self, controller, school_actor, other_school_actor):
        application = await submit(controller, school_actor)
        with pytest.raises(ForbiddenError):
            await controller.cancel(other_school_actor, application.id)

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, controller, school_actor):
        with pytest.raises(NotFoundError):
            await controller.cancel(school_actor, uuid4())


class TestQueries:
    @pytest.mark.asyncio
    async def test_school_sees_only_own_applications(
        self, controller, school_actor, other_school_actor, staff
    ):
        own = await submit(controller, school_actor)
        other = await submit(controller, other_school_actor)

        visible = await controller.list_applications(school_actor)
        assert [a.id for a in visible] == [own.id]

        everything = await controller.list_applications(staff)
        assert {a.id for a in everything} == {own.id, other.id}

        with pytest.raises(ForbiddenError):
            await controller.list_applications(school_actor, school_id=other.school_id)
        with pytest.raises(ForbiddenError):
            await controller.get_application(school_actor, other.id)

    @pytest.mark.asyncio
    async def test_filter_by_status(self, controller, school_actor, other_school_actor, staff):
        first = await submit(controller, school_actor)
        await submit(controller, other_school_actor)
        await controller.review(staff, first.id, ApplicationStatus.APPROVED)

        approved = await controller.list_applications(staff, status="approved")
        assert [a.id for a in approved] == [first.id]

        with pytest.raises(ValidationError):
            await controller.list_applications(staff, status="Shipped")

    @pytest.mark.asyncio
    async def test_get_unknown(self, controller, staff):
        with pytest.raises(NotFoundError):
            await controller.get_application(staff, uuid4())

    def test_capabilities(self, controller, staff, school_actor):
        assert Operation.ASSIGN_DEVICES in controller.capabilities(staff)
        assert Operation.ASSIGN_DEVICES not in controller.capabilities(school_actor)
