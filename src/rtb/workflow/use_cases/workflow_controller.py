"""Workflow controller.

The public surface of the application state machine. Each operation takes
an explicit Actor, checks the actor's capability, applies the transition
inside one unit of work and publishes domain events once it commits.

    Pending      -> Under Review | Approved | Rejected | Cancelled
    Under Review -> Under Review | Approved | Rejected
    Approved     -> Assigned      (via the assignment engine)
    Assigned     -> Received
"""

import logging
from typing import Callable, Optional
from uuid import UUID

from ...core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..domain.eligibility import evaluate_eligibility
from ..domain.entities import (
    Actor,
    ApplicationStatus,
    AssignmentResult,
    DeviceApplication,
    RequestedQuantities,
    parse_enum,
)
from ..domain.events import (
    ApplicationCancelled,
    ApplicationReviewed,
    ApplicationSubmitted,
    EligibilityUpdated,
    ReceiptConfirmed,
)
from ..domain.permissions import Operation, can, capabilities, require
from ..domain.ports import IEventPublisher, IUnitOfWork
from .assignment_engine import AssignmentEngine

logger = logging.getLogger(__name__)


class WorkflowController:
    """Role-gated operations on device applications."""

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        engine: Optional[AssignmentEngine] = None,
        publisher: Optional[IEventPublisher] = None,
    ):
        self._uow_factory = uow_factory
        self._publisher = publisher
        self._engine = engine or AssignmentEngine(uow_factory, publisher)

    # ------------------------------------------------------------------
    # School-side operations
    # ------------------------------------------------------------------

    def validate_submission(
        self,
        actor: Actor,
        requested: RequestedQuantities,
        purpose: str,
    ) -> str:
        """Checks that need no store access; returns the stripped purpose.

        Callers that persist the letter before submit() run this first.

        Raises:
            ForbiddenError: Actor is not a school account or has no school
            ValidationError: Nothing requested or missing purpose
        """
        require(actor, Operation.SUBMIT_APPLICATION)
        if actor.school_id is None:
            raise ForbiddenError(
                "School account is not linked to a school",
                role=actor.role.value,
                operation=Operation.SUBMIT_APPLICATION.value,
            )
        if requested.total == 0:
            raise ValidationError("At least one device must be requested", field="requested")
        purpose = (purpose or "").strip()
        if not purpose:
            raise ValidationError("Purpose is required", field="purpose")
        return purpose

    async def submit(
        self,
        actor: Actor,
        requested: RequestedQuantities,
        purpose: str,
        letter_document_ref: str,
        justification: Optional[str] = None,
    ) -> DeviceApplication:
        """Submit a new device application for the actor's school.

        Raises:
            ForbiddenError: Actor is not a school account or has no school
            NotFoundError: The actor's school does not exist
            ValidationError: Nothing requested, missing purpose or letter,
                or the school already has an open application
        """
        purpose = self.validate_submission(actor, requested, purpose)
        if not (letter_document_ref or "").strip():
            raise ValidationError("Application letter is required", field="letter")

        async with self._uow_factory() as uow:
            school = await uow.schools.get(actor.school_id)
            if school is None:
                raise NotFoundError("School", actor.school_id)

            existing = await uow.applications.find_open_for_school(school.id)
            if existing is not None:
                raise ValidationError(
                    f"School already has an open application ({existing.status.value}). "
                    "Wait for it to be processed or cancel it first.",
                    field="school_id",
                    details={"application_id": str(existing.id)},
                )

            application = DeviceApplication(
                school_id=school.id,
                applicant_id=actor.user_id,
                purpose=purpose,
                justification=(justification or "").strip() or None,
                letter_document_ref=letter_document_ref,
                requested=requested,
            )
            await uow.applications.add(application)

        logger.info(
            f"Application {application.id} submitted by {school.school_code} "
            f"({requested.total} devices)"
        )
        await self._publish([
            ApplicationSubmitted(
                actor=actor,
                application_id=application.id,
                school_id=school.id,
                school_name=school.school_name,
                requested=requested,
                occurred_at=application.created_at,
            )
        ])
        return application

    async def confirm_receipt(
        self,
        actor: Actor,
        application_id: UUID,
        confirmation_notes: Optional[str] = None,
    ) -> DeviceApplication:
        """Confirm the school received its assigned devices.

        Raises:
            ForbiddenError: Actor is not the owning school
            NotFoundError: Application does not exist
            InvalidTransitionError: Application is not Assigned
        """
        require(actor, Operation.CONFIRM_RECEIPT)

        async with self._uow_factory() as uow:
            application = await self._load_for_update(uow, application_id)
            _require_owner(actor, application, Operation.CONFIRM_RECEIPT)
            application.record_receipt(notes=confirmation_notes)
            await uow.applications.save(application)

        logger.info(f"Application {application_id} confirmed received")
        await self._publish([
            ReceiptConfirmed(
                actor=actor,
                application_id=application.id,
                confirmation_notes=confirmation_notes,
                occurred_at=application.confirmed_at,
            )
        ])
        return application

    async def cancel(self, actor: Actor, application_id: UUID) -> DeviceApplication:
        """Withdraw a Pending application.

        Raises:
            ForbiddenError: Actor is not the owning school
            NotFoundError: Application does not exist
            InvalidTransitionError: Application is no longer Pending
        """
        require(actor, Operation.CANCEL_APPLICATION)

        async with self._uow_factory() as uow:
            application = await self._load_for_update(uow, application_id)
            _require_owner(actor, application, Operation.CANCEL_APPLICATION)
            if application.status != ApplicationStatus.PENDING:
                raise InvalidTransitionError(
                    f"Only pending applications can be cancelled "
                    f"(currently {application.status.value})",
                    entity_id=application.id,
                    current=application.status,
                    attempted=ApplicationStatus.CANCELLED,
                )
            application.transition_to(ApplicationStatus.CANCELLED)
            await uow.applications.save(application)
            school = await uow.schools.get(application.school_id)

        logger.info(f"Application {application_id} cancelled")
        await self._publish([
            ApplicationCancelled(
                actor=actor,
                application_id=application.id,
                school_name=school.school_name if school else "",
            )
        ])
        return application

    # ------------------------------------------------------------------
    # Staff operations
    # ------------------------------------------------------------------

    async def review(
        self,
        actor: Actor,
        application_id: UUID,
        new_status: ApplicationStatus,
        review_notes: Optional[str] = None,
        eligibility_notes: Optional[str] = None,
        is_eligible: Optional[bool] = None,
    ) -> DeviceApplication:
        """Record a review decision.

        Approving marks the application eligible unless is_eligible is given
        explicitly; rejecting always marks it ineligible.

        Raises:
            ForbiddenError: Actor is not staff
            ValidationError: new_status is not Under Review, Approved or Rejected
            NotFoundError: Application does not exist
            InvalidTransitionError: Application is no longer open for review
        """
        require(actor, Operation.REVIEW_APPLICATION)
        decision = parse_enum(ApplicationStatus, new_status, "status")
        eligible = evaluate_eligibility(decision, is_eligible)

        async with self._uow_factory() as uow:
            application = await self._load_for_update(uow, application_id)
            previous = application.status
            application.record_review(
                decision,
                reviewer_id=actor.user_id,
                is_eligible=eligible,
                review_notes=review_notes,
                eligibility_notes=eligibility_notes,
            )
            await uow.applications.save(application)

        logger.info(
            f"Application {application_id} reviewed: {previous.value} -> {decision.value}"
        )
        await self._publish([
            ApplicationReviewed(
                actor=actor,
                application_id=application.id,
                applicant_id=application.applicant_id,
                previous_status=previous,
                status=decision,
                is_eligible=eligible,
                review_notes=review_notes,
                occurred_at=application.reviewed_at,
            )
        ])
        return application

    async def set_eligibility(
        self,
        actor: Actor,
        application_id: UUID,
        is_eligible: bool,
        notes: Optional[str] = None,
    ) -> DeviceApplication:
        """Override eligibility on an approved, not yet assigned application.

        Raises:
            ForbiddenError: Actor is not staff
            ValidationError: is_eligible is not a boolean
            NotFoundError: Application does not exist
            InvalidTransitionError: Application is not Approved or already assigned
        """
        require(actor, Operation.SET_ELIGIBILITY)
        if not isinstance(is_eligible, bool):
            raise ValidationError("is_eligible must be true or false", field="is_eligible")

        async with self._uow_factory() as uow:
            application = await self._load_for_update(uow, application_id)
            if application.status != ApplicationStatus.APPROVED or application.assigned_devices:
                raise InvalidTransitionError(
                    f"Eligibility can only change on approved, unassigned applications "
                    f"(currently {application.status.value})",
                    entity_id=application.id,
                    current=application.status,
                    attempted=application.status,
                )
            previous = application.is_eligible
            application.is_eligible = is_eligible
            if notes is not None:
                application.eligibility_notes = notes
            await uow.applications.save(application)

        logger.info(f"Application {application_id} eligibility: {previous} -> {is_eligible}")
        await self._publish([
            EligibilityUpdated(
                actor=actor,
                application_id=application.id,
                previous=previous,
                is_eligible=is_eligible,
                notes=notes,
            )
        ])
        return application

    async def assign(
        self,
        actor: Actor,
        application_id: UUID,
        device_ids: list[UUID],
    ) -> AssignmentResult:
        """Assign devices to an approved application (see AssignmentEngine)."""
        require(actor, Operation.ASSIGN_DEVICES)
        return await self._engine.assign(application_id, device_ids, actor)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_application(self, actor: Actor, application_id: UUID) -> DeviceApplication:
        """Fetch one application. School actors only see their own school's."""
        _require_view(actor)
        async with self._uow_factory() as uow:
            application = await uow.applications.get(application_id)
        if application is None:
            raise NotFoundError("DeviceApplication", application_id)
        if not actor.is_staff and not actor.owns_school(application.school_id):
            raise ForbiddenError(
                "You can only view your school's applications",
                role=actor.role.value,
                operation=Operation.VIEW_OWN_APPLICATIONS.value,
            )
        return application

    async def list_applications(
        self,
        actor: Actor,
        status: Optional[ApplicationStatus] = None,
        school_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[DeviceApplication]:
        """List applications, newest first.

        Staff may filter by any school; school actors are always restricted
        to their own school.
        """
        _require_view(actor)
        if status is not None:
            status = parse_enum(ApplicationStatus, status, "status")

        if not actor.is_staff:
            if actor.school_id is None or (school_id is not None and school_id != actor.school_id):
                raise ForbiddenError(
                    "You can only view your school's applications",
                    role=actor.role.value,
                    operation=Operation.VIEW_OWN_APPLICATIONS.value,
                )
            school_id = actor.school_id

        async with self._uow_factory() as uow:
            return await uow.applications.list(
                status=status,
                school_id=school_id,
                limit=limit,
                offset=offset,
            )

    def capabilities(self, actor: Actor) -> list[Operation]:
        """Operations the actor's role may invoke."""
        return capabilities(actor)

    # ------------------------------------------------------------------

    @staticmethod
    async def _load_for_update(uow: IUnitOfWork, application_id: UUID) -> DeviceApplication:
        application = await uow.applications.get_for_update(application_id)
        if application is None:
            raise NotFoundError("DeviceApplication", application_id)
        return application

    async def _publish(self, events: list) -> None:
        if self._publisher is not None:
            await self._publisher.publish(events)


def _require_owner(actor: Actor, application: DeviceApplication, operation: Operation) -> None:
    if not actor.owns_school(application.school_id):
        raise ForbiddenError(
            "Only the school that submitted the application can do this",
            role=actor.role.value,
            operation=operation.value,
        )


def _require_view(actor: Actor) -> None:
    if not (
        can(actor, Operation.VIEW_ALL_APPLICATIONS)
        or can(actor, Operation.VIEW_OWN_APPLICATIONS)
    ):
        raise ForbiddenError(role=actor.role.value)
