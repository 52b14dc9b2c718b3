"""Assignment engine.

Binds inventory devices to an approved application (or, for bulk
assignment, directly to a school) and generates their asset tags.

Every call runs inside a single unit of work:

    1. Lock the application (if any) and the devices, then re-validate
    2. Check the per-category ceiling against the requested quantities
    3. Check every device is Available
    4. Reserve one block of tag sequence numbers per (school, category)
    5. Mark devices Assigned and record the assignment on the application
    6. Commit, then publish domain events

Checks 2 and 3 run before anything is mutated, and any failure rolls the
whole unit of work back, so an assignment is all-or-nothing: no device is
left half-assigned and no sequence number is consumed. Device locks are
taken in id order; a lock held by a concurrent assignment surfaces as
ConflictError rather than blocking.
"""

import logging
from collections import Counter
from typing import Callable, Optional
from uuid import UUID

from ...core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..domain.asset_tags import generate_tag
from ..domain.eligibility import is_assignable
from ..domain.entities import (
    Actor,
    ApplicationStatus,
    AssignedDevice,
    AssignmentResult,
    Device,
    DeviceApplication,
    DeviceCategory,
    School,
    utcnow,
)
from ..domain.events import ApplicationAssigned, DeviceAssigned, DeviceUnassigned
from ..domain.permissions import Operation, require
from ..domain.ports import IEventPublisher, IUnitOfWork

logger = logging.getLogger(__name__)


class AssignmentEngine:
    """Atomic device-to-recipient binding with asset tag generation."""

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        publisher: Optional[IEventPublisher] = None,
    ):
        """Initialize the engine.

        Args:
            uow_factory: Returns a fresh unit of work for each operation
            publisher: Receives domain events after commit (optional)
        """
        self._uow_factory = uow_factory
        self._publisher = publisher

    async def assign(
        self,
        application_id: UUID,
        device_ids: list[UUID],
        actor: Actor,
    ) -> AssignmentResult:
        """Assign devices to an approved, eligible application.

        Args:
            application_id: Application to fulfil
            device_ids: Devices to bind, in the order tags should be issued
            actor: Staff member performing the assignment

        Returns:
            AssignmentResult with the generated asset tags

        Raises:
            ForbiddenError: Actor is not staff
            ValidationError: Empty/duplicate ids, not eligible, or more
                devices of a category than were requested
            NotFoundError: Application, school or a device does not exist
            InvalidTransitionError: Application not Approved or already assigned
            ConflictError: A device is not Available or is locked by
                another assignment
        """
        require(actor, Operation.ASSIGN_DEVICES)
        ids = _validate_device_ids(device_ids)

        async with self._uow_factory() as uow:
            application = await uow.applications.get_for_update(application_id)
            if application is None:
                raise NotFoundError("DeviceApplication", application_id)
            _check_assignable(application)

            school = await uow.schools.get(application.school_id)
            if school is None:
                raise NotFoundError("School", application.school_id)

            devices = await _lock_devices(uow, ids)
            _check_ceiling(application, devices)
            _check_available(devices)

            assigned = await _bind(uow, school, devices)
            assigned_at = utcnow()
            application.record_assignment(assigned, actor.user_id, assigned_at)
            await uow.applications.save(application)

        logger.info(
            f"Assigned {len(assigned)} devices to application {application_id} "
            f"(school {school.school_code})"
        )

        events = [
            DeviceAssigned(
                actor=actor,
                device=device,
                school_id=school.id,
                application_id=application.id,
                occurred_at=assigned_at,
            )
            for device in assigned
        ]
        events.append(
            ApplicationAssigned(
                actor=actor,
                application_id=application.id,
                applicant_id=application.applicant_id,
                devices=tuple(assigned),
                occurred_at=assigned_at,
            )
        )
        await self._publish(events)

        return AssignmentResult(
            application_id=application.id,
            school_id=school.id,
            devices=assigned,
            assigned_by=actor.user_id,
            assigned_at=assigned_at,
        )

    async def allocate_to_school(
        self,
        school_id: UUID,
        device_ids: list[UUID],
        actor: Actor,
    ) -> AssignmentResult:
        """Assign devices straight to a school, without an application.

        Used by bulk assignment. Same locking, availability and tag rules
        as assign(); there is no per-category ceiling.

        Raises:
            ForbiddenError: Actor is not staff
            ValidationError: Empty/duplicate ids or the school is inactive
            NotFoundError: School or a device does not exist
            ConflictError: A device is not Available or is locked
        """
        require(actor, Operation.ASSIGN_DEVICES)
        ids = _validate_device_ids(device_ids)

        async with self._uow_factory() as uow:
            school = await uow.schools.get(school_id)
            if school is None:
                raise NotFoundError("School", school_id)
            if school.status != "Active":
                raise ValidationError(
                    f"School {school.school_code} is {school.status}",
                    field="school_code",
                )

            devices = await _lock_devices(uow, ids)
            _check_available(devices)
            assigned = await _bind(uow, school, devices)
            assigned_at = utcnow()

        logger.info(f"Allocated {len(assigned)} devices to school {school.school_code}")

        await self._publish([
            DeviceAssigned(
                actor=actor,
                device=device,
                school_id=school.id,
                occurred_at=assigned_at,
            )
            for device in assigned
        ])

        return AssignmentResult(
            school_id=school.id,
            devices=assigned,
            assigned_by=actor.user_id,
            assigned_at=assigned_at,
        )

    async def unassign(self, device_id: UUID, actor: Actor) -> Device:
        """Return an assigned device to stock.

        The released tag's sequence number is never handed out again.

        Raises:
            ForbiddenError: Actor is not staff
            NotFoundError: Device does not exist
            InvalidTransitionError: Device is not Assigned
            ConflictError: Device is locked by another operation
        """
        require(actor, Operation.ASSIGN_DEVICES)

        async with self._uow_factory() as uow:
            devices = await uow.devices.get_many_for_update([device_id])
            if not devices:
                raise NotFoundError("Device", device_id)
            device = devices[0]
            school_id, asset_tag = device.school_id, device.asset_tag
            device.release()
            await uow.devices.save(device)

        logger.info(f"Unassigned device {device.serial_number} (was {asset_tag})")
        await self._publish([
            DeviceUnassigned(
                actor=actor,
                device_id=device.id,
                school_id=school_id,
                asset_tag=asset_tag,
            )
        ])
        return device

    async def _publish(self, events: list) -> None:
        if self._publisher is not None and events:
            await self._publisher.publish(events)


def _validate_device_ids(device_ids: list[UUID]) -> list[UUID]:
    ids = list(device_ids or [])
    if not ids:
        raise ValidationError("At least one device id is required", field="device_ids")
    duplicates = [str(i) for i, n in Counter(ids).items() if n > 1]
    if duplicates:
        raise ValidationError(
            f"Duplicate device ids: {', '.join(duplicates)}",
            field="device_ids",
        )
    return ids


def _check_assignable(application: DeviceApplication) -> None:
    if is_assignable(application):
        return
    if application.status != ApplicationStatus.APPROVED or application.assigned_devices:
        raise InvalidTransitionError(
            f"Application must be Approved with no devices assigned "
            f"(currently {application.status.value})",
            entity_id=application.id,
            current=application.status,
            attempted=ApplicationStatus.ASSIGNED,
        )
    raise ValidationError(
        "Application is not marked eligible for device assignment",
        field="is_eligible",
    )


async def _lock_devices(uow: IUnitOfWork, ids: list[UUID]) -> list[Device]:
    """Lock the devices and return them in the caller's order."""
    locked = {d.id: d for d in await uow.devices.get_many_for_update(ids)}
    missing = [i for i in ids if i not in locked]
    if missing:
        raise NotFoundError("Device", missing[0] if len(missing) == 1 else missing)
    return [locked[i] for i in ids]


def _check_ceiling(application: DeviceApplication, devices: list[Device]) -> None:
    counts = Counter(d.category for d in devices)
    for category in DeviceCategory:
        requested = application.requested.for_category(category)
        total = application.assigned_count(category) + counts.get(category, 0)
        if total > requested:
            raise ValidationError(
                f"Cannot assign {total} {category.value} devices; "
                f"only {requested} requested",
                field="device_ids",
                details={
                    "category": category.value,
                    "requested": requested,
                    "attempted": total,
                },
            )


def _check_available(devices: list[Device]) -> None:
    taken = [d for d in devices if not d.is_available]
    if taken:
        logger.warning(
            f"Assignment refused, devices not available: "
            f"{', '.join(d.serial_number for d in taken)}"
        )
        raise ConflictError(
            "Devices are no longer available: "
            + ", ".join(f"{d.serial_number} ({d.status.value})" for d in taken),
            conflicting_ids=[d.id for d in taken],
        )


async def _bind(uow: IUnitOfWork, school: School, devices: list[Device]) -> list[AssignedDevice]:
    """Reserve tag sequences per category and mark each device Assigned.

    Sequence rows are locked in category order so concurrent assignments
    to the same school cannot deadlock on them.
    """
    by_category: dict[DeviceCategory, list[Device]] = {}
    for device in devices:
        by_category.setdefault(device.category, []).append(device)

    for category, group in sorted(by_category.items(), key=lambda kv: kv[0].value):
        first = await uow.sequences.reserve(school.id, category, len(group))
        for offset, device in enumerate(group):
            tag = generate_tag(category, school.district, school.school_code, first + offset)
            device.mark_assigned(school.id, tag)
            await uow.devices.save(device)

    return [AssignedDevice.from_device(d) for d in devices]
