"""Inventory use case.

Device intake, maintenance edits and queries. Devices always enter stock
as Available; binding them to a school is the assignment engine's job.
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
from ..domain.entities import (
    Actor,
    Device,
    DeviceCategory,
    DeviceCondition,
    DeviceStatus,
    InventoryStats,
    normalize_serial,
    parse_enum,
)
from ..domain.events import DeviceDeleted, DeviceRegistered, DeviceStatusChanged, DeviceUpdated
from ..domain.permissions import Operation, can, require
from ..domain.ports import IEventPublisher, IUnitOfWork

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("brand", "model", "condition", "specifications")


class InventoryUseCase:
    """Staff-managed device inventory."""

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        publisher: Optional[IEventPublisher] = None,
    ):
        self._uow_factory = uow_factory
        self._publisher = publisher

    async def register_device(
        self,
        actor: Actor,
        serial_number: str,
        category: str,
        brand: str,
        model: str,
        condition: str = DeviceCondition.NEW.value,
        specifications: Optional[str] = None,
        bulk: bool = False,
    ) -> Device:
        """Add a device to stock as Available.

        Raises:
            ForbiddenError: Actor is not staff
            ValidationError: Missing fields, unknown category/condition, or
                the serial number is already registered
        """
        require(actor, Operation.BULK_INTAKE if bulk else Operation.MANAGE_INVENTORY)
        device = build_device(serial_number, category, brand, model, condition, specifications)

        async with self._uow_factory() as uow:
            if await uow.devices.get_by_serial(device.serial_number) is not None:
                raise ValidationError(
                    f"Device with serial number {device.serial_number} already exists",
                    field="serial_number",
                )
            await uow.devices.add(device)

        logger.info(f"Registered device {device.serial_number} ({device.category.value})")
        await self._publish(
            DeviceRegistered(
                actor=actor,
                device_id=device.id,
                serial_number=device.serial_number,
                category=device.category.value,
                bulk=bulk,
                occurred_at=device.created_at,
            )
        )
        return device

    async def update_device(self, actor: Actor, device_id: UUID, **fields) -> Device:
        """Edit descriptive fields. Serial number and category cannot change.

        Raises:
            ValidationError: Unknown or immutable field, or empty brand/model
        """
        require(actor, Operation.MANAGE_INVENTORY)
        unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(
                f"Cannot update field(s): {', '.join(unknown)}",
                field=unknown[0],
            )

        async with self._uow_factory() as uow:
            device = await self._load_for_update(uow, device_id)
            changes = {}
            for name, value in fields.items():
                if value is None and name != "specifications":
                    continue
                if name == "condition":
                    value = parse_enum(DeviceCondition, value, "condition")
                elif name in ("brand", "model"):
                    value = value.strip()
                    if not value:
                        raise ValidationError(f"{name} cannot be empty", field=name)
                if getattr(device, name) != value:
                    changes[name] = getattr(value, "value", value)
                    setattr(device, name, value)
            if changes:
                await uow.devices.save(device)

        if changes:
            logger.info(f"Updated device {device.serial_number}: {', '.join(changes)}")
            await self._publish(DeviceUpdated(actor=actor, device_id=device.id, fields=changes))
        return device

    async def set_status(self, actor: Actor, device_id: UUID, status: DeviceStatus) -> Device:
        """Apply a maintenance status change.

        Assigned cannot be set here; it is only reachable via assignment.

        Raises:
            InvalidTransitionError: The change is not a maintenance edit
        """
        require(actor, Operation.MANAGE_INVENTORY)
        new_status = parse_enum(DeviceStatus, status, "status")
        if new_status == DeviceStatus.ASSIGNED:
            raise InvalidTransitionError(
                "Devices are assigned through an application or bulk assignment",
                entity_id=device_id,
                attempted=new_status,
            )

        async with self._uow_factory() as uow:
            device = await self._load_for_update(uow, device_id)
            previous, previous_tag = device.status, device.asset_tag
            device.change_maintenance_status(new_status)
            await uow.devices.save(device)

        logger.info(
            f"Device {device.serial_number} status {previous.value} -> {new_status.value}"
        )
        await self._publish(
            DeviceStatusChanged(
                actor=actor,
                device_id=device.id,
                previous_status=previous,
                status=new_status,
                previous_asset_tag=previous_tag,
            )
        )
        return device

    async def delete_device(self, actor: Actor, device_id: UUID) -> None:
        """Remove a device that is not currently assigned.

        Raises:
            InvalidTransitionError: Device is Assigned
        """
        require(actor, Operation.MANAGE_INVENTORY)

        async with self._uow_factory() as uow:
            device = await self._load_for_update(uow, device_id)
            if device.status == DeviceStatus.ASSIGNED:
                raise InvalidTransitionError(
                    f"Device {device.serial_number} is assigned; unassign it first",
                    entity_id=device.id,
                    current=device.status,
                )
            await uow.devices.delete(device.id)

        logger.info(f"Deleted device {device.serial_number}")
        await self._publish(
            DeviceDeleted(actor=actor, device_id=device.id, serial_number=device.serial_number)
        )

    async def get_device(self, actor: Actor, device_id: UUID) -> Device:
        """Fetch one device. School actors only see devices at their school."""
        school_scope = _device_scope(actor)
        async with self._uow_factory() as uow:
            device = await uow.devices.get(device_id)
        if device is None:
            raise NotFoundError("Device", device_id)
        if school_scope is not None and device.school_id != school_scope:
            raise ForbiddenError(
                "You can only view devices assigned to your school",
                role=actor.role.value,
                operation=Operation.VIEW_SCHOOL_DEVICES.value,
            )
        return device

    async def list_devices(
        self,
        actor: Actor,
        status: Optional[DeviceStatus] = None,
        category: Optional[DeviceCategory] = None,
        school_id: Optional[UUID] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Device]:
        school_scope = _device_scope(actor)
        if school_scope is not None:
            school_id = school_scope
        async with self._uow_factory() as uow:
            return await uow.devices.list(
                status=parse_enum(DeviceStatus, status, "status") if status else None,
                category=parse_enum(DeviceCategory, category, "category") if category else None,
                school_id=school_id,
                search=(search or "").strip() or None,
                limit=limit,
                offset=offset,
            )

    async def get_stats(self, actor: Actor, school_id: Optional[UUID] = None) -> InventoryStats:
        school_scope = _device_scope(actor)
        if school_scope is not None:
            school_id = school_scope
        async with self._uow_factory() as uow:
            return await uow.devices.stats(school_id=school_id)

    @staticmethod
    async def _load_for_update(uow: IUnitOfWork, device_id: UUID) -> Device:
        devices = await uow.devices.get_many_for_update([device_id])
        if not devices:
            raise NotFoundError("Device", device_id)
        return devices[0]

    async def _publish(self, event) -> None:
        if self._publisher is not None:
            await self._publisher.publish([event])


def build_device(
    serial_number: str,
    category: str,
    brand: str,
    model: str,
    condition: str,
    specifications: Optional[str] = None,
) -> Device:
    """Validate intake fields and build an Available device.

    Raises:
        ValidationError: If a required field is missing or an enum is unknown
    """
    serial = normalize_serial(serial_number)
    if not serial:
        raise ValidationError("Serial number is required", field="serial_number")
    brand = (brand or "").strip()
    if not brand:
        raise ValidationError("Brand is required", field="brand")
    model = (model or "").strip()
    if not model:
        raise ValidationError("Model is required", field="model")

    return Device(
        serial_number=serial,
        category=parse_enum(DeviceCategory, category, "category"),
        brand=brand,
        model=model,
        condition=parse_enum(DeviceCondition, condition or DeviceCondition.NEW.value, "condition"),
        specifications=(specifications or "").strip() or None,
    )


def _device_scope(actor: Actor) -> Optional[UUID]:
    """School the actor is restricted to, or None for staff.

    Raises:
        ForbiddenError: Actor may not view devices at all
    """
    if can(actor, Operation.VIEW_ALL_DEVICES):
        return None
    if can(actor, Operation.VIEW_SCHOOL_DEVICES) and actor.school_id is not None:
        return actor.school_id
    raise ForbiddenError(
        "You can only view devices assigned to your school",
        role=actor.role.value,
        operation=Operation.VIEW_SCHOOL_DEVICES.value,
    )
