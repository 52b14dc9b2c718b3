"""Domain events emitted by the workflow.

Each event is a small frozen dataclass; together they form a tagged union
(DomainEvent) discriminated by ``event_type``. Events stay typed inside the
core and only become a flat ``changes`` mapping at the audit boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional, Union
from uuid import UUID

from .entities import (
    Actor,
    ApplicationStatus,
    AssignedDevice,
    DeviceStatus,
    RequestedQuantities,
    utcnow,
)


class AuditAction(str, Enum):
    """Action types understood by the audit sink."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    ASSIGN = "ASSIGN"
    CANCEL = "CANCEL"
    CONFIRM = "CONFIRM"
    IMPORT = "IMPORT"


class TargetEntity(str, Enum):
    DEVICE = "Device"
    DEVICE_APPLICATION = "DeviceApplication"


@dataclass(frozen=True)
class ApplicationSubmitted:
    event_type: ClassVar[str] = "application_submitted"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE_APPLICATION
    audit_action: ClassVar[AuditAction] = AuditAction.CREATE

    actor: Actor
    application_id: UUID
    school_id: UUID
    school_name: str
    requested: RequestedQuantities
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def target_id(self) -> UUID:
        return self.application_id

    def changes(self) -> dict[str, Any]:
        return {
            "status": ApplicationStatus.PENDING.value,
            "school_id": str(self.school_id),
            "requested": self.requested.to_dict(),
        }


@dataclass(frozen=True)
class ApplicationReviewed:
    event_type: ClassVar[str] = "application_reviewed"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE_APPLICATION

    actor: Actor
    application_id: UUID
    applicant_id: UUID
    previous_status: ApplicationStatus
    status: ApplicationStatus
    is_eligible: Optional[bool]
    review_notes: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def audit_action(self) -> AuditAction:
        if self.status == ApplicationStatus.APPROVED:
            return AuditAction.APPROVE
        if self.status == ApplicationStatus.REJECTED:
            return AuditAction.REJECT
        return AuditAction.UPDATE

    @property
    def target_id(self) -> UUID:
        return self.application_id

    def changes(self) -> dict[str, Any]:
        return {
            "status": {"from": self.previous_status.value, "to": self.status.value},
            "is_eligible": self.is_eligible,
            "review_notes": self.review_notes,
        }


@dataclass(frozen=True)
class EligibilityUpdated:
    event_type: ClassVar[str] = "eligibility_updated"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE_APPLICATION
    audit_action: ClassVar[AuditAction] = AuditAction.UPDATE

    actor: Actor
    application_id: UUID
    previous: Optional[bool]
    is_eligible: bool
    notes: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def target_id(self) -> UUID:
        return self.application_id

    def changes(self) -> dict[str, Any]:
        return {
            "is_eligible": {"from": self.previous, "to": self.is_eligible},
            "eligibility_notes": self.notes,
        }


@dataclass(frozen=True)
class DeviceAssigned:
    event_type: ClassVar[str] = "device_assigned"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE
    audit_action: ClassVar[AuditAction] = AuditAction.ASSIGN

    actor: Actor
    device: AssignedDevice
    school_id: UUID
    application_id: Optional[UUID] = None
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def target_id(self) -> UUID:
        return self.device.device_id

    def changes(self) -> dict[str, Any]:
        return {
            "status": {"from": DeviceStatus.AVAILABLE.value, "to": DeviceStatus.ASSIGNED.value},
            "school_id": str(self.school_id),
            "asset_tag": self.device.asset_tag,
            "application_id": str(self.application_id) if self.application_id else None,
        }


@dataclass(frozen=True)
class ApplicationAssigned:
    event_type: ClassVar[str] = "devices_assigned"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE_APPLICATION
    audit_action: ClassVar[AuditAction] = AuditAction.ASSIGN

    actor: Actor
    application_id: UUID
    applicant_id: UUID
    devices: tuple[AssignedDevice, ...]
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def target_id(self) -> UUID:
        return self.application_id

    def changes(self) -> dict[str, Any]:
        return {
            "status": {
                "from": ApplicationStatus.APPROVED.value,
                "to": ApplicationStatus.ASSIGNED.value,
            },
            "assigned_devices": [d.to_dict() for d in self.devices],
        }


@dataclass(frozen=True)
class ReceiptConfirmed:
    event_type: ClassVar[str] = "devices_received"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE_APPLICATION
    audit_action: ClassVar[AuditAction] = AuditAction.CONFIRM

    actor: Actor
    application_id: UUID
    confirmation_notes: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def target_id(self) -> UUID:
        return self.application_id

    def changes(self) -> dict[str, Any]:
        return {
            "status": {
                "from": ApplicationStatus.ASSIGNED.value,
                "to": ApplicationStatus.RECEIVED.value,
            },
            "confirmation_notes": self.confirmation_notes,
        }


@dataclass(frozen=True)
class ApplicationCancelled:
    event_type: ClassVar[str] = "application_cancelled"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE_APPLICATION
    audit_action: ClassVar[AuditAction] = AuditAction.CANCEL

    actor: Actor
    application_id: UUID
    school_name: str
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def target_id(self) -> UUID:
        return self.application_id

    def changes(self) -> dict[str, Any]:
        return {
            "status": {
                "from": ApplicationStatus.PENDING.value,
                "to": ApplicationStatus.CANCELLED.value,
            },
        }


@dataclass(frozen=True)
class DeviceRegistered:
    event_type: ClassVar[str] = "device_registered"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE

    actor: Actor
    device_id: UUID
    serial_number: str
    category: str
    bulk: bool = False
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def audit_action(self) -> AuditAction:
        return AuditAction.IMPORT if self.bulk else AuditAction.CREATE

    @property
    def target_id(self) -> UUID:
        return self.device_id

    def changes(self) -> dict[str, Any]:
        return {"serial_number": self.serial_number, "category": self.category}


@dataclass(frozen=True)
class DeviceUpdated:
    event_type: ClassVar[str] = "device_updated"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE
    audit_action: ClassVar[AuditAction] = AuditAction.UPDATE

    actor: Actor
    device_id: UUID
    fields: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def target_id(self) -> UUID:
        return self.device_id

    def changes(self) -> dict[str, Any]:
        return dict(self.fields)


@dataclass(frozen=True)
class DeviceStatusChanged:
    event_type: ClassVar[str] = "device_maintenance"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE
    audit_action: ClassVar[AuditAction] = AuditAction.UPDATE

    actor: Actor
    device_id: UUID
    previous_status: DeviceStatus
    status: DeviceStatus
    previous_asset_tag: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def target_id(self) -> UUID:
        return self.device_id

    def changes(self) -> dict[str, Any]:
        return {
            "status": {"from": self.previous_status.value, "to": self.status.value},
            "released_asset_tag": self.previous_asset_tag,
        }


@dataclass(frozen=True)
class DeviceUnassigned:
    event_type: ClassVar[str] = "device_unassigned"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE
    audit_action: ClassVar[AuditAction] = AuditAction.UPDATE

    actor: Actor
    device_id: UUID
    school_id: UUID
    asset_tag: str
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def target_id(self) -> UUID:
        return self.device_id

    def changes(self) -> dict[str, Any]:
        return {
            "status": {"from": DeviceStatus.ASSIGNED.value, "to": DeviceStatus.AVAILABLE.value},
            "school_id": {"from": str(self.school_id), "to": None},
            "asset_tag": {"from": self.asset_tag, "to": None},
        }


@dataclass(frozen=True)
class DeviceDeleted:
    event_type: ClassVar[str] = "device_deleted"
    target_entity: ClassVar[TargetEntity] = TargetEntity.DEVICE
    audit_action: ClassVar[AuditAction] = AuditAction.DELETE

    actor: Actor
    device_id: UUID
    serial_number: str
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def target_id(self) -> UUID:
        return self.device_id

    def changes(self) -> dict[str, Any]:
        return {"serial_number": self.serial_number}


DomainEvent = Union[
    ApplicationSubmitted,
    ApplicationReviewed,
    EligibilityUpdated,
    DeviceAssigned,
    ApplicationAssigned,
    ReceiptConfirmed,
    ApplicationCancelled,
    DeviceRegistered,
    DeviceUpdated,
    DeviceStatusChanged,
    DeviceUnassigned,
    DeviceDeleted,
]
