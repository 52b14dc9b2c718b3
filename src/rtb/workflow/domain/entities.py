"""Domain entities for the device application workflow.

These are pure domain objects with no infrastructure dependencies.
They represent the core business concepts: schools, inventory devices,
device applications and the state machine that governs them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from ...core.exceptions import InvalidTransitionError, ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Closed set of roles the identity source can hand us."""

    ADMIN = "admin"
    RTB_STAFF = "rtb-staff"
    HEADTEACHER = "headteacher"
    SCHOOL_STAFF = "school-staff"
    SCHOOL = "school"


STAFF_ROLES = frozenset({Role.ADMIN, Role.RTB_STAFF})


class DeviceCategory(str, Enum):
    """Inventory device categories."""

    LAPTOP = "Laptop"
    DESKTOP = "Desktop"
    TABLET = "Tablet"
    PROJECTOR = "Projector"
    OTHERS = "Others"


class DeviceCondition(str, Enum):
    """Physical condition recorded at intake."""

    NEW = "New"
    GOOD = "Good"
    FAIR = "Fair"
    FAULTY = "Faulty"


class DeviceStatus(str, Enum):
    """Inventory status of a device."""

    AVAILABLE = "Available"
    ASSIGNED = "Assigned"
    MAINTENANCE = "Maintenance"
    WRITTEN_OFF = "Written Off"


class ApplicationStatus(str, Enum):
    """Status of a device application."""

    PENDING = "Pending"
    UNDER_REVIEW = "Under Review"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    ASSIGNED = "Assigned"
    RECEIVED = "Received"
    CANCELLED = "Cancelled"


# Application state machine. Rejected, Received and Cancelled are terminal.
APPLICATION_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.PENDING: frozenset({
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.CANCELLED,
    }),
    ApplicationStatus.UNDER_REVIEW: frozenset({
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
    }),
    ApplicationStatus.APPROVED: frozenset({ApplicationStatus.ASSIGNED}),
    ApplicationStatus.ASSIGNED: frozenset({ApplicationStatus.RECEIVED}),
    ApplicationStatus.REJECTED: frozenset(),
    ApplicationStatus.RECEIVED: frozenset(),
    ApplicationStatus.CANCELLED: frozenset(),
}

REVIEW_DECISIONS = frozenset({
    ApplicationStatus.UNDER_REVIEW,
    ApplicationStatus.APPROVED,
    ApplicationStatus.REJECTED,
})

OPEN_STATUSES = frozenset({ApplicationStatus.PENDING, ApplicationStatus.UNDER_REVIEW})

# Maintenance edits allowed outside the assignment engine
DEVICE_MAINTENANCE_TRANSITIONS: dict[DeviceStatus, frozenset[DeviceStatus]] = {
    DeviceStatus.AVAILABLE: frozenset({DeviceStatus.MAINTENANCE, DeviceStatus.WRITTEN_OFF}),
    DeviceStatus.ASSIGNED: frozenset({DeviceStatus.MAINTENANCE, DeviceStatus.WRITTEN_OFF}),
    DeviceStatus.MAINTENANCE: frozenset({DeviceStatus.AVAILABLE, DeviceStatus.WRITTEN_OFF}),
    DeviceStatus.WRITTEN_OFF: frozenset(),
}


@dataclass(frozen=True)
class Actor:
    """The caller of a workflow operation, as resolved by the identity source.

    Passed explicitly into every operation; nothing in the core reads a
    "current user" from ambient state.
    """

    user_id: UUID
    role: Role
    school_id: Optional[UUID] = None
    name: Optional[str] = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def owns_school(self, school_id: Optional[UUID]) -> bool:
        return self.school_id is not None and self.school_id == school_id


@dataclass
class School:
    """A school affiliated with the board. Read-only for the workflow core."""

    id: UUID
    school_code: str
    school_name: str
    district: str
    province: Optional[str] = None
    status: str = "Active"
    representative_id: Optional[UUID] = None


@dataclass(frozen=True)
class RequestedQuantities:
    """Number of devices requested per category."""

    laptops: int = 0
    desktops: int = 0
    tablets: int = 0
    projectors: int = 0
    others: int = 0

    def __post_init__(self):
        for name, value in self._items():
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{name} must be an integer", field=name)
            if value < 0:
                raise ValidationError(f"{name} cannot be negative", field=name)

    def _items(self) -> list[tuple[str, int]]:
        return [
            ("laptops", self.laptops),
            ("desktops", self.desktops),
            ("tablets", self.tablets),
            ("projectors", self.projectors),
            ("others", self.others),
        ]

    @property
    def total(self) -> int:
        return sum(value for _, value in self._items())

    def for_category(self, category: DeviceCategory) -> int:
        """Requested quantity for a device category."""
        return {
            DeviceCategory.LAPTOP: self.laptops,
            DeviceCategory.DESKTOP: self.desktops,
            DeviceCategory.TABLET: self.tablets,
            DeviceCategory.PROJECTOR: self.projectors,
            DeviceCategory.OTHERS: self.others,
        }[category]

    def to_dict(self) -> dict[str, int]:
        return dict(self._items())


@dataclass
class Device:
    """An inventory device.

    Invariant: asset_tag (and school_id) are set if and only if the device
    is Assigned. The serial number never changes after intake.
    """

    serial_number: str
    category: DeviceCategory
    brand: str
    model: str
    condition: DeviceCondition
    id: UUID = field(default_factory=uuid4)
    status: DeviceStatus = DeviceStatus.AVAILABLE
    school_id: Optional[UUID] = None
    asset_tag: Optional[str] = None
    specifications: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        # Normalize serial number
        self.serial_number = normalize_serial(self.serial_number)
        if not self.serial_number:
            raise ValidationError("Serial number is required", field="serial_number")
        self.category = DeviceCategory(self.category)
        self.condition = DeviceCondition(self.condition)
        self.status = DeviceStatus(self.status)

    @property
    def is_available(self) -> bool:
        return self.status == DeviceStatus.AVAILABLE

    def mark_assigned(self, school_id: UUID, asset_tag: str) -> None:
        """Bind the device to a school with its generated asset tag."""
        if self.status != DeviceStatus.AVAILABLE:
            raise InvalidTransitionError(
                f"Device {self.serial_number} is not available",
                entity_id=self.id,
                current=self.status,
                attempted=DeviceStatus.ASSIGNED,
            )
        self.status = DeviceStatus.ASSIGNED
        self.school_id = school_id
        self.asset_tag = asset_tag
        self.updated_at = utcnow()

    def release(self) -> None:
        """Return an assigned device to the available pool."""
        if self.status != DeviceStatus.ASSIGNED:
            raise InvalidTransitionError(
                f"Device {self.serial_number} is not assigned",
                entity_id=self.id,
                current=self.status,
                attempted=DeviceStatus.AVAILABLE,
            )
        self.status = DeviceStatus.AVAILABLE
        self.school_id = None
        self.asset_tag = None
        self.updated_at = utcnow()

    def change_maintenance_status(self, new_status: DeviceStatus) -> None:
        """Apply a maintenance edit (repair, write-off, back to stock)."""
        new_status = DeviceStatus(new_status)
        if new_status not in DEVICE_MAINTENANCE_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Cannot move device {self.serial_number} from "
                f"{self.status.value} to {new_status.value}",
                entity_id=self.id,
                current=self.status,
                attempted=new_status,
            )
        self.status = new_status
        # Leaving Assigned drops the school binding and its tag
        self.school_id = None
        self.asset_tag = None
        self.updated_at = utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": str(self.id),
            "serial_number": self.serial_number,
            "category": self.category.value,
            "brand": self.brand,
            "model": self.model,
            "condition": self.condition.value,
            "status": self.status.value,
            "school_id": str(self.school_id) if self.school_id else None,
            "asset_tag": self.asset_tag,
            "specifications": self.specifications,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


def normalize_serial(serial: str) -> str:
    return (serial or "").strip().upper()


def parse_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    """Parse a user-supplied enum value, ignoring case and surrounding spaces.

    Raises:
        ValidationError: If the value is not a member of enum_cls
    """
    if isinstance(value, enum_cls):
        return value
    text = str(value or "").strip().casefold()
    for member in enum_cls:
        if member.value.casefold() == text:
            return member
    expected = ", ".join(m.value for m in enum_cls)
    raise ValidationError(
        f"Invalid {field_name} {value!r}. Expected one of: {expected}",
        field=field_name,
    )


@dataclass(frozen=True)
class AssignedDevice:
    """One entry of an application's assigned-devices list."""

    device_id: UUID
    serial_number: str
    category: DeviceCategory
    asset_tag: str

    @classmethod
    def from_device(cls, device: Device) -> "AssignedDevice":
        return cls(
            device_id=device.id,
            serial_number=device.serial_number,
            category=device.category,
            asset_tag=device.asset_tag or "",
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "device_id": str(self.device_id),
            "serial_number": self.serial_number,
            "category": self.category.value,
            "asset_tag": self.asset_tag,
        }


@dataclass
class DeviceApplication:
    """A school's request for devices, tracked through a fixed lifecycle.

    Invariants:
        - assigned_devices is non-empty only when status is Assigned or Received
        - is_eligible is None while status is Pending
        - assigned_devices never changes once set
    """

    school_id: UUID
    applicant_id: UUID
    purpose: str
    letter_document_ref: str
    requested: RequestedQuantities
    id: UUID = field(default_factory=uuid4)
    justification: Optional[str] = None
    status: ApplicationStatus = ApplicationStatus.PENDING

    # Review
    is_eligible: Optional[bool] = None
    eligibility_notes: Optional[str] = None
    review_notes: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None

    # Assignment
    assigned_devices: tuple[AssignedDevice, ...] = ()
    assigned_by: Optional[UUID] = None
    assigned_at: Optional[datetime] = None

    # Confirmation
    confirmed_at: Optional[datetime] = None
    confirmation_notes: Optional[str] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.status = ApplicationStatus(self.status)
        self.assigned_devices = tuple(self.assigned_devices)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not APPLICATION_TRANSITIONS[self.status]

    def can_transition_to(self, new_status: ApplicationStatus) -> bool:
        return new_status in APPLICATION_TRANSITIONS[self.status]

    def transition_to(self, new_status: ApplicationStatus) -> None:
        """Move to a new status, enforcing the state machine.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        new_status = ApplicationStatus(new_status)
        if not self.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Cannot move application from {self.status.value} to {new_status.value}",
                entity_id=self.id,
                current=self.status,
                attempted=new_status,
            )
        self.status = new_status
        self.updated_at = utcnow()

    def record_review(
        self,
        decision: ApplicationStatus,
        reviewer_id: UUID,
        is_eligible: Optional[bool],
        review_notes: Optional[str] = None,
        eligibility_notes: Optional[str] = None,
        reviewed_at: Optional[datetime] = None,
    ) -> None:
        self.transition_to(decision)
        self.is_eligible = is_eligible
        self.review_notes = review_notes
        if eligibility_notes is not None:
            self.eligibility_notes = eligibility_notes
        self.reviewed_by = reviewer_id
        self.reviewed_at = reviewed_at or utcnow()

    def record_assignment(
        self,
        devices: list[AssignedDevice],
        assigner_id: UUID,
        assigned_at: Optional[datetime] = None,
    ) -> None:
        if self.assigned_devices:
            raise InvalidTransitionError(
                "Devices have already been assigned to this application",
                entity_id=self.id,
                current=self.status,
                attempted=ApplicationStatus.ASSIGNED,
            )
        if not devices:
            raise ValidationError("At least one device must be assigned", field="device_ids")
        self.transition_to(ApplicationStatus.ASSIGNED)
        self.assigned_devices = tuple(devices)
        self.assigned_by = assigner_id
        self.assigned_at = assigned_at or utcnow()

    def record_receipt(
        self,
        notes: Optional[str] = None,
        confirmed_at: Optional[datetime] = None,
    ) -> None:
        self.transition_to(ApplicationStatus.RECEIVED)
        self.confirmed_at = confirmed_at or utcnow()
        self.confirmation_notes = notes

    def assigned_count(self, category: DeviceCategory) -> int:
        return sum(1 for d in self.assigned_devices if d.category == category)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": str(self.id),
            "school_id": str(self.school_id),
            "applicant_id": str(self.applicant_id),
            "requested": self.requested.to_dict(),
            "purpose": self.purpose,
            "justification": self.justification,
            "letter_document_ref": self.letter_document_ref,
            "status": self.status.value,
            "is_eligible": self.is_eligible,
            "eligibility_notes": self.eligibility_notes,
            "review_notes": self.review_notes,
            "reviewed_by": str(self.reviewed_by) if self.reviewed_by else None,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "assigned_devices": [d.to_dict() for d in self.assigned_devices],
            "assigned_by": str(self.assigned_by) if self.assigned_by else None,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "confirmation_notes": self.confirmation_notes,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class AssignmentResult:
    """Outcome of an atomic assignment of devices to a school."""

    school_id: UUID
    devices: list[AssignedDevice]
    assigned_by: UUID
    assigned_at: datetime
    application_id: Optional[UUID] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "application_id": str(self.application_id) if self.application_id else None,
            "school_id": str(self.school_id),
            "devices": [d.to_dict() for d in self.devices],
            "assigned_by": str(self.assigned_by),
            "assigned_at": self.assigned_at.isoformat(),
        }


@dataclass
class DeviceRow:
    """A single device row from bulk intake (JSON body or spreadsheet)."""

    row_number: int
    serial_number: str
    category: str
    brand: str
    model: str
    condition: str
    specifications: Optional[str] = None

    def __post_init__(self):
        self.serial_number = normalize_serial(self.serial_number)
        self.category = (self.category or "").strip()
        self.brand = (self.brand or "").strip()
        self.model = (self.model or "").strip()
        self.condition = (self.condition or "").strip()


@dataclass
class AssignmentRow:
    """A serial-number-to-school pair from bulk assignment."""

    row_number: int
    serial_number: str
    school_code: str

    def __post_init__(self):
        self.serial_number = normalize_serial(self.serial_number)
        self.school_code = (self.school_code or "").strip().upper()


@dataclass
class RowError:
    """A validation error for a spreadsheet row."""

    row_number: int
    field: str
    message: str


@dataclass
class SheetParseResult:
    """Rows parsed from a spreadsheet plus the rows that failed validation."""

    rows: list[Any] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)


@dataclass
class BulkFailure:
    """One failed item of a bulk operation."""

    key: str
    reason: str
    code: str = "VALIDATION_ERROR"
    row_number: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "reason": self.reason,
            "code": self.code,
            "row_number": self.row_number,
        }


@dataclass
class BulkResult:
    """Result set of a bulk call, partitioned into successful and failed.

    Partial success is intentional here: one bad row never fails the batch.
    """

    successful: list[Any] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)

    @property
    def summary(self) -> str:
        return f"{len(self.successful)} successful, {len(self.failed)} failed"


@dataclass
class InventoryStats:
    """Device counts by status, category and condition."""

    total: int = 0
    by_status: dict[str, int] = field(
        default_factory=lambda: {s.value: 0 for s in DeviceStatus}
    )
    by_category: dict[str, int] = field(
        default_factory=lambda: {c.value: 0 for c in DeviceCategory}
    )
    by_condition: dict[str, int] = field(
        default_factory=lambda: {c.value: 0 for c in DeviceCondition}
    )

    def add(self, device: Device) -> None:
        self.total += 1
        self.by_status[device.status.value] += 1
        self.by_category[device.category.value] += 1
        self.by_condition[device.condition.value] += 1
