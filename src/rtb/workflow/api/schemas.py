"""Pydantic schemas for API request/response validation."""

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..domain.entities import (
    AssignedDevice,
    AssignmentResult,
    BulkFailure,
    Device,
    DeviceApplication,
    InventoryStats,
)

# ========== Applications ==========


class RequestedQuantitiesDTO(BaseModel):
    """Requested device counts per category."""

    laptops: int = Field(0, ge=0)
    desktops: int = Field(0, ge=0)
    tablets: int = Field(0, ge=0)
    projectors: int = Field(0, ge=0)
    others: int = Field(0, ge=0)


class AssignedDeviceDTO(BaseModel):
    device_id: UUID
    serial_number: str
    category: str
    asset_tag: str

    @classmethod
    def from_entity(cls, device: AssignedDevice) -> "AssignedDeviceDTO":
        return cls(
            device_id=device.device_id,
            serial_number=device.serial_number,
            category=device.category.value,
            asset_tag=device.asset_tag,
        )


class ApplicationDTO(BaseModel):
    """Device application data transfer object."""

    id: UUID
    school_id: UUID
    applicant_id: UUID
    requested: RequestedQuantitiesDTO
    purpose: str
    justification: Optional[str] = None
    status: str
    is_eligible: Optional[bool] = None
    eligibility_notes: Optional[str] = None
    review_notes: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    assigned_devices: list[AssignedDeviceDTO] = Field(default_factory=list)
    assigned_by: Optional[UUID] = None
    assigned_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    confirmation_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, app: DeviceApplication) -> "ApplicationDTO":
        return cls(
            id=app.id,
            school_id=app.school_id,
            applicant_id=app.applicant_id,
            requested=RequestedQuantitiesDTO(**app.requested.to_dict()),
            purpose=app.purpose,
            justification=app.justification,
            status=app.status.value,
            is_eligible=app.is_eligible,
            eligibility_notes=app.eligibility_notes,
            review_notes=app.review_notes,
            reviewed_by=app.reviewed_by,
            reviewed_at=app.reviewed_at,
            assigned_devices=[AssignedDeviceDTO.from_entity(d) for d in app.assigned_devices],
            assigned_by=app.assigned_by,
            assigned_at=app.assigned_at,
            confirmed_at=app.confirmed_at,
            confirmation_notes=app.confirmation_notes,
            created_at=app.created_at,
            updated_at=app.updated_at,
        )


class ApplicationListResponse(BaseModel):
    applications: list[ApplicationDTO]
    limit: int
    offset: int


class ReviewRequest(BaseModel):
    """Staff review decision."""

    status: Literal["Under Review", "Approved", "Rejected"]
    review_notes: Optional[str] = None
    eligibility_notes: Optional[str] = None
    is_eligible: Optional[bool] = Field(
        None, description="Explicit eligibility override; defaults to true on approval"
    )


class EligibilityRequest(BaseModel):
    is_eligible: bool
    notes: Optional[str] = None


class AssignRequest(BaseModel):
    device_ids: list[UUID] = Field(..., min_length=1)


class ConfirmRequest(BaseModel):
    confirmation_notes: Optional[str] = None


class AssignmentResultDTO(BaseModel):
    """Devices bound to an application or school, with their tags."""

    application_id: Optional[UUID] = None
    school_id: UUID
    devices: list[AssignedDeviceDTO]
    assigned_by: UUID
    assigned_at: datetime

    @classmethod
    def from_entity(cls, result: AssignmentResult) -> "AssignmentResultDTO":
        return cls(
            application_id=result.application_id,
            school_id=result.school_id,
            devices=[AssignedDeviceDTO.from_entity(d) for d in result.devices],
            assigned_by=result.assigned_by,
            assigned_at=result.assigned_at,
        )


# ========== Devices ==========


class DeviceCreateRequest(BaseModel):
    serial_number: str = Field(..., min_length=1)
    category: str
    brand: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    condition: str = "New"
    specifications: Optional[str] = None


class DeviceUpdateRequest(BaseModel):
    """Editable device fields. Serial number and category are immutable."""

    brand: Optional[str] = None
    model: Optional[str] = None
    condition: Optional[str] = None
    specifications: Optional[str] = None


class DeviceStatusRequest(BaseModel):
    status: Literal["Available", "Maintenance", "Written Off"]


class DeviceDTO(BaseModel):
    """Inventory device data transfer object."""

    id: UUID
    serial_number: str
    category: str
    brand: str
    model: str
    condition: str
    status: str
    school_id: Optional[UUID] = None
    asset_tag: Optional[str] = None
    specifications: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, device: Device) -> "DeviceDTO":
        return cls(
            id=device.id,
            serial_number=device.serial_number,
            category=device.category.value,
            brand=device.brand,
            model=device.model,
            condition=device.condition.value,
            status=device.status.value,
            school_id=device.school_id,
            asset_tag=device.asset_tag,
            specifications=device.specifications,
            created_at=device.created_at,
            updated_at=device.updated_at,
        )


class DeviceListResponse(BaseModel):
    devices: list[DeviceDTO]
    limit: int
    offset: int


class InventoryStatsDTO(BaseModel):
    total: int
    by_status: dict[str, int]
    by_category: dict[str, int]
    by_condition: dict[str, int]

    @classmethod
    def from_entity(cls, stats: InventoryStats) -> "InventoryStatsDTO":
        return cls(
            total=stats.total,
            by_status=stats.by_status,
            by_category=stats.by_category,
            by_condition=stats.by_condition,
        )


# ========== Bulk ==========


class BulkDeviceRequest(BaseModel):
    devices: list[DeviceCreateRequest] = Field(..., min_length=1)


class BulkAssignRequest(BaseModel):
    """Assign a list of devices (by serial) to one school."""

    school_code: str = Field(..., min_length=1)
    serial_numbers: list[str] = Field(..., min_length=1)


class BulkFailureDTO(BaseModel):
    key: str
    reason: str
    code: str
    row_number: Optional[int] = None

    @classmethod
    def from_entity(cls, failure: BulkFailure) -> "BulkFailureDTO":
        return cls(**failure.to_dict())


class BulkDeviceResponse(BaseModel):
    message: str
    successful: list[DeviceDTO]
    failed: list[BulkFailureDTO]


class BulkAssignResponse(BaseModel):
    message: str
    successful: list[AssignmentResultDTO]
    failed: list[BulkFailureDTO]


# ========== Misc ==========


class CapabilitiesResponse(BaseModel):
    user_id: UUID
    role: str
    school_id: Optional[UUID] = None
    operations: list[str]


class ErrorResponse(BaseModel):
    """Error body returned for every RTBError."""

    error: str
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    recoverable: bool = False
