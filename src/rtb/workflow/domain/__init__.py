"""Domain layer for the device application workflow.

Contains:
- Entities: Core business objects and the application state machine
- Events: Typed domain events emitted after each committed change
- Asset tags / eligibility / permissions: Pure rules
- Ports: Interface definitions for infrastructure adapters
"""

from .asset_tags import CATEGORY_CODES, generate_tag, is_valid_tag, parse_tag
from .eligibility import evaluate_eligibility, is_assignable
from .entities import (
    APPLICATION_TRANSITIONS,
    STAFF_ROLES,
    Actor,
    ApplicationStatus,
    AssignedDevice,
    AssignmentResult,
    AssignmentRow,
    BulkFailure,
    BulkResult,
    Device,
    DeviceApplication,
    DeviceCategory,
    DeviceCondition,
    DeviceRow,
    DeviceStatus,
    InventoryStats,
    RequestedQuantities,
    Role,
    RowError,
    School,
    SheetParseResult,
)
from .events import AuditAction, DomainEvent, TargetEntity
from .permissions import Operation, capabilities
from .ports import (
    IApplicationRepository,
    IAuditSink,
    IDeviceRepository,
    IDocumentStore,
    IEventPublisher,
    INotificationSink,
    ISchoolRepository,
    ISheetParser,
    ITagSequenceRepository,
    IUnitOfWork,
    IUserDirectory,
)

__all__ = [
    # Entities
    "Actor",
    "Role",
    "STAFF_ROLES",
    "School",
    "Device",
    "DeviceCategory",
    "DeviceCondition",
    "DeviceStatus",
    "DeviceApplication",
    "ApplicationStatus",
    "APPLICATION_TRANSITIONS",
    "RequestedQuantities",
    "AssignedDevice",
    "AssignmentResult",
    "DeviceRow",
    "AssignmentRow",
    "RowError",
    "SheetParseResult",
    "BulkFailure",
    "BulkResult",
    "InventoryStats",
    # Rules
    "CATEGORY_CODES",
    "generate_tag",
    "parse_tag",
    "is_valid_tag",
    "evaluate_eligibility",
    "is_assignable",
    "Operation",
    "capabilities",
    # Events
    "AuditAction",
    "TargetEntity",
    "DomainEvent",
    # Ports
    "IDeviceRepository",
    "IApplicationRepository",
    "ISchoolRepository",
    "ITagSequenceRepository",
    "IUnitOfWork",
    "IAuditSink",
    "INotificationSink",
    "IUserDirectory",
    "IDocumentStore",
    "IEventPublisher",
    "ISheetParser",
]
