"""Port interfaces for the device application workflow.

These are abstract interfaces (ports) that define how the domain
interacts with external systems. Concrete implementations (adapters)
are provided in the adapters module.

All store access happens through a unit of work, which is the single
transactional scope for a workflow operation: it commits when the
``async with`` block exits cleanly and rolls back on any exception.

This follows the Hexagonal Architecture pattern.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from .entities import (
    Actor,
    ApplicationStatus,
    Device,
    DeviceApplication,
    DeviceCategory,
    DeviceStatus,
    InventoryStats,
    School,
    SheetParseResult,
)


class IDeviceRepository(ABC):
    """Port for inventory device data access."""

    @abstractmethod
    async def get(self, device_id: UUID) -> Optional[Device]:
        ...

    @abstractmethod
    async def get_by_serial(self, serial_number: str) -> Optional[Device]:
        """Find a device by its (normalized) serial number."""
        ...

    @abstractmethod
    async def get_many_for_update(self, device_ids: list[UUID]) -> list[Device]:
        """Lock and load devices for mutation.

        Locks are taken in a stable order (by id) so two units of work
        touching overlapping device sets cannot deadlock.

        Args:
            device_ids: Devices to lock

        Returns:
            The devices that exist, ordered by id. Missing ids are omitted.

        Raises:
            ConflictError: If another unit of work holds a lock on any device
        """
        ...

    @abstractmethod
    async def add(self, device: Device) -> None:
        """Insert a new device.

        Raises:
            ValidationError: If the serial number is already registered
        """
        ...

    @abstractmethod
    async def save(self, device: Device) -> None:
        ...

    @abstractmethod
    async def delete(self, device_id: UUID) -> None:
        ...

    @abstractmethod
    async def list(
        self,
        status: Optional[DeviceStatus] = None,
        category: Optional[DeviceCategory] = None,
        school_id: Optional[UUID] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Device]:
        """List devices, newest first.

        Args:
            search: Case-insensitive match on serial, brand, model or asset tag
        """
        ...

    @abstractmethod
    async def stats(self, school_id: Optional[UUID] = None) -> InventoryStats:
        ...


class IApplicationRepository(ABC):
    """Port for device application data access."""

    @abstractmethod
    async def get(self, application_id: UUID) -> Optional[DeviceApplication]:
        ...

    @abstractmethod
    async def get_for_update(self, application_id: UUID) -> Optional[DeviceApplication]:
        """Lock and load an application for mutation.

        Raises:
            ConflictError: If another unit of work holds the lock
        """
        ...

    @abstractmethod
    async def add(self, application: DeviceApplication) -> None:
        ...

    @abstractmethod
    async def save(self, application: DeviceApplication) -> None:
        ...

    @abstractmethod
    async def list(
        self,
        status: Optional[ApplicationStatus] = None,
        school_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[DeviceApplication]:
        """List applications, newest first."""
        ...

    @abstractmethod
    async def find_open_for_school(self, school_id: UUID) -> Optional[DeviceApplication]:
        """Return the school's Pending or Under Review application, if any."""
        ...


class ISchoolRepository(ABC):
    """Port for read-only school reference data."""

    @abstractmethod
    async def get(self, school_id: UUID) -> Optional[School]:
        ...

    @abstractmethod
    async def get_by_code(self, school_code: str) -> Optional[School]:
        ...


class ITagSequenceRepository(ABC):
    """Port for the per-(school, category) asset tag counter."""

    @abstractmethod
    async def reserve(self, school_id: UUID, category: DeviceCategory, count: int) -> int:
        """Reserve a contiguous block of sequence numbers.

        The reservation belongs to the surrounding unit of work: it is
        durable only if that unit of work commits, and concurrent
        reservations for the same key are serialized.

        Args:
            school_id: School the tags belong to
            category: Device category
            count: Number of sequence numbers to reserve (>= 1)

        Returns:
            The first number of the block; the block is [first, first + count)
        """
        ...


class IUnitOfWork(ABC):
    """Atomic scope over every store.

    Usage:
        async with uow_factory() as uow:
            device = await uow.devices.get(device_id)
            ...
    """

    devices: IDeviceRepository
    applications: IApplicationRepository
    schools: ISchoolRepository
    sequences: ITagSequenceRepository

    @abstractmethod
    async def __aenter__(self) -> "IUnitOfWork":
        ...

    @abstractmethod
    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        """Commit if no exception is in flight, otherwise roll back."""
        ...


class IAuditSink(ABC):
    """Port for the audit log."""

    @abstractmethod
    async def record(
        self,
        actor: Actor,
        action_type: str,
        target_entity: str,
        target_id: UUID,
        changes: dict[str, Any],
    ) -> None:
        ...


class INotificationSink(ABC):
    """Port for in-app notifications."""

    @abstractmethod
    async def notify(
        self,
        user_id: UUID,
        notification_type: str,
        title: str,
        message: str,
        action_url: Optional[str] = None,
    ) -> None:
        ...


class IUserDirectory(ABC):
    """Port for looking up who should hear about staff-facing events."""

    @abstractmethod
    async def staff_user_ids(self) -> list[UUID]:
        ...


class IDocumentStore(ABC):
    """Port for application letter storage."""

    @abstractmethod
    async def store(self, filename: str, content: bytes, content_type: str) -> str:
        """Persist a document.

        Returns:
            Opaque reference used to retrieve the document later
        """
        ...

    @abstractmethod
    async def retrieve(self, ref: str) -> bytes:
        """Load a stored document.

        Raises:
            NotFoundError: If nothing is stored under ref
        """
        ...

    @abstractmethod
    async def delete(self, ref: str) -> bool:
        """Remove a stored document. Returns False if nothing was stored."""
        ...


class IEventPublisher(ABC):
    """Port for publishing domain events after a unit of work commits."""

    @abstractmethod
    async def publish(self, events: list) -> None:
        """Deliver events to the audit and notification sinks.

        Must not raise for sink failures; committed state is never undone.
        """
        ...


class ISheetParser(ABC):
    """Port for reading bulk spreadsheets (Excel or CSV)."""

    @abstractmethod
    def parse_devices(self, content: bytes) -> SheetParseResult:
        """Parse a device intake sheet into DeviceRow entries."""
        ...

    @abstractmethod
    def parse_assignments(self, content: bytes) -> SheetParseResult:
        """Parse a bulk-assignment sheet into AssignmentRow entries."""
        ...
