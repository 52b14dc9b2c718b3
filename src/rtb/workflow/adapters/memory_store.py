"""In-memory store adapter.

Implements the unit of work and repositories over plain dictionaries.
Used by the test suite and when the service runs without DATABASE_URL.

A unit of work holds the store's asyncio.Lock for its whole lifetime and
operates on shallow copies of the store's dictionaries. Repositories hand
out copies of entities, so nothing a unit of work does is visible to others
until it commits, at which point the copies replace the store's state.
Rolling back just drops the copies.
"""

import asyncio
import copy
import logging
from typing import Optional
from uuid import UUID

from ...core.exceptions import IntegrityError, ValidationError
from ..domain.entities import (
    OPEN_STATUSES,
    ApplicationStatus,
    Device,
    DeviceApplication,
    DeviceCategory,
    DeviceStatus,
    InventoryStats,
    School,
)
from ..domain.ports import (
    IApplicationRepository,
    IDeviceRepository,
    ISchoolRepository,
    ITagSequenceRepository,
    IUnitOfWork,
)

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Committed state shared by all in-memory units of work."""

    def __init__(self):
        self.schools: dict[UUID, School] = {}
        self.devices: dict[UUID, Device] = {}
        self.applications: dict[UUID, DeviceApplication] = {}
        self.sequences: dict[tuple[UUID, DeviceCategory], int] = {}
        self.lock = asyncio.Lock()

    def add_school(self, school: School) -> School:
        """Register reference data for a school."""
        self.schools[school.id] = school
        return school

    def unit_of_work(self) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self)


class InMemoryDeviceRepository(IDeviceRepository):
    def __init__(self, devices: dict[UUID, Device]):
        self._devices = devices

    async def get(self, device_id: UUID) -> Optional[Device]:
        device = self._devices.get(device_id)
        return copy.copy(device) if device else None

    async def get_by_serial(self, serial_number: str) -> Optional[Device]:
        serial = (serial_number or "").strip().upper()
        for device in self._devices.values():
            if device.serial_number == serial:
                return copy.copy(device)
        return None

    async def get_many_for_update(self, device_ids: list[UUID]) -> list[Device]:
        # The unit of work already holds the store lock
        found = [self._devices[i] for i in set(device_ids) if i in self._devices]
        return [copy.copy(d) for d in sorted(found, key=lambda d: str(d.id))]

    async def add(self, device: Device) -> None:
        if device.id in self._devices:
            raise IntegrityError(f"Device {device.id} already exists", constraint="devices_pkey")
        if await self.get_by_serial(device.serial_number) is not None:
            raise ValidationError(
                f"Device with serial number {device.serial_number} already exists",
                field="serial_number",
            )
        self._devices[device.id] = copy.copy(device)

    async def save(self, device: Device) -> None:
        if device.asset_tag:
            for other in self._devices.values():
                if other.id != device.id and other.asset_tag == device.asset_tag:
                    raise IntegrityError(
                        f"Asset tag {device.asset_tag} is already in use",
                        constraint="devices_asset_tag_key",
                    )
        self._devices[device.id] = copy.copy(device)

    async def delete(self, device_id: UUID) -> None:
        self._devices.pop(device_id, None)

    async def list(
        self,
        status: Optional[DeviceStatus] = None,
        category: Optional[DeviceCategory] = None,
        school_id: Optional[UUID] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Device]:
        needle = search.casefold() if search else None
        matches = []
        for device in self._devices.values():
            if status is not None and device.status != status:
                continue
            if category is not None and device.category != category:
                continue
            if school_id is not None and device.school_id != school_id:
                continue
            if needle and not any(
                needle in (value or "").casefold()
                for value in (device.serial_number, device.brand, device.model, device.asset_tag)
            ):
                continue
            matches.append(device)
        matches.sort(key=lambda d: d.created_at, reverse=True)
        return [copy.copy(d) for d in matches[offset:offset + limit]]

    async def stats(self, school_id: Optional[UUID] = None) -> InventoryStats:
        stats = InventoryStats()
        for device in self._devices.values():
            if school_id is None or device.school_id == school_id:
                stats.add(device)
        return stats


class InMemoryApplicationRepository(IApplicationRepository):
    def __init__(self, applications: dict[UUID, DeviceApplication]):
        self._applications = applications

    async def get(self, application_id: UUID) -> Optional[DeviceApplication]:
        application = self._applications.get(application_id)
        return copy.copy(application) if application else None

    async def get_for_update(self, application_id: UUID) -> Optional[DeviceApplication]:
        return await self.get(application_id)

    async def add(self, application: DeviceApplication) -> None:
        if application.id in self._applications:
            raise IntegrityError(
                f"Application {application.id} already exists",
                constraint="device_applications_pkey",
            )
        self._applications[application.id] = copy.copy(application)

    async def save(self, application: DeviceApplication) -> None:
        self._applications[application.id] = copy.copy(application)

    async def list(
        self,
        status: Optional[ApplicationStatus] = None,
        school_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[DeviceApplication]:
        matches = [
            a for a in self._applications.values()
            if (status is None or a.status == status)
            and (school_id is None or a.school_id == school_id)
        ]
        matches.sort(key=lambda a: a.created_at, reverse=True)
        return [copy.copy(a) for a in matches[offset:offset + limit]]

    async def find_open_for_school(self, school_id: UUID) -> Optional[DeviceApplication]:
        for application in self._applications.values():
            if application.school_id == school_id and application.status in OPEN_STATUSES:
                return copy.copy(application)
        return None


class InMemorySchoolRepository(ISchoolRepository):
    def __init__(self, schools: dict[UUID, School]):
        self._schools = schools

    async def get(self, school_id: UUID) -> Optional[School]:
        return self._schools.get(school_id)

    async def get_by_code(self, school_code: str) -> Optional[School]:
        code = (school_code or "").strip().upper()
        for school in self._schools.values():
            if school.school_code.upper() == code:
                return school
        return None


class InMemoryTagSequenceRepository(ITagSequenceRepository):
    def __init__(self, sequences: dict[tuple[UUID, DeviceCategory], int]):
        self._sequences = sequences

    async def reserve(self, school_id: UUID, category: DeviceCategory, count: int) -> int:
        if count < 1:
            raise ValidationError("Must reserve at least one sequence number", field="count")
        key = (school_id, DeviceCategory(category))
        last = self._sequences.get(key, 0)
        self._sequences[key] = last + count
        return last + 1


class InMemoryUnitOfWork(IUnitOfWork):
    """Serialized, copy-on-write unit of work over an InMemoryStore."""

    def __init__(self, store: InMemoryStore):
        self._store = store
        self._devices: dict[UUID, Device] = {}
        self._applications: dict[UUID, DeviceApplication] = {}
        self._sequences: dict[tuple[UUID, DeviceCategory], int] = {}

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        await self._store.lock.acquire()
        self._devices = dict(self._store.devices)
        self._applications = dict(self._store.applications)
        self._sequences = dict(self._store.sequences)

        self.devices = InMemoryDeviceRepository(self._devices)
        self.applications = InMemoryApplicationRepository(self._applications)
        self.schools = InMemorySchoolRepository(self._store.schools)
        self.sequences = InMemoryTagSequenceRepository(self._sequences)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        try:
            if exc_type is None:
                self._store.devices = self._devices
                self._store.applications = self._applications
                self._store.sequences = self._sequences
                logger.debug("Unit of work committed")
            else:
                logger.debug(f"Unit of work rolled back: {exc_type.__name__}")
        finally:
            self._store.lock.release()
        return None
