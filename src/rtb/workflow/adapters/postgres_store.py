"""PostgreSQL store adapter.

Implements the unit of work and repositories with asyncpg. A unit of work
is one database transaction (see ``core.database.database_transaction``):

- Devices and applications are locked with ``SELECT ... FOR UPDATE NOWAIT``
  in id order; a lock held by another transaction raises ConflictError
  immediately instead of waiting.
- Tag sequences are reserved with an upsert on ``asset_tag_sequences``,
  whose row lock serializes concurrent reservations for the same
  (school, category) until the transaction ends.
"""

import json
import logging
from typing import Any, Optional
from uuid import UUID

import asyncpg

from ...core.database import database_transaction
from ...core.exceptions import ConflictError, ValidationError
from ..domain.entities import (
    ApplicationStatus,
    AssignedDevice,
    Device,
    DeviceApplication,
    DeviceCategory,
    DeviceStatus,
    InventoryStats,
    RequestedQuantities,
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

DEVICE_COLUMNS = """
    id, serial_number, category, brand, model, condition, status,
    school_id, asset_tag, specifications, created_at, updated_at
"""

APPLICATION_COLUMNS = """
    id, school_id, applicant_id, requested, purpose, justification,
    letter_document_ref, status, is_eligible, eligibility_notes, review_notes,
    reviewed_by, reviewed_at, assigned_devices, assigned_by, assigned_at,
    confirmed_at, confirmation_notes, created_at, updated_at
"""


def _json(value: Any) -> Any:
    """asyncpg returns jsonb as text unless a codec is registered."""
    return json.loads(value) if isinstance(value, str) else value


def _row_to_device(row: asyncpg.Record) -> Device:
    return Device(
        id=row["id"],
        serial_number=row["serial_number"],
        category=DeviceCategory(row["category"]),
        brand=row["brand"],
        model=row["model"],
        condition=row["condition"],
        status=DeviceStatus(row["status"]),
        school_id=row["school_id"],
        asset_tag=row["asset_tag"],
        specifications=row["specifications"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_application(row: asyncpg.Record) -> DeviceApplication:
    assigned = [
        AssignedDevice(
            device_id=UUID(item["device_id"]),
            serial_number=item["serial_number"],
            category=DeviceCategory(item["category"]),
            asset_tag=item["asset_tag"],
        )
        for item in _json(row["assigned_devices"]) or []
    ]
    return DeviceApplication(
        id=row["id"],
        school_id=row["school_id"],
        applicant_id=row["applicant_id"],
        requested=RequestedQuantities(**_json(row["requested"])),
        purpose=row["purpose"],
        justification=row["justification"],
        letter_document_ref=row["letter_document_ref"],
        status=ApplicationStatus(row["status"]),
        is_eligible=row["is_eligible"],
        eligibility_notes=row["eligibility_notes"],
        review_notes=row["review_notes"],
        reviewed_by=row["reviewed_by"],
        reviewed_at=row["reviewed_at"],
        assigned_devices=tuple(assigned),
        assigned_by=row["assigned_by"],
        assigned_at=row["assigned_at"],
        confirmed_at=row["confirmed_at"],
        confirmation_notes=row["confirmation_notes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_school(row: asyncpg.Record) -> School:
    return School(
        id=row["id"],
        school_code=row["school_code"],
        school_name=row["school_name"],
        district=row["district"],
        province=row["province"],
        status=row["status"],
        representative_id=row["representative_id"],
    )


class PostgresDeviceRepository(IDeviceRepository):
    """PostgreSQL implementation of IDeviceRepository."""

    def __init__(self, conn: asyncpg.Connection):
        """Initialize with the unit of work's connection.

        Args:
            conn: asyncpg connection inside an open transaction
        """
        self.conn = conn

    async def get(self, device_id: UUID) -> Optional[Device]:
        row = await self.conn.fetchrow(
            f"SELECT {DEVICE_COLUMNS} FROM devices WHERE id = $1",
            device_id,
        )
        return _row_to_device(row) if row else None

    async def get_by_serial(self, serial_number: str) -> Optional[Device]:
        row = await self.conn.fetchrow(
            f"SELECT {DEVICE_COLUMNS} FROM devices WHERE serial_number = $1",
            (serial_number or "").strip().upper(),
        )
        return _row_to_device(row) if row else None

    async def get_many_for_update(self, device_ids: list[UUID]) -> list[Device]:
        if not device_ids:
            return []
        try:
            rows = await self.conn.fetch(
                f"""
                SELECT {DEVICE_COLUMNS} FROM devices
                WHERE id = ANY($1::uuid[])
                ORDER BY id
                FOR UPDATE NOWAIT
                """,
                list(device_ids),
            )
        except asyncpg.exceptions.LockNotAvailableError as e:
            logger.warning(f"Device lock contention on {len(device_ids)} devices")
            raise ConflictError(
                "Devices are being assigned by another request, retry with fresh availability",
                conflicting_ids=list(device_ids),
                cause=e,
            )
        return [_row_to_device(row) for row in rows]

    async def add(self, device: Device) -> None:
        try:
            await self.conn.execute(
                """
                INSERT INTO devices (
                    id, serial_number, category, brand, model, condition, status,
                    school_id, asset_tag, specifications, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                """,
                device.id,
                device.serial_number,
                device.category.value,
                device.brand,
                device.model,
                device.condition.value,
                device.status.value,
                device.school_id,
                device.asset_tag,
                device.specifications,
                device.created_at,
                device.updated_at,
            )
        except asyncpg.exceptions.UniqueViolationError as e:
            raise ValidationError(
                f"Device with serial number {device.serial_number} already exists",
                field="serial_number",
                cause=e,
            )

    async def save(self, device: Device) -> None:
        await self.conn.execute(
            """
            UPDATE devices SET
                brand = $2,
                model = $3,
                condition = $4,
                status = $5,
                school_id = $6,
                asset_tag = $7,
                specifications = $8,
                updated_at = $9
            WHERE id = $1
            """,
            device.id,
            device.brand,
            device.model,
            device.condition.value,
            device.status.value,
            device.school_id,
            device.asset_tag,
            device.specifications,
            device.updated_at,
        )

    async def delete(self, device_id: UUID) -> None:
        await self.conn.execute("DELETE FROM devices WHERE id = $1", device_id)

    async def list(
        self,
        status: Optional[DeviceStatus] = None,
        category: Optional[DeviceCategory] = None,
        school_id: Optional[UUID] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Device]:
        where_clauses = []
        params: list[Any] = []
        param_idx = 1

        if status is not None:
            where_clauses.append(f"status = ${param_idx}")
            params.append(status.value)
            param_idx += 1
        if category is not None:
            where_clauses.append(f"category = ${param_idx}")
            params.append(category.value)
            param_idx += 1
        if school_id is not None:
            where_clauses.append(f"school_id = ${param_idx}")
            params.append(school_id)
            param_idx += 1
        if search:
            where_clauses.append(
                f"(serial_number ILIKE ${param_idx} OR brand ILIKE ${param_idx} "
                f"OR model ILIKE ${param_idx} OR asset_tag ILIKE ${param_idx})"
            )
            params.append(f"%{search}%")
            param_idx += 1

        where_sql = "WHERE " + " AND ".join(where_clauses) if where_clauses else ""
        rows = await self.conn.fetch(
            f"""
            SELECT {DEVICE_COLUMNS} FROM devices
            {where_sql}
            ORDER BY created_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
            """,
            *params,
            limit,
            offset,
        )
        return [_row_to_device(row) for row in rows]

    async def stats(self, school_id: Optional[UUID] = None) -> InventoryStats:
        rows = await self.conn.fetch(
            """
            SELECT status, category, condition, COUNT(*) AS count
            FROM devices
            WHERE $1::uuid IS NULL OR school_id = $1
            GROUP BY status, category, condition
            """,
            school_id,
        )
        stats = InventoryStats()
        for row in rows:
            count = row["count"]
            stats.total += count
            stats.by_status[row["status"]] = stats.by_status.get(row["status"], 0) + count
            stats.by_category[row["category"]] = stats.by_category.get(row["category"], 0) + count
            stats.by_condition[row["condition"]] = (
                stats.by_condition.get(row["condition"], 0) + count
            )
        return stats


class PostgresApplicationRepository(IApplicationRepository):
    """PostgreSQL implementation of IApplicationRepository."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def get(self, application_id: UUID) -> Optional[DeviceApplication]:
        row = await self.conn.fetchrow(
            f"SELECT {APPLICATION_COLUMNS} FROM device_applications WHERE id = $1",
            application_id,
        )
        return _row_to_application(row) if row else None

    async def get_for_update(self, application_id: UUID) -> Optional[DeviceApplication]:
        try:
            row = await self.conn.fetchrow(
                f"""
                SELECT {APPLICATION_COLUMNS} FROM device_applications
                WHERE id = $1
                FOR UPDATE NOWAIT
                """,
                application_id,
            )
        except asyncpg.exceptions.LockNotAvailableError as e:
            raise ConflictError(
                f"Application {application_id} is being updated by another request",
                conflicting_ids=[application_id],
                cause=e,
            )
        return _row_to_application(row) if row else None

    async def add(self, application: DeviceApplication) -> None:
        try:
            await self.conn.execute(
                """
                INSERT INTO device_applications (
                    id, school_id, applicant_id, requested, purpose, justification,
                    letter_document_ref, status, is_eligible, created_at, updated_at
                ) VALUES ($1, $2, $3, $4::jsonb, $5, $6, $7, $8, $9, $10, $11)
                """,
                application.id,
                application.school_id,
                application.applicant_id,
                json.dumps(application.requested.to_dict()),
                application.purpose,
                application.justification,
                application.letter_document_ref,
                application.status.value,
                application.is_eligible,
                application.created_at,
                application.updated_at,
            )
        except asyncpg.exceptions.UniqueViolationError as e:
            # uq_applications_open_per_school lost a race with another submit
            raise ValidationError(
                "School already has an open application",
                field="school_id",
                cause=e,
            )

    async def save(self, application: DeviceApplication) -> None:
        await self.conn.execute(
            """
            UPDATE device_applications SET
                status = $2,
                is_eligible = $3,
                eligibility_notes = $4,
                review_notes = $5,
                reviewed_by = $6,
                reviewed_at = $7,
                assigned_devices = $8::jsonb,
                assigned_by = $9,
                assigned_at = $10,
                confirmed_at = $11,
                confirmation_notes = $12,
                updated_at = $13
            WHERE id = $1
            """,
            application.id,
            application.status.value,
            application.is_eligible,
            application.eligibility_notes,
            application.review_notes,
            application.reviewed_by,
            application.reviewed_at,
            json.dumps([d.to_dict() for d in application.assigned_devices]),
            application.assigned_by,
            application.assigned_at,
            application.confirmed_at,
            application.confirmation_notes,
            application.updated_at,
        )

    async def list(
        self,
        status: Optional[ApplicationStatus] = None,
        school_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[DeviceApplication]:
        rows = await self.conn.fetch(
            f"""
            SELECT {APPLICATION_COLUMNS} FROM device_applications
            WHERE ($1::text IS NULL OR status = $1)
            AND ($2::uuid IS NULL OR school_id = $2)
            ORDER BY created_at DESC
            LIMIT $3 OFFSET $4
            """,
            status.value if status else None,
            school_id,
            limit,
            offset,
        )
        return [_row_to_application(row) for row in rows]

    async def find_open_for_school(self, school_id: UUID) -> Optional[DeviceApplication]:
        row = await self.conn.fetchrow(
            f"""
            SELECT {APPLICATION_COLUMNS} FROM device_applications
            WHERE school_id = $1 AND status IN ('Pending', 'Under Review')
            LIMIT 1
            """,
            school_id,
        )
        return _row_to_application(row) if row else None


class PostgresSchoolRepository(ISchoolRepository):
    """PostgreSQL implementation of ISchoolRepository."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def get(self, school_id: UUID) -> Optional[School]:
        row = await self.conn.fetchrow("SELECT * FROM schools WHERE id = $1", school_id)
        return _row_to_school(row) if row else None

    async def get_by_code(self, school_code: str) -> Optional[School]:
        row = await self.conn.fetchrow(
            "SELECT * FROM schools WHERE UPPER(school_code) = $1",
            (school_code or "").strip().upper(),
        )
        return _row_to_school(row) if row else None


class PostgresTagSequenceRepository(ITagSequenceRepository):
    """Serialized per-(school, category) counter on asset_tag_sequences."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def reserve(self, school_id: UUID, category: DeviceCategory, count: int) -> int:
        if count < 1:
            raise ValidationError("Must reserve at least one sequence number", field="count")
        last_value = await self.conn.fetchval(
            """
            INSERT INTO asset_tag_sequences (school_id, category, last_value)
            VALUES ($1, $2, $3)
            ON CONFLICT (school_id, category)
            DO UPDATE SET last_value = asset_tag_sequences.last_value + EXCLUDED.last_value
            RETURNING last_value
            """,
            school_id,
            DeviceCategory(category).value,
            count,
        )
        return last_value - count + 1


class PostgresUnitOfWork(IUnitOfWork):
    """One database transaction spanning every repository."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool
        self._transaction = None

    async def __aenter__(self) -> "PostgresUnitOfWork":
        self._transaction = database_transaction(self.pool)
        conn = await self._transaction.__aenter__()
        self.devices = PostgresDeviceRepository(conn)
        self.applications = PostgresApplicationRepository(conn)
        self.schools = PostgresSchoolRepository(conn)
        self.sequences = PostgresTagSequenceRepository(conn)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        transaction, self._transaction = self._transaction, None
        return await transaction.__aexit__(exc_type, exc, tb)


class PostgresStore:
    """Factory for PostgreSQL units of work over a shared pool."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    def unit_of_work(self) -> PostgresUnitOfWork:
        return PostgresUnitOfWork(self.pool)
