"""Bulk intake and bulk assignment use cases.

Both accept either already-parsed rows (JSON API) or a raw spreadsheet
(Excel or CSV). Rows are processed one at a time, each in its own unit
of work: a bad row lands in ``failed`` with a reason and never fails the
batch. Only the caller's role check fails the whole call.
"""

import logging
from typing import Callable

from ...core.exceptions import NotFoundError, RTBError
from ..domain.entities import (
    Actor,
    AssignmentRow,
    BulkFailure,
    BulkResult,
    DeviceRow,
    RowError,
)
from ..domain.permissions import Operation, require
from ..domain.ports import ISheetParser, IUnitOfWork
from .assignment_engine import AssignmentEngine
from .inventory import InventoryUseCase

logger = logging.getLogger(__name__)


def _row_failures(errors: list[RowError]) -> list[BulkFailure]:
    return [
        BulkFailure(
            key=f"row {e.row_number}",
            reason=f"{e.field}: {e.message}",
            row_number=e.row_number,
        )
        for e in errors
    ]


def _failure(row, error: RTBError) -> BulkFailure:
    return BulkFailure(
        key=row.serial_number or f"row {row.row_number}",
        reason=error.message,
        code=error.code,
        row_number=row.row_number,
    )


class BulkIntakeUseCase:
    """Register many devices at once."""

    def __init__(self, inventory: InventoryUseCase, parser: ISheetParser):
        self.inventory = inventory
        self.parser = parser

    async def execute(self, actor: Actor, rows: list[DeviceRow]) -> BulkResult:
        """Register each row as an Available device.

        Args:
            actor: Staff member performing the intake
            rows: Parsed device rows

        Returns:
            BulkResult with the created Device objects in ``successful``
        """
        require(actor, Operation.BULK_INTAKE)
        result = BulkResult()
        seen: set[str] = set()

        for row in rows:
            if row.serial_number and row.serial_number in seen:
                result.failed.append(
                    BulkFailure(
                        key=row.serial_number,
                        reason="Serial number appears more than once in this batch",
                        row_number=row.row_number,
                    )
                )
                continue
            seen.add(row.serial_number)

            try:
                device = await self.inventory.register_device(
                    actor,
                    serial_number=row.serial_number,
                    category=row.category,
                    brand=row.brand,
                    model=row.model,
                    condition=row.condition,
                    specifications=row.specifications,
                    bulk=True,
                )
            except RTBError as e:
                result.failed.append(_failure(row, e))
                continue
            result.successful.append(device)

        logger.info(f"Bulk intake completed: {result.summary}")
        return result

    async def execute_file(self, actor: Actor, content: bytes) -> BulkResult:
        """Parse an intake spreadsheet and register its rows.

        Raises:
            ValidationError: If the file cannot be read at all
        """
        require(actor, Operation.BULK_INTAKE)
        parsed = self.parser.parse_devices(content)
        if parsed.errors:
            logger.warning(f"Intake sheet has {len(parsed.errors)} invalid rows")

        result = await self.execute(actor, parsed.rows)
        result.failed = _row_failures(parsed.errors) + result.failed
        result.failed.sort(key=lambda f: f.row_number or 0)
        return result


class BulkAssignUseCase:
    """Assign many devices to schools by serial number and school code."""

    def __init__(
        self,
        engine: AssignmentEngine,
        uow_factory: Callable[[], IUnitOfWork],
        parser: ISheetParser,
    ):
        self.engine = engine
        self._uow_factory = uow_factory
        self.parser = parser

    async def execute(self, actor: Actor, rows: list[AssignmentRow]) -> BulkResult:
        """Allocate each row's device to its school.

        Returns:
            BulkResult with one AssignmentResult per successful row
        """
        require(actor, Operation.BULK_ASSIGN)
        result = BulkResult()

        for row in rows:
            try:
                async with self._uow_factory() as uow:
                    device = await uow.devices.get_by_serial(row.serial_number)
                    if device is None:
                        raise NotFoundError("Device", row.serial_number)
                    school = await uow.schools.get_by_code(row.school_code)
                    if school is None:
                        raise NotFoundError("School", row.school_code)

                allocation = await self.engine.allocate_to_school(school.id, [device.id], actor)
            except RTBError as e:
                result.failed.append(_failure(row, e))
                continue
            result.successful.append(allocation)

        logger.info(f"Bulk assignment completed: {result.summary}")
        return result

    async def execute_file(self, actor: Actor, content: bytes) -> BulkResult:
        """Parse an assignment spreadsheet (serial, school code) and apply it."""
        require(actor, Operation.BULK_ASSIGN)
        parsed = self.parser.parse_assignments(content)
        if parsed.errors:
            logger.warning(f"Assignment sheet has {len(parsed.errors)} invalid rows")

        result = await self.execute(actor, parsed.rows)
        result.failed = _row_failures(parsed.errors) + result.failed
        result.failed.sort(key=lambda f: f.row_number or 0)
        return result
