"""FastAPI router for inventory device endpoints."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from ..domain.entities import Actor, AssignmentRow, BulkResult, DeviceRow
from ..use_cases import AssignmentEngine, BulkAssignUseCase, BulkIntakeUseCase, InventoryUseCase
from .dependencies import (
    get_actor,
    get_bulk_assign,
    get_bulk_intake,
    get_engine,
    get_inventory,
    get_settings,
    verify_api_key,
)
from .schemas import (
    AssignmentResultDTO,
    BulkAssignRequest,
    BulkAssignResponse,
    BulkDeviceRequest,
    BulkDeviceResponse,
    BulkFailureDTO,
    DeviceCreateRequest,
    DeviceDTO,
    DeviceListResponse,
    DeviceStatusRequest,
    DeviceUpdateRequest,
    InventoryStatsDTO,
)

logger = logging.getLogger(__name__)

SPREADSHEET_EXTENSIONS = (".xlsx", ".xls", ".csv")

router = APIRouter(prefix="/api/devices", tags=["Inventory"])


async def _read_spreadsheet(file: UploadFile) -> bytes:
    """Read an uploaded spreadsheet, enforcing type and size limits."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename is required")

    if not file.filename.lower().endswith(SPREADSHEET_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail="File must be an Excel (.xlsx, .xls) or CSV (.csv) file",
        )

    settings = get_settings()
    too_large = f"File too large. Maximum size is {settings.max_upload_size_mb} MB"

    # Check content-length header if available (early rejection)
    if file.size and file.size > settings.max_upload_size_bytes:
        raise HTTPException(status_code=413, detail=too_large)

    content = await file.read()
    if len(content) == 0:
        raise HTTPException(status_code=400, detail="File is empty")
    if len(content) > settings.max_upload_size_bytes:
        raise HTTPException(status_code=413, detail=too_large)
    return content


def _intake_response(result: BulkResult) -> BulkDeviceResponse:
    return BulkDeviceResponse(
        message=f"Bulk create completed: {result.summary}",
        successful=[DeviceDTO.from_entity(d) for d in result.successful],
        failed=[BulkFailureDTO.from_entity(f) for f in result.failed],
    )


def _assign_response(result: BulkResult) -> BulkAssignResponse:
    return BulkAssignResponse(
        message=f"Bulk assignment completed: {result.summary}",
        successful=[AssignmentResultDTO.from_entity(r) for r in result.successful],
        failed=[BulkFailureDTO.from_entity(f) for f in result.failed],
    )


@router.post("", response_model=DeviceDTO, status_code=201)
async def create_device(
    request: DeviceCreateRequest,
    actor: Actor = Depends(get_actor),
    inventory: InventoryUseCase = Depends(get_inventory),
    _auth: bool = Depends(verify_api_key),
):
    """Register a device. New devices always start Available."""
    device = await inventory.register_device(
        actor,
        serial_number=request.serial_number,
        category=request.category,
        brand=request.brand,
        model=request.model,
        condition=request.condition,
        specifications=request.specifications,
    )
    return DeviceDTO.from_entity(device)


@router.get("", response_model=DeviceListResponse)
async def list_devices(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    school_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, description="Serial, brand, model or asset tag"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    inventory: InventoryUseCase = Depends(get_inventory),
    _auth: bool = Depends(verify_api_key),
):
    """List devices. School accounts only see devices at their school."""
    devices = await inventory.list_devices(
        actor,
        status=status,
        category=category,
        school_id=school_id,
        search=search,
        limit=limit,
        offset=offset,
    )
    return DeviceListResponse(
        devices=[DeviceDTO.from_entity(d) for d in devices],
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=InventoryStatsDTO)
async def device_stats(
    school_id: Optional[UUID] = Query(None),
    actor: Actor = Depends(get_actor),
    inventory: InventoryUseCase = Depends(get_inventory),
    _auth: bool = Depends(verify_api_key),
):
    stats = await inventory.get_stats(actor, school_id=school_id)
    return InventoryStatsDTO.from_entity(stats)


@router.post("/bulk", response_model=BulkDeviceResponse)
async def bulk_create_devices(
    request: BulkDeviceRequest,
    actor: Actor = Depends(get_actor),
    use_case: BulkIntakeUseCase = Depends(get_bulk_intake),
    _auth: bool = Depends(verify_api_key),
):
    """Register many devices; failures are reported per row."""
    rows = [
        DeviceRow(
            row_number=idx,
            serial_number=d.serial_number,
            category=d.category,
            brand=d.brand,
            model=d.model,
            condition=d.condition,
            specifications=d.specifications,
        )
        for idx, d in enumerate(request.devices, start=1)
    ]
    return _intake_response(await use_case.execute(actor, rows))


@router.post("/bulk/upload", response_model=BulkDeviceResponse)
async def bulk_create_devices_upload(
    file: UploadFile = File(...),
    actor: Actor = Depends(get_actor),
    use_case: BulkIntakeUseCase = Depends(get_bulk_intake),
    _auth: bool = Depends(verify_api_key),
):
    """Register devices from an Excel or CSV intake sheet.

    Columns: Serial Number, Category, Brand, Model, Condition (optional),
    Specifications (optional).
    """
    content = await _read_spreadsheet(file)
    logger.info(f"Processing intake sheet: {file.filename}")
    return _intake_response(await use_case.execute_file(actor, content))


@router.post("/bulk-assign", response_model=BulkAssignResponse)
async def bulk_assign_devices(
    request: BulkAssignRequest,
    actor: Actor = Depends(get_actor),
    use_case: BulkAssignUseCase = Depends(get_bulk_assign),
    _auth: bool = Depends(verify_api_key),
):
    """Assign devices (by serial number) directly to one school."""
    rows = [
        AssignmentRow(row_number=idx, serial_number=serial, school_code=request.school_code)
        for idx, serial in enumerate(request.serial_numbers, start=1)
    ]
    return _assign_response(await use_case.execute(actor, rows))


@router.post("/bulk-assign/upload", response_model=BulkAssignResponse)
async def bulk_assign_devices_upload(
    file: UploadFile = File(...),
    actor: Actor = Depends(get_actor),
    use_case: BulkAssignUseCase = Depends(get_bulk_assign),
    _auth: bool = Depends(verify_api_key),
):
    """Assign devices to schools from a sheet with Serial Number and School Code columns."""
    content = await _read_spreadsheet(file)
    logger.info(f"Processing assignment sheet: {file.filename}")
    return _assign_response(await use_case.execute_file(actor, content))


@router.get("/{device_id}", response_model=DeviceDTO)
async def get_device(
    device_id: UUID,
    actor: Actor = Depends(get_actor),
    inventory: InventoryUseCase = Depends(get_inventory),
    _auth: bool = Depends(verify_api_key),
):
    return DeviceDTO.from_entity(await inventory.get_device(actor, device_id))


@router.patch("/{device_id}", response_model=DeviceDTO)
async def update_device(
    device_id: UUID,
    request: DeviceUpdateRequest,
    actor: Actor = Depends(get_actor),
    inventory: InventoryUseCase = Depends(get_inventory),
    _auth: bool = Depends(verify_api_key),
):
    """Edit brand, model, condition or specifications."""
    device = await inventory.update_device(
        actor, device_id, **request.model_dump(exclude_unset=True)
    )
    return DeviceDTO.from_entity(device)


@router.put("/{device_id}/status", response_model=DeviceDTO)
async def set_device_status(
    device_id: UUID,
    request: DeviceStatusRequest,
    actor: Actor = Depends(get_actor),
    inventory: InventoryUseCase = Depends(get_inventory),
    _auth: bool = Depends(verify_api_key),
):
    """Maintenance status change (Maintenance, Written Off, back to Available)."""
    device = await inventory.set_status(actor, device_id, request.status)
    return DeviceDTO.from_entity(device)


@router.post("/{device_id}/unassign", response_model=DeviceDTO)
async def unassign_device(
    device_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: AssignmentEngine = Depends(get_engine),
    _auth: bool = Depends(verify_api_key),
):
    """Return an assigned device to stock. Its tag number is never reused."""
    return DeviceDTO.from_entity(await engine.unassign(device_id, actor))


@router.delete("/{device_id}", status_code=204)
async def delete_device(
    device_id: UUID,
    actor: Actor = Depends(get_actor),
    inventory: InventoryUseCase = Depends(get_inventory),
    _auth: bool = Depends(verify_api_key),
):
    await inventory.delete_device(actor, device_id)
