"""FastAPI router for device application endpoints."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response

from ...core.exceptions import RTBError
from ..domain.entities import Actor, ApplicationStatus, RequestedQuantities
from ..domain.ports import IDocumentStore
from ..use_cases import WorkflowController
from .dependencies import (
    get_actor,
    get_controller,
    get_document_store,
    get_settings,
    verify_api_key,
)
from .schemas import (
    ApplicationDTO,
    ApplicationListResponse,
    AssignmentResultDTO,
    AssignRequest,
    CapabilitiesResponse,
    ConfirmRequest,
    EligibilityRequest,
    ReviewRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/applications", tags=["Device Applications"])
me_router = APIRouter(prefix="/api/me", tags=["Identity"])


@router.post("", response_model=ApplicationDTO, status_code=201)
async def submit_application(
    letter: UploadFile = File(..., description="Signed application letter (PDF)"),
    purpose: str = Form(...),
    justification: Optional[str] = Form(None),
    laptops: int = Form(0),
    desktops: int = Form(0),
    tablets: int = Form(0),
    projectors: int = Form(0),
    others: int = Form(0),
    actor: Actor = Depends(get_actor),
    controller: WorkflowController = Depends(get_controller),
    documents: IDocumentStore = Depends(get_document_store),
    _auth: bool = Depends(verify_api_key),
):
    """Submit a device application with its letter.

    Max letter size: MAX_UPLOAD_SIZE_MB (10 MB by default)
    """
    requested = RequestedQuantities(
        laptops=laptops,
        desktops=desktops,
        tablets=tablets,
        projectors=projectors,
        others=others,
    )
    # Fail fast before anything is written to the document store
    controller.validate_submission(actor, requested, purpose)

    max_bytes = get_settings().max_upload_size_bytes
    if letter.size and letter.size > max_bytes:
        raise HTTPException(status_code=413, detail="Letter file too large")
    content = await letter.read()
    if len(content) > max_bytes:
        raise HTTPException(status_code=413, detail="Letter file too large")

    letter_ref = await documents.store(
        letter.filename or "letter.pdf",
        content,
        letter.content_type or "",
    )
    try:
        application = await controller.submit(
            actor,
            requested=requested,
            purpose=purpose,
            letter_document_ref=letter_ref,
            justification=justification,
        )
    except RTBError:
        await documents.delete(letter_ref)
        raise
    return ApplicationDTO.from_entity(application)


@router.get("", response_model=ApplicationListResponse)
async def list_applications(
    status: Optional[str] = Query(None, description="Filter by status"),
    school_id: Optional[UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    controller: WorkflowController = Depends(get_controller),
    _auth: bool = Depends(verify_api_key),
):
    """List applications. School accounts only see their own school's."""
    applications = await controller.list_applications(
        actor,
        status=status or None,
        school_id=school_id,
        limit=limit,
        offset=offset,
    )
    return ApplicationListResponse(
        applications=[ApplicationDTO.from_entity(a) for a in applications],
        limit=limit,
        offset=offset,
    )


@router.get("/{application_id}", response_model=ApplicationDTO)
async def get_application(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    controller: WorkflowController = Depends(get_controller),
    _auth: bool = Depends(verify_api_key),
):
    application = await controller.get_application(actor, application_id)
    return ApplicationDTO.from_entity(application)


@router.get("/{application_id}/letter")
async def download_letter(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    controller: WorkflowController = Depends(get_controller),
    documents: IDocumentStore = Depends(get_document_store),
    _auth: bool = Depends(verify_api_key),
):
    """Download the application letter PDF."""
    application = await controller.get_application(actor, application_id)
    content = await documents.retrieve(application.letter_document_ref)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'inline; filename="application-{application.id}.pdf"'
        },
    )


@router.put("/{application_id}/review", response_model=ApplicationDTO)
async def review_application(
    application_id: UUID,
    request: ReviewRequest,
    actor: Actor = Depends(get_actor),
    controller: WorkflowController = Depends(get_controller),
    _auth: bool = Depends(verify_api_key),
):
    """Record a review decision (Under Review, Approved or Rejected)."""
    application = await controller.review(
        actor,
        application_id,
        ApplicationStatus(request.status),
        review_notes=request.review_notes,
        eligibility_notes=request.eligibility_notes,
        is_eligible=request.is_eligible,
    )
    return ApplicationDTO.from_entity(application)


@router.put("/{application_id}/eligibility", response_model=ApplicationDTO)
async def update_eligibility(
    application_id: UUID,
    request: EligibilityRequest,
    actor: Actor = Depends(get_actor),
    controller: WorkflowController = Depends(get_controller),
    _auth: bool = Depends(verify_api_key),
):
    application = await controller.set_eligibility(
        actor, application_id, request.is_eligible, notes=request.notes
    )
    return ApplicationDTO.from_entity(application)


@router.post("/{application_id}/assign", response_model=AssignmentResultDTO)
async def assign_devices(
    application_id: UUID,
    request: AssignRequest,
    actor: Actor = Depends(get_actor),
    controller: WorkflowController = Depends(get_controller),
    _auth: bool = Depends(verify_api_key),
):
    """Assign specific inventory devices to an approved application.

    All-or-nothing: returns 409 if any device was taken concurrently.
    """
    result = await controller.assign(actor, application_id, request.device_ids)
    return AssignmentResultDTO.from_entity(result)


@router.post("/{application_id}/confirm", response_model=ApplicationDTO)
async def confirm_receipt(
    application_id: UUID,
    request: Optional[ConfirmRequest] = None,
    actor: Actor = Depends(get_actor),
    controller: WorkflowController = Depends(get_controller),
    _auth: bool = Depends(verify_api_key),
):
    application = await controller.confirm_receipt(
        actor,
        application_id,
        confirmation_notes=request.confirmation_notes if request else None,
    )
    return ApplicationDTO.from_entity(application)


@router.put("/{application_id}/cancel", response_model=ApplicationDTO)
async def cancel_application(
    application_id: UUID,
    actor: Actor = Depends(get_actor),
    controller: WorkflowController = Depends(get_controller),
    _auth: bool = Depends(verify_api_key),
):
    application = await controller.cancel(actor, application_id)
    return ApplicationDTO.from_entity(application)


@me_router.get("/capabilities", response_model=CapabilitiesResponse)
async def my_capabilities(
    actor: Actor = Depends(get_actor),
    controller: WorkflowController = Depends(get_controller),
    _auth: bool = Depends(verify_api_key),
):
    """Operations the caller's role may invoke."""
    return CapabilitiesResponse(
        user_id=actor.user_id,
        role=actor.role.value,
        school_id=actor.school_id,
        operations=[op.value for op in controller.capabilities(actor)],
    )
