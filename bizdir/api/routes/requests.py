from fastapi import APIRouter, HTTPException, Depends
from pydantic import ValidationError as SchemaValidationError

from bizdir.api.core.container import get_request_service
from bizdir.api.core.errors import http_error
from bizdir.api.schemas import (
    AddSubmission,
    ApproveBody,
    RejectBody,
    RemoveSubmission,
    RequestFilters,
    UpdateSubmission,
    decode_product_images,
)
from bizdir.core.errors import DirectoryError
from bizdir.domain.requests.entities import ApprovalOutcome, ChangeRequest
from bizdir.domain.requests.service import ChangeRequestService

router = APIRouter(prefix="/requests", tags=["Requests"])


@router.get(
    "",
    summary="List pending change requests",
    response_model=list[ChangeRequest],
)
async def list_requests(
    q: RequestFilters = Depends(),
    service: ChangeRequestService = Depends(get_request_service),
):
    """Pending requests, oldest first, optionally filtered by kind."""
    try:
        return service.list_pending(q.kind)
    except DirectoryError as exc:
        raise http_error(exc)


@router.get("/{request_id}", response_model=ChangeRequest)
async def get_request(
    request_id: str,
    service: ChangeRequestService = Depends(get_request_service),
):
    """Get a request, pending or already decided."""
    try:
        return service.get_request(request_id)
    except DirectoryError as exc:
        raise http_error(exc)


@router.post("/add", status_code=201, response_model=ChangeRequest)
async def submit_add(
    body: AddSubmission,
    service: ChangeRequestService = Depends(get_request_service),
):
    try:
        return await service.submit_add(
            body.payload,
            submitted_by=body.submitted_by,
            images=[image.to_file() for image in body.images],
        )
    except DirectoryError as exc:
        raise http_error(exc)


@router.post("/update", status_code=201, response_model=ChangeRequest)
async def submit_update(
    body: UpdateSubmission,
    service: ChangeRequestService = Depends(get_request_service),
):
    """Queue a single-field change; inline product images are staged with it."""
    try:
        value = decode_product_images(body.value)
    except SchemaValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    try:
        return await service.submit_update(
            body.identifier,
            body.field_name,
            value,
            submitted_by=body.submitted_by,
            images=[image.to_file() for image in body.images],
        )
    except DirectoryError as exc:
        raise http_error(exc)


@router.post("/remove", status_code=201, response_model=ChangeRequest)
async def submit_remove(
    body: RemoveSubmission,
    service: ChangeRequestService = Depends(get_request_service),
):
    try:
        return await service.submit_remove(
            body.identifier,
            reason=body.reason,
            submitted_by=body.submitted_by,
        )
    except DirectoryError as exc:
        raise http_error(exc)


@router.post("/{request_id}/approve", response_model=ApprovalOutcome)
async def approve_request(
    request_id: str,
    body: ApproveBody,
    service: ChangeRequestService = Depends(get_request_service),
):
    """Approve a request with the admin's authoritative value.

    Answers 409 with the proposed entries when the value introduces a new
    category, location or district; resend with ``confirm_new_taxonomy``.
    """
    try:
        value = decode_product_images(body.value)
    except SchemaValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    try:
        return await service.approve(
            request_id,
            actor=body.actor,
            value=value,
            overrides=body.overrides,
            images=[image.to_file() for image in body.images],
            confirm_new_taxonomy=body.confirm_new_taxonomy,
        )
    except DirectoryError as exc:
        raise http_error(exc)


@router.post("/{request_id}/reject", response_model=ApprovalOutcome)
async def reject_request(
    request_id: str,
    body: RejectBody,
    service: ChangeRequestService = Depends(get_request_service),
):
    try:
        return await service.reject(request_id, actor=body.actor, reason=body.reason)
    except DirectoryError as exc:
        raise http_error(exc)
