"""
Handbooks feature: API routes for uploading and tracking handbooks.
"""

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile
from supabase import Client

from app.core.dependencies import get_academic_resolver, get_current_user_id, get_db
from app.core.exceptions import AppBaseError, ValidationError, app_error_to_http
from app.features.academic.resolver import AcademicContextResolver
from app.features.handbooks.schemas import HandbookStatus, HandbookUploadResponse
from app.features.handbooks.service import HandbookGateway

logger = logging.getLogger(__name__)

router = APIRouter()


def get_gateway(
    db: Client = Depends(get_db),
    resolver: AcademicContextResolver = Depends(get_academic_resolver),
) -> HandbookGateway:
    return HandbookGateway(db, resolver=resolver)


@router.post("/upload")
async def upload_handbook(
    file: UploadFile = File(...),
    academic_id: str = Form(...),
    user_id: str = Depends(get_current_user_id),
    gateway: HandbookGateway = Depends(get_gateway),
):
    """
    Upload an academic handbook (PDF, max 100MB).
    - Stores the file under `{academic_id}/{user_id}/` in the `handbooks` bucket.
    - Creates a record in status `uploaded`; extraction workers pick it up.
    """
    max_bytes = gateway.settings.HANDBOOK_MAX_BYTES
    if file.size is not None and file.size > max_bytes:
        raise app_error_to_http(ValidationError(
            "File too large",
            detail=f"Maximum handbook size is {max_bytes // (1024 * 1024)}MB.",
            status_code=413,
        ))

    file_bytes = await file.read()
    try:
        handbook_id = gateway.submit(
            user_id=user_id,
            academic_id=academic_id,
            data=file_bytes,
            filename=file.filename or "handbook.pdf",
            content_type=file.content_type,
        )
    except AppBaseError as e:
        raise app_error_to_http(e)

    response = HandbookUploadResponse(
        handbook_id=handbook_id,
        original_filename=file.filename or "handbook.pdf",
        file_size_bytes=len(file_bytes),
    )
    return {
        "status": "success",
        "message": "Upload successful. The handbook is queued for extraction.",
        "data": response.model_dump(mode="json"),
    }


@router.get("/")
async def list_handbooks(
    status: HandbookStatus | None = None,
    user_id: str = Depends(get_current_user_id),
    gateway: HandbookGateway = Depends(get_gateway),
):
    """List the user's handbooks, optionally filtered by processing status."""
    try:
        records = gateway.list_handbooks(user_id, status)
    except AppBaseError as e:
        raise app_error_to_http(e)
    return {"data": [r.model_dump(mode="json") for r in records]}


@router.get("/{handbook_id}")
async def get_handbook(
    handbook_id: str,
    user_id: str = Depends(get_current_user_id),
    gateway: HandbookGateway = Depends(get_gateway),
):
    """One handbook with its status and extracted categories."""
    try:
        record = gateway.get_handbook(user_id, handbook_id)
    except AppBaseError as e:
        raise app_error_to_http(e)
    return {"data": record.model_dump(mode="json")}


@router.delete("/{handbook_id}")
async def delete_handbook(
    handbook_id: str,
    user_id: str = Depends(get_current_user_id),
    gateway: HandbookGateway = Depends(get_gateway),
):
    """Delete a handbook and its file. Cancels any extraction in progress."""
    try:
        gateway.delete_handbook(user_id, handbook_id)
    except AppBaseError as e:
        raise app_error_to_http(e)
    return {"status": "success", "message": "Handbook deleted."}


@router.post("/{handbook_id}/resubmit")
async def resubmit_handbook(
    handbook_id: str,
    user_id: str = Depends(get_current_user_id),
    gateway: HandbookGateway = Depends(get_gateway),
):
    """Queue a failed handbook again as a new submission."""
    try:
        new_id = gateway.resubmit(user_id, handbook_id)
    except AppBaseError as e:
        raise app_error_to_http(e)
    return {
        "status": "success",
        "message": "Handbook resubmitted for extraction.",
        "data": {"handbook_id": new_id, "resubmitted_from": handbook_id},
    }
