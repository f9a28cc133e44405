"""
vaultsync/api/vault.py

Purpose: Document vault endpoints

- Requirement list (core catalog + the client's active dynamic documents)
- Missing-document summary
- File uploads
- Per-document and final submission markers pushed to the CRM
"""

import json
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
from typing import Any, Dict, List, Optional

from vaultsync.core.config import settings
from vaultsync.core.exceptions import BadRequestError, ResourceNotFoundError
from vaultsync.core.logging import get_logger, LogContext
from vaultsync.core.security import get_current_user
from vaultsync.schemas.response import SuccessResponse
from vaultsync.schemas.vault import (
    MarkSubmittedRequest,
    MarkSubmittedResponse,
    MissingDocument,
    RequirementsResponse,
    UploadResponse,
)
from vaultsync.services.client_service import ClientService, get_client_service
from vaultsync.services.crm_service import CRMService, best_effort, get_crm_service
from vaultsync.services.document_service import DocumentService, get_document_service, to_requirement
from vaultsync.services.upload_service import UploadService, get_upload_service, notify_upload_webhook
from vaultsync.utils.constants import EVENT_UPLOAD
from vaultsync.utils.tag_utils import normalize_tags, submitted_tag_for, upload_tag_for

logger = get_logger(__name__)
router = APIRouter()


@router.get("/vault/requirements", response_model=RequirementsResponse)
async def get_requirements(
    user: Dict[str, Any] = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    requirements = await documents.list_requirements(user["user_id"])
    core = [to_requirement(doc) for doc in requirements["core"]]
    dynamic = [to_requirement(doc) for doc in requirements["dynamic"]]
    return {
        "requirements": core + dynamic,
        "coreCount": len(core),
        "dynamicCount": len(dynamic),
    }


@router.get("/vault/missing", response_model=List[MissingDocument])
async def get_missing(
    user: Dict[str, Any] = Depends(get_current_user),
    uploads: UploadService = Depends(get_upload_service),
):
    """needed > 0 means more files are required for that document."""
    return await uploads.missing_documents(user["user_id"])


@router.get("/vault/uploads")
async def list_uploads(
    user: Dict[str, Any] = Depends(get_current_user),
    uploads: UploadService = Depends(get_upload_service),
):
    """The user's uploaded files, newest first."""
    return {"uploads": await uploads.list_uploads(user["user_id"])}


def _parse_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        return normalize_tags(json.loads(raw))
    except (ValueError, TypeError):
        return normalize_tags(raw)


@router.post("/vault/uploads", response_model=UploadResponse)
async def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    doc_code: str = Form(..., alias="docCode"),
    tags: Optional[str] = Form(None),
    user: Dict[str, Any] = Depends(get_current_user),
    uploads: UploadService = Depends(get_upload_service),
    clients: ClientService = Depends(get_client_service),
    crm: CRMService = Depends(get_crm_service),
):
    """
    Stores one vault file.

    The upload webhook, CRM tag and CRM file copy run after the response
    and never fail the upload.
    """
    user_id = user["user_id"]
    if not file.filename:
        raise BadRequestError("missing file")

    # One byte past the limit is enough for save_upload to reject the file
    content = await file.read(settings.MAX_UPLOAD_BYTES + 1)

    profile = await clients.get_profile_by_user_id(user_id)
    profile_id = profile["profile_id"] if profile else user_id

    with LogContext(user_id=user_id, doc_code=doc_code):
        upload = await uploads.save_upload(
            user_id=user_id,
            profile_id=profile_id,
            doc_code=doc_code,
            filename=file.filename,
            content=content,
            content_type=file.content_type,
            tags=_parse_tags(tags),
        )

        await clients.record_event(
            EVENT_UPLOAD,
            {"doc_code": doc_code, "storage_path": upload["storage_path"]},
            profile_id=profile_id,
            user_id=user_id,
            actor=user_id,
        )

        background_tasks.add_task(
            best_effort, "upload webhook", notify_upload_webhook, profile_id, user_id, doc_code
        )

        record = await clients.get_client_by_user_id(user_id)
        contact_id = (record or {}).get("crm_contact_id")
        if contact_id:
            background_tasks.add_task(
                best_effort, "upload tag", crm.add_tags, contact_id, [upload_tag_for(doc_code)]
            )
            background_tasks.add_task(
                best_effort,
                "CRM file copy",
                crm.upload_file,
                contact_id,
                upload["normalized_name"],
                content,
                upload["content_type"],
            )

    return UploadResponse(documentId=upload["document_upload_id"], storage_path=upload["storage_path"])


@router.post("/vault/mark-submitted", response_model=MarkSubmittedResponse, response_model_exclude_none=True)
async def mark_submitted(
    body: MarkSubmittedRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    clients: ClientService = Depends(get_client_service),
    documents: DocumentService = Depends(get_document_service),
    crm: CRMService = Depends(get_crm_service),
):
    """
    Adds the submitted_* tag for a dynamic document so the CRM can clear
    its requested_* counterpart.
    """
    record = await clients.get_client_by_user_id(user["user_id"])
    if record is None:
        raise ResourceNotFoundError("Client data not found")

    contact_id = record.get("crm_contact_id")
    if not contact_id:
        logger.warning("No CRM contact id for user", extra={"user_id": user["user_id"]})
        return MarkSubmittedResponse(warning="No CRM contact ID found")

    document = await documents.get_document_by_code(body.doc_code)
    if document is None:
        raise ResourceNotFoundError("Document not found")

    if document.get("is_core"):
        return MarkSubmittedResponse(message="Core document - no tag added")

    if not document.get("crm_tag"):
        logger.warning(f"Document has no CRM tag: {body.doc_code}")
        return MarkSubmittedResponse(warning="Document has no CRM tag")

    submitted_tag = submitted_tag_for(document["crm_tag"])
    await crm.add_tags(contact_id, [submitted_tag])
    return MarkSubmittedResponse(tagAdded=submitted_tag)


@router.post("/vault/submit", response_model=SuccessResponse, response_model_exclude_none=True)
async def submit_vault(
    user: Dict[str, Any] = Depends(get_current_user),
    clients: ClientService = Depends(get_client_service),
    uploads: UploadService = Depends(get_upload_service),
):
    """
    Final vault submission. Refused with 400 `missing_docs` while any
    required document still needs files.
    """
    outstanding = await uploads.outstanding_documents(user["user_id"])
    if outstanding:
        logger.info(f"Vault submission refused: {len(outstanding)} documents outstanding")
        raise BadRequestError("missing_docs", details=outstanding, code="MISSING_DOCS")

    result = await clients.mark_vault_submitted(user["user_id"])
    if not result["tagged"]:
        return SuccessResponse(warning="No CRM contact ID found")
    return SuccessResponse()
