"""
vaultsync/api/webhooks.py

Purpose: Inbound webhooks

- CRM tag changes -> dynamic document requirement reconciliation
- Contract completion (e-signature platform via automation relay)

Both endpoints authenticate with a shared secret carried in the payload.
"""

import json
from urllib.parse import parse_qs
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from typing import Any, Dict

from vaultsync.core.config import settings
from vaultsync.core.errors import clean_validation_errors
from vaultsync.core.exceptions import AuthenticationError, BadRequestError, ResourceNotFoundError
from vaultsync.core.logging import get_logger, LogContext
from vaultsync.core.security import verify_webhook_secret
from vaultsync.schemas.webhooks import CRMTagWebhook, ContractWebhook
from vaultsync.services.client_service import ClientService, get_client_service
from vaultsync.services.document_service import DocumentService, get_document_service
from vaultsync.services.reconciliation_service import reconcile_requested_tags
from vaultsync.utils.date_utils import parse_completion_date

logger = get_logger(__name__)
router = APIRouter()


def parse_webhook_body(raw: bytes) -> Dict[str, Any]:
    """
    Decodes a webhook body sent either as JSON or as form-urlencoded text.

    Repeated form keys keep every value (tags=a&tags=b -> ["a", "b"]).

    Raises:
        BadRequestError: If the body is neither a JSON object nor form data
    """
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        raise BadRequestError("Empty webhook payload")

    try:
        payload = json.loads(text)
    except ValueError:
        form = parse_qs(text, keep_blank_values=True)
        if not form:
            raise BadRequestError("Invalid webhook payload")
        return {key: values[0] if len(values) == 1 else values for key, values in form.items()}

    if not isinstance(payload, dict):
        raise BadRequestError("Invalid webhook payload")
    return payload


# ============================================================
# CRM TAGS
# ============================================================

@router.post("/webhooks/crm-tags")
async def crm_tags_webhook(
    request: Request,
    clients: ClientService = Depends(get_client_service),
    documents: DocumentService = Depends(get_document_service),
):
    """
    Receives the full current tag list of a CRM contact.

    Example payload:
    {
        "contactId": "abc123",
        "tags": ["vault-user", "requested_balance_sheet"],
        "secret": "..."
    }
    """
    payload = parse_webhook_body(await request.body())
    logger.info("CRM tag webhook received", extra={"payload": payload})
    try:
        event = CRMTagWebhook.from_payload(payload)
    except ValidationError as e:
        raise BadRequestError("Invalid webhook payload", details=clean_validation_errors(e.errors())) from e

    if not verify_webhook_secret(event.secret, settings.CRM_WEBHOOK_SECRET):
        logger.error(f"CRM webhook secret mismatch (secret {'present' if event.secret else 'missing'})")
        raise AuthenticationError("Unauthorized")

    if not event.contact_id or not event.tags:
        raise BadRequestError("Invalid payload: contactId and tags required")

    with LogContext(contact_id=event.contact_id):
        record = await clients.get_client_by_contact_id(event.contact_id)
        if record is None:
            logger.warning("No user found for CRM contact")
            raise ResourceNotFoundError(f"User not found for ID: {event.contact_id}")

        result = await reconcile_requested_tags(documents, record["user_id"], event.tags)

    return {"success": True, **result.to_dict()}


@router.get("/webhooks/crm-tags")
async def crm_tags_webhook_info():
    return {
        "status": "ok",
        "endpoint": f"{settings.API_PREFIX}/webhooks/crm-tags",
        "description": "Webhook receiver for CRM tag changes",
        "expectedPayload": {
            "contactId": "string (CRM contact ID)",
            "tags": "array of strings or comma-separated string",
            "secret": "string (webhook secret, required when configured)",
        },
    }


# ============================================================
# CONTRACT COMPLETION
# ============================================================

@router.post("/webhooks/contract")
async def contract_webhook(
    request: Request,
    clients: ClientService = Depends(get_client_service),
):
    """
    Marks a client's contract as completed. Repeated deliveries are
    acknowledged without changing the stored completion time.
    """
    payload = parse_webhook_body(await request.body())
    logger.info("Contract webhook received", extra={"payload": payload})
    try:
        event = ContractWebhook.model_validate(payload)
    except ValidationError as e:
        raise BadRequestError("Invalid webhook payload", details=clean_validation_errors(e.errors())) from e

    if not verify_webhook_secret(event.secret, settings.CONTRACT_WEBHOOK_SECRET, allow_unconfigured=False):
        logger.error("Contract webhook secret mismatch")
        raise AuthenticationError("Unauthorized - Invalid secret token")

    email = event.resolved_email
    if not email:
        raise BadRequestError("Bad Request - client_email is required")

    completed_at = parse_completion_date(event.completed_at)
    outcome = await clients.mark_contract_completed(email, completed_at)
    client = outcome["client"]

    if outcome["already_completed"]:
        return {
            "success": True,
            "message": "Contract already marked as completed",
            "client_email": email,
            "client_name": client.get("client_name"),
            "already_completed": True,
        }

    return {
        "success": True,
        "message": "Contract marked as completed successfully",
        "data": {
            "client_email": client.get("client_email"),
            "client_name": client.get("client_name"),
            "contract_completed": client.get("contract_completed"),
            "contract_completed_at": client.get("contract_completed_at"),
            "contract_id": event.contract_id,
        },
    }


@router.get("/webhooks/contract")
async def contract_webhook_info():
    return {
        "status": "active",
        "endpoint": f"{settings.API_PREFIX}/webhooks/contract",
        "method": "POST",
        "description": "Webhook receiver for signed contract notifications",
        "required_fields": {
            "secret": "string - shared webhook secret",
            "client_email": "string - email of the client who completed the contract",
        },
        "optional_fields": {
            "contract_id": "string - document id in the signing platform",
            "completed_at": "string - completion date (multiple formats)",
        },
        "supported_date_formats": [
            "MM/DD/YY (e.g., 12/17/25)",
            "YYYY-MM-DD (e.g., 2025-12-17)",
            "ISO 8601 (e.g., 2025-12-17T10:30:00Z)",
        ],
    }
