"""
vaultsync/api/clients.py

Purpose: Advisor-facing client endpoints

- Client signup (CRM contact, login, business profile, tags)
- Advisor's client list
- Per-client requirement overrides
"""

from fastapi import APIRouter, Depends
from typing import Any, Dict

from vaultsync.core.logging import get_logger
from vaultsync.core.security import require_roles
from vaultsync.schemas.clients import ClientSignupRequest, ClientSignupResponse, RuleOverrideRequest
from vaultsync.services.client_service import ClientService, get_client_service
from vaultsync.utils.constants import ROLE_ADVISOR

logger = get_logger(__name__)
router = APIRouter()


@router.post("/clients/signup", response_model=ClientSignupResponse)
async def client_signup(
    body: ClientSignupRequest,
    advisor: Dict[str, Any] = Depends(require_roles(ROLE_ADVISOR)),
    clients: ClientService = Depends(get_client_service),
):
    """
    Onboards a new client. The signing advisor is recorded unless the form
    names another advisor explicitly.
    """
    if not body.advisor_id:
        body.advisor_id = advisor["user_id"]

    logger.info(f"Client signup for {body.company_legal_name}", extra={"user_id": advisor["user_id"]})
    return await clients.signup_client(body)


@router.get("/advisor/clients")
async def list_clients(
    advisor: Dict[str, Any] = Depends(require_roles(ROLE_ADVISOR)),
    clients: ClientService = Depends(get_client_service),
):
    return {"clients": await clients.list_advisor_clients(advisor["user_id"])}


@router.post("/advisor/clients/{user_id}/rule-override")
async def set_rule_override(
    user_id: str,
    body: RuleOverrideRequest,
    advisor: Dict[str, Any] = Depends(require_roles(ROLE_ADVISOR)),
    clients: ClientService = Depends(get_client_service),
):
    """
    Makes conditional core documents (debt schedule) required for one
    client, or optional again.
    """
    payload = await clients.set_rule_override(user_id, body.model_dump(), actor=advisor["user_id"])
    return {"success": True, "user_id": user_id, "overrides": payload}
