"""
vaultsync/api/onboarding.py

Purpose: Client onboarding gate

- Status of contract / data vault / final submission
- Step 1 submission (EIN, SSN, industry, addresses)
- Contract bypass for local development
"""

from fastapi import APIRouter, Depends
from typing import Any, Dict

from vaultsync.core.config import settings
from vaultsync.core.exceptions import PermissionDeniedError
from vaultsync.core.logging import get_logger
from vaultsync.core.security import get_current_user
from vaultsync.schemas.clients import DataVaultSubmission, OnboardingStatus
from vaultsync.schemas.response import SuccessResponse
from vaultsync.services.client_service import ClientService, get_client_service

logger = get_logger(__name__)
router = APIRouter()


@router.get("/onboarding/status", response_model=OnboardingStatus)
async def onboarding_status(
    user: Dict[str, Any] = Depends(get_current_user),
    clients: ClientService = Depends(get_client_service),
):
    return await clients.get_onboarding_status(user)


@router.post("/onboarding/submit-step-1", response_model=SuccessResponse)
async def submit_step_one(
    body: DataVaultSubmission,
    user: Dict[str, Any] = Depends(get_current_user),
    clients: ClientService = Depends(get_client_service),
):
    await clients.submit_step_one(user["user_id"], body)
    return SuccessResponse()


@router.post("/onboarding/bypass-contract", response_model=SuccessResponse)
async def bypass_contract(
    user: Dict[str, Any] = Depends(get_current_user),
    clients: ClientService = Depends(get_client_service),
):
    """Marks the contract signed without the e-signature round trip (development only)."""
    if not settings.is_development:
        raise PermissionDeniedError("Forbidden")

    await clients.bypass_contract(user["user_id"])
    logger.warning("Contract bypassed", extra={"user_id": user["user_id"]})
    return SuccessResponse()
