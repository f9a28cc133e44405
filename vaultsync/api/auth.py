"""
vaultsync/api/auth.py

Purpose: Session and password endpoints

- Login / logout (HttpOnly session cookie)
- Current user lookup
- Advisor self-signup
- Password change, reset request and reset confirmation
"""

from fastapi import APIRouter, Depends, Response
from typing import Any, Dict

from vaultsync.core.config import settings
from vaultsync.core.exceptions import AuthenticationError
from vaultsync.core.logging import get_logger
from vaultsync.core.security import create_session_token, dashboard_path_for_role, get_current_user, verify_password
from vaultsync.schemas.auth import (
    AdvisorSignupRequest,
    ChangePasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SessionResponse,
    SetPasswordRequest,
)
from vaultsync.schemas.response import SuccessResponse
from vaultsync.services.auth_service import AuthService, get_auth_service, public_user
from vaultsync.services.client_service import ClientService, get_client_service

logger = get_logger(__name__)
router = APIRouter()


def _start_session(response: Response, user: Dict[str, Any]) -> SessionResponse:
    token = create_session_token(user["user_id"], user.get("role"))
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        max_age=settings.SESSION_TTL_MINUTES * 60,
    )
    metadata = user.get("metadata") or {}
    return SessionResponse(
        user=public_user(user),
        redirect_to=dashboard_path_for_role(user.get("role")),
        should_change_password=bool(metadata.get("should_change_password")),
    )


@router.post("/auth/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    user = await auth.authenticate(body.email, body.password)
    logger.info("User logged in", extra={"user_id": user["user_id"], "role": user.get("role")})
    return _start_session(response, user)


@router.post("/auth/logout", response_model=SuccessResponse)
async def logout(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return SuccessResponse()


@router.get("/auth/me")
async def me(user: Dict[str, Any] = Depends(get_current_user)):
    return {
        "user": public_user(user),
        "redirect_to": dashboard_path_for_role(user.get("role")),
    }


@router.post("/auth/advisor-signup", response_model=SessionResponse, status_code=201)
async def advisor_signup(
    body: AdvisorSignupRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    clients: ClientService = Depends(get_client_service),
):
    """
    Creates an advisor account, registers it in the CRM and signs it in.
    """
    auth.validate_new_password(body.password)
    result = await clients.signup_advisor(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        tags=body.tags,
    )
    return _start_session(response, result["user"])


@router.post("/auth/change-password", response_model=SuccessResponse)
async def change_password(
    body: ChangePasswordRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Sets a new password and clears the should_change_password flag.

    The current password is only checked when supplied; clients arriving
    with the default password are prompted without it.
    """
    if body.current_password is not None and not verify_password(body.current_password, user.get("password_hash")):
        raise AuthenticationError("Current password is incorrect")

    await auth.change_password(user["user_id"], body.new_password)
    return SuccessResponse(message="Password updated successfully")


@router.post("/auth/reset-password", response_model=SuccessResponse)
async def request_password_reset(
    body: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Issues a reset link. Always succeeds so callers cannot discover which accounts exist.
    """
    token = await auth.create_reset_token(body.email)
    if token:
        # Delivery is handled by the mail integration; the link is logged in development only
        if settings.is_development:
            logger.info(f"Password reset link: {settings.APP_URL}/auth/set-password?token={token}")
        else:
            logger.info("Password reset token issued")

    return SuccessResponse(message="If an account exists for this email, a reset link has been sent")


@router.post("/auth/set-password", response_model=SuccessResponse)
async def set_password(
    body: SetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
):
    await auth.reset_password(body.token, body.new_password)
    return SuccessResponse(message="Password updated successfully")
