"""
vaultsync/core/security.py

Purpose: Authentication primitives

- bcrypt password hashing
- Signed session tokens (JWT) carried in a cookie or bearer header
- FastAPI dependencies for the current user and role checks
- Shared-secret verification for inbound webhooks
"""

import hashlib
import hmac
import secrets
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

import bcrypt
from fastapi import Depends, Request
from jose import JWTError, jwt

from vaultsync.core.config import settings
from vaultsync.core.exceptions import AuthenticationError, PermissionDeniedError
from vaultsync.core.logging import get_logger
from vaultsync.utils.constants import DASHBOARD_BY_ROLE, ROLE_FREE
from vaultsync.utils.date_utils import utcnow

logger = get_logger(__name__)

ALGORITHM = "HS256"


# ============================================================
# PASSWORDS
# ============================================================

def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def generate_reset_token() -> str:
    return secrets.token_urlsafe(32)


def hash_reset_token(token: str) -> str:
    """Reset tokens are stored hashed; only the emailed link carries the raw value."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ============================================================
# SESSION TOKENS
# ============================================================

def create_session_token(user_id: str, role: str, expires_minutes: Optional[int] = None) -> str:
    expires = utcnow() + timedelta(minutes=expires_minutes or settings.SESSION_TTL_MINUTES)
    claims = {"sub": user_id, "role": role, "exp": expires}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_session_token(token: str) -> Dict[str, Any]:
    """
    Decodes and verifies a session token.

    Raises:
        AuthenticationError: If the token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise AuthenticationError("Invalid session") from exc

    if not payload.get("sub"):
        raise AuthenticationError("Invalid session")
    return payload


def extract_session_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token

    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


# ============================================================
# DEPENDENCIES
# ============================================================

async def get_current_user(request: Request) -> Dict[str, Any]:
    """
    Resolves the authenticated user for a request.

    Raises:
        AuthenticationError: No session, invalid session, or unknown user
    """
    # Imported here to keep core free of a service-layer import cycle
    from vaultsync.services.auth_service import get_auth_service

    token = extract_session_token(request)
    if not token:
        raise AuthenticationError("Unauthorized")

    payload = decode_session_token(token)
    user = await get_auth_service().get_user_by_id(payload["sub"])
    if not user:
        raise AuthenticationError("Unauthorized")
    return user


def require_roles(*roles: str) -> Callable[..., Any]:
    """
    Builds a dependency that only admits users holding one of `roles`.
    """

    async def dependency(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if user.get("role", ROLE_FREE) not in roles:
            logger.warning(
                "Role check failed",
                extra={"user_id": user.get("user_id"), "role": user.get("role")}
            )
            raise PermissionDeniedError("Forbidden")
        return user

    return dependency


def dashboard_path_for_role(role: Optional[str]) -> str:
    return DASHBOARD_BY_ROLE.get(role or ROLE_FREE, DASHBOARD_BY_ROLE[ROLE_FREE])


# ============================================================
# WEBHOOKS
# ============================================================

def verify_webhook_secret(
    received: Optional[str],
    expected: Optional[str],
    allow_unconfigured: bool = True,
) -> bool:
    """
    Compares a webhook's shared secret against the configured one.

    When no secret is configured, deliveries are accepted only if
    `allow_unconfigured` is set.
    """
    if not expected:
        return allow_unconfigured
    if not received:
        return False
    return hmac.compare_digest(str(received).encode("utf-8"), expected.encode("utf-8"))
