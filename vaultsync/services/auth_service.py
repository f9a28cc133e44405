"""
vaultsync/services/auth_service.py

Purpose: User accounts

- Create or update user records (clients, advisors)
- Credential checks and password changes
- Password reset tokens
- User metadata flags (should_change_password, onboarding_complete)
"""

import uuid
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from vaultsync.db.mongo import get_users_collection
from vaultsync.core.config import settings
from vaultsync.core.exceptions import AuthenticationError, BadRequestError, ConflictError, ResourceNotFoundError
from vaultsync.core.logging import get_logger, LogContext
from vaultsync.core.security import hash_password, verify_password, generate_reset_token, hash_reset_token
from vaultsync.utils.constants import ROLE_FREE
from vaultsync.utils.date_utils import utcnow

logger = get_logger(__name__)

_PRIVATE_FIELDS = ("_id", "password_hash", "reset_token_hash", "reset_token_expires_at")


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Strips credentials before a user document leaves the service."""
    return {k: v for k, v in user.items() if k not in _PRIVATE_FIELDS}


class AuthService:
    """Service for user accounts and credentials."""

    def __init__(self, collection: Optional[AsyncIOMotorCollection] = None):
        self._collection = collection

    @property
    def users(self) -> AsyncIOMotorCollection:
        if self._collection is None:
            self._collection = get_users_collection()
        return self._collection

    async def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.users.find_one({"user_id": user_id})

    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self.users.find_one({"email": email.strip().lower()})

    def validate_new_password(self, password: Optional[str]) -> str:
        if not password or len(password) < settings.PASSWORD_MIN_LENGTH:
            raise BadRequestError(
                f"New password must be at least {settings.PASSWORD_MIN_LENGTH} characters"
            )
        return password

    async def create_user(
        self,
        email: str,
        password: str,
        role: str = ROLE_FREE,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Inserts a new user.

        Raises:
            ConflictError: If the email is already registered
        """
        now = utcnow()
        user = {
            "user_id": user_id or str(uuid.uuid4()),
            "email": email.strip().lower(),
            "first_name": (first_name or "").strip() or None,
            "last_name": (last_name or "").strip() or None,
            "password_hash": hash_password(password),
            "role": role,
            "metadata": metadata or {},
            "created_at": now,
            "updated_at": now,
        }

        try:
            await self.users.insert_one(dict(user))
        except DuplicateKeyError as e:
            raise ConflictError("An account with this email already exists") from e

        logger.info(f"Created {role} user", extra={"user_id": user["user_id"]})
        return user

    async def upsert_profile(
        self,
        user_id: str,
        email: str,
        first_name: str,
        last_name: str,
        role: str,
    ) -> Dict[str, Any]:
        """Updates profile columns of an existing user (role included)."""
        user = await self.users.find_one_and_update(
            {"user_id": user_id},
            {
                "$set": {
                    "email": email.strip().lower(),
                    "first_name": first_name.strip(),
                    "last_name": last_name.strip(),
                    "role": role,
                    "updated_at": utcnow(),
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if user is None:
            raise ResourceNotFoundError("User not found")
        return user

    async def ensure_client_account(
        self,
        email: str,
        first_name: str,
        last_name: str,
        company: Optional[str],
        password: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Creates a client login, or resets an existing one to the default password.

        Returns:
            (user, created)
        """
        password = password or settings.DEFAULT_CLIENT_PASSWORD
        metadata = {
            "full_name": f"{first_name} {last_name}".strip(),
            "company": company,
            "should_change_password": True,
        }

        existing = await self.get_user_by_email(email)
        if existing is None:
            user = await self.create_user(
                email=email,
                password=password,
                role=ROLE_FREE,
                first_name=first_name,
                last_name=last_name,
                metadata=metadata,
            )
            return user, True

        update = {
            "password_hash": hash_password(password),
            "first_name": first_name.strip(),
            "last_name": last_name.strip(),
            "updated_at": utcnow(),
        }
        update.update({f"metadata.{key}": value for key, value in metadata.items()})
        user = await self.users.find_one_and_update(
            {"user_id": existing["user_id"]},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        logger.info("Reset existing client account", extra={"user_id": existing["user_id"]})
        return user, False

    async def authenticate(self, email: str, password: str) -> Dict[str, Any]:
        """
        Raises:
            AuthenticationError: Unknown email or wrong password
        """
        user = await self.get_user_by_email(email)
        if user is None or not verify_password(password, user.get("password_hash")):
            raise AuthenticationError("Invalid email or password")
        return user

    async def change_password(self, user_id: str, new_password: str) -> None:
        self.validate_new_password(new_password)
        with LogContext(user_id=user_id):
            result = await self.users.update_one(
                {"user_id": user_id},
                {
                    "$set": {
                        "password_hash": hash_password(new_password),
                        "metadata.should_change_password": False,
                        "updated_at": utcnow(),
                    }
                },
            )
            if result.matched_count == 0:
                raise ResourceNotFoundError("User not found")
            logger.info("Password changed")

    async def create_reset_token(self, email: str) -> Optional[str]:
        """
        Issues a password reset token for `email`.

        Returns:
            The raw token, or None when no account exists (callers must not
            reveal the difference)
        """
        user = await self.get_user_by_email(email)
        if user is None:
            return None

        token = generate_reset_token()
        await self.users.update_one(
            {"user_id": user["user_id"]},
            {
                "$set": {
                    "reset_token_hash": hash_reset_token(token),
                    "reset_token_expires_at": utcnow() + timedelta(minutes=settings.RESET_TOKEN_TTL_MINUTES),
                }
            },
        )
        return token

    async def reset_password(self, token: str, new_password: str) -> Dict[str, Any]:
        """
        Consumes a reset token and sets the new password.

        Raises:
            BadRequestError: If the token is unknown or expired
        """
        self.validate_new_password(new_password)

        user = await self.users.find_one({"reset_token_hash": hash_reset_token(token)})
        expires_at = user.get("reset_token_expires_at") if user else None
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=utcnow().tzinfo)
        if user is None or expires_at is None or expires_at < utcnow():
            raise BadRequestError("Reset link is invalid or has expired", code="INVALID_RESET_TOKEN")

        await self.users.update_one(
            {"user_id": user["user_id"]},
            {
                "$set": {
                    "password_hash": hash_password(new_password),
                    "metadata.should_change_password": False,
                    "updated_at": utcnow(),
                },
                "$unset": {"reset_token_hash": "", "reset_token_expires_at": ""},
            },
        )
        logger.info("Password reset", extra={"user_id": user["user_id"]})
        return user

    async def update_metadata(self, user_id: str, **fields: Any) -> bool:
        if not fields:
            return False
        result = await self.users.update_one(
            {"user_id": user_id},
            {"$set": {**{f"metadata.{k}": v for k, v in fields.items()}, "updated_at": utcnow()}},
        )
        return result.modified_count > 0


# Global service instance
_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """Get or create auth service instance."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
