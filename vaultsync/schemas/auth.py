"""
vaultsync/schemas/auth.py

Pydantic models for account endpoints (login, advisor signup, passwords).
"""

import re
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


class CamelModel(BaseModel):
    """Accepts both the camelCase names the portal sends and snake_case."""
    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)


class SessionResponse(BaseModel):
    user: Dict[str, Any]
    redirect_to: str
    should_change_password: bool = False


class AdvisorSignupRequest(CamelModel):
    first_name: str = Field(..., alias="firstName", min_length=1)
    last_name: str = Field(..., alias="lastName", min_length=1)
    email: str
    password: str = Field(..., min_length=1)
    tags: Optional[List[str]] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be blank")
        return v


class ChangePasswordRequest(CamelModel):
    new_password: str = Field(..., alias="newPassword")
    current_password: Optional[str] = Field(default=None, alias="currentPassword")


class ResetPasswordRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)


class SetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., alias="newPassword")
