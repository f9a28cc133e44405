"""
vaultsync/schemas/webhooks.py

Purpose: Inbound webhook payloads

- CRM tag-change notifications (JSON or form-encoded, tags as list or string)
- Contract completion notifications relayed by the automation platform
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, List, Optional

from vaultsync.utils.tag_utils import clean_identifier, normalize_tags


class CRMTagWebhook(BaseModel):
    """
    Normalized CRM tag webhook.

    Example payload:
    {
        "contactId": "abc123",
        "tags": ["vault-user", "requested_balance_sheet"],
        "secret": "..."
    }
    """
    model_config = ConfigDict(extra="ignore")

    contact_id: Optional[str] = Field(default=None, alias="contactId")
    tags: List[str] = Field(default_factory=list)
    secret: Optional[str] = None

    @field_validator("contact_id", mode="before")
    @classmethod
    def clean_contact_id(cls, v: Any) -> Optional[str]:
        if isinstance(v, (dict, list)):
            raise ValueError("contactId must be a string")
        return clean_identifier(v)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: Any) -> List[str]:
        if v is not None and not isinstance(v, (str, list)):
            raise ValueError("tags must be a list or a comma-separated string")
        return normalize_tags(v)

    @classmethod
    def from_payload(cls, payload: dict) -> "CRMTagWebhook":
        return cls(
            contactId=payload.get("contactId") or payload.get("contact_id"),
            tags=payload.get("tags"),
            secret=payload.get("secret"),
        )


class ContractWebhook(BaseModel):
    model_config = ConfigDict(extra="ignore")

    secret: Optional[str] = None
    client_email: Optional[str] = None
    email: Optional[str] = None
    contract_id: Optional[str] = None
    completed_at: Optional[Any] = None

    @property
    def resolved_email(self) -> Optional[str]:
        value = self.client_email or self.email
        return value.strip().lower() if value and value.strip() else None
