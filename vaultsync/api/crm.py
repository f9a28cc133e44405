"""
vaultsync/api/crm.py

Purpose: CRM setup helper

Lists the CRM location's custom fields with the logical key each one would
use in CRM_CUSTOM_FIELDS, so the mapping can be pasted into the environment.
"""

import json
import re
from fastapi import APIRouter, Depends
from typing import Any, Dict

from vaultsync.core.config import settings
from vaultsync.core.security import require_roles
from vaultsync.services.crm_service import CRMService, get_crm_service
from vaultsync.utils.constants import ROLE_ADVISOR

router = APIRouter()


def suggested_field_key(name: str) -> str:
    """'1st Owner %' -> '1ST_OWNER'"""
    key = re.sub(r"\s+", "_", name.strip().upper())
    return re.sub(r"[^A-Z0-9_]", "", key).strip("_")


@router.get("/crm/custom-fields")
async def list_custom_fields(
    user: Dict[str, Any] = Depends(require_roles(ROLE_ADVISOR)),
    crm: CRMService = Depends(get_crm_service),
):
    fields = await crm.fetch_custom_fields()
    configured = set(settings.CRM_CUSTOM_FIELDS.values())

    formatted = [
        {
            "name": field.get("name"),
            "key": field.get("key"),
            "id": field.get("id"),
            "data_type": field.get("dataType"),
            "object_type": field.get("objectType"),
            "suggested_key": suggested_field_key(field.get("name") or ""),
            "configured": field.get("id") in configured,
        }
        for field in fields
    ]

    return {
        "success": True,
        "total_fields": len(formatted),
        "location_id": crm.location_id,
        "fields": formatted,
        "env_value": json.dumps({f["suggested_key"]: f["id"] for f in formatted if f["suggested_key"] and f["id"]}),
    }
