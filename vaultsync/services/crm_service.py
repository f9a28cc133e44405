"""
vaultsync/services/crm_service.py

Purpose: External CRM integration

- Idempotent contact upsert and contact updates (custom fields)
- Adding / removing contact tags
- Custom field discovery for configuration
- Pushing uploaded vault files to the contact
- Best-effort wrapper for fire-and-forget side calls
"""

import httpx
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

from vaultsync.core.config import settings
from vaultsync.core.exceptions import CRMError
from vaultsync.core.logging import get_logger

logger = get_logger(__name__)


class CRMService:
    """Thin async client over the CRM REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        api_version: Optional[str] = None,
        location_id: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.CRM_BASE_URL).rstrip("/")
        self.token = token if token is not None else settings.CRM_API_TOKEN
        self.api_version = api_version or settings.CRM_API_VERSION
        self.location_id = location_id if location_id is not None else settings.CRM_LOCATION_ID
        self.timeout = timeout or settings.CRM_TIMEOUT
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.token and self.location_id)

    def _headers(self, json_body: bool = True) -> Dict[str, str]:
        if not self.token:
            raise CRMError("CRM API token is not configured")
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Version": self.api_version,
            "Accept": "application/json",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Sends a request and returns the decoded JSON body.

        Raises:
            CRMError: On timeouts, network errors and non-2xx responses
        """
        headers = self._headers(json_body=files is None)

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                if files is not None:
                    response = await client.request(method, path, headers=headers, files=files, data=data)
                else:
                    content = json.dumps(json_body) if json_body is not None else None
                    response = await client.request(method, path, headers=headers, content=content)
        except httpx.TimeoutException as e:
            logger.error(f"CRM timeout: {method} {path}")
            raise CRMError("CRM API timeout") from e
        except httpx.RequestError as e:
            logger.error(f"CRM network error: {method} {path}: {e}")
            raise CRMError("Unable to reach the CRM API") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            logger.error(f"CRM API error: {method} {path} -> {response.status_code} {body}")
            raise CRMError(
                f"CRM API error {response.status_code} {response.reason_phrase}",
                status=response.status_code,
                details=body or None,
            )

        return body if isinstance(body, dict) else {"data": body}

    async def upsert_contact(self, payload: Dict[str, Any]) -> str:
        """
        Creates or updates a contact, matched by the CRM on email/phone.

        Args:
            payload: Contact fields (firstName, lastName, email, tags, customFields...)

        Returns:
            CRM contact id
        """
        body = {k: v for k, v in payload.items() if v is not None}
        body.setdefault("locationId", self.location_id)
        if not body.get("locationId"):
            raise CRMError("CRM location id is not configured")

        data = await self._request("POST", "/contacts/upsert", json_body=body)
        contact_id = (data.get("contact") or {}).get("id") or data.get("id")
        if not contact_id:
            raise CRMError("CRM upsert returned no contact id", details=data)

        logger.info("CRM contact upserted", extra={"contact_id": contact_id})
        return contact_id

    async def update_contact(self, contact_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/contacts/{contact_id}", json_body=payload)

    async def add_tags(self, contact_id: str, tags: List[str]) -> Optional[Dict[str, Any]]:
        if not tags:
            return None
        logger.info(f"Adding CRM tags {tags}", extra={"contact_id": contact_id})
        return await self._request("POST", f"/contacts/{contact_id}/tags", json_body={"tags": tags})

    async def remove_tags(self, contact_id: str, tags: List[str]) -> Optional[Dict[str, Any]]:
        if not tags:
            return None
        logger.info(f"Removing CRM tags {tags}", extra={"contact_id": contact_id})
        return await self._request("DELETE", f"/contacts/{contact_id}/tags", json_body={"tags": tags})

    async def fetch_custom_fields(self, location_id: Optional[str] = None) -> List[Dict[str, Any]]:
        location = location_id or self.location_id
        if not location:
            raise CRMError("CRM location id is not configured")
        data = await self._request("GET", f"/locations/{location}/customFields")
        return data.get("customFields", [])

    @staticmethod
    def build_field_index(fields: List[Dict[str, Any]]) -> Dict[str, str]:
        """Maps custom field keys ("contact.documents_requested") to their ids."""
        return {field["key"]: field["id"] for field in fields if field.get("key") and field.get("id")}

    async def upload_file(
        self,
        contact_id: str,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, Any]:
        """
        Uploads a file to the CRM media library, labelled with the contact id.
        """
        logger.info(f"Pushing file {filename} to CRM", extra={"contact_id": contact_id})
        return await self._request(
            "POST",
            "/medias/upload-file",
            files={"file": (filename, content, content_type)},
            data={"name": f"{contact_id}/{filename}", "hosted": "false"},
        )


async def best_effort(description: str, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
    """
    Runs a non-critical side call, logging and discarding any failure.

    Used with FastAPI BackgroundTasks for CRM tagging and notifications that
    must never fail the originating request.
    """
    try:
        return await func(*args, **kwargs)
    except Exception as e:
        logger.warning(f"Best-effort call failed ({description}): {e}")
        return None


# Global service instance
_crm_service: Optional[CRMService] = None


def get_crm_service() -> CRMService:
    """Get or create CRM service instance."""
    global _crm_service
    if _crm_service is None:
        _crm_service = CRMService()
    return _crm_service
