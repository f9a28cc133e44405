"""
vaultsync/services/upload_service.py

Purpose: Vault file uploads

- Stores uploaded bytes under STORAGE_DIR
- Records upload metadata and an audit event
- Notifies the upload webhook and the CRM (best-effort)
- Computes which required documents are still missing
"""

import re
import uuid
from pathlib import Path, PurePosixPath
from typing import Any, Collection, Dict, List, Optional, Set

import httpx
from fastapi.concurrency import run_in_threadpool
from motor.motor_asyncio import AsyncIOMotorCollection

from vaultsync.db.mongo import get_events_collection, get_user_documents_collection
from vaultsync.core.config import settings
from vaultsync.core.exceptions import BadRequestError, ExternalServiceError
from vaultsync.core.logging import get_logger
from vaultsync.services.document_service import DocumentService, get_document_service
from vaultsync.utils.constants import CONDITIONAL_DOCUMENTS, EVENT_RULE_OVERRIDE
from vaultsync.utils.date_utils import utcnow

logger = get_logger(__name__)

_PROJECTION = {"_id": 0}


def build_storage_path(profile_id: str, doc_code: str, filename: str, timestamp_ms: int) -> str:
    """
    profile/<profile_id>/<doc_code>/<doc_code>-<timestamp>.<ext>

    The client's original filename only contributes its extension, reduced
    to lowercase letters and digits.
    """
    ext = re.sub(r"[^a-z0-9]", "", PurePosixPath(filename.replace("\\", "/")).suffix.lower()) or "bin"
    normalized_name = f"{doc_code}-{timestamp_ms}.{ext}"
    return f"profile/{profile_id}/{doc_code}/{normalized_name}"


def compute_missing(
    requirements: List[Dict[str, Any]],
    counts: Dict[str, int],
    enabled_conditional: Collection[str] = (),
) -> List[Dict[str, Any]]:
    """
    needed = max(0, min_files - uploaded) for every requirement.

    Conditional core documents (debt schedule) are left out unless their
    code is in `enabled_conditional`.
    """
    return [
        {
            "code": doc["code"],
            "label": doc["label"],
            "needed": max(0, doc.get("min_files", 1) - counts.get(doc["code"], 0)),
            "uploaded": counts.get(doc["code"], 0),
        }
        for doc in requirements
        if doc["code"] not in CONDITIONAL_DOCUMENTS or doc["code"] in enabled_conditional
    ]


class UploadService:
    """Service for vault file storage and upload bookkeeping."""

    def __init__(
        self,
        collection: Optional[AsyncIOMotorCollection] = None,
        documents: Optional[DocumentService] = None,
        storage_dir: Optional[str] = None,
        events: Optional[AsyncIOMotorCollection] = None,
    ):
        self._collection = collection
        self._documents = documents
        self._events = events
        self.storage_dir = Path(storage_dir or settings.STORAGE_DIR)

    @property
    def uploads(self) -> AsyncIOMotorCollection:
        if self._collection is None:
            self._collection = get_user_documents_collection()
        return self._collection

    @property
    def documents(self) -> DocumentService:
        if self._documents is None:
            self._documents = get_document_service()
        return self._documents

    @property
    def events(self) -> AsyncIOMotorCollection:
        if self._events is None:
            self._events = get_events_collection()
        return self._events

    async def _write_file(self, storage_path: str, content: bytes) -> None:
        target = self.storage_dir / storage_path

        def write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "xb") as fh:
                fh.write(content)

        await run_in_threadpool(write)

    async def save_upload(
        self,
        user_id: str,
        profile_id: str,
        doc_code: str,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Stores one uploaded file and its metadata.

        Raises:
            BadRequestError: Empty file, file over MAX_UPLOAD_BYTES or unknown doc_code
        """
        if not content:
            raise BadRequestError("Uploaded file is empty")
        if len(content) > settings.MAX_UPLOAD_BYTES:
            raise BadRequestError(
                "Uploaded file is too large",
                details={"max_bytes": settings.MAX_UPLOAD_BYTES, "size": len(content)},
            )

        if await self.documents.get_document_by_code(doc_code) is None:
            raise BadRequestError(f"Unknown document code: {doc_code}")

        now = utcnow()
        storage_path = build_storage_path(profile_id, doc_code, filename, int(now.timestamp() * 1000))
        try:
            await self._write_file(storage_path, content)
        except OSError as e:
            raise ExternalServiceError("Failed to store file", code="STORAGE_ERROR") from e

        upload = {
            "document_upload_id": str(uuid.uuid4()),
            "user_id": user_id,
            "profile_id": profile_id,
            "doc_code": doc_code,
            "name": filename,
            "normalized_name": storage_path.rsplit("/", 1)[-1],
            "content_type": content_type or "application/octet-stream",
            "size": len(content),
            "category": "vault",
            "storage_path": storage_path,
            "tags": tags or [],
            "uploaded_at": now,
        }
        await self.uploads.insert_one(dict(upload))

        logger.info(f"Stored upload {storage_path}", extra={"user_id": user_id, "doc_code": doc_code})
        return upload

    async def count_uploads(self, user_id: str) -> Dict[str, int]:
        pipeline = [
            {"$match": {"user_id": user_id}},
            {"$group": {"_id": "$doc_code", "count": {"$sum": 1}}},
        ]
        counts = {}
        async for row in self.uploads.aggregate(pipeline):
            counts[row["_id"]] = row["count"]
        return counts

    async def list_uploads(self, user_id: str) -> List[Dict[str, Any]]:
        cursor = self.uploads.find({"user_id": user_id}, _PROJECTION).sort("uploaded_at", -1)
        return await cursor.to_list(length=None)

    async def enabled_conditional_documents(self, user_id: str) -> Set[str]:
        """
        Conditional document codes switched on by the user's most recent
        rule_override event.
        """
        latest = await self.events.find_one(
            {"user_id": user_id, "type": EVENT_RULE_OVERRIDE},
            {"_id": 0, "payload": 1},
            sort=[("created_at", -1)],
        )
        payload = (latest or {}).get("payload") or {}
        return {code for code, flag in CONDITIONAL_DOCUMENTS.items() if payload.get(flag)}

    async def missing_documents(self, user_id: str) -> List[Dict[str, Any]]:
        requirements = await self.documents.list_requirements(user_id)
        counts = await self.count_uploads(user_id)
        enabled = await self.enabled_conditional_documents(user_id)
        return compute_missing(requirements["core"] + requirements["dynamic"], counts, enabled)

    async def outstanding_documents(self, user_id: str) -> List[Dict[str, Any]]:
        """Missing documents that still need at least one file."""
        return [item for item in await self.missing_documents(user_id) if item["needed"] > 0]


async def notify_upload_webhook(
    profile_id: str,
    user_id: str,
    doc_code: str,
    url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    """POSTs an upload notification to the automation webhook, if configured."""
    url = url or settings.UPLOAD_WEBHOOK_URL
    if not url:
        return

    async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
        response = await client.post(
            url,
            json={"profile_id": profile_id, "user_id": user_id, "doc_code": doc_code},
        )
        response.raise_for_status()


# Global service instance
_upload_service: Optional[UploadService] = None


def get_upload_service() -> UploadService:
    """Get or create upload service instance."""
    global _upload_service
    if _upload_service is None:
        _upload_service = UploadService()
    return _upload_service
