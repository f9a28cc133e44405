"""
vaultsync/services/document_service.py

Purpose: Document requirement storage

- Seeds the core document catalog
- Looks up requirement definitions by code or CRM tag
- Creates dynamic requirement definitions on demand
- Activates / deactivates per-user dynamic requirements
"""

import uuid
from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from vaultsync.db.mongo import (
    get_required_documents_collection,
    get_client_dynamic_documents_collection,
)
from vaultsync.core.logging import get_logger
from vaultsync.utils.constants import CORE_DOCUMENTS
from vaultsync.utils.date_utils import utcnow
from vaultsync.utils.tag_utils import requested_tag_for

logger = get_logger(__name__)

_PROJECTION = {"_id": 0}


class DocumentService:
    """Service for required-document definitions and per-user requirements."""

    def __init__(
        self,
        required_documents: Optional[AsyncIOMotorCollection] = None,
        client_documents: Optional[AsyncIOMotorCollection] = None,
    ):
        self._required_documents = required_documents
        self._client_documents = client_documents

    @property
    def required_documents(self) -> AsyncIOMotorCollection:
        if self._required_documents is None:
            self._required_documents = get_required_documents_collection()
        return self._required_documents

    @property
    def client_documents(self) -> AsyncIOMotorCollection:
        if self._client_documents is None:
            self._client_documents = get_client_dynamic_documents_collection()
        return self._client_documents

    # ============================================================
    # DEFINITIONS
    # ============================================================

    async def seed_core_documents(self) -> int:
        """
        Ensures the core catalog exists. Idempotent.

        Returns:
            Number of definitions inserted
        """
        inserted = 0
        for definition in CORE_DOCUMENTS:
            result = await self.required_documents.update_one(
                {"code": definition["code"]},
                {
                    "$set": {
                        **definition,
                        "is_core": True,
                        "crm_tag": requested_tag_for(definition["label"]),
                    },
                    "$setOnInsert": {
                        "document_id": str(uuid.uuid4()),
                        "created_via": "seed",
                        "created_at": utcnow(),
                    },
                },
                upsert=True,
            )
            if result.upserted_id is not None:
                inserted += 1

        if inserted:
            logger.info(f"Seeded {inserted} core document definitions")
        return inserted

    async def list_core_documents(self) -> List[Dict[str, Any]]:
        cursor = self.required_documents.find({"is_core": True}, _PROJECTION).sort("code", 1)
        return await cursor.to_list(length=None)

    async def get_document_by_code(self, code: str) -> Optional[Dict[str, Any]]:
        return await self.required_documents.find_one({"code": code}, _PROJECTION)

    async def get_document_by_tag(self, tag: str) -> Optional[Dict[str, Any]]:
        return await self.required_documents.find_one({"crm_tag": tag}, _PROJECTION)

    async def create_dynamic_document(self, tag: str, code: str, label: str) -> Dict[str, Any]:
        """
        Creates a dynamic requirement definition for a CRM tag.

        Concurrent deliveries may race on the unique code index; the loser
        reads back the winner's definition.
        """
        document = {
            "document_id": str(uuid.uuid4()),
            "code": code,
            "label": label,
            "description": None,
            "is_core": False,
            "is_multiple": True,
            "min_files": 1,
            "max_files": 10,
            "crm_tag": tag,
            "created_via": "crm_webhook",
            "created_at": utcnow(),
        }
        try:
            await self.required_documents.insert_one(dict(document))
        except DuplicateKeyError:
            existing = await self.get_document_by_code(code)
            if existing is None:
                raise
            return existing

        logger.info(f"Created dynamic document definition {code} for tag {tag}")
        return document

    # ============================================================
    # PER-USER REQUIREMENTS
    # ============================================================

    async def activate_client_document(self, user_id: str, document_id: str, requested_via: str) -> bool:
        """
        Upserts an active (user_id, document_id) requirement.

        Returns:
            True if the row was created or re-activated, False if it was already active
        """
        now = utcnow()
        before = await self.client_documents.find_one_and_update(
            {"user_id": user_id, "document_id": document_id},
            {
                "$set": {
                    "is_active": True,
                    "requested_via": requested_via,
                    "updated_at": now,
                    "deactivated_at": None,
                },
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.BEFORE,
        )
        return before is None or not before.get("is_active", False)

    async def deactivate_client_documents(self, user_id: str, keep_document_ids: Iterable[str] = ()) -> int:
        """
        Deactivates a user's active requirements not in `keep_document_ids`.

        Returns:
            Number of rows deactivated
        """
        now = utcnow()
        result = await self.client_documents.update_many(
            {
                "user_id": user_id,
                "is_active": True,
                "document_id": {"$nin": list(keep_document_ids)},
            },
            {"$set": {"is_active": False, "deactivated_at": now, "updated_at": now}},
        )
        return result.modified_count

    async def list_active_dynamic_documents(self, user_id: str) -> List[Dict[str, Any]]:
        rows = await self.client_documents.find(
            {"user_id": user_id, "is_active": True}, {"document_id": 1}
        ).to_list(length=None)
        document_ids = [row["document_id"] for row in rows]
        if not document_ids:
            return []

        cursor = self.required_documents.find(
            {"document_id": {"$in": document_ids}, "is_core": False}, _PROJECTION
        ).sort("code", 1)
        return await cursor.to_list(length=None)

    async def list_requirements(self, user_id: str) -> Dict[str, List[Dict[str, Any]]]:
        """Core catalog plus the user's active dynamic requirements."""
        return {
            "core": await self.list_core_documents(),
            "dynamic": await self.list_active_dynamic_documents(user_id),
        }


def to_requirement(document: Dict[str, Any]) -> Dict[str, Any]:
    """Shapes a definition for the vault API."""
    return {
        "code": document["code"],
        "label": document["label"],
        "description": document.get("description"),
        "multiple": document.get("is_multiple", False),
        "minFiles": document.get("min_files", 1),
        "maxFiles": document.get("max_files", 1),
        "crmTag": document.get("crm_tag"),
        "isCore": document.get("is_core", False),
    }


# Global service instance
_document_service: Optional[DocumentService] = None


def get_document_service() -> DocumentService:
    """Get or create document service instance."""
    global _document_service
    if _document_service is None:
        _document_service = DocumentService()
    return _document_service
