"""
vaultsync/services/reconciliation_service.py

Purpose: Tag-driven document requirement reconciliation

Keeps a user's dynamic document requirements in step with the
"requested_*" tags the CRM reports for the linked contact:

- Tags present now -> requirement active (definition created if unknown)
- Tags gone since the last delivery -> requirement deactivated
- Re-delivering the same tags changes nothing
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from vaultsync.services.document_service import DocumentService
from vaultsync.core.logging import get_logger, LogContext
from vaultsync.utils.constants import REQUESTED_VIA_CRM_WEBHOOK
from vaultsync.utils.tag_utils import (
    normalize_tags,
    is_requested_tag,
    code_from_requested_tag,
    label_from_code,
)

logger = get_logger(__name__)


@dataclass
class ReconciliationResult:
    user_id: str
    processed_tags: List[str] = field(default_factory=list)
    active_document_ids: List[str] = field(default_factory=list)
    activated: List[str] = field(default_factory=list)
    created_definitions: List[str] = field(default_factory=list)
    ignored: List[str] = field(default_factory=list)
    deactivated: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "processedTags": len(self.processed_tags),
            "activated": self.activated,
            "createdDefinitions": self.created_definitions,
            "ignored": self.ignored,
            "deactivated": self.deactivated,
        }


async def reconcile_requested_tags(
    documents: DocumentService,
    user_id: str,
    tags: Any,
    requested_via: str = REQUESTED_VIA_CRM_WEBHOOK,
) -> ReconciliationResult:
    """
    Synchronizes a user's dynamic requirements with the CRM's current tag set.

    Args:
        documents: Requirement storage
        user_id: Owner of the requirements
        tags: Full current tag list of the contact (list or comma-separated string)
        requested_via: Provenance recorded on activated rows

    Returns:
        ReconciliationResult describing what changed
    """
    result = ReconciliationResult(user_id=user_id)

    with LogContext(user_id=user_id):
        requested = [tag.lower() for tag in normalize_tags(tags) if is_requested_tag(tag)]
        # Lower-casing can introduce duplicates
        requested = list(dict.fromkeys(requested))
        result.processed_tags = requested

        logger.info(f"Reconciling {len(requested)} requested tags")

        for tag in requested:
            code = code_from_requested_tag(tag)
            if not code:
                result.ignored.append(tag)
                continue

            document = await documents.get_document_by_tag(tag)
            if document is None:
                document = await documents.get_document_by_code(code)

            if document is not None and document.get("is_core"):
                # Core documents are always required; never tracked per user
                result.ignored.append(tag)
                continue

            if document is None:
                document = await documents.create_dynamic_document(tag, code, label_from_code(code))
                result.created_definitions.append(document["code"])

            document_id = document["document_id"]
            if document_id in result.active_document_ids:
                continue
            result.active_document_ids.append(document_id)

            if await documents.activate_client_document(user_id, document_id, requested_via):
                result.activated.append(document["code"])

        result.deactivated = await documents.deactivate_client_documents(
            user_id, result.active_document_ids
        )

        logger.info(
            f"Reconciliation done: {len(result.activated)} activated, "
            f"{len(result.created_definitions)} created, {result.deactivated} deactivated, "
            f"{len(result.ignored)} ignored"
        )

    return result
