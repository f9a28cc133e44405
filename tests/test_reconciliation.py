"""
Reconciliation against an in-memory requirement store.
"""

import asyncio
import uuid

import pytest

from vaultsync.services.reconciliation_service import reconcile_requested_tags
from vaultsync.utils.constants import CORE_DOCUMENTS, REQUESTED_VIA_CRM_WEBHOOK
from vaultsync.utils.tag_utils import requested_tag_for


class InMemoryDocuments:
    """Implements the DocumentService methods used by reconciliation."""

    def __init__(self):
        self.definitions = {}
        self.rows = {}
        for doc in CORE_DOCUMENTS:
            self._add(doc["code"], doc["label"], requested_tag_for(doc["label"]), is_core=True)

    def _add(self, code, label, tag, is_core=False):
        definition = {
            "document_id": str(uuid.uuid4()),
            "code": code,
            "label": label,
            "crm_tag": tag,
            "is_core": is_core,
            "min_files": 1,
        }
        self.definitions[code] = definition
        return definition

    async def get_document_by_tag(self, tag):
        return next((d for d in self.definitions.values() if d["crm_tag"] == tag), None)

    async def get_document_by_code(self, code):
        return self.definitions.get(code)

    async def create_dynamic_document(self, tag, code, label):
        return self._add(code, label, tag)

    async def activate_client_document(self, user_id, document_id, requested_via):
        key = (user_id, document_id)
        was_active = self.rows.get(key, {}).get("is_active", False)
        self.rows[key] = {"is_active": True, "requested_via": requested_via}
        return not was_active

    async def deactivate_client_documents(self, user_id, keep_document_ids=()):
        count = 0
        for (uid, document_id), row in self.rows.items():
            if uid == user_id and row["is_active"] and document_id not in keep_document_ids:
                row["is_active"] = False
                count += 1
        return count

    def active_codes(self, user_id):
        by_id = {d["document_id"]: d["code"] for d in self.definitions.values()}
        return sorted(
            by_id[document_id]
            for (uid, document_id), row in self.rows.items()
            if uid == user_id and row["is_active"]
        )


def reconcile(documents, user_id, tags):
    return asyncio.run(reconcile_requested_tags(documents, user_id, tags))


@pytest.fixture
def documents():
    return InMemoryDocuments()


def test_creates_and_activates_unknown_requested_tags(documents):
    result = reconcile(documents, "u1", ["vault-user", "requested_lease_agreement", "requested_Bank Letter"])

    assert result.created_definitions == ["lease_agreement", "bank_letter"]
    assert result.activated == ["lease_agreement", "bank_letter"]
    assert result.deactivated == 0
    assert documents.definitions["lease_agreement"]["label"] == "Lease Agreement"
    assert documents.definitions["lease_agreement"]["is_core"] is False
    assert documents.active_codes("u1") == ["bank_letter", "lease_agreement"]
    assert all(row["requested_via"] == REQUESTED_VIA_CRM_WEBHOOK for row in documents.rows.values())


def test_is_idempotent(documents):
    reconcile(documents, "u1", ["requested_lease_agreement"])
    result = reconcile(documents, "u1", ["requested_lease_agreement"])

    assert result.created_definitions == []
    assert result.activated == []
    assert result.deactivated == 0
    assert documents.active_codes("u1") == ["lease_agreement"]


def test_removed_tag_deactivates_and_returning_tag_reactivates(documents):
    reconcile(documents, "u1", ["requested_lease_agreement", "requested_insurance"])

    removed = reconcile(documents, "u1", ["requested_insurance"])
    assert removed.deactivated == 1
    assert documents.active_codes("u1") == ["insurance"]

    returned = reconcile(documents, "u1", ["requested_insurance", "requested_lease_agreement"])
    assert returned.activated == ["lease_agreement"]
    assert returned.created_definitions == []
    assert documents.active_codes("u1") == ["insurance", "lease_agreement"]


def test_empty_tag_set_deactivates_everything(documents):
    reconcile(documents, "u1", ["requested_lease_agreement", "requested_insurance"])

    result = reconcile(documents, "u1", [])

    assert result.deactivated == 2
    assert documents.active_codes("u1") == []


def test_core_document_tags_are_ignored(documents):
    result = reconcile(documents, "u1", ["requested_balance_sheet", "requested_drivers_license"])

    assert result.ignored == ["requested_balance_sheet", "requested_drivers_license"]
    assert result.activated == []
    assert result.created_definitions == []
    assert documents.active_codes("u1") == []


def test_tags_are_normalized_and_deduplicated(documents):
    result = reconcile(documents, "u1", " requested_Lease_Agreement , requested_LEASE_agreement,, vault-user")

    assert result.processed_tags == ["requested_lease_agreement"]
    assert result.activated == ["lease_agreement"]


def test_requested_prefix_is_case_sensitive(documents):
    result = reconcile(documents, "u1", ["Requested_Lease_Agreement", "REQUESTED_insurance", "requested_insurance"])

    assert result.processed_tags == ["requested_insurance"]
    assert documents.active_codes("u1") == ["insurance"]


def test_blank_requested_tag_is_ignored(documents):
    result = reconcile(documents, "u1", ["requested_", "requested_!!"])

    assert result.ignored == ["requested_", "requested_!!"]
    assert result.created_definitions == []


def test_users_are_reconciled_independently(documents):
    reconcile(documents, "u1", ["requested_lease_agreement"])
    reconcile(documents, "u2", ["requested_insurance"])

    reconcile(documents, "u2", [])

    assert documents.active_codes("u1") == ["lease_agreement"]
    assert documents.active_codes("u2") == []


def test_result_payload(documents):
    result = reconcile(documents, "u1", ["requested_lease_agreement", "vault-user"])

    payload = result.to_dict()
    assert payload["userId"] == "u1"
    assert payload["processedTags"] == 1
    assert payload["activated"] == ["lease_agreement"]
