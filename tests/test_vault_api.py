from unittest.mock import AsyncMock, MagicMock

import pytest

from vaultsync.main import app
from vaultsync.core.config import settings
from vaultsync.services.client_service import get_client_service
from vaultsync.services.crm_service import get_crm_service
from vaultsync.services.document_service import get_document_service
from vaultsync.services.upload_service import UploadService, get_upload_service

CORE_DOC = {
    "document_id": "d-core",
    "code": "voided_check",
    "label": "Voided Check",
    "description": "Voided business check",
    "is_core": True,
    "is_multiple": False,
    "min_files": 1,
    "max_files": 1,
    "crm_tag": "requested_voided_check",
}
DYNAMIC_DOC = {
    "document_id": "d-dyn",
    "code": "lease_agreement",
    "label": "Lease Agreement",
    "is_core": False,
    "is_multiple": True,
    "min_files": 1,
    "max_files": 10,
    "crm_tag": "requested_lease_agreement",
}


@pytest.fixture
def documents():
    service = MagicMock()
    service.list_requirements = AsyncMock(return_value={"core": [CORE_DOC], "dynamic": [DYNAMIC_DOC]})
    service.get_document_by_code = AsyncMock(
        side_effect=lambda code: {"voided_check": CORE_DOC, "lease_agreement": DYNAMIC_DOC}.get(code)
    )
    app.dependency_overrides[get_document_service] = lambda: service
    return service


@pytest.fixture
def clients():
    service = MagicMock()
    service.get_client_by_user_id = AsyncMock(return_value={"user_id": "u", "crm_contact_id": "c-1"})
    service.get_profile_by_user_id = AsyncMock(return_value={"profile_id": "p-1"})
    service.record_event = AsyncMock()
    service.mark_vault_submitted = AsyncMock(return_value={"tagged": True})
    app.dependency_overrides[get_client_service] = lambda: service
    return service


@pytest.fixture
def crm():
    service = MagicMock()
    service.add_tags = AsyncMock()
    service.upload_file = AsyncMock()
    app.dependency_overrides[get_crm_service] = lambda: service
    return service


@pytest.fixture
def uploads(tmp_path, documents):
    collection = MagicMock()
    collection.insert_one = AsyncMock()
    events = MagicMock()
    events.find_one = AsyncMock(return_value=None)
    service = UploadService(collection=collection, documents=documents, storage_dir=str(tmp_path), events=events)
    app.dependency_overrides[get_upload_service] = lambda: service
    return service


# ============================================================
# REQUIREMENTS / MISSING
# ============================================================

def test_requirements_lists_core_then_dynamic(client, login_as, client_user, documents):
    login_as(client_user)

    response = client.get("/api/v1/vault/requirements")

    assert response.status_code == 200
    data = response.json()
    assert data["coreCount"] == 1
    assert data["dynamicCount"] == 1
    assert [r["code"] for r in data["requirements"]] == ["voided_check", "lease_agreement"]
    assert data["requirements"][1]["maxFiles"] == 10
    documents.list_requirements.assert_awaited_once_with(client_user["user_id"])


def test_missing_documents(client, login_as, client_user, uploads):
    login_as(client_user)
    uploads.count_uploads = AsyncMock(return_value={"voided_check": 1})

    response = client.get("/api/v1/vault/missing")

    assert response.status_code == 200
    assert response.json() == [
        {"code": "voided_check", "label": "Voided Check", "needed": 0, "uploaded": 1},
        {"code": "lease_agreement", "label": "Lease Agreement", "needed": 1, "uploaded": 0},
    ]


# ============================================================
# UPLOADS
# ============================================================

def test_upload_stores_file_and_schedules_side_calls(client, login_as, client_user, uploads, clients, crm, tmp_path):
    login_as(client_user)

    response = client.post(
        "/api/v1/vault/uploads",
        data={"docCode": "voided_check", "tags": "[\"front\"]"},
        files={"file": ("check.PDF", b"%PDF-1.4", "application/pdf")},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["storage_path"].startswith("profile/p-1/voided_check/voided_check-")
    assert data["storage_path"].endswith(".pdf")
    assert (tmp_path / data["storage_path"]).read_bytes() == b"%PDF-1.4"

    row = uploads.uploads.insert_one.await_args.args[0]
    assert row["doc_code"] == "voided_check"
    assert row["tags"] == ["front"]
    assert row["size"] == 8

    clients.record_event.assert_awaited_once()
    assert clients.record_event.await_args.args[0] == "upload"

    crm.add_tags.assert_awaited_once_with("c-1", ["doc_voided_check_uploaded"])
    crm.upload_file.assert_awaited_once()


def test_list_uploads(client, login_as, client_user, uploads):
    login_as(client_user)
    uploads.list_uploads = AsyncMock(return_value=[{"doc_code": "voided_check", "name": "check.pdf"}])

    response = client.get("/api/v1/vault/uploads")

    assert response.status_code == 200
    assert response.json() == {"uploads": [{"doc_code": "voided_check", "name": "check.pdf"}]}
    uploads.list_uploads.assert_awaited_once_with(client_user["user_id"])


def test_upload_without_crm_contact_skips_crm(client, login_as, client_user, uploads, clients, crm):
    login_as(client_user)
    clients.get_client_by_user_id.return_value = {"user_id": "u", "crm_contact_id": None}

    response = client.post(
        "/api/v1/vault/uploads",
        data={"docCode": "voided_check"},
        files={"file": ("check.pdf", b"data", "application/pdf")},
    )

    assert response.status_code == 200
    crm.add_tags.assert_not_awaited()


def test_upload_crm_failure_does_not_fail_request(client, login_as, client_user, uploads, clients, crm):
    from vaultsync.core.exceptions import CRMError

    login_as(client_user)
    crm.add_tags.side_effect = CRMError("down")
    crm.upload_file.side_effect = CRMError("down")

    response = client.post(
        "/api/v1/vault/uploads",
        data={"docCode": "voided_check"},
        files={"file": ("check.pdf", b"data", "application/pdf")},
    )

    assert response.status_code == 200


def test_upload_too_large(client, login_as, client_user, uploads, clients, crm, monkeypatch):
    login_as(client_user)
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 3)

    response = client.post(
        "/api/v1/vault/uploads",
        data={"docCode": "voided_check"},
        files={"file": ("check.pdf", b"data", "application/pdf")},
    )

    assert response.status_code == 400
    uploads.uploads.insert_one.assert_not_awaited()


def test_upload_reads_at_most_one_byte_past_limit(client, login_as, client_user, uploads, clients, crm, monkeypatch):
    login_as(client_user)
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 3)

    response = client.post(
        "/api/v1/vault/uploads",
        data={"docCode": "voided_check"},
        files={"file": ("check.pdf", b"x" * 4096, "application/pdf")},
    )

    assert response.status_code == 400
    assert response.json()["details"] == {"max_bytes": 3, "size": 4}


def test_upload_unknown_document_code(client, login_as, client_user, uploads, clients, crm):
    login_as(client_user)

    response = client.post(
        "/api/v1/vault/uploads",
        data={"docCode": "passport"},
        files={"file": ("p.jpg", b"data", "image/jpeg")},
    )

    assert response.status_code == 400


def test_upload_requires_doc_code(client, login_as, client_user, uploads, clients, crm):
    login_as(client_user)

    response = client.post(
        "/api/v1/vault/uploads",
        files={"file": ("p.jpg", b"data", "image/jpeg")},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


# ============================================================
# SUBMISSION MARKERS
# ============================================================

def test_mark_submitted_dynamic_document_adds_tag(client, login_as, client_user, documents, clients, crm):
    login_as(client_user)

    response = client.post("/api/v1/vault/mark-submitted", json={"doc_code": "lease_agreement"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "tagAdded": "submitted_lease_agreement"}
    crm.add_tags.assert_awaited_once_with("c-1", ["submitted_lease_agreement"])


def test_mark_submitted_core_document_adds_no_tag(client, login_as, client_user, documents, clients, crm):
    login_as(client_user)

    response = client.post("/api/v1/vault/mark-submitted", json={"doc_code": "voided_check"})

    assert response.status_code == 200
    assert response.json()["message"] == "Core document - no tag added"
    crm.add_tags.assert_not_awaited()


def test_mark_submitted_without_crm_contact_warns(client, login_as, client_user, documents, clients, crm):
    login_as(client_user)
    clients.get_client_by_user_id.return_value = {"user_id": "u"}

    response = client.post("/api/v1/vault/mark-submitted", json={"doc_code": "lease_agreement"})

    assert response.status_code == 200
    assert "warning" in response.json()


@pytest.mark.parametrize("record,doc_code", [
    (None, "lease_agreement"),
    ({"user_id": "u", "crm_contact_id": "c-1"}, "unknown_doc"),
])
def test_mark_submitted_not_found(client, login_as, client_user, documents, clients, crm, record, doc_code):
    login_as(client_user)
    clients.get_client_by_user_id.return_value = record

    response = client.post("/api/v1/vault/mark-submitted", json={"doc_code": doc_code})

    assert response.status_code == 404


def test_mark_submitted_requires_doc_code(client, login_as, client_user, documents, clients, crm):
    login_as(client_user)

    response = client.post("/api/v1/vault/mark-submitted", json={})

    assert response.status_code == 400


def test_submit_vault(client, login_as, client_user, clients, uploads):
    login_as(client_user)
    uploads.count_uploads = AsyncMock(return_value={"voided_check": 1, "lease_agreement": 2})

    response = client.post("/api/v1/vault/submit")

    assert response.status_code == 200
    assert response.json() == {"success": True}
    clients.mark_vault_submitted.assert_awaited_once_with(client_user["user_id"])


def test_submit_vault_without_crm_contact(client, login_as, client_user, clients, uploads):
    login_as(client_user)
    uploads.count_uploads = AsyncMock(return_value={"voided_check": 1, "lease_agreement": 1})
    clients.mark_vault_submitted.return_value = {"tagged": False}

    response = client.post("/api/v1/vault/submit")

    assert response.status_code == 200
    assert response.json()["warning"] == "No CRM contact ID found"


def test_submit_vault_refused_while_documents_missing(client, login_as, client_user, clients, uploads):
    login_as(client_user)
    uploads.count_uploads = AsyncMock(return_value={"voided_check": 1})

    response = client.post("/api/v1/vault/submit")

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "missing_docs"
    assert data["code"] == "MISSING_DOCS"
    assert data["details"] == [{"code": "lease_agreement", "label": "Lease Agreement", "needed": 1, "uploaded": 0}]
    clients.mark_vault_submitted.assert_not_awaited()
