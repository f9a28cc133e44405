import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vaultsync.main import app
from vaultsync.core.config import settings
from vaultsync.services.client_service import get_client_service
from vaultsync.services.document_service import get_document_service
from vaultsync.services.reconciliation_service import ReconciliationResult

CRM_TAGS_URL = "/api/v1/webhooks/crm-tags"
CONTRACT_URL = "/api/v1/webhooks/contract"


@pytest.fixture
def clients():
    service = MagicMock()
    service.get_client_by_contact_id = AsyncMock(return_value={"user_id": "user-1", "crm_contact_id": "c-1"})
    service.mark_contract_completed = AsyncMock()
    app.dependency_overrides[get_client_service] = lambda: service
    app.dependency_overrides[get_document_service] = lambda: MagicMock()
    return service


@pytest.fixture
def reconcile():
    result = ReconciliationResult(
        user_id="user-1",
        processed_tags=["requested_lease_agreement"],
        activated=["lease_agreement"],
        created_definitions=["lease_agreement"],
    )
    with patch("vaultsync.api.webhooks.reconcile_requested_tags", AsyncMock(return_value=result)) as mock:
        yield mock


@pytest.fixture
def crm_secret(monkeypatch):
    monkeypatch.setattr(settings, "CRM_WEBHOOK_SECRET", "shh")
    return "shh"


# ============================================================
# CRM TAGS
# ============================================================

def test_crm_tags_json_payload(client, clients, reconcile, crm_secret):
    response = client.post(CRM_TAGS_URL, json={
        "contactId": " \"c-1\" ",
        "tags": ["vault-user", "requested_lease_agreement"],
        "secret": crm_secret,
    })

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["processedTags"] == 1
    assert data["userId"] == "user-1"
    clients.get_client_by_contact_id.assert_awaited_once_with("c-1")
    args = reconcile.await_args.args
    assert args[1] == "user-1"
    assert args[2] == ["vault-user", "requested_lease_agreement"]


def test_crm_tags_form_payload_with_comma_separated_tags(client, clients, reconcile, crm_secret):
    response = client.post(
        CRM_TAGS_URL,
        content="contactId=c-1&tags=requested_lease_agreement%2C+vault-user&secret=shh",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )

    assert response.status_code == 200
    assert reconcile.await_args.args[2] == ["requested_lease_agreement", "vault-user"]


def test_crm_tags_json_body_with_wrong_content_type(client, clients, reconcile, crm_secret):
    response = client.post(
        CRM_TAGS_URL,
        content='{"contactId": "c-1", "tags": "requested_insurance", "secret": "shh"}',
        headers={"Content-Type": "text/plain"},
    )

    assert response.status_code == 200
    assert reconcile.await_args.args[2] == ["requested_insurance"]


@pytest.mark.parametrize("tags", [[], "", " , ", [None, " "]])
def test_crm_tags_empty_list_is_rejected(client, clients, reconcile, crm_secret, tags):
    response = client.post(CRM_TAGS_URL, json={"contactId": "c-1", "tags": tags, "secret": crm_secret})

    assert response.status_code == 400
    assert response.json()["code"] == "BAD_REQUEST"
    reconcile.assert_not_awaited()


def test_crm_tags_wrong_secret(client, clients, reconcile, crm_secret):
    response = client.post(CRM_TAGS_URL, json={"contactId": "c-1", "tags": ["x"], "secret": "nope"})

    assert response.status_code == 401
    reconcile.assert_not_awaited()


def test_crm_tags_non_ascii_secret_is_unauthorized(client, clients, reconcile, crm_secret):
    response = client.post(CRM_TAGS_URL, json={"contactId": "c-1", "tags": ["x"], "secret": "sécret"})

    assert response.status_code == 401
    reconcile.assert_not_awaited()


def test_crm_tags_missing_secret_is_logged(client, clients, reconcile, crm_secret, caplog):
    with caplog.at_level(logging.ERROR, logger="vaultsync"):
        response = client.post(CRM_TAGS_URL, json={"contactId": "c-1", "tags": ["x"]})

    assert response.status_code == 401
    assert "secret missing" in caplog.text


@pytest.mark.parametrize("payload", [
    {"contactId": "c-1", "tags": ["x"], "secret": 12345},
    {"contactId": {"id": "c-1"}, "tags": ["x"], "secret": "shh"},
    {"contactId": "c-1", "tags": 7, "secret": "shh"},
])
def test_crm_tags_wrong_field_types(client, clients, reconcile, crm_secret, payload):
    response = client.post(CRM_TAGS_URL, json=payload)

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid webhook payload"
    assert "12345" not in response.text
    reconcile.assert_not_awaited()


def test_crm_tags_secret_not_configured_accepts(client, clients, reconcile, monkeypatch):
    monkeypatch.setattr(settings, "CRM_WEBHOOK_SECRET", None)

    response = client.post(CRM_TAGS_URL, json={"contactId": "c-1", "tags": ["requested_x"]})

    assert response.status_code == 200


@pytest.mark.parametrize("payload", [
    {"tags": ["requested_x"], "secret": "shh"},
    {"contactId": "  ", "tags": ["requested_x"], "secret": "shh"},
    {"contactId": "c-1", "secret": "shh"},
])
def test_crm_tags_invalid_payload(client, clients, reconcile, crm_secret, payload):
    response = client.post(CRM_TAGS_URL, json=payload)

    assert response.status_code == 400
    assert response.json()["code"] == "BAD_REQUEST"
    reconcile.assert_not_awaited()


def test_crm_tags_non_object_body(client, clients, reconcile, crm_secret):
    response = client.post(CRM_TAGS_URL, json=["requested_x"])
    assert response.status_code == 400


def test_crm_tags_unknown_contact(client, clients, reconcile, crm_secret):
    clients.get_client_by_contact_id.return_value = None

    response = client.post(CRM_TAGS_URL, json={"contactId": "c-404", "tags": ["x"], "secret": crm_secret})

    assert response.status_code == 404
    assert "c-404" in response.json()["error"]
    reconcile.assert_not_awaited()


def test_crm_tags_describes_payload(client):
    response = client.get(CRM_TAGS_URL)
    assert response.status_code == 200
    assert "expectedPayload" in response.json()


# ============================================================
# CONTRACT
# ============================================================

@pytest.fixture
def contract_secret(monkeypatch):
    monkeypatch.setattr(settings, "CONTRACT_WEBHOOK_SECRET", "sign")
    return "sign"


def test_contract_marks_completed(client, clients, contract_secret):
    completed = datetime(2025, 12, 17, tzinfo=timezone.utc)
    clients.mark_contract_completed.return_value = {
        "client": {
            "client_email": "jane@example.com",
            "client_name": "Jane Doe",
            "contract_completed": True,
            "contract_completed_at": completed,
        },
        "already_completed": False,
    }

    response = client.post(CONTRACT_URL, json={
        "secret": contract_secret,
        "client_email": " Jane@Example.com ",
        "completed_at": "12/17/25",
        "contract_id": "doc-9",
    })

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["data"]["contract_completed"] is True
    clients.mark_contract_completed.assert_awaited_once_with("jane@example.com", completed)


def test_contract_accepts_email_alias_and_is_idempotent(client, clients, contract_secret):
    clients.mark_contract_completed.return_value = {
        "client": {"client_email": "jane@example.com", "client_name": "Jane Doe", "contract_completed": True},
        "already_completed": True,
    }

    response = client.post(CONTRACT_URL, json={"secret": contract_secret, "email": "jane@example.com"})

    assert response.status_code == 200
    assert response.json()["already_completed"] is True


def test_contract_wrong_secret(client, clients, contract_secret):
    response = client.post(CONTRACT_URL, json={"secret": "bad", "client_email": "jane@example.com"})
    assert response.status_code == 401
    clients.mark_contract_completed.assert_not_awaited()


def test_contract_requires_configured_secret(client, clients, monkeypatch):
    monkeypatch.setattr(settings, "CONTRACT_WEBHOOK_SECRET", None)

    response = client.post(CONTRACT_URL, json={"client_email": "jane@example.com"})

    assert response.status_code == 401


def test_contract_missing_email(client, clients, contract_secret):
    response = client.post(CONTRACT_URL, json={"secret": contract_secret})
    assert response.status_code == 400


@pytest.mark.parametrize("payload", [
    {"secret": "sign", "client_email": 42},
    {"secret": ["sign"], "client_email": "jane@example.com"},
])
def test_contract_wrong_field_types(client, clients, contract_secret, payload):
    response = client.post(CONTRACT_URL, json=payload)

    assert response.status_code == 400
    assert response.json()["code"] == "BAD_REQUEST"
    clients.mark_contract_completed.assert_not_awaited()


def test_contract_non_ascii_secret_is_unauthorized(client, clients, contract_secret):
    response = client.post(CONTRACT_URL, json={"secret": "señal", "client_email": "jane@example.com"})
    assert response.status_code == 401


def test_contract_unknown_client(client, clients, contract_secret):
    from vaultsync.core.exceptions import ResourceNotFoundError

    clients.mark_contract_completed.side_effect = ResourceNotFoundError("Client not found with provided email")

    response = client.post(CONTRACT_URL, json={"secret": contract_secret, "client_email": "ghost@example.com"})

    assert response.status_code == 404


def test_contract_describes_payload(client):
    response = client.get(CONTRACT_URL)
    assert response.status_code == 200
    assert "required_fields" in response.json()
