from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vaultsync.main import app
from vaultsync.core.config import settings
from vaultsync.core.exceptions import AuthenticationError, BadRequestError, ConflictError
from vaultsync.core.security import create_session_token
from vaultsync.services.auth_service import AuthService, get_auth_service
from vaultsync.services.client_service import get_client_service


@pytest.fixture
def auth():
    service = MagicMock()
    service.authenticate = AsyncMock()
    service.change_password = AsyncMock()
    service.create_reset_token = AsyncMock(return_value=None)
    service.reset_password = AsyncMock()
    service.validate_new_password = AuthService().validate_new_password
    app.dependency_overrides[get_auth_service] = lambda: service
    return service


@pytest.fixture
def clients():
    service = MagicMock()
    service.signup_advisor = AsyncMock()
    app.dependency_overrides[get_client_service] = lambda: service
    return service


def test_login_sets_session_cookie(client, auth, make_user):
    user = make_user(should_change_password=True)
    auth.authenticate.return_value = user

    response = client.post("/api/v1/auth/login", json={"email": " Client@Example.com", "password": "pw"})

    assert response.status_code == 200
    data = response.json()
    assert data["redirect_to"] == "/dashboard"
    assert data["should_change_password"] is True
    assert "password_hash" not in data["user"]
    assert settings.SESSION_COOKIE_NAME in response.cookies
    auth.authenticate.assert_awaited_once_with("client@example.com", "pw")


def test_login_advisor_redirect(client, auth, advisor_user):
    auth.authenticate.return_value = advisor_user

    response = client.post("/api/v1/auth/login", json={"email": "advisor@example.com", "password": "pw"})

    assert response.json()["redirect_to"] == "/advisor/dashboard"


def test_login_rejects_bad_credentials(client, auth):
    auth.authenticate.side_effect = AuthenticationError("Invalid email or password")

    response = client.post("/api/v1/auth/login", json={"email": "client@example.com", "password": "nope"})

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid email or password"


def test_login_validates_email(client, auth):
    response = client.post("/api/v1/auth/login", json={"email": "not-an-email", "password": "pw"})
    assert response.status_code == 400


def test_me_with_bearer_token(client, make_user):
    user = make_user()
    service = MagicMock()
    service.get_user_by_id = AsyncMock(return_value=user)
    token = create_session_token(user["user_id"], user["role"])

    with patch("vaultsync.services.auth_service.get_auth_service", return_value=service):
        response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["user"]["user_id"] == user["user_id"]
    service.get_user_by_id.assert_awaited_once_with(user["user_id"])


def test_me_with_session_cookie_for_deleted_user(client):
    service = MagicMock()
    service.get_user_by_id = AsyncMock(return_value=None)
    cookie = f"{settings.SESSION_COOKIE_NAME}={create_session_token('gone', 'free')}"

    with patch("vaultsync.services.auth_service.get_auth_service", return_value=service):
        response = client.get("/api/v1/auth/me", headers={"Cookie": cookie})

    assert response.status_code == 401


def test_me_with_garbage_token(client):
    response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


def test_logout_clears_cookie(client):
    response = client.post("/api/v1/auth/logout")
    assert response.status_code == 200
    assert settings.SESSION_COOKIE_NAME in response.headers.get("set-cookie", "")


def test_advisor_signup(client, auth, clients, advisor_user):
    clients.signup_advisor.return_value = {"user": advisor_user, "crm_contact_id": "c-9"}

    response = client.post("/api/v1/auth/advisor-signup", json={
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": "Ada@Example.com",
        "password": "secret1",
    })

    assert response.status_code == 201
    assert response.json()["redirect_to"] == "/advisor/dashboard"
    kwargs = clients.signup_advisor.await_args.kwargs
    assert kwargs["email"] == "ada@example.com"
    assert kwargs["tags"] is None


def test_advisor_signup_short_password(client, auth, clients):
    response = client.post("/api/v1/auth/advisor-signup", json={
        "firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com", "password": "123",
    })

    assert response.status_code == 400
    clients.signup_advisor.assert_not_awaited()


def test_advisor_signup_duplicate_email(client, auth, clients):
    clients.signup_advisor.side_effect = ConflictError("An account with this email already exists")

    response = client.post("/api/v1/auth/advisor-signup", json={
        "firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com", "password": "secret1",
    })

    assert response.status_code == 409


def test_change_password(client, auth, login_as, make_user):
    user = login_as(make_user(password="CBvault2025!", should_change_password=True))

    response = client.post("/api/v1/auth/change-password", json={"newPassword": "brand-new"})

    assert response.status_code == 200
    auth.change_password.assert_awaited_once_with(user["user_id"], "brand-new")


def test_change_password_wrong_current_password(client, auth, login_as, make_user):
    login_as(make_user(password="CBvault2025!"))

    response = client.post(
        "/api/v1/auth/change-password",
        json={"newPassword": "brand-new", "currentPassword": "wrong"},
    )

    assert response.status_code == 401
    auth.change_password.assert_not_awaited()


@pytest.mark.parametrize("token", [None, "raw-token"])
def test_reset_password_always_succeeds(client, auth, token):
    auth.create_reset_token.return_value = token

    response = client.post("/api/v1/auth/reset-password", json={"email": "someone@example.com"})

    assert response.status_code == 200
    assert response.json()["success"] is True


def test_set_password_with_invalid_token(client, auth):
    auth.reset_password.side_effect = BadRequestError("Reset link is invalid or has expired", code="INVALID_RESET_TOKEN")

    response = client.post("/api/v1/auth/set-password", json={"token": "t", "newPassword": "brand-new"})

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_RESET_TOKEN"


def test_set_password(client, auth):
    response = client.post("/api/v1/auth/set-password", json={"token": "t", "newPassword": "brand-new"})

    assert response.status_code == 200
    auth.reset_password.assert_awaited_once_with("t", "brand-new")
