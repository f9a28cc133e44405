import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from vaultsync.main import app
from vaultsync.core.security import get_current_user, hash_password
from vaultsync.utils.constants import ROLE_ADVISOR, ROLE_FREE


def build_user(role=ROLE_FREE, email="client@example.com", password=None, **metadata):
    now = datetime.now(timezone.utc)
    return {
        "user_id": str(uuid.uuid4()),
        "email": email,
        "first_name": "Jane",
        "last_name": "Doe",
        "password_hash": hash_password(password) if password else None,
        "role": role,
        "metadata": metadata,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def client():
    # Not used as a context manager: the lifespan (Mongo connection) never runs
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def client_user():
    return build_user()


@pytest.fixture
def advisor_user():
    return build_user(role=ROLE_ADVISOR, email="advisor@example.com")


@pytest.fixture
def login_as():
    def _login(user):
        app.dependency_overrides[get_current_user] = lambda: user
        return user
    return _login


@pytest.fixture
def make_user():
    return build_user
