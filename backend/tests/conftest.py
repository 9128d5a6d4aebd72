import os
import tempfile
import uuid
from pathlib import Path

import pytest

# settings are read at import time, so the environment is prepared before
# any painel module is imported by the test modules
_TMP = Path(tempfile.mkdtemp(prefix="painel-tests-"))
os.environ["ENV"] = "dev"
os.environ["PAINEL_DATABASE_URL"] = f"sqlite:///{_TMP / 'painel.db'}"
os.environ["PAINEL_STORAGE_DIR"] = str(_TMP / "storage")
os.environ["PAINEL_PUBLIC_BASE_URL"] = "http://testserver"
os.environ["SERVICE_ROLE_KEY"] = "test-service-role-key"
os.environ["LOGIN_RATE_LIMIT_PER_MIN"] = "0"
os.environ["WEBHOOK_RATE_LIMIT_PER_MIN"] = "0"
os.environ["ALLOW_DEV_CORS"] = "false"
for _name in ("EVOLUTION_API_URL", "EVOLUTION_API_KEY", "EVOLUTION_INSTANCE"):
    os.environ[_name] = ""

ADMIN_EMAIL = "admin@painel.test"
ADMIN_PASSWORD = "admin123"


def _client():
    from fastapi.testclient import TestClient
    from painel.main import app

    return TestClient(app)


def _sign_in(client, email, password):
    r = client.post("/auth/sign-in", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture(scope="session")
def admin_headers():
    """Initialise the first administrator once and return its auth headers."""
    client = _client()
    r = client.post(
        "/functions/v1/initialize-admin",
        json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD, "full_name": "Admin"},
    )
    assert r.status_code == 200, r.text
    return _sign_in(client, ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def make_user(admin_headers):
    """Factory: create a user holding `permissions` and return its auth headers."""
    from sqlmodel import Session, select

    from painel import models
    from painel.database import engine

    client = _client()

    def factory(*permissions, password="secret123"):
        with Session(engine) as session:
            ids = [
                p.id for p in session.exec(select(models.Permission).where(models.Permission.code.in_(permissions))).all()
            ]
        assert len(ids) == len(permissions)
        tag = uuid.uuid4().hex[:8]
        profile = client.post(
            "/perfis", json={"name": f"Perfil {tag}", "permission_ids": ids}, headers=admin_headers
        )
        assert profile.status_code == 201, profile.text
        email = f"user-{tag}@painel.test"
        created = client.post(
            "/functions/v1/create-user",
            json={
                "email": email,
                "password": password,
                "full_name": f"User {tag}",
                "access_profile_ids": [profile.json()["id"]],
            },
            headers=admin_headers,
        )
        assert created.status_code == 200, created.text
        return _sign_in(client, email, password)

    return factory


@pytest.fixture
def storage(tmp_path):
    from painel.utils.storage import LocalObjectStorage

    return LocalObjectStorage(root=tmp_path, bucket="mockup-images", public_base_url="http://testserver")


@pytest.fixture
def app_storage():
    from painel.utils.storage import get_storage

    return get_storage()
