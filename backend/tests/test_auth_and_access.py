import uuid

from fastapi.testclient import TestClient

from painel.main import app
from painel.utils.rate_limit import SlidingWindowLimiter

client = TestClient(app)


def test_sign_in_and_session(admin_headers, make_user):
    r = client.post("/auth/sign-in", json={"email": "admin@painel.test", "password": "wrong-pass"})
    assert r.status_code == 401
    r = client.post("/auth/sign-in", json={"email": "ADMIN@painel.test", "password": "admin123"})
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"

    viewer = make_user("pedidos.visualizar", "mockups.gerar")
    session = client.get("/auth/session", headers=viewer).json()
    assert session["is_admin"] is False
    assert session["permissions"] == ["mockups.gerar", "pedidos.visualizar"]
    assert client.post("/auth/sign-out", headers=viewer).json() == {"status": "ok"}

    assert client.get("/auth/session").status_code == 401
    assert client.get("/auth/session", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_access_profiles_crud(admin_headers, make_user):
    grouped = client.get("/permissions", headers=admin_headers).json()
    assert "Pedidos" in grouped
    codes = {p["code"]: p["id"] for perms in grouped.values() for p in perms}
    assert "storage.limpar" in codes

    tag = uuid.uuid4().hex[:4]
    name = f"Produção {tag}"
    r = client.post(
        "/perfis",
        json={"name": name, "description": "Equipe de produção", "permission_ids": [codes["mockups.gerar"]]},
        headers=admin_headers,
    )
    assert r.status_code == 201
    profile = r.json()
    assert profile["code"] == f"producao_{tag}"
    assert profile["permission_ids"] == [codes["mockups.gerar"]]

    r = client.post("/perfis", json={"name": name}, headers=admin_headers)
    assert r.status_code == 400

    r = client.post("/perfis", json={"name": "Inválido", "permission_ids": ["nao-existe"]}, headers=admin_headers)
    assert r.status_code == 400

    r = client.put(
        f"/perfis/{profile['id']}",
        json={"name": name, "permission_ids": [codes["mockups.gerar"], codes["pedidos.visualizar"]]},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert len(r.json()["permission_ids"]) == 2

    admin_profile = next(p for p in client.get("/perfis", headers=admin_headers).json() if p["code"] == "admin")
    r = client.delete(f"/perfis/{admin_profile['id']}", headers=admin_headers)
    assert r.status_code == 400

    assert client.delete(f"/perfis/{profile['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/perfis/{profile['id']}", headers=admin_headers).status_code == 404

    viewer = make_user("pedidos.visualizar")
    assert client.get("/perfis", headers=viewer).status_code == 403


def test_created_rows_are_returned_with_their_columns(admin_headers):
    tag = uuid.uuid4().hex[:4]
    r = client.post("/perfis", json={"name": f"Expedição {tag}", "permission_ids": []}, headers=admin_headers)
    assert r.status_code == 201
    profile = r.json()
    assert profile["id"]
    assert profile["code"] == f"expedicao_{tag}"
    assert profile["name"] == f"Expedição {tag}"
    assert profile["permission_ids"] == []

    email = f"linhas-{tag}@painel.test"
    r = client.post(
        "/functions/v1/create-user",
        json={"email": email, "password": "secret123", "full_name": "Linhas", "access_profile_ids": [profile["id"]]},
        headers=admin_headers,
    )
    user = r.json()["user"]
    assert user["id"]
    assert user["email"] == email
    assert user["full_name"] == "Linhas"
    assert user["is_active"] is True
    assert user["access_profile_ids"] == [profile["id"]]
    assert "password_hash" not in user


def test_list_users_hides_password_hash(admin_headers):
    users = client.get("/usuarios", headers=admin_headers).json()
    admin = next(u for u in users if u["email"] == "admin@painel.test")
    assert "password_hash" not in admin
    assert len(admin["access_profile_ids"]) == 1


def test_sign_in_rate_limit(monkeypatch):
    monkeypatch.setattr("painel.main._login_limiter", SlidingWindowLimiter(1))
    first = client.post("/auth/sign-in", json={"email": "x@painel.test", "password": "whatever"})
    assert first.status_code == 401
    second = client.post("/auth/sign-in", json={"email": "x@painel.test", "password": "whatever"})
    assert second.status_code == 429
    assert "Retry-After" in second.headers


def test_request_id_header_is_echoed():
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-ID"] == "abc123"
