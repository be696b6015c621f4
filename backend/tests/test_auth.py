import time

from api.routes import auth as auth_routes
from core.security import create_access_token


def test_login_and_me(client, school, admin):
    res = client.post("/api/auth/login", json={"tenant": "greenhill", "username": "admin", "password": "secret-pass"})

    assert res.status_code == 200, res.text
    token = res.json()["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["username"] == "admin"
    assert me.json()["tenant_id"] == str(school.tenant_id)
    assert me.json()["role"] == "ADMIN"


def test_login_infers_school_from_unique_username(client, school):
    school.user("registrar", role="ADMIN")

    res = client.post("/api/auth/login", json={"username": "Registrar", "password": "secret-pass"})

    assert res.status_code == 200


def test_login_requires_school_for_ambiguous_username(client, school, other_school, admin):
    other_school.user("admin", role="ADMIN")

    res = client.post("/api/auth/login", json={"username": "admin", "password": "secret-pass"})

    assert res.status_code == 401
    assert res.json()["code"] == "not_authenticated"


def test_login_rejects_bad_password(client, admin):
    res = client.post("/api/auth/login", json={"tenant": "greenhill", "username": "admin", "password": "wrong"})

    assert res.status_code == 401
    assert res.json()["code"] == "not_authenticated"


def test_login_disabled_user(client, school):
    school.user("gone", is_active=False)

    res = client.post("/api/auth/login", json={"tenant": "greenhill", "username": "gone", "password": "secret-pass"})

    assert res.status_code == 403
    assert res.json()["code"] == "forbidden"


def test_me_requires_token(client):
    res = client.get("/api/auth/me")

    assert res.status_code == 401
    assert res.json() == {"code": "not_authenticated", "message": "Not authenticated."}


def test_garbage_token_is_rejected(client):
    res = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert res.status_code == 401


def test_token_bound_to_another_school_is_rejected(client, admin, other_school):
    token = create_access_token(
        user_id=str(admin.id),
        username=admin.username,
        role=admin.role,
        tenant_id=str(other_school.tenant_id),
    )

    res = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert res.status_code == 401


def test_health(client):
    res = client.get("/health")

    assert res.status_code == 200
    assert res.json()["app"] == "ok"


def test_login_is_rate_limited_per_client_and_username(client, admin):
    body = {"tenant": "greenhill", "username": "admin", "password": "wrong"}
    for _ in range(12):
        assert client.post("/api/auth/login", json=body).status_code == 401

    res = client.post("/api/auth/login", json=body)

    assert res.status_code == 429
    other = client.post("/api/auth/login", json={"tenant": "greenhill", "username": "someone", "password": "x"})
    assert other.status_code == 401


def test_login_drops_expired_rate_limit_entries(client, admin):
    auth_routes._login_attempts["10.1.1.1:gone"] = [time.time() - 120]
    auth_routes._login_attempts["10.1.1.2:empty"] = []

    client.post("/api/auth/login", json={"tenant": "greenhill", "username": "admin", "password": "secret-pass"})

    assert list(auth_routes._login_attempts) == ["testclient:admin"]
