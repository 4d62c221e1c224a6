import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from nest import app
from nest.core.security import issue_token_pair
from nest.crud.gears import create_gear
from nest.crud.profiles import create_profile
from nest.db.session import Base, get_db


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def _auth(profile):
    token = issue_token_pair(subject=str(profile.id), role=profile.role).access_token
    return {"Authorization": f"Bearer {token}"}


def test_login_and_me(client, db_session):
    create_profile(db_session, email="admin@example.com", password="pw-123", role="Admin")

    bad = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "nope"})
    assert bad.status_code == 401
    assert bad.json()["code"] == "unauthorized"

    good = client.post("/api/auth/login", json={"email": "Admin@Example.com", "password": "pw-123"})
    assert good.status_code == 200
    token = good.json()["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "admin@example.com"


def test_routes_require_a_token(client):
    response = client.get("/api/gears")
    assert response.status_code == 401
    assert response.json()["message"] == "Authorization required"


def test_suspended_users_are_refused(client, db_session):
    user = create_profile(db_session, email="gone@example.com", status="Inactive")
    response = client.get("/api/gears", headers=_auth(user))
    assert response.status_code == 403


def test_admin_only_routes(client, db_session):
    user = create_profile(db_session, email="user@example.com")
    admin = create_profile(db_session, email="admin@example.com", role="Admin")

    denied = client.post("/api/gears", json={"name": "Camera"}, headers=_auth(user))
    assert denied.status_code == 403

    created = client.post("/api/gears", json={"name": "Camera", "quantity": 2}, headers=_auth(admin))
    assert created.status_code == 201
    assert created.json()["available_quantity"] == 2

    listed = client.get("/api/gears", headers=_auth(user))
    assert [gear["name"] for gear in listed.json()] == ["Camera"]


def test_insufficient_stock_uses_error_envelope(client, db_session):
    user = create_profile(db_session, email="user@example.com")
    gear = create_gear(db_session, {"name": "Drone", "quantity": 1})

    response = client.post(
        "/api/requests",
        json={"lines": [{"gear_id": gear.id, "quantity": 3}], "reason": "Shoot"},
        headers=_auth(user),
    )

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "insufficient_stock"
    assert body["details"] == {"gear": "Drone", "requested": 3, "available": 1}


def test_scan_lookup(client, db_session):
    user = create_profile(db_session, email="user@example.com")
    gear = create_gear(db_session, {"name": "Tripod"})

    found = client.post("/api/gears/scan", json={"code": f"gear:{gear.id}"}, headers=_auth(user))
    assert found.json()["name"] == "Tripod"
    label = client.get(f"/api/gears/{gear.id}/qr", headers=_auth(user)).json()
    assert label["payload"] == f"gear:{gear.id}"
    rescanned = client.post("/api/gears/scan", json={"code": label["payload"]}, headers=_auth(user))
    assert rescanned.json()["id"] == gear.id
    missing = client.post("/api/gears/scan", json={"code": "hello"}, headers=_auth(user))
    assert missing.status_code == 400
    assert client.get("/api/gears/9999/qr", headers=_auth(user)).status_code == 404


def test_push_worker_checks_cron_secret(client, db_session, monkeypatch):
    from nest.core.config import settings
    from nest.services import push_queue

    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    user = create_profile(db_session, email="user@example.com")
    push_queue.enqueue(db_session, user_id=user.id, title="Hi", body="There", trigger=False)

    assert client.get("/api/push/worker").status_code == 401
    assert client.get("/api/push/worker", headers={"Authorization": "Bearer nope"}).status_code == 401

    ok = client.get("/api/push/worker", headers={"Authorization": "Bearer s3cret"})
    assert ok.status_code == 200
    assert ok.json()["sent"] == 1


def test_refresh_reads_current_profile(client, db_session):
    from nest.crud.profiles import update_profile

    admin = create_profile(db_session, email="admin@example.com", role="Admin")
    refresh = issue_token_pair(subject=str(admin.id), role="Admin").refresh_token

    renewed = client.post("/api/auth/refresh", json={"refresh_token": refresh})
    assert renewed.status_code == 200
    access = renewed.json()["access_token"]
    assert client.post("/api/auth/refresh", json={"refresh_token": access}).status_code == 401

    update_profile(db_session, admin, {"status": "Inactive"})
    assert client.post("/api/auth/refresh", json={"refresh_token": refresh}).status_code == 403


def test_signup_creates_active_user(client, db_session):
    created = client.post(
        "/api/auth/signup",
        json={"email": "New.User@example.com", "password": "long-enough", "full_name": "New User"},
    )
    assert created.status_code == 201
    token = created.json()["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["email"] == "new.user@example.com"
    assert me.json()["role"] == "User"
    assert me.json()["status"] == "Active"

    duplicate = client.post("/api/auth/signup", json={"email": "new.user@example.com", "password": "long-enough"})
    assert duplicate.status_code == 409
    short = client.post("/api/auth/signup", json={"email": "other@example.com", "password": "short"})
    assert short.status_code == 422


def test_change_password(client, db_session):
    user = create_profile(db_session, email="user@example.com", password="old-password")

    wrong = client.post(
        "/api/auth/password",
        json={"current_password": "nope", "new_password": "new-password"},
        headers=_auth(user),
    )
    assert wrong.status_code == 400

    changed = client.post(
        "/api/auth/password",
        json={"current_password": "old-password", "new_password": "new-password"},
        headers=_auth(user),
    )
    assert changed.status_code == 204
    assert client.post("/api/auth/login", json={"email": "user@example.com", "password": "old-password"}).status_code == 401
    assert client.post("/api/auth/login", json={"email": "user@example.com", "password": "new-password"}).status_code == 200
