import json
import os
import sys
from pathlib import Path

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from nest.core.config import settings
from nest.core.errors import NestError
from nest.crud import notifications as crud_notifications
from nest.crud.profiles import create_profile
from nest.db.session import Base
from nest.services import email, push_queue


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def captured(monkeypatch):
    """Route outbound HTTP through a mock transport and record each request."""

    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "ok"})

    def client():
        return httpx.Client(transport=httpx.MockTransport(handler))

    monkeypatch.setattr(push_queue, "_http_client", client)
    monkeypatch.setattr(email, "_http_client", client)
    return seen


def test_enqueue_requires_user_title_and_body(db_session):
    with pytest.raises(NestError, match="Missing required push payload fields"):
        push_queue.enqueue(db_session, user_id=None, title="Hi", body="There", trigger=False)
    with pytest.raises(NestError):
        push_queue.enqueue(db_session, user_id=1, title="  ", body="There", trigger=False)


def test_enqueue_triggers_worker_with_cron_secret(db_session, captured, monkeypatch):
    monkeypatch.setattr(settings, "PUSH_WORKER_URL", "https://nest.example.com/api/push/worker")
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    user = create_profile(db_session, email="user@example.com")

    row = push_queue.enqueue(db_session, user_id=user.id, title="Hello", body="World", data={"type": "system"})

    assert row.status == "pending"
    assert len(captured) == 1
    assert captured[0].method == "GET"
    assert captured[0].headers["Authorization"] == "Bearer s3cret"


def test_trigger_is_skipped_without_endpoint(captured, monkeypatch):
    monkeypatch.setattr(settings, "PUSH_WORKER_URL", "")
    monkeypatch.setattr(settings, "SITE_URL", "")
    assert push_queue.trigger_worker() is False
    assert captured == []


def test_worker_turns_queue_rows_into_notifications(db_session):
    user = create_profile(db_session, email="user@example.com")
    for title in ("One", "Two"):
        push_queue.enqueue(
            db_session, user_id=user.id, title=title, body="Body", data={"type": "approval", "link": "/x"}, trigger=False
        )

    result = push_queue.process_pending(db_session)

    assert result == {"processed": 2, "sent": 2, "failed": 0}
    notes = crud_notifications.list_notifications(db_session, user.id)
    assert sorted(note.title for note in notes) == ["One", "Two"]
    assert notes[0].type == "approval"
    assert notes[0].link == "/x"
    assert crud_notifications.pending_pushes(db_session) == []
    assert push_queue.process_pending(db_session)["processed"] == 0


def test_mark_all_read_counts_rows(db_session):
    user = create_profile(db_session, email="user@example.com")
    for index in range(3):
        crud_notifications.create_notification(db_session, user_id=user.id, title=f"N{index}", message="m")

    assert crud_notifications.unread_count(db_session, user.id) == 3
    assert crud_notifications.mark_all_read(db_session, user.id) == 3
    assert crud_notifications.unread_count(db_session, user.id) == 0


def test_email_is_skipped_without_api_key(captured, monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "")
    assert email.send_welcome("new@example.com", user_name="New") is False
    assert captured == []


def test_email_posts_rendered_template(captured, monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")

    sent = email.send_request_rejected(
        "user@example.com", user_name="Uma", gear_names=["Camera"], reason="Booked out"
    )

    assert sent is True
    request = captured[0]
    assert request.headers["Authorization"] == "Bearer re_test"
    body = json.loads(request.content)
    assert body["to"] == ["user@example.com"]
    assert "Booked out" in body["html"]
    assert "Camera" in body["html"]


def test_email_failure_returns_false(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(
        email,
        "_http_client",
        lambda: httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500))),
    )
    assert email.send_welcome("new@example.com", user_name="New") is False
