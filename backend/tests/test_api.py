"""Route tests: reminders, streaks, job inspection and cron triggers through TestClient."""
import os
import tempfile
from datetime import timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from noted.api.routes import cron
from noted.config import settings
from noted.core.clock import utcnow
from noted.main import app
from fakes import NOW, add_entries, add_job, add_user

ADA = {"X-User-Id": "ada"}
BOB = {"X-User-Id": "bob"}


def _create(client, headers=ADA, **body):
    payload = {"title": "Journal", "next_reminder_at": "2030-01-01T09:00:00Z"}
    payload.update(body)
    return client.post("/reminders", json=payload, headers=headers)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_user_header_is_required(client):
    assert client.get("/reminders").status_code == 401


def test_create_and_list_reminders(client):
    resp = _create(client, title="Stretch", reminder_type="daily")
    assert resp.status_code == 201
    created = resp.json()
    assert created["title"] == "Stretch"
    assert created["reminder_type"] == "daily"
    assert created["is_active"] is True
    assert created["next_reminder_at"] == "2030-01-01T09:00:00+00:00"

    listing = client.get("/reminders", headers=ADA).json()
    assert listing["count"] == 1
    assert listing["reminders"][0]["id"] == created["id"]
    assert client.get("/reminders", headers=BOB).json()["count"] == 0


def test_validation_error_is_422(client):
    resp = _create(client, title="   ")
    assert resp.status_code == 422
    assert resp.json()["detail"] == {"error": "validation_error", "field": "title", "message": "Title is required."}


def test_rate_limit_is_429_with_status(client, monkeypatch):
    monkeypatch.setattr(settings, "max_active_reminders", 1)
    assert _create(client).status_code == 201

    resp = _create(client)

    assert resp.status_code == 429
    detail = resp.json()["detail"]
    assert detail["error"] == "rate_limit_exceeded"
    assert detail["limit"] == "active"
    assert detail["status"]["active_reminders"] == 1
    assert detail["status"]["can_create_more"] is False
    assert client.get("/reminders", headers=ADA).json()["count"] == 1


def test_rate_limit_status_endpoint(client):
    _create(client)
    status = client.get("/reminders/rate-limit", headers=ADA).json()
    assert status["reminders_created_today"] == 1
    assert status["active_reminders"] == 1
    assert status["max_reminders_per_day"] == 50
    assert status["can_create_more"] is True


def test_patch_toggle_delete(client):
    rid = _create(client).json()["id"]

    patched = client.patch(f"/reminders/{rid}", json={"title": "Renamed"}, headers=ADA).json()
    assert patched["title"] == "Renamed"

    toggled = client.post(f"/reminders/{rid}/toggle", headers=ADA).json()
    assert toggled["is_active"] is False

    assert client.delete(f"/reminders/{rid}", headers=ADA).json() == {"ok": True, "id": rid}
    assert client.get("/reminders", headers=ADA).json()["count"] == 0


def test_other_users_reminder_is_404(client):
    rid = _create(client).json()["id"]
    assert client.patch(f"/reminders/{rid}", json={"title": "x"}, headers=BOB).status_code == 404
    assert client.delete(f"/reminders/{rid}", headers=BOB).status_code == 404


def test_streaks_from_entries(client, db):
    today = utcnow().date()
    add_entries(db, "ada", [today, today - timedelta(days=1), today - timedelta(days=1), today - timedelta(days=5)])
    stats = client.get("/streaks", headers=ADA).json()
    assert stats["current_streak"] == 2
    assert stats["longest_streak"] == 2
    assert stats["active_days"] == 3
    assert stats["at_risk"] is False


def test_job_listing_filters_by_status(client, db):
    add_job(db, "ada")
    add_job(db, "bob", status="sent")
    pending = client.get("/notifications/jobs", params={"status": "pending"}).json()
    assert [j["user_id"] for j in pending["jobs"]] == ["ada"]
    assert client.get("/notifications/jobs").json()["count"] == 2
    assert client.get("/notifications/jobs", params={"status": "lost"}).status_code == 422


def test_cron_process_email_queue(client, db, transport):
    add_user(db, "ada")
    add_job(db, "ada", scheduled_for=NOW)

    body = client.post("/cron/process-email-queue").json()

    assert body["success"] is True
    assert (body["processed"], body["successful"], body["failed"], body["skipped"]) == (1, 1, 0, 0)
    assert body["results"][0]["status"] == "sent"
    assert transport.recipients == ["ada@example.com"]


def test_cron_with_nothing_due(client, transport):
    body = client.post("/cron/process-email-queue").json()
    assert body == {"success": True, "processed": 0, "successful": 0, "failed": 0, "skipped": 0, "results": []}


def test_cron_queue_read_failure_is_500(client):
    path = os.path.join(tempfile.mkdtemp(prefix="noted-empty-"), "empty.db")
    empty = sessionmaker(bind=create_engine(f"sqlite:///{path}"))
    app.dependency_overrides[cron.get_session_factory] = lambda: empty

    resp = client.post("/cron/process-email-queue")

    assert resp.status_code == 500
    assert resp.json()["success"] is False
    assert "Could not read email queue" in resp.json()["error"]


def test_cron_secret_is_enforced_when_set(client, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "s3cret")
    assert client.post("/cron/dispatch-reminders").status_code == 401
    assert client.post("/cron/dispatch-reminders", headers={"Authorization": "Bearer nope"}).status_code == 401
    resp = client.post("/cron/dispatch-reminders", headers={"Authorization": "Bearer s3cret"})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "processed": 0, "queued": 0, "skipped": 0}


def test_cron_enqueue_notifications(client, db):
    add_user(db, "ada", reminder_time="00:00", streak=14)
    body = client.post("/cron/enqueue-notifications").json()
    assert body["success"] is True
    assert body["daily_reminder"] == 1
    assert body["streak_milestone"] == 1


def test_cron_detect_inactive_users(client, db):
    add_user(db, "ada")
    add_entries(db, "ada", [(utcnow() - timedelta(days=10)).date()])
    add_user(db, "bob")
    add_entries(db, "bob", [utcnow().date()])
    body = client.post("/cron/detect-inactive-users").json()
    assert body == {"success": True, "inactive_user": 1, "no_email": 0, "recently_sent": 0}
    again = client.post("/cron/detect-inactive-users").json()
    assert again["inactive_user"] == 0
