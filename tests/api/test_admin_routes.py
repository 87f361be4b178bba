"""Tests for the admin lead record view."""

import base64

from fastapi.testclient import TestClient

ADMIN_KEY = "a" * 32 + "-admin-key"


def _basic(password: str) -> dict:
    encoded = base64.b64encode(f"admin:{password}".encode()).decode()
    return {"Authorization": f"Basic {encoded}"}


def test_record_view_after_send(client: TestClient, monkeypatch, clock):
    monkeypatch.setenv("LEADRELAY_ADMIN_API_KEY", ADMIN_KEY)
    client.post(
        "/api/v1/leads/send",
        json={
            "conversation_id": "cthr_admin",
            "reason": "chat_idle",
            "subject": "Lead",
            "summary": "Summary",
        },
    )

    response = client.get("/api/v1/admin/leads/cthr_admin", headers={"X-API-Key": ADMIN_KEY})

    assert response.status_code == 200
    data = response.json()
    assert data["conversation_id"] == "cthr_admin"
    assert data["status"] == "sent"
    assert data["attempts"] == 1
    assert data["message_id"] == "ses-message-1"
    assert data["last_reason"] == "chat_idle"


def test_basic_auth_password_accepted(client: TestClient, monkeypatch):
    monkeypatch.setenv("LEADRELAY_ADMIN_API_KEY", ADMIN_KEY)

    response = client.get("/api/v1/admin/leads/cthr_none", headers=_basic(ADMIN_KEY))

    assert response.status_code == 404
    assert response.json() == {"ok": False, "error": "not_found"}


def test_unknown_conversation_is_404(client: TestClient, monkeypatch):
    monkeypatch.setenv("LEADRELAY_ADMIN_API_KEY", ADMIN_KEY)

    response = client.get("/api/v1/admin/leads/cthr_none", headers={"X-API-Key": ADMIN_KEY})

    assert response.status_code == 404
