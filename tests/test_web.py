from unittest.mock import AsyncMock

import pytest
from conftest import TODAY
from fastapi.testclient import TestClient

import web

AUTH = {"x-telegram-id": "1001"}


@pytest.fixture
def client(store):
    # lifespan is not run: no database pool or bot session is opened
    web.app.state.store = store
    web.app.state.bot = AsyncMock()
    yield TestClient(web.app)
    web.app.state.store = None
    web.app.state.bot = None


def test_index(client):
    assert client.get("/").json()["status"] == "ok"


@pytest.mark.parametrize("headers", [{}, {"x-telegram-id": "abc"}])
def test_caller_header_is_required(client, headers):
    assert client.get("/api/habits", headers=headers).status_code == 401


def test_register_then_update(client, store):
    payload = {"telegram_id": 7, "first_name": "Bo", "timezone": "Asia/Tokyo"}
    assert client.post("/api/register", json=payload).json()["message"] == "User created"
    assert client.post("/api/register", json=payload).json()["message"] == "User updated"
    assert store.rows("users")[0]["timezone"] == "Asia/Tokyo"


def test_register_requires_telegram_id(client):
    assert client.post("/api/register", json={"first_name": "Bo"}).status_code == 422


def test_toggle_round_trip(client, store, user, habit):
    body = {"habitId": habit["id"], "date": TODAY.isoformat(), "isCompleted": True}
    done = client.post("/api/completion", json=body, headers=AUTH)

    assert done.status_code == 200
    data = done.json()
    assert data["success"] is True
    assert data["coinsEarned"] == 10
    assert data["newBadge"] == "first_step"
    assert data["newId"] == store.rows("completions")[0]["id"]

    undone = client.post("/api/completion", json={**body, "isCompleted": False}, headers=AUTH)
    assert undone.json() == {"success": True, "coinsEarned": -10, "newBadge": None}


def test_toggle_requires_habit_id(client, user):
    response = client.post("/api/completion", json={"isCompleted": True}, headers=AUTH)
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_toggle_rejects_bad_date(client, user, habit):
    body = {"habitId": habit["id"], "date": "yesterday"}
    assert client.post("/api/completion", json=body, headers=AUTH).status_code == 400


def test_toggle_foreign_habit_fails(client, store, habit):
    store.seed("users", telegram_id=2002)
    body = {"habitId": habit["id"], "date": TODAY.isoformat()}
    response = client.post("/api/completion", json=body, headers={"x-telegram-id": "2002"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "coinsEarned": 0, "newBadge": None}


def test_note_and_history(client, store, user, habit):
    row = store.seed("completions", habit_id=habit["id"], user_id=1001, date=TODAY)

    patch = client.patch("/api/completion", json={"completionId": row["id"], "note": "ok"}, headers=AUTH)
    assert patch.json() == {"success": True}

    history = client.get("/api/completion", params={"habitId": habit["id"]}, headers=AUTH).json()
    assert [h["note"] for h in history] == ["ok"]


def test_habit_crud(client, store, user):
    created = client.post(
        "/api/habits", json={"title": "Water", "category": "Health", "reminder_time": "08:00"}, headers=AUTH
    ).json()
    assert created["coins_reward"] == 10

    listed = client.get("/api/habits", params={"date": TODAY.isoformat()}, headers=AUTH).json()
    assert [(h["title"], h["completed"]) for h in listed] == [("Water", False)]

    assert client.patch("/api/habits", json={"id": created["id"], "title": "Tea"}, headers=AUTH).status_code == 200
    assert store.rows("habits")[0]["title"] == "Tea"

    assert client.delete("/api/habits", params={"id": created["id"]}, headers=AUTH).status_code == 200
    assert client.delete("/api/habits", params={"id": created["id"]}, headers=AUTH).status_code == 404


def test_habit_rejects_bad_reminder_time(client, user):
    response = client.post("/api/habits", json={"title": "Water", "reminder_time": "25:00"}, headers=AUTH)
    assert response.status_code == 422


@pytest.mark.parametrize("kind, check", [
    ("weekly", lambda data: len(data) == 7),
    ("heatmap", lambda data: len(data["heatmap"]) == 365),
    ("rpg", lambda data: [d["subject"] for d in data] == ["VIT", "INT", "DIS", "CHA", "WIS", "STA"]),
])
def test_stats_types(client, user, kind, check):
    response = client.get("/api/stats", params={"type": kind}, headers=AUTH)
    assert response.status_code == 200
    assert check(response.json())


def test_stats_unknown_type(client, user):
    assert client.get("/api/stats", params={"type": "pie"}, headers=AUTH).status_code == 400


def test_store_error_becomes_500(client, store, user):
    store.fail("find", "habits")
    response = client.get("/api/habits", headers=AUTH)
    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error"}


def test_bot_status(client, store, user):
    assert client.get("/api/check-bot-status", params={"id": 1001}).json() == {"enabled": False}
    client.post("/api/mark-bot-started", json={"telegram_id": 1001})
    assert client.get("/api/check-bot-status", params={"id": 1001}).json() == {"enabled": True}
    assert client.get("/api/check-bot-status").status_code == 400

    store.fail("find", "users")
    assert client.get("/api/check-bot-status", params={"id": 1001}).json() == {"enabled": False}


def test_cron_requires_secret(client, monkeypatch):
    monkeypatch.setattr(web, "CRON_SECRET", None)
    assert client.get("/api/cron").status_code == 500

    monkeypatch.setattr(web, "CRON_SECRET", "s3cret")
    assert client.get("/api/cron").status_code == 401
    assert client.get("/api/cron", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_cron_dispatches(client, monkeypatch):
    monkeypatch.setattr(web, "CRON_SECRET", "s3cret")
    response = client.post("/api/cron", headers={"Authorization": "Bearer s3cret"})

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["found"] == 0
    assert len(data["checked"]) == 2


def test_toggle_without_date_reports_outage_as_failure(client, store, user, habit):
    store.fail("find", "users")
    response = client.post("/api/completion", json={"habitId": habit["id"]}, headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"success": False, "coinsEarned": 0, "newBadge": None}
    assert store.rows("completions") == []
