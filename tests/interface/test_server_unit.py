from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import make_item, make_state
from wsr.consts import VERSION
from wsr.domain.errors import ItemNotFound
from wsr.domain.models import LearningState, QueueEntry, Rating
from wsr.server import app

client = TestClient(app)


@pytest.fixture
def service():
    high = make_item("notes/high", tags=("review", "urgent"))
    low = make_item("notes/low")
    service = MagicMock()
    service.sync = AsyncMock(return_value=True)
    service.last_sync = None
    service.items = {"notes/high": high, "notes/low": low}
    service.queue = [QueueEntry(high, 5.0), QueueEntry(low, 0.0)]
    service.postponed = {"notes/other"}
    service.record_review = AsyncMock()
    service.postpone = AsyncMock()
    service.unpostpone = AsyncMock()
    with patch("wsr.server.get_service", return_value=service):
        yield service


def test_health_check():
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_get_version():
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": VERSION}


def test_sync_endpoint(service):
    response = client.post("/sync")
    assert response.status_code == 200
    assert response.json() == {"synced": True, "items": 2, "due": 2, "postponed": 1}
    service.sync.assert_awaited_once()


def test_sync_already_running(service):
    service.sync.return_value = False
    response = client.post("/sync")
    assert response.json()["synced"] is False


def test_sync_fail(service):
    service.sync.side_effect = Exception("Boom")

    response = client.post("/sync")

    assert response.status_code == 500
    assert "Boom" in response.json()["detail"]


def test_queue_syncs_once(service):
    response = client.get("/queue?limit=1")

    assert response.status_code == 200
    data = response.json()
    assert [e["id"] for e in data] == ["notes/high"]
    assert data[0]["title"] == "high"
    assert data[0]["priority"] == 5.0
    service.sync.assert_awaited_once()

    service.last_sync = object()
    client.get("/queue")
    service.sync.assert_awaited_once()


def test_grade_item(service):
    service.record_review.return_value = make_state(
        LearningState.REVIEW, due_in=timedelta(days=8), scheduled_days=8, reps=4
    )

    response = client.post("/items/notes/high/grade", json={"rating": "good"})

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == "notes/high"
    assert data["state"] == "review"
    assert data["scheduled_days"] == 8
    assert data["reps"] == 4
    service.record_review.assert_awaited_once_with("notes/high", Rating.GOOD)


def test_grade_numeric_rating(service):
    service.record_review.return_value = make_state(LearningState.RELEARNING, lapses=1)
    response = client.post("/items/notes/high/grade", json={"rating": 1})
    assert response.status_code == 200
    service.record_review.assert_awaited_once_with("notes/high", Rating.AGAIN)


def test_grade_invalid_rating(service):
    response = client.post("/items/notes/high/grade", json={"rating": "perfect"})
    assert response.status_code == 422
    service.record_review.assert_not_awaited()


def test_grade_unknown_item(service):
    service.record_review.side_effect = ItemNotFound("notes/nope")
    response = client.post("/items/notes/nope/grade", json={"rating": 3})
    assert response.status_code == 404


def test_postpone_item(service):
    response = client.post("/items/notes/high/postpone")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "postponed": True}
    service.postpone.assert_awaited_once_with("notes/high")

    response = client.post("/items/notes/high/postpone", json={"undo": True})
    assert response.json() == {"ok": True, "postponed": False}
    service.unpostpone.assert_awaited_once_with("notes/high")


def test_postpone_unknown_item(service):
    service.postpone.side_effect = ItemNotFound("notes/nope")
    response = client.post("/items/notes/nope/postpone")
    assert response.status_code == 404
