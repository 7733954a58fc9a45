import pytest
from conftest import T0, add_interval
from fastapi.testclient import TestClient

from tick_tracker.webapp import create_app


@pytest.fixture
def client(db_path):
    app = create_app(db_path=db_path, run_tracker=False)
    return TestClient(app)


def test_status(client, db_path):
    response = client.get("/api/status")
    assert response.status_code == 200
    assert response.json() == {"tracker_running": False, "database_path": str(db_path)}


def test_summaries(client, db_path):
    add_interval(db_path, "Editor", T0, 30)
    add_interval(db_path, "Browser", T0, 90)

    payload = client.get("/api/summaries").json()

    assert payload["total_seconds"] == pytest.approx(120)
    assert [row["application_name"] for row in payload["summaries"]] == ["Browser", "Editor"]
    assert payload["summaries"][0]["session_count"] == 1
    assert payload["summaries"][0]["first_seen_utc"] == T0.isoformat()


def test_blacklist_lifecycle(client, db_path):
    add_interval(db_path, "Game", T0, 30)

    response = client.post("/api/blacklist", json={"application_name": "Game"})
    assert response.status_code == 201
    assert response.json() == {"application_name": "Game", "added": True}
    assert client.get("/api/blacklist").json() == {"applications": ["Game"]}
    assert client.get("/api/summaries").json()["summaries"] == []

    assert client.delete("/api/blacklist/game").status_code == 200
    assert client.delete("/api/blacklist/game").status_code == 404
    assert client.get("/api/summaries").json()["summaries"] == []


def test_blacklist_rejects_blank_names(client):
    assert client.post("/api/blacklist", json={"application_name": "   "}).status_code == 400
    assert client.post("/api/blacklist", json={"application_name": ""}).status_code == 422


def test_settings_round_trip(client):
    assert client.get("/api/settings").json() == {
        "retention_days": 90,
        "poll_seconds": 2,
        "ignore_os_apps": True,
    }
    update = {"retention_days": 30, "poll_seconds": 5, "ignore_os_apps": False}
    response = client.put("/api/settings", json=update)
    assert response.status_code == 200
    assert client.get("/api/settings").json() == update


@pytest.mark.parametrize(
    "update",
    [
        {"retention_days": 0, "poll_seconds": 2, "ignore_os_apps": True},
        {"retention_days": 30, "poll_seconds": 11, "ignore_os_apps": True},
        {"retention_days": 30, "poll_seconds": 2},
    ],
)
def test_settings_validation(client, update):
    assert client.put("/api/settings", json=update).status_code == 422
