from fastapi.testclient import TestClient

import main


def test_health(db):
    with TestClient(main.app) as client:
        resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["database"] == "connected"
    assert body["backend"] == "sql"
    # the seeded admin account
    assert body["total_users"] == 1
    assert body["total_books"] == 0


def test_health_on_json_backend(db, monkeypatch, tmp_path):
    from config import settings

    monkeypatch.setattr(settings, "STORE_BACKEND", "json")
    monkeypatch.setattr(settings, "JSON_DATA_DIR", str(tmp_path / "data"))
    with TestClient(main.app) as client:
        resp = client.get("/health")

    body = resp.json()
    assert body["status"] == "ok"
    assert body["backend"] == "json"
    assert body["total_users"] == 1
    assert body["total_books"] == 0
