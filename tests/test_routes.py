import pytest

from search_api.config import settings


def _create_server(client, server_id="srv1", backend_id="memory", config=None, expect=201):
    r = client.post(
        "/servers",
        json={"id": server_id, "name": server_id.upper(), "backend_id": backend_id, "backend_config": config or {}},
    )
    assert r.status_code == expect, r.text
    return r.json()


def _create_index(client, index_id="idx1", server_id="srv1", fields=None):
    r = client.post(
        "/indexes",
        json={"id": index_id, "name": index_id.upper(), "server_id": server_id, "fields": fields or {"title": "text"}},
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_backends_listed(client):
    r = client.get("/backends")
    assert r.status_code == 200
    assert {b["id"] for b in r.json()} == {"database", "memory", "null_backend"}


def test_server_crud(client):
    created = _create_server(client)
    assert created["backend_config"] == {"min_chars": 1}
    assert created["valid_backend"] is True

    _create_server(client, expect=409)
    assert [s["id"] for s in client.get("/servers").json()] == ["srv1"]

    r = client.patch("/servers/srv1", json={"name": "Renamed", "backend_config": {"min_chars": 2}})
    assert r.status_code == 200
    assert r.json()["name"] == "Renamed"
    assert r.json()["backend_config"] == {"min_chars": 2}

    assert client.delete("/servers/srv1").status_code == 204
    r = client.get("/servers/srv1")
    assert r.status_code == 404
    assert "request_id" in r.json()


def test_invalid_backend_and_config_rejected(client):
    r = client.post("/servers", json={"id": "srv1", "name": "x", "backend_id": "solr"})
    assert r.status_code == 422
    assert r.json()["backend_id"] == "solr"

    r = client.post("/servers", json={"id": "srv1", "name": "x", "backend_id": "memory", "backend_config": {"min_chars": 0}})
    assert r.status_code == 422
    assert r.json()["field"] == "min_chars"

    r = client.post("/servers", json={"id": "Not A Machine Name", "name": "x", "backend_id": "memory"})
    assert r.status_code == 422
    assert r.json()["error"] == "ValidationError"
    assert r.json()["detail"][0]["loc"][-1] == "id"


def test_index_items_and_search(client):
    _create_server(client)
    _create_index(client, fields={"title": "text", "type": "string"})

    r = client.post(
        "/indexes/idx1/items",
        json={"items": {"1": {"title": "Hello world", "type": "page"}, "2": {"title": "Goodbye", "type": "page"}}},
    )
    assert r.status_code == 200
    assert sorted(r.json()["indexed"]) == ["1", "2"]

    r = client.post("/indexes/idx1/search", json={"keys": "hello"})
    assert r.status_code == 200
    body = r.json()
    assert body["result_count"] == 1
    assert body["items"][0]["id"] == "1"

    r = client.post("/indexes/idx1/items/delete", json={"ids": ["1"]})
    assert r.json() == {"ok": True, "pending_tasks": 0}
    assert client.post("/indexes/idx1/search", json={}).json()["result_count"] == 1


def test_failed_operation_reports_pending_task(client):
    _create_server(client, backend_id="null_backend", config={"fail": True})
    _create_index(client)

    r = client.post("/indexes/idx1/items/delete", json={})
    assert r.status_code == 200
    assert r.json() == {"ok": False, "pending_tasks": 2}

    tasks = client.get("/tasks", params={"server_id": "srv1"}).json()
    assert tasks["count"] == 2
    assert [t["type"] for t in tasks["items"]] == ["add_index", "delete_all_items"]

    r = client.post("/indexes/idx1/search", json={"keys": "x"})
    assert r.status_code == 502


def test_execute_tasks_after_recovery(client):
    _create_server(client, backend_id="null_backend", config={"fail": True})
    _create_index(client)

    r = client.post("/tasks/execute", json={})
    assert r.json()["complete"] is False

    client.patch("/servers/srv1", json={"backend_config": {"fail": False}})
    r = client.post("/tasks/execute", json={"server_id": "srv1"})
    assert r.status_code == 200
    assert r.json() == {"complete": True, "executed": 1, "stale": 0, "failed": 0, "remaining": 0}


def test_disable_server_cascades_to_indexes(client):
    _create_server(client)
    _create_index(client)
    assert client.get("/indexes/idx1").json()["status"] is True

    r = client.post("/servers/srv1/disable")
    assert r.json()["status"] is False
    assert client.get("/indexes/idx1").json()["status"] is False
    assert [i["id"] for i in client.get("/servers/srv1/indexes").json()] == ["idx1"]



def test_index_enable_requires_enabled_server(client):
    _create_server(client)
    _create_index(client)

    r = client.post("/indexes/idx1/disable")
    assert r.status_code == 200
    assert r.json()["status"] is False

    client.post("/servers/srv1/disable")
    r = client.post("/indexes/idx1/enable")
    assert r.status_code == 409
    assert client.get("/indexes/idx1").json()["status"] is False

    client.post("/servers/srv1/enable")
    r = client.post("/indexes/idx1/enable")
    assert r.status_code == 200
    assert r.json()["status"] is True


def test_server_backend_defaults_to_configured_backend(client, monkeypatch):
    monkeypatch.setattr(settings, "DEFAULT_BACKEND", "memory")
    r = client.post("/servers", json={"id": "srv1", "name": "Default"})
    assert r.status_code == 201, r.text
    assert r.json()["backend_id"] == "memory"

def test_move_and_delete_index(client):
    _create_server(client, "srv1")
    _create_server(client, "srv2")
    _create_index(client)

    r = client.put("/indexes/idx1/server", json={"server_id": "srv2"})
    assert r.status_code == 200
    assert r.json()["server_id"] == "srv2"
    assert client.get("/servers/srv1/indexes").json() == []

    r = client.put("/indexes/idx1/fields", json={"fields": {"title": "text", "body": "text"}})
    assert r.json()["ok"] is True
    assert client.get("/indexes/idx1").json()["needs_reindex"] is True

    assert client.delete("/indexes/idx1").status_code == 204
    assert client.get("/indexes/idx1").status_code == 404


def test_detached_index_cannot_be_searched(client):
    r = client.post("/indexes", json={"id": "idx1", "name": "Loose"})
    assert r.status_code == 201
    assert r.json()["status"] is False
    assert client.post("/indexes/idx1/search", json={}).status_code == 409


@pytest.fixture
def token(monkeypatch):
    monkeypatch.setattr(settings, "API_TOKEN", "s3cret")
    return "s3cret"


def test_mutating_routes_require_token(client, token):
    r = client.post("/servers", json={"id": "srv1", "name": "x", "backend_id": "memory"})
    assert r.status_code == 401

    r = client.post(
        "/servers",
        json={"id": "srv1", "name": "x", "backend_id": "memory"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert r.status_code == 201
    assert client.get("/servers").status_code == 200
