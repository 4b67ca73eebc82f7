"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from query_harness.app import app, get_connection_manager


@pytest.fixture
def api(manager):
    app.dependency_overrides[get_connection_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def target_body():
    return {
        "mongo_uri": "mongodb://localhost:27017",
        "database_name": "plp_bookstore",
        "collection_name": "books",
    }


def test_health(api):
    resp = api.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_run_operations(api, target_body, books):
    body = dict(target_body, operations=[
        {"label": "fiction", "kind": "query", "filter": {"genre": "Fiction"}},
        {"label": "reprice", "kind": "update", "filter": {"title": "1984"},
         "update": {"$set": {"price": 11.99}}},
        {"label": "by genre", "kind": "aggregate", "pipeline": [
            {"$group": {"_id": "$genre", "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
        ]},
    ])

    resp = api.post("/run", json=body)

    assert resp.status_code == 200
    data = resp.json()
    assert data["succeeded"] == 3
    fiction, reprice, by_genre = data["results"]
    assert fiction["kind"] == "query"
    assert len(fiction["documents"]) == 3
    assert isinstance(fiction["documents"][0]["_id"], str)
    assert reprice["count"] == 1
    assert by_genre["documents"][0] == {"_id": "Fiction", "count": 3}


def test_run_rejects_malformed_operation(api, target_body):
    body = dict(target_body, operations=[{"label": "u", "kind": "update", "filter": {}}])
    assert api.post("/run", json=body).status_code == 422


def test_run_connection_error(api, target_body, client_factory):
    client_factory.fail_from = 1
    body = dict(target_body, operations=[{"label": "q", "kind": "query"}])

    resp = api.post("/run", json=body)

    assert resp.status_code == 400
    assert "timed out" in resp.json()["detail"]


def test_run_demo_section(api, target_body, books):
    resp = api.post("/run-demo", json=dict(target_body, sections=["advanced"]))

    assert resp.status_code == 200
    section = resp.json()["sections"]["advanced"]
    assert section["title"] == "Advanced Queries"
    assert section["failed"] == 0
    projection = section["results"][1]
    assert all(set(doc) == {"title", "author", "price"} for doc in projection["documents"])


def test_run_demo_unknown_section(api, target_body):
    resp = api.post("/run-demo", json=dict(target_body, sections=["bogus"]))
    assert resp.status_code == 400


def test_get_indexes(api, target_body, books):
    books.create_index([("title", 1)])

    resp = api.post("/get-indexes", json=target_body)

    assert resp.status_code == 200
    data = resp.json()
    assert "title_1" in [idx["name"] for idx in data["indexes"]]
    assert "title" in data["indexed_fields"]
