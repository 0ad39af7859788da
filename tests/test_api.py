"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from relay_search.common.metrics import MetricsCollector
from relay_search.hybrid.search_manager import SearchManager
from relay_search.index_store.memory import MemoryIndexStore
from relay_search.main import app
from relay_search.models import EntityType


@pytest.fixture
def client():
    store = MemoryIndexStore()
    store.add_document(
        EntityType.VIDEO, "v1", {"title": "Bitcoin explained"},
        created_at=100, record={"id": "v1", "kind": 34235},
    )
    store.add_document(EntityType.USER, "u1", {"name": "bitcoiner"}, created_at=50)

    app.state.search_manager = SearchManager(store)
    app.state.metrics_collector = MetricsCollector("test-service")
    yield TestClient(app)
    del app.state.search_manager
    del app.state.metrics_collector


def test_parse_endpoint(client):
    response = client.get("/api/v1/parse", params={"q": "type:user #Nostr author:abc hello world"})

    assert response.status_code == 200
    assert response.json() == {
        "raw": "type:user #Nostr author:abc hello world",
        "terms": ["hello", "world"],
        "entity_type": "user",
        "filters": {"author": "abc", "hashtags": ["nostr"]},
        "lexical_query": "hello* OR world*",
        "strategy": "single",
    }


def test_search_endpoint(client):
    response = client.post("/api/v1/search", json={"query": "bitcoin", "limit": 10})

    assert response.status_code == 200
    data = response.json()
    assert data["strategy"] == "unified"
    assert data["total"] == 2
    assert [r["entity_id"] for r in data["results"]] == ["v1", "u1"]
    assert data["results"][0]["snippet"] == "<mark>Bitcoin</mark> explained"
    assert data["results"][0]["entity"] is None


def test_search_endpoint_hydrates(client):
    response = client.post("/api/v1/search", json={"query": "type:video bitcoin", "hydrate": True})

    assert response.status_code == 200
    assert response.json()["results"][0]["entity"] == {"id": "v1", "kind": 34235}


def test_search_endpoint_validates_input(client):
    assert client.post("/api/v1/search", json={"query": "x", "limit": -1}).status_code == 422
    assert client.post("/api/v1/search", json={"limit": 5}).status_code == 422


def test_health_and_metrics(client):
    assert client.get("/health").json()["status"] == "healthy"

    client.post("/api/v1/search", json={"query": "bitcoin"})
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "http_requests_total" in metrics.text


def test_health_without_manager():
    response = TestClient(app).get("/health")
    assert response.status_code == 503
