"""
Tests for the HTTP API.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from vehicle_scout.api import SearchRequest, app, get_cache, get_orchestrator
from vehicle_scout.cache import ResultCache
from vehicle_scout.models import SearchResult, SearchStats, SiteResult


class FakeOrchestrator:
    def __init__(self):
        self.queries = []

    async def search(self, query, cancel_token=None):
        self.queries.append(query)
        return SearchResult(
            listings=[],
            site_results=[SiteResult(site='LeBonCoin', ok=True)],
            stats=SearchStats(total_items=0, sites_scraped=1, total_ms=12),
        )


class MemoryCache:
    def __init__(self):
        self.store = {}

    async def get(self, query):
        return self.store.get(ResultCache.cache_key(query))

    async def set(self, query, result):
        self.store[ResultCache.cache_key(query)] = result


@pytest.fixture
def client():
    orchestrator = FakeOrchestrator()
    cache = MemoryCache()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_cache] = lambda: cache
    test_client = TestClient(app)
    test_client.orchestrator = orchestrator
    yield test_client
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "version": "0.1.0"}


def test_search_runs_then_hits_cache(client):
    body = {"brand": "Peugeot", "model": "308", "max_price": 15000, "excluded_sites": ["Kyump"]}

    first = client.post("/search", json=body)
    second = client.post("/search", json=body)

    assert first.status_code == 200
    assert first.json()["cached"] is False
    assert first.json()["stats"]["sites_scraped"] == 1
    assert second.json()["cached"] is True
    assert len(client.orchestrator.queries) == 1

    query = client.orchestrator.queries[0]
    assert query.brand == "Peugeot"
    assert query.excluded_sites == ("Kyump",)


def test_search_validation(client):
    assert client.post("/search", json={"model": "308"}).status_code == 422
    assert client.post("/search", json={"brand": ""}).status_code == 422
    assert client.post("/search", json={"brand": "Peugeot", "max_price": -1}).status_code == 422

    response = client.post("/search", json={"brand": "Peugeot", "min_price": 20000, "max_price": 10000})
    assert response.status_code == 422
    assert client.orchestrator.queries == []


def test_search_request_to_query():
    query = SearchRequest(brand=" Renault ", model="Clio", year_min=2018).to_query()

    assert query.brand == "Renault"
    assert query.model == "Clio"
    assert query.year_min == 2018
    assert query.excluded_sites == ()


def test_cache_key_is_stable_and_query_specific():
    request = SearchRequest(brand="Peugeot", model="308")

    assert ResultCache.cache_key(request.to_query()) == ResultCache.cache_key(request.to_query())
    assert ResultCache.cache_key(request.to_query()) != \
        ResultCache.cache_key(SearchRequest(brand="Peugeot", model="208").to_query())
    assert ResultCache.cache_key(request.to_query()).startswith("search:")


@pytest.mark.asyncio
async def test_disabled_cache_is_a_no_op():
    cache = ResultCache()
    query = SearchRequest(brand="Peugeot").to_query()

    await cache.set(query, {"listings": []})
    assert await cache.get(query) is None
    assert not cache.enabled


@pytest.mark.asyncio
async def test_cache_failures_do_not_fail_the_search():
    redis_client = AsyncMock()
    redis_client.get.side_effect = ConnectionError("redis down")
    redis_client.setex.side_effect = ConnectionError("redis down")
    cache = ResultCache(redis_client)
    query = SearchRequest(brand="Peugeot").to_query()

    assert await cache.get(query) is None
    await cache.set(query, {"listings": []})
    redis_client.setex.assert_awaited_once()


@pytest.mark.asyncio
async def test_cache_round_trip_uses_ttl():
    redis_client = AsyncMock()
    redis_client.get.return_value = '{"listings": [], "cancelled": false}'
    cache = ResultCache(redis_client)
    query = SearchRequest(brand="Peugeot").to_query()

    await cache.set(query, {"listings": []})

    key, ttl, _ = redis_client.setex.call_args.args
    assert key == ResultCache.cache_key(query)
    assert ttl == 300
    assert await cache.get(query) == {"listings": [], "cancelled": False}
