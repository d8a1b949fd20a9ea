"""
Tests for catalog endpoints, catalog caching and catalog locking.
"""

import pytest
from httpx import AsyncClient

from parkpass.core.errors import ProductLocked
from parkpass.services import cache_service
from parkpass.services.catalog_service import ensure_product_mutable


class FakeRedis:
    """In-process stand-in for the handful of Redis calls the cache makes."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, key):
        self.store.pop(key, None)

    async def scan_iter(self, match=None, count=None):
        prefix = (match or "").rstrip("*")
        for key in list(self.store):
            if key.startswith(prefix):
                yield key


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()

    async def _get_redis():
        return fake

    monkeypatch.setattr(cache_service, "get_redis", _get_redis)
    return fake


@pytest.mark.asyncio
async def test_list_products_on_sale(
    client: AsyncClient, bumper_cars, concert, retired_ticket, closed_game_ticket
):
    response = await client.get("/api/v1/catalog/products")
    assert response.status_code == 200
    data = response.json()
    assert data["cached"] is False

    names = [p["name"] for p in data["products"]]
    assert names == ["Bumper Cars Ride", "Summer Concert Entry"]

    game = data["products"][0]
    assert game["kind"] == "GAME"
    assert [tt["category"] for tt in game["ticket_types"]] == ["ADULT", "CHILD"]

    event = data["products"][1]
    assert event["event"]["capacity"] == 10
    assert "sold" not in event["event"]
    assert "remaining" not in event["event"]


@pytest.mark.asyncio
async def test_catalog_is_cached_and_invalidated(client: AsyncClient, fake_redis, visitor_headers, concert):
    first = await client.get("/api/v1/catalog/products")
    assert first.json()["cached"] is False
    assert cache_service.CATALOG_PRODUCTS_KEY in fake_redis.store

    second = await client.get("/api/v1/catalog/products")
    assert second.json()["cached"] is True
    assert second.json()["products"] == first.json()["products"]

    await client.post(
        "/api/v1/bookings/",
        json={"items": [{"ticket_type_id": concert.id, "quantity": 2}], "payment_method": "CASH"},
        headers=visitor_headers,
    )
    assert fake_redis.store == {}

    third = await client.get("/api/v1/catalog/products")
    assert third.json()["cached"] is False


@pytest.mark.asyncio
async def test_late_cache_write_holds_no_stale_counts(
    client: AsyncClient, fake_redis, visitor_headers, concert
):
    before_sale = (await client.get("/api/v1/catalog/products")).json()["products"]

    await client.post(
        "/api/v1/bookings/",
        json={"items": [{"ticket_type_id": concert.id, "quantity": 2}], "payment_method": "CASH"},
        headers=visitor_headers,
    )
    # A listing read before the sale is written after the invalidation.
    await cache_service.set_cached_catalog(before_sale)

    cached = await client.get("/api/v1/catalog/products")
    assert cached.json()["cached"] is True

    fake_redis.store.clear()
    fresh = await client.get("/api/v1/catalog/products")
    assert fresh.json()["cached"] is False
    assert cached.json()["products"] == fresh.json()["products"]

    availability = await client.get(f"/api/v1/catalog/events/{concert.product.event_id}/availability")
    assert availability.json()["remaining"] == 8


@pytest.mark.asyncio
async def test_event_availability(client: AsyncClient, magic_show):
    response = await client.get(f"/api/v1/catalog/events/{magic_show.product.event_id}/availability")
    assert response.status_code == 200
    assert response.json() == {
        "event_id": magic_show.product.event_id,
        "capacity": 3,
        "sold": 0,
        "remaining": 3,
        "is_active": True,
    }

    assert (await client.get("/api/v1/catalog/events/4242/availability")).status_code == 404


@pytest.mark.asyncio
async def test_sold_product_is_locked(db_session, book, bumper_cars, concert):
    await ensure_product_mutable(db_session, concert.product_id)
    await db_session.commit()

    await book((concert, 1))

    with pytest.raises(ProductLocked):
        await ensure_product_mutable(db_session, concert.product_id)
    await ensure_product_mutable(db_session, bumper_cars.id)
    await db_session.commit()


@pytest.mark.asyncio
async def test_health_and_metrics(client: AsyncClient):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert health.json()["cache"] == {"status": "disabled"}

    metrics = await client.get("/metrics")
    assert metrics.status_code == 200
    assert "park_booking_attempts_total" in metrics.text


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "gate-7-abc"})
    assert response.headers["X-Request-ID"] == "gate-7-abc"
