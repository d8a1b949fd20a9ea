"""
Tests for booking endpoints including concurrency scenarios.
"""

import asyncio
from decimal import Decimal

import pytest
from httpx import AsyncClient

from parkpass.services import booking_service


def _cart(*lines, payment_method="TELEBIRR", **extra):
    return {
        "items": [{"ticket_type_id": tt.id, "quantity": qty} for tt, qty in lines],
        "payment_method": payment_method,
        **extra,
    }


@pytest.mark.asyncio
async def test_create_booking(client: AsyncClient, visitor_headers, game_adult, concert):
    """Successful booking returns the full booking with its master ticket."""
    response = await client.post(
        "/api/v1/bookings/",
        json=_cart((game_adult, 2), (concert, 1)),
        headers=visitor_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "CONFIRMED"
    assert data["user_id"] == 1
    assert Decimal(data["total_amount"]) == Decimal("450.00")
    assert len(data["items"]) == 2
    assert data["payments"][0]["status"] == "COMPLETED"
    assert data["payments"][0]["method"] == "TELEBIRR"

    ticket = data["ticket"]
    assert ticket["status"] == "ACTIVE"
    assert {e["product_id"]: e["remaining"] for e in ticket["entitlements"]} == {
        game_adult.product_id: 2,
        concert.product_id: 1,
    }

    availability = await client.get(f"/api/v1/catalog/events/{concert.product.event_id}/availability")
    assert availability.json()["remaining"] == 9


@pytest.mark.asyncio
async def test_guest_booking(client: AsyncClient, game_adult):
    response = await client.post(
        "/api/v1/bookings/",
        json=_cart((game_adult, 1), guest={"email": "guest@example.com", "name": "Hana"}),
    )
    assert response.status_code == 201
    assert response.json()["guest_email"] == "guest@example.com"
    assert response.json()["user_id"] is None


@pytest.mark.asyncio
async def test_anonymous_booking_without_guest(client: AsyncClient, game_adult):
    response = await client.post("/api/v1/bookings/", json=_cart((game_adult, 1)))
    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_CART"


@pytest.mark.asyncio
async def test_invalid_token(client: AsyncClient, game_adult):
    response = await client.post(
        "/api/v1/bookings/",
        json=_cart((game_adult, 1)),
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_book_sold_out_event(client: AsyncClient, visitor_headers, magic_show):
    """Booking more than the event holds returns 409."""
    response = await client.post(
        "/api/v1/bookings/", json=_cart((magic_show, 4)), headers=visitor_headers
    )
    assert response.status_code == 409
    assert response.json()["code"] == "CAPACITY_EXCEEDED"


@pytest.mark.asyncio
async def test_unknown_ticket_type(client: AsyncClient, visitor_headers, game_adult):
    response = await client.post(
        "/api/v1/bookings/",
        json={"items": [{"ticket_type_id": 9999, "quantity": 1}], "payment_method": "CASH"},
        headers=visitor_headers,
    )
    assert response.status_code == 422
    assert response.json()["code"] == "UNKNOWN_TICKET_TYPE"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"items": [], "payment_method": "CASH"},
        {"items": [{"ticket_type_id": 1, "quantity": 0}], "payment_method": "CASH"},
        {"items": [{"ticket_type_id": 1, "quantity": 1}], "payment_method": "BITCOIN"},
    ],
)
async def test_request_validation(client: AsyncClient, visitor_headers, payload):
    response = await client.post("/api/v1/bookings/", json=payload, headers=visitor_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_my_bookings(client: AsyncClient, visitor_headers, other_visitor_headers, game_adult):
    await client.post("/api/v1/bookings/", json=_cart((game_adult, 1)), headers=visitor_headers)
    await client.post("/api/v1/bookings/", json=_cart((game_adult, 2)), headers=visitor_headers)
    await client.post("/api/v1/bookings/", json=_cart((game_adult, 1)), headers=other_visitor_headers)

    response = await client.get("/api/v1/bookings/", headers=visitor_headers)
    assert response.status_code == 200
    assert len(response.json()) == 2
    assert all(b["user_id"] == 1 for b in response.json())

    assert (await client.get("/api/v1/bookings/")).status_code == 401


@pytest.mark.asyncio
async def test_get_booking_visibility(
    client: AsyncClient, visitor_headers, other_visitor_headers, admin_headers, game_adult
):
    created = await client.post("/api/v1/bookings/", json=_cart((game_adult, 1)), headers=visitor_headers)
    booking_id = created.json()["id"]

    assert (await client.get(f"/api/v1/bookings/{booking_id}", headers=visitor_headers)).status_code == 200
    assert (await client.get(f"/api/v1/bookings/{booking_id}", headers=admin_headers)).status_code == 200
    assert (
        await client.get(f"/api/v1/bookings/{booking_id}", headers=other_visitor_headers)
    ).status_code == 404

    missing = await client.get("/api/v1/bookings/4242", headers=visitor_headers)
    assert missing.status_code == 404
    assert missing.json()["code"] == "BOOKING_NOT_FOUND"


@pytest.mark.asyncio
async def test_guest_reference_lookup(client: AsyncClient, game_adult):
    created = await client.post(
        "/api/v1/bookings/",
        json=_cart((game_adult, 1), guest={"email": "Guest@Example.com"}),
    )
    reference = created.json()["reference"]

    found = await client.get(
        f"/api/v1/bookings/reference/{reference}", params={"email": "guest@example.com"}
    )
    assert found.status_code == 200
    assert found.json()["reference"] == reference

    wrong = await client.get(
        f"/api/v1/bookings/reference/{reference}", params={"email": "someone@example.com"}
    )
    assert wrong.status_code == 404


@pytest.mark.asyncio
async def test_cancel_booking(client: AsyncClient, visitor_headers, concert):
    """Cancellation restores event places and refunds the payment."""
    created = await client.post("/api/v1/bookings/", json=_cart((concert, 3)), headers=visitor_headers)
    booking_id = created.json()["id"]

    response = await client.delete(f"/api/v1/bookings/{booking_id}", headers=visitor_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "CANCELLED"
    assert Decimal(data["refunded_amount"]) == Decimal("750.00")

    availability = await client.get(f"/api/v1/catalog/events/{concert.product.event_id}/availability")
    assert availability.json()["remaining"] == 10


@pytest.mark.asyncio
async def test_cancel_already_cancelled(client: AsyncClient, visitor_headers, concert):
    """Double-cancelling returns 400."""
    created = await client.post("/api/v1/bookings/", json=_cart((concert, 1)), headers=visitor_headers)
    booking_id = created.json()["id"]

    await client.delete(f"/api/v1/bookings/{booking_id}", headers=visitor_headers)
    response = await client.delete(f"/api/v1/bookings/{booking_id}", headers=visitor_headers)

    assert response.status_code == 400
    assert response.json()["code"] == "ALREADY_CANCELLED"


@pytest.mark.asyncio
async def test_cancel_someone_elses_booking(
    client: AsyncClient, visitor_headers, other_visitor_headers, admin_headers, concert
):
    created = await client.post("/api/v1/bookings/", json=_cart((concert, 1)), headers=visitor_headers)
    booking_id = created.json()["id"]

    response = await client.delete(f"/api/v1/bookings/{booking_id}", headers=other_visitor_headers)
    assert response.status_code == 404

    response = await client.delete(f"/api/v1/bookings/{booking_id}", headers=admin_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_concurrent_requests_never_oversell(client: AsyncClient, visitor_headers, magic_show):
    """
    Simulate 8 concurrent checkout requests for an event with 3 places.
    Exactly 3 should succeed, the rest get 409.
    """
    responses = await asyncio.gather(
        *(
            client.post("/api/v1/bookings/", json=_cart((magic_show, 1)), headers=visitor_headers)
            for _ in range(8)
        )
    )

    statuses = sorted(r.status_code for r in responses)
    assert statuses.count(201) == 3
    assert statuses.count(409) == 5

    availability = await client.get(f"/api/v1/catalog/events/{magic_show.product.event_id}/availability")
    assert availability.json()["sold"] == 3


@pytest.mark.asyncio
async def test_storage_failure_returns_503(client: AsyncClient, visitor_headers, magic_show, monkeypatch):
    monkeypatch.setattr(booking_service, "generate_transaction_reference", lambda: "PAY-DUPLICATE")

    first = await client.post("/api/v1/bookings/", json=_cart((magic_show, 1)), headers=visitor_headers)
    assert first.status_code == 201

    second = await client.post("/api/v1/bookings/", json=_cart((magic_show, 1)), headers=visitor_headers)
    assert second.status_code == 503
    assert second.json()["code"] == "PERSISTENCE_FAILURE"

    availability = await client.get(f"/api/v1/catalog/events/{magic_show.product.event_id}/availability")
    assert availability.json()["sold"] == 1
