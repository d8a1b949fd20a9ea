"""
Tests for booking cancellation and refund.
"""

import pytest

from parkpass.core.errors import AlreadyCancelled, BookingNotFound
from parkpass.models.enums import BookingStatus, PaymentStatus, TicketStatus
from parkpass.services.cancellation_service import cancel_booking
from parkpass.services.redemption_service import validate_and_redeem


@pytest.fixture
def cancel(session_factory):
    async def _cancel(booking_id):
        async with session_factory() as session:
            return await cancel_booking(session, booking_id)

    return _cancel


@pytest.mark.asyncio
async def test_cancel_releases_capacity_and_refunds(book, cancel, game_adult, concert, sold_of):
    booking = await book((game_adult, 1), (concert, 4))
    assert await sold_of(concert.product.event_id) == 4

    cancelled = await cancel(booking.id)

    assert cancelled.status == BookingStatus.CANCELLED.value
    assert cancelled.cancelled_at is not None
    assert all(p.status == PaymentStatus.REFUNDED.value for p in cancelled.payments)
    assert all(p.refunded_at is not None for p in cancelled.payments)
    assert cancelled.ticket.effective_status() == TicketStatus.CANCELLED
    assert await sold_of(concert.product.event_id) == 0


@pytest.mark.asyncio
async def test_double_cancel_releases_once(book, cancel, concert, sold_of):
    first = await book((concert, 2))
    await book((concert, 2), owner_id=7)

    await cancel(first.id)
    with pytest.raises(AlreadyCancelled):
        await cancel(first.id)

    assert await sold_of(concert.product.event_id) == 2


@pytest.mark.asyncio
async def test_cancel_unknown_booking(cancel):
    with pytest.raises(BookingNotFound):
        await cancel(4242)


@pytest.mark.asyncio
async def test_cancel_frees_places_for_others(book, cancel, magic_show):
    booking = await book((magic_show, 3))

    await cancel(booking.id)
    replacement = await book((magic_show, 3), owner_id=8)

    assert replacement.status == BookingStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_cancel_keeps_redeemed_usage(book, cancel, session_factory, game_adult):
    booking = await book((game_adult, 3))
    async with session_factory() as session:
        await validate_and_redeem(session, booking.ticket.code, game_adult.product_id, 2)

    cancelled = await cancel(booking.id)

    [entitlement] = cancelled.ticket.entitlements
    assert entitlement.used_quantity == 2
    assert cancelled.ticket.status == TicketStatus.CANCELLED.value
