"""
Tests for gate redemption against master tickets.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select, update

from parkpass.core.errors import (
    InsufficientBalance,
    ProductNotOnTicket,
    TicketExpired,
    TicketNotActive,
    TicketNotFound,
)
from parkpass.db.base import utcnow
from parkpass.models import Entitlement, Ticket
from parkpass.models.enums import EntitlementStatus, TicketStatus
from parkpass.services.cancellation_service import cancel_booking
from parkpass.services.redemption_service import get_ticket, validate_and_redeem


@pytest.fixture
def redeem(session_factory):
    async def _redeem(code, product_id, quantity=1):
        async with session_factory() as session:
            return await validate_and_redeem(session, code, product_id, quantity)

    return _redeem


@pytest.mark.asyncio
async def test_redeem_until_fully_used(book, redeem, game_adult):
    booking = await book((game_adult, 2))
    code = booking.ticket.code

    first = await redeem(code, game_adult.product_id)
    assert first.remaining == 1
    assert first.entitlement.status == EntitlementStatus.AVAILABLE.value
    assert first.ticket_status == TicketStatus.ACTIVE

    second = await redeem(code, game_adult.product_id)
    assert second.remaining == 0
    assert second.entitlement.status == EntitlementStatus.USED.value
    assert second.ticket_status == TicketStatus.FULLY_USED

    with pytest.raises(InsufficientBalance):
        await redeem(code, game_adult.product_id)


@pytest.mark.asyncio
async def test_ticket_stays_active_while_any_balance_left(book, redeem, game_adult, concert):
    booking = await book((game_adult, 1), (concert, 1))
    code = booking.ticket.code

    result = await redeem(code, game_adult.product_id)
    assert result.remaining == 0
    assert result.ticket_status == TicketStatus.ACTIVE

    result = await redeem(code, concert.product_id)
    assert result.ticket_status == TicketStatus.FULLY_USED


@pytest.mark.asyncio
async def test_group_redeem_in_one_scan(book, redeem, game_adult):
    booking = await book((game_adult, 4))

    result = await redeem(booking.ticket.code, game_adult.product_id, quantity=3)

    assert result.remaining == 1
    assert result.entitlement.used_quantity == 3


@pytest.mark.asyncio
async def test_unknown_ticket_code(redeem, game_adult):
    with pytest.raises(TicketNotFound):
        await redeem("TKT-DOESNOTEXIST", game_adult.product_id)


@pytest.mark.asyncio
async def test_product_not_on_ticket(book, redeem, game_adult, concert):
    booking = await book((game_adult, 1))

    with pytest.raises(ProductNotOnTicket) as exc_info:
        await redeem(booking.ticket.code, concert.product_id)
    assert exc_info.value.product_id == concert.product_id


@pytest.mark.asyncio
async def test_expired_ticket_is_refused(book, redeem, db_session, game_adult):
    booking = await book((game_adult, 2))
    await db_session.execute(
        update(Ticket)
        .where(Ticket.id == booking.ticket.id)
        .values(expires_at=utcnow() - timedelta(minutes=5))
    )
    await db_session.commit()

    with pytest.raises(TicketExpired):
        await redeem(booking.ticket.code, game_adult.product_id)

    ticket = await get_ticket(db_session, booking.ticket.code)
    await db_session.commit()
    assert ticket.effective_status() == TicketStatus.EXPIRED
    assert ticket.entitlements[0].used_quantity == 0


@pytest.mark.asyncio
async def test_cancelled_ticket_is_refused(book, redeem, db_session, game_adult):
    booking = await book((game_adult, 2))
    await cancel_booking(db_session, booking.id)

    with pytest.raises(TicketNotActive):
        await redeem(booking.ticket.code, game_adult.product_id)


@pytest.mark.asyncio
async def test_concurrent_scans_never_overspend(book, redeem, session_factory, game_adult):
    """Five gates scan the same 3-use pass at once: exactly 3 scans succeed."""
    booking = await book((game_adult, 3))
    code = booking.ticket.code

    results = await asyncio.gather(
        *(redeem(code, game_adult.product_id) for _ in range(5)),
        return_exceptions=True,
    )

    refused = [r for r in results if isinstance(r, InsufficientBalance)]
    assert len(refused) == 2
    assert sorted(r.remaining for r in results if not isinstance(r, Exception)) == [0, 1, 2]

    async with session_factory() as session:
        used = (
            await session.execute(
                select(Entitlement.used_quantity).where(Entitlement.ticket_id == booking.ticket.id)
            )
        ).scalar_one()
    assert used == 3


@pytest.mark.asyncio
async def test_three_ride_game_pass(book, redeem, game_adult):
    """Buy 3 rides, ride 3 times, the fourth scan is refused."""
    booking = await book((game_adult, 3))
    code = booking.ticket.code

    remaining = [(await redeem(code, game_adult.product_id)).remaining for _ in range(3)]
    assert remaining == [2, 1, 0]

    with pytest.raises(InsufficientBalance) as exc_info:
        await redeem(code, game_adult.product_id)
    assert exc_info.value.remaining == 0
