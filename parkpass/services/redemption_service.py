"""
Gate redemption: validate a master ticket and consume entitlement balance.

Per entitlement:   AVAILABLE --(partial use)--> AVAILABLE --(last use)--> USED
Per ticket:        FULLY_USED is read-time only (every entitlement USED), so
                   there is no second counter that could drift.

Checks run in this order and stop at the first failure:
  TicketNotFound -> TicketNotActive -> TicketExpired -> ProductNotOnTicket
  -> InsufficientBalance (from the ledger's conditional update)
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from parkpass.core.errors import (
    DomainError,
    ProductNotOnTicket,
    TicketExpired,
    TicketNotActive,
    TicketNotFound,
)
from parkpass.core.logging import get_logger
from parkpass.core.metrics import record_redemption
from parkpass.db.base import utcnow
from parkpass.db.session import atomic
from parkpass.models.enums import TicketStatus
from parkpass.models.ticket import Entitlement, Ticket
from parkpass.services import entitlement_service

logger = get_logger(__name__)


@dataclass(frozen=True)
class Redemption:
    ticket: Ticket
    entitlement: Entitlement
    remaining: int
    ticket_status: TicketStatus


async def _load_ticket(db: AsyncSession, ticket_code: str, lock: bool = False) -> Ticket:
    stmt = (
        select(Ticket)
        .where(Ticket.code == ticket_code)
        .options(selectinload(Ticket.entitlements), selectinload(Ticket.booking))
        .execution_options(populate_existing=True)
    )
    if lock:
        # Shared lock: concurrent scans proceed, a cancellation waits for us.
        stmt = stmt.with_for_update(read=True, of=Ticket)
    ticket = (await db.execute(stmt)).scalar_one_or_none()
    if ticket is None:
        raise TicketNotFound(ticket_code)
    return ticket


def _ensure_redeemable(ticket: Ticket) -> None:
    if ticket.status == TicketStatus.CANCELLED.value:
        raise TicketNotActive(ticket.code, ticket.status)
    if ticket.status == TicketStatus.EXPIRED.value or ticket.is_expired(utcnow()):
        raise TicketExpired(ticket.code)


async def get_ticket(db: AsyncSession, ticket_code: str) -> Ticket:
    """Ticket with entitlements and owning booking, for display."""
    return await _load_ticket(db, ticket_code)


async def validate_and_redeem(
    db: AsyncSession,
    ticket_code: str,
    product_id: int,
    quantity: int = 1,
) -> Redemption:
    """Consume `quantity` uses of `product_id` from the ticket, atomically."""
    try:
        async with atomic(db):
            ticket = await _load_ticket(db, ticket_code, lock=True)
            _ensure_redeemable(ticket)

            entitlement = ticket.entitlement_for(product_id)
            if entitlement is None:
                raise ProductNotOnTicket(ticket_code, product_id)

            remaining = await entitlement_service.redeem(db, entitlement.id, quantity)

            # Reload so the returned rows reflect the UPDATE.
            ticket = await _load_ticket(db, ticket_code)
            entitlement = ticket.entitlement_for(product_id)
    except DomainError as exc:
        record_redemption(exc.code.value.lower())
        logger.info(
            "redemption_refused",
            ticket_code=ticket_code,
            product_id=product_id,
            quantity=quantity,
            code=exc.code.value,
        )
        raise

    status = ticket.effective_status()
    record_redemption("redeemed")
    logger.info(
        "entitlement_redeemed",
        ticket_code=ticket_code,
        product_id=product_id,
        quantity=quantity,
        remaining=remaining,
        entitlement_status=entitlement.status,
        ticket_status=status.value,
    )
    return Redemption(ticket=ticket, entitlement=entitlement, remaining=remaining, ticket_status=status)
