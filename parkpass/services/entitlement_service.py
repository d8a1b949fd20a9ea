"""
Entitlement ledger: per-product usage balance on a master ticket.

Issue happens once, inside the booking transaction. Redeem uses the same
atomic-conditional-update discipline as the capacity service, so two gate
scanners hitting the same pass at once can never spend more than
`total_quantity` between them:

    UPDATE entitlements
    SET used_quantity = used_quantity + :qty,
        status = CASE WHEN used_quantity + :qty = total_quantity THEN 'USED' ELSE 'AVAILABLE' END
    WHERE id = :id AND used_quantity + :qty <= total_quantity
    RETURNING total_quantity - used_quantity
"""

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parkpass.core.errors import InsufficientBalance, InvalidQuantity
from parkpass.core.logging import get_logger
from parkpass.db.base import utcnow
from parkpass.models.enums import EntitlementStatus
from parkpass.models.ticket import Entitlement

logger = get_logger(__name__)


async def issue(db: AsyncSession, ticket_id: int, product_id: int, quantity: int) -> Entitlement:
    """Attach a fresh balance of `quantity` uses of `product_id` to the ticket."""
    if quantity <= 0:
        raise InvalidQuantity(quantity)

    entitlement = Entitlement(
        ticket_id=ticket_id,
        product_id=product_id,
        total_quantity=quantity,
        used_quantity=0,
        status=EntitlementStatus.AVAILABLE.value,
    )
    db.add(entitlement)
    await db.flush()

    logger.debug(
        "entitlement_issued",
        ticket_id=ticket_id,
        product_id=product_id,
        total_quantity=quantity,
    )
    return entitlement


async def redeem(db: AsyncSession, entitlement_id: int, quantity: int) -> int:
    """
    Consume `quantity` uses. Returns the remaining balance after this redemption.
    Raises InsufficientBalance if the balance cannot cover the request.
    """
    if quantity <= 0:
        raise InvalidQuantity(quantity)

    new_used = Entitlement.used_quantity + quantity
    result = await db.execute(
        update(Entitlement)
        .where(
            Entitlement.id == entitlement_id,
            new_used <= Entitlement.total_quantity,
        )
        .values(
            used_quantity=new_used,
            status=case(
                (new_used == Entitlement.total_quantity, EntitlementStatus.USED.value),
                else_=EntitlementStatus.AVAILABLE.value,
            ),
            last_used_at=utcnow(),
        )
        .returning(Entitlement.total_quantity - Entitlement.used_quantity)
        .execution_options(synchronize_session=False)
    )
    remaining = result.scalar_one_or_none()

    if remaining is None:
        current = await db.execute(
            select(Entitlement.product_id, Entitlement.total_quantity, Entitlement.used_quantity)
            .where(Entitlement.id == entitlement_id)
        )
        row = current.one()
        balance = row.total_quantity - row.used_quantity
        logger.info(
            "entitlement_insufficient_balance",
            entitlement_id=entitlement_id,
            requested=quantity,
            remaining=balance,
        )
        raise InsufficientBalance(row.product_id, requested=quantity, remaining=balance)

    logger.debug("entitlement_consumed", entitlement_id=entitlement_id, quantity=quantity, remaining=remaining)
    return remaining
