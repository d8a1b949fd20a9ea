"""
Capacity manager for event-backed products.

CONCURRENCY STRATEGY: Atomic Conditional Update
===============================================

Problem:
  Two carts try to buy the last 2 places of an event simultaneously.
  Both read sold=8/10, both write sold=10+2.
  Result: Oversell.

Solution:
  The comparison and the increment are one statement:

    UPDATE events SET sold = sold + :qty
    WHERE id = :event_id AND is_active AND sold + :qty <= capacity
    RETURNING sold

  No row returned means the event is full (or gone) -> CapacityExceeded.
  The UPDATE takes the row lock, so a concurrent transaction waits for us and
  then re-evaluates the WHERE against the committed value (PostgreSQL READ
  COMMITTED semantics). There is no read-then-write window and no version
  retry loop; a full event fails immediately instead of queueing.

  Release is the mirror image, floored at zero so a duplicate release can
  never drive the counter negative. CHECK constraints on the table remain
  the last line of defence.

Neither function commits. They run inside the booking or cancellation
transaction and roll back with it.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parkpass.core.errors import CapacityExceeded, InvalidQuantity
from parkpass.core.logging import get_logger
from parkpass.core.metrics import capacity_rejections
from parkpass.models.event import Event

logger = get_logger(__name__)


@dataclass(frozen=True)
class Availability:
    event_id: int
    capacity: int
    sold: int
    is_active: bool

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.sold, 0)


async def availability(db: AsyncSession, event_id: int) -> Optional[Availability]:
    """Point-in-time snapshot. Advisory only: never use it to decide a reservation."""
    result = await db.execute(
        select(Event.capacity, Event.sold, Event.is_active).where(Event.id == event_id)
    )
    row = result.one_or_none()
    if row is None:
        return None
    return Availability(event_id=event_id, capacity=row.capacity, sold=row.sold, is_active=row.is_active)


async def reserve(db: AsyncSession, event_id: int, quantity: int) -> int:
    """Atomically add `quantity` to the event's sold counter. Returns the new value."""
    if quantity <= 0:
        raise InvalidQuantity(quantity)

    result = await db.execute(
        update(Event)
        .where(
            Event.id == event_id,
            Event.is_active.is_(True),
            Event.sold + quantity <= Event.capacity,
        )
        .values(sold=Event.sold + quantity)
        .returning(Event.sold)
        .execution_options(synchronize_session=False)
    )
    new_sold = result.scalar_one_or_none()

    if new_sold is None:
        capacity_rejections.inc()
        snapshot = await availability(db, event_id)
        remaining = snapshot.remaining if snapshot and snapshot.is_active else 0
        logger.warning(
            "capacity_rejected",
            event_id=event_id,
            requested=quantity,
            remaining=remaining,
        )
        raise CapacityExceeded(event_id, requested=quantity, remaining=remaining)

    logger.debug("capacity_reserved", event_id=event_id, quantity=quantity, sold=new_sold)
    return new_sold


async def release(db: AsyncSession, event_id: int, quantity: int) -> int:
    """Atomically give back `quantity` places, never going below zero. Returns the new value."""
    if quantity <= 0:
        raise InvalidQuantity(quantity)

    result = await db.execute(
        update(Event)
        .where(Event.id == event_id)
        .values(sold=case((Event.sold >= quantity, Event.sold - quantity), else_=0))
        .returning(Event.sold)
        .execution_options(synchronize_session=False)
    )
    new_sold = result.scalar_one_or_none()
    if new_sold is None:
        # Event rows are RESTRICT-protected while products reference them.
        logger.error("capacity_release_missing_event", event_id=event_id, quantity=quantity)
        return 0

    logger.debug("capacity_released", event_id=event_id, quantity=quantity, sold=new_sold)
    return new_sold
