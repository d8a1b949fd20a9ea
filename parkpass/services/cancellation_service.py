"""
Cancellation / refund flow.

One transaction:
  1. lock the booking row and flip CONFIRMED -> CANCELLED with a guarded
     UPDATE; any other status is AlreadyCancelled
  2. sum item quantities per event-backed product
  3. release that capacity (floored at zero)
  4. mark every payment REFUNDED
  5. mark the master ticket CANCELLED so it can no longer be scanned

The guarded status flip is what makes a second cancel harmless: it finds no
CONFIRMED row and fails before any capacity is released.

Entitlement usage that was already redeemed is left as is.
"""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parkpass.core.errors import AlreadyCancelled, BookingNotFound, DomainError
from parkpass.core.logging import get_logger
from parkpass.core.metrics import record_cancellation
from parkpass.db.base import utcnow
from parkpass.db.session import atomic
from parkpass.models.booking import Booking, BookingItem
from parkpass.models.enums import BookingStatus, PaymentStatus, ProductKind, TicketStatus
from parkpass.models.payment import Payment
from parkpass.models.product import Product, TicketType
from parkpass.models.ticket import Ticket
from parkpass.services import capacity_service
from parkpass.services.booking_service import load_booking

logger = get_logger(__name__)


async def _event_quantities(db: AsyncSession, booking_id: int) -> list[tuple[int, int]]:
    result = await db.execute(
        select(Product.event_id, func.sum(BookingItem.quantity))
        .join(TicketType, BookingItem.ticket_type_id == TicketType.id)
        .join(Product, TicketType.product_id == Product.id)
        .where(
            BookingItem.booking_id == booking_id,
            Product.kind == ProductKind.EVENT.value,
        )
        .group_by(Product.event_id)
        .order_by(Product.event_id)
    )
    return [(event_id, int(quantity)) for event_id, quantity in result.all()]


async def cancel_booking(db: AsyncSession, booking_id: int) -> Booking:
    """Cancel a confirmed booking, release its capacity and refund its payments."""
    try:
        async with atomic(db):
            locked = await db.execute(
                select(Booking.status).where(Booking.id == booking_id).with_for_update()
            )
            current_status = locked.scalar_one_or_none()
            if current_status is None:
                raise BookingNotFound(booking_id)

            now = utcnow()
            flipped = await db.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.status == BookingStatus.CONFIRMED.value)
                .values(status=BookingStatus.CANCELLED.value, cancelled_at=now)
                .returning(Booking.id)
                .execution_options(synchronize_session=False)
            )
            if flipped.scalar_one_or_none() is None:
                raise AlreadyCancelled(booking_id, current_status)

            released = {}
            for event_id, quantity in await _event_quantities(db, booking_id):
                released[event_id] = await capacity_service.release(db, event_id, quantity)

            await db.execute(
                update(Payment)
                .where(Payment.booking_id == booking_id)
                .values(status=PaymentStatus.REFUNDED.value, refunded_at=now)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                update(Ticket)
                .where(Ticket.booking_id == booking_id)
                .values(status=TicketStatus.CANCELLED.value)
                .execution_options(synchronize_session=False)
            )

            booking = await load_booking(db, booking_id)
    except DomainError as exc:
        record_cancellation(exc.code.value.lower())
        logger.warning("booking_cancel_refused", booking_id=booking_id, code=exc.code.value)
        raise

    record_cancellation("cancelled")
    logger.info(
        "booking_cancelled",
        booking_id=booking_id,
        reference=booking.reference,
        events_released=released,
    )
    return booking
