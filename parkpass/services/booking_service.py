"""
Booking engine: turns a cart of ticket selections into one durable booking.

TRANSACTION SCRIPT
==================

A booking is an ordered list of steps run against a shared BookingDraft,
all inside a single database transaction (`atomic`):

  1. resolve catalog     ticket type -> price -> product -> event
  2. price lines         subtotal per line, total for the booking
  3. insert booking      CONFIRMED, unique reference (savepoint retry on collision)
  4. insert items        one row per cart line, price snapshotted
  5. issue ticket        exactly one master ticket per booking, valid until the
                         latest product window (event end for event products)
  6. issue entitlements  one balance per distinct product
  7. reserve capacity    atomic conditional increment per event
  8. record payment      one COMPLETED payment for the total

Each step only writes through the open transaction. If any step raises,
the transaction rolls back and nothing from the attempt is visible: no
booking, no ticket, no entitlements, no payment, no capacity change.

Capacity is reserved late (step 7) so the event rows are locked for as
short a time as possible; events are reserved in ascending id order so two
mixed carts can't deadlock each other.
"""

import secrets
import string
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from parkpass.core.config import get_settings
from parkpass.core.errors import (
    BookingNotFound,
    DomainError,
    InvalidCart,
    InvalidQuantity,
    ReferenceGenerationExhausted,
    TicketTypeLimitExceeded,
)
from parkpass.core.logging import get_logger
from parkpass.core.metrics import booking_latency, record_booking_attempt, reference_collisions
from parkpass.db.base import as_utc, utcnow
from parkpass.db.session import atomic
from parkpass.models.booking import Booking, BookingItem
from parkpass.models.enums import BookingStatus, PaymentMethod, PaymentStatus, TicketStatus
from parkpass.models.payment import Payment
from parkpass.models.product import TicketType
from parkpass.models.ticket import Entitlement, Ticket
from parkpass.services import capacity_service, catalog_service, entitlement_service

logger = get_logger(__name__)

CENT = Decimal("0.01")
_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_booking_reference() -> str:
    """e.g. BORA-7K2QX9ME"""
    settings = get_settings()
    suffix = "".join(
        secrets.choice(_REFERENCE_ALPHABET) for _ in range(settings.BOOKING_REFERENCE_LENGTH)
    )
    return f"{settings.BOOKING_REFERENCE_PREFIX}-{suffix}"


def generate_ticket_code() -> str:
    return f"TKT-{secrets.token_hex(8).upper()}"


def generate_ticket_token() -> str:
    return secrets.token_urlsafe(32)


def generate_transaction_reference() -> str:
    return f"PAY-{secrets.token_hex(12).upper()}"


@dataclass(frozen=True)
class CartLine:
    ticket_type_id: int
    quantity: int


@dataclass(frozen=True)
class GuestContact:
    email: str
    name: Optional[str] = None


@dataclass
class BookingDraft:
    """Mutable state threaded through the booking steps."""

    owner_id: Optional[int]
    lines: Sequence[CartLine]
    payment_method: PaymentMethod
    guest: Optional[GuestContact] = None
    notes: Optional[str] = None
    reference_factory: Callable[[], str] = generate_booking_reference
    now: datetime = field(default_factory=utcnow)

    ticket_types: dict[int, TicketType] = field(default_factory=dict)
    subtotals: list[Decimal] = field(default_factory=list)
    total: Decimal = Decimal("0.00")
    booking: Optional[Booking] = None
    ticket: Optional[Ticket] = None
    entitlements: list[Entitlement] = field(default_factory=list)
    payment: Optional[Payment] = None

    def product_quantities(self) -> dict[int, int]:
        """Quantity per product, in first-seen cart order."""
        totals: dict[int, int] = {}
        for line in self.lines:
            product_id = self.ticket_types[line.ticket_type_id].product_id
            totals[product_id] = totals.get(product_id, 0) + line.quantity
        return totals

    def event_quantities(self) -> dict[int, int]:
        totals: dict[int, int] = defaultdict(int)
        for line in self.lines:
            product = self.ticket_types[line.ticket_type_id].product
            if product.is_capacity_bound:
                totals[product.event_id] += line.quantity
        return dict(totals)


BookingStep = Callable[[AsyncSession, BookingDraft], Awaitable[None]]


async def _resolve_catalog(db: AsyncSession, draft: BookingDraft) -> None:
    draft.ticket_types = await catalog_service.resolve_ticket_types(
        db, (line.ticket_type_id for line in draft.lines)
    )

    per_type: dict[int, int] = defaultdict(int)
    for line in draft.lines:
        per_type[line.ticket_type_id] += line.quantity
    for ticket_type_id, quantity in per_type.items():
        limit = draft.ticket_types[ticket_type_id].max_quantity
        if limit is not None and quantity > limit:
            raise TicketTypeLimitExceeded(ticket_type_id, requested=quantity, limit=limit)


async def _price_lines(db: AsyncSession, draft: BookingDraft) -> None:
    draft.subtotals = [
        (Decimal(draft.ticket_types[line.ticket_type_id].price) * line.quantity).quantize(CENT)
        for line in draft.lines
    ]
    draft.total = sum(draft.subtotals, Decimal("0.00")).quantize(CENT)


async def _insert_booking(db: AsyncSession, draft: BookingDraft) -> None:
    attempts = get_settings().BOOKING_REFERENCE_ATTEMPTS

    for attempt in range(1, attempts + 1):
        reference = draft.reference_factory()
        booking = Booking(
            reference=reference,
            user_id=draft.owner_id,
            guest_email=draft.guest.email if draft.guest else None,
            guest_name=draft.guest.name if draft.guest else None,
            total_amount=draft.total,
            status=BookingStatus.CONFIRMED.value,
            notes=draft.notes,
        )
        try:
            # A savepoint lets a reference collision be retried without
            # abandoning the outer transaction.
            async with db.begin_nested():
                db.add(booking)
                await db.flush()
        except IntegrityError as exc:
            if "reference" not in str(exc.orig).lower():
                raise
            reference_collisions.inc()
            logger.info("booking_reference_collision", reference=reference, attempt=attempt)
            continue

        draft.booking = booking
        return

    logger.error("booking_reference_exhausted", attempts=attempts)
    raise ReferenceGenerationExhausted(attempts)


async def _insert_items(db: AsyncSession, draft: BookingDraft) -> None:
    for line, subtotal in zip(draft.lines, draft.subtotals):
        db.add(
            BookingItem(
                booking_id=draft.booking.id,
                ticket_type_id=line.ticket_type_id,
                quantity=line.quantity,
                unit_price=draft.ticket_types[line.ticket_type_id].price,
                subtotal=subtotal,
            )
        )
    await db.flush()


def _valid_until(product, now: datetime, default_days: int) -> datetime:
    """Last moment a product on the ticket can still be used."""
    until = now + timedelta(days=product.valid_days or default_days)
    if product.is_capacity_bound and product.event is not None:
        event = product.event
        # Cover the whole event, however far ahead it was bought.
        event_end = as_utc(event.ends_at or event.starts_at + timedelta(days=default_days))
        until = max(until, event_end)
    return until


async def _issue_ticket(db: AsyncSession, draft: BookingDraft) -> None:
    default_days = get_settings().TICKET_DEFAULT_VALID_DAYS
    expires_at = max(
        _valid_until(tt.product, draft.now, default_days) for tt in draft.ticket_types.values()
    )
    ticket = Ticket(
        booking_id=draft.booking.id,
        code=generate_ticket_code(),
        token=generate_ticket_token(),
        status=TicketStatus.ACTIVE.value,
        expires_at=expires_at,
    )
    db.add(ticket)
    await db.flush()
    draft.ticket = ticket


async def _issue_entitlements(db: AsyncSession, draft: BookingDraft) -> None:
    for product_id, quantity in draft.product_quantities().items():
        entitlement = await entitlement_service.issue(db, draft.ticket.id, product_id, quantity)
        draft.entitlements.append(entitlement)


async def _reserve_capacity(db: AsyncSession, draft: BookingDraft) -> None:
    for event_id, quantity in sorted(draft.event_quantities().items()):
        await capacity_service.reserve(db, event_id, quantity)


async def _record_payment(db: AsyncSession, draft: BookingDraft) -> None:
    payment = Payment(
        booking_id=draft.booking.id,
        amount=draft.total,
        method=draft.payment_method.value,
        status=PaymentStatus.COMPLETED.value,
        transaction_reference=generate_transaction_reference(),
        paid_at=draft.now,
    )
    db.add(payment)
    await db.flush()
    draft.payment = payment


BOOKING_STEPS: tuple[BookingStep, ...] = (
    _resolve_catalog,
    _price_lines,
    _insert_booking,
    _insert_items,
    _issue_ticket,
    _issue_entitlements,
    _reserve_capacity,
    _record_payment,
)


def _validate_request(draft: BookingDraft) -> None:
    if not draft.lines:
        raise InvalidCart("Cart is empty")
    try:
        draft.payment_method = PaymentMethod(draft.payment_method)
    except ValueError:
        raise InvalidCart(f"Unknown payment method: {draft.payment_method}") from None
    if draft.owner_id is None and (draft.guest is None or not draft.guest.email):
        raise InvalidCart("A booking needs a registered owner or a guest email")
    for line in draft.lines:
        if line.quantity <= 0:
            raise InvalidQuantity(line.quantity)


async def create_booking(
    db: AsyncSession,
    owner_id: Optional[int],
    lines: Sequence[CartLine],
    payment_method: PaymentMethod,
    guest: Optional[GuestContact] = None,
    notes: Optional[str] = None,
    reference_factory: Callable[[], str] = generate_booking_reference,
) -> Booking:
    """
    Create a confirmed booking with its items, master ticket, entitlements and
    payment in one transaction. Returns the fully loaded Booking.
    """
    draft = BookingDraft(
        owner_id=owner_id,
        lines=list(lines),
        payment_method=payment_method,
        guest=guest,
        notes=notes,
        reference_factory=reference_factory,
    )
    start = time.perf_counter()

    try:
        _validate_request(draft)
        async with atomic(db):
            for step in BOOKING_STEPS:
                await step(db, draft)
            booking = await load_booking(db, draft.booking.id)
    except DomainError as exc:
        record_booking_attempt("rejected")
        logger.warning(
            "booking_rejected",
            code=exc.code.value,
            reason=exc.message,
            owner_id=owner_id,
        )
        raise
    except Exception:
        record_booking_attempt("error")
        raise
    finally:
        booking_latency.observe(time.perf_counter() - start)

    record_booking_attempt("success")
    logger.info(
        "booking_created",
        booking_id=booking.id,
        reference=booking.reference,
        owner_id=owner_id,
        total=str(booking.total_amount),
        lines=len(draft.lines),
        events=draft.event_quantities(),
    )
    return booking


def _hydrated(stmt):
    return stmt.options(
        selectinload(Booking.items),
        selectinload(Booking.payments),
        selectinload(Booking.ticket).selectinload(Ticket.entitlements),
    ).execution_options(populate_existing=True)


async def load_booking(db: AsyncSession, booking_id: int) -> Booking:
    """Booking header with items, ticket, entitlements and payments."""
    result = await db.execute(_hydrated(select(Booking).where(Booking.id == booking_id)))
    booking = result.scalar_one_or_none()
    if booking is None:
        raise BookingNotFound(booking_id)
    return booking


async def get_booking_by_reference(db: AsyncSession, reference: str) -> Booking:
    result = await db.execute(_hydrated(select(Booking).where(Booking.reference == reference)))
    booking = result.scalar_one_or_none()
    if booking is None:
        raise BookingNotFound(reference)
    return booking


async def get_user_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    """Get all bookings for a user."""
    result = await db.execute(
        _hydrated(
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
    )
    return list(result.scalars().all())
