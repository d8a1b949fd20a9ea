"""
Booking endpoints: create, look up and cancel bookings.
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from parkpass.core.security import Principal, get_current_principal, get_optional_principal
from parkpass.db.session import get_db
from parkpass.models.booking import Booking
from parkpass.schemas.booking import BookingCancelResponse, BookingCreate, BookingResponse
from parkpass.services.booking_service import (
    CartLine,
    GuestContact,
    create_booking,
    get_booking_by_reference,
    get_user_bookings,
    load_booking,
)
from parkpass.services.cache_service import invalidate_catalog_cache
from parkpass.services.cancellation_service import cancel_booking

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _not_found() -> HTTPException:
    # Missing and not-yours look the same to the caller.
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")


def _ensure_owner(booking: Booking, principal: Principal) -> None:
    if not principal.is_admin and booking.user_id != principal.user_id:
        raise _not_found()


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: AsyncSession = Depends(get_db),
):
    """
    Buy a cart of tickets.

    Creates the booking, its master ticket, entitlements and payment in one
    transaction. Event capacity is reserved atomically; a full event returns
    409 and nothing is written. Anonymous callers must supply a guest contact.
    """
    guest = None
    if booking_data.guest is not None:
        guest = GuestContact(email=booking_data.guest.email, name=booking_data.guest.name)

    booking = await create_booking(
        db,
        owner_id=principal.user_id if principal else None,
        lines=[CartLine(line.ticket_type_id, line.quantity) for line in booking_data.items],
        payment_method=booking_data.payment_method,
        guest=guest,
        notes=booking_data.notes,
    )
    # Event availability changed
    await invalidate_catalog_cache()
    return booking


@router.get("/", response_model=list[BookingResponse])
async def list_user_bookings(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings for the authenticated user."""
    return await get_user_bookings(db, principal.user_id)


@router.get("/reference/{reference}", response_model=BookingResponse)
async def get_booking_by_reference_endpoint(
    reference: str,
    email: Optional[str] = Query(None, description="Guest email used at checkout"),
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: AsyncSession = Depends(get_db),
):
    """Look up a booking by its reference. Guests prove ownership with their email."""
    booking = await get_booking_by_reference(db, reference)
    if principal is not None:
        _ensure_owner(booking, principal)
    elif not (email and booking.guest_email and booking.guest_email.lower() == email.lower()):
        raise _not_found()
    return booking


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    booking = await load_booking(db, booking_id)
    _ensure_owner(booking, principal)
    return booking


@router.delete("/{booking_id}", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking: release event capacity, refund payment, void the ticket."""
    booking = await load_booking(db, booking_id)
    _ensure_owner(booking, principal)

    booking = await cancel_booking(db, booking_id)
    await invalidate_catalog_cache()
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        reference=booking.reference,
        status=booking.status,
        refunded_amount=sum((p.amount for p in booking.payments), Decimal("0.00")),
    )
