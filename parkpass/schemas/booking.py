"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from parkpass.models.enums import (
    BookingStatus,
    EntitlementStatus,
    PaymentMethod,
    PaymentStatus,
    TicketStatus,
)


class CartLineIn(BaseModel):
    ticket_type_id: int
    quantity: int = Field(default=1, gt=0, le=100)


class GuestContactIn(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=255)


class BookingCreate(BaseModel):
    items: list[CartLineIn] = Field(..., min_length=1, max_length=20)
    payment_method: PaymentMethod
    guest: Optional[GuestContactIn] = None
    notes: Optional[str] = Field(None, max_length=1000)


class BookingItemResponse(BaseModel):
    id: int
    ticket_type_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    model_config = {"from_attributes": True}


class EntitlementResponse(BaseModel):
    id: int
    product_id: int
    total_quantity: int
    used_quantity: int
    remaining: int
    status: EntitlementStatus
    last_used_at: Optional[datetime]

    model_config = {"from_attributes": True}


class TicketResponse(BaseModel):
    id: int
    code: str
    token: str
    # Derived: FULLY_USED / EXPIRED are computed at read time.
    status: TicketStatus = Field(validation_alias="current_status")
    expires_at: datetime
    entitlements: list[EntitlementResponse]

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    id: int
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    transaction_reference: Optional[str]
    paid_at: Optional[datetime]
    refunded_at: Optional[datetime]

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    reference: str
    user_id: Optional[int]
    guest_email: Optional[str]
    guest_name: Optional[str]
    total_amount: Decimal
    status: BookingStatus
    notes: Optional[str]
    created_at: datetime
    cancelled_at: Optional[datetime]
    items: list[BookingItemResponse]
    ticket: Optional[TicketResponse]
    payments: list[PaymentResponse]

    model_config = {"from_attributes": True}


class BookingCancelResponse(BaseModel):
    message: str
    booking_id: int
    reference: str
    status: BookingStatus
    refunded_amount: Decimal
