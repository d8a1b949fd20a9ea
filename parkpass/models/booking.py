"""
Booking (order header) and BookingItem (line item).

Key design decisions:
- A booking is written in one transaction together with its items, its
  master ticket, entitlements and payment; it is never partially persisted
- `unit_price` is snapshotted per line so later catalog price changes
  don't rewrite history
- Owner is either a registered user id (from the auth service) or a guest
  contact; user ids are external so there is no FK to a users table
- Status field allows cancellation without deleting records
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from parkpass.db.base import Base, TimestampMixin
from parkpass.models.enums import BookingStatus, sql_in


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(20), unique=True, nullable=False)
    user_id = Column(Integer, nullable=True, index=True)
    guest_email = Column(String(255), nullable=True)
    guest_name = Column(String(255), nullable=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    notes = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "BookingItem",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BookingItem.id",
    )
    ticket = relationship(
        "Ticket",
        back_populates="booking",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin",
    )
    payments = relationship(
        "Payment",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Payment.id",
    )

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        CheckConstraint(f"status IN {sql_in(BookingStatus)}", name="check_booking_status"),
        CheckConstraint(
            "user_id IS NOT NULL OR guest_email IS NOT NULL", name="check_booking_has_owner"
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, ref={self.reference}, status={self.status})>"


class BookingItem(Base):
    __tablename__ = "booking_items"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(
        Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ticket_type_id = Column(
        Integer, ForeignKey("ticket_types.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)

    booking = relationship("Booking", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_booking_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="check_booking_item_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<BookingItem(booking={self.booking_id}, type={self.ticket_type_id}, qty={self.quantity})>"
