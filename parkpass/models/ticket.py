"""
Master ticket and its per-product entitlements ("digital punch card").

One booking yields exactly one Ticket; each distinct product in the cart
becomes one Entitlement row on it. `used_quantity` only moves through the
entitlement ledger's conditional UPDATE.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from parkpass.db.base import Base, TimestampMixin, as_utc, utcnow
from parkpass.models.enums import EntitlementStatus, TicketStatus, sql_in


class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(
        Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    code = Column(String(32), unique=True, nullable=False)
    token = Column(String(64), unique=True, nullable=False)
    status = Column(String(20), nullable=False, default=TicketStatus.ACTIVE.value)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    booking = relationship("Booking", back_populates="ticket")
    entitlements = relationship(
        "Entitlement",
        back_populates="ticket",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Entitlement.id",
    )

    __table_args__ = (
        # FULLY_USED is derived from the entitlements and never stored.
        CheckConstraint(
            f"status IN {sql_in(TicketStatus, exclude=(TicketStatus.FULLY_USED,))}",
            name="check_ticket_status",
        ),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return as_utc(self.expires_at) <= (now or utcnow())

    def effective_status(self, now: Optional[datetime] = None) -> TicketStatus:
        if self.status != TicketStatus.ACTIVE.value:
            return TicketStatus(self.status)
        if self.entitlements and all(
            e.status == EntitlementStatus.USED.value for e in self.entitlements
        ):
            return TicketStatus.FULLY_USED
        if self.is_expired(now):
            return TicketStatus.EXPIRED
        return TicketStatus.ACTIVE

    @property
    def current_status(self) -> TicketStatus:
        return self.effective_status()

    def entitlement_for(self, product_id: int) -> Optional["Entitlement"]:
        for entitlement in self.entitlements:
            if entitlement.product_id == product_id:
                return entitlement
        return None

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, code={self.code}, status={self.status})>"


class Entitlement(Base):
    __tablename__ = "entitlements"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    total_quantity = Column(Integer, nullable=False)
    used_quantity = Column(Integer, nullable=False, default=0, server_default="0")
    status = Column(String(20), nullable=False, default=EntitlementStatus.AVAILABLE.value)
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    ticket = relationship("Ticket", back_populates="entitlements")

    __table_args__ = (
        UniqueConstraint("ticket_id", "product_id", name="uq_entitlement_ticket_product"),
        CheckConstraint("total_quantity > 0", name="check_entitlement_total_positive"),
        CheckConstraint("used_quantity >= 0", name="check_entitlement_used_non_negative"),
        CheckConstraint("used_quantity <= total_quantity", name="check_entitlement_used_lte_total"),
        CheckConstraint(f"status IN {sql_in(EntitlementStatus)}", name="check_entitlement_status"),
        # USED iff fully consumed
        CheckConstraint(
            "(status = 'USED') = (used_quantity = total_quantity)",
            name="check_entitlement_status_matches_balance",
        ),
    )

    @property
    def remaining(self) -> int:
        return self.total_quantity - self.used_quantity

    def __repr__(self) -> str:
        return (
            f"<Entitlement(ticket={self.ticket_id}, product={self.product_id}, "
            f"used={self.used_quantity}/{self.total_quantity})>"
        )
