"""
Payment record. Payments are pre-authorized upstream; the core writes one
COMPLETED row at booking time and flips it to REFUNDED on cancellation.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from parkpass.db.base import Base, TimestampMixin
from parkpass.models.enums import PaymentMethod, PaymentStatus, sql_in


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(
        Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(10, 2), nullable=False)
    method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    transaction_reference = Column(String(64), unique=True, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    booking = relationship("Booking", back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
        CheckConstraint(f"method IN {sql_in(PaymentMethod)}", name="check_payment_method"),
        CheckConstraint(f"status IN {sql_in(PaymentStatus)}", name="check_payment_status"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, booking={self.booking_id}, status={self.status})>"
