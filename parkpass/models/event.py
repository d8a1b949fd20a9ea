"""
Event and Game: the physical things a Product can wrap.

Key design decisions:
- `sold` is a denormalized counter (avoids SUM over booking items)
- It is only ever changed by the capacity service's conditional UPDATEs
- CHECK constraints are the final safety net: 0 <= sold <= capacity
- Games have no capacity; they are standing attractions
"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from parkpass.db.base import Base, TimestampMixin
from parkpass.models.enums import GameStatus, sql_in


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    capacity = Column(Integer, nullable=False)
    sold = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True)

    products = relationship("Product", back_populates="event")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_event_capacity_positive"),
        CheckConstraint("sold >= 0", name="check_event_sold_non_negative"),
        CheckConstraint("sold <= capacity", name="check_event_sold_lte_capacity"),
        Index("ix_events_starts_at", "starts_at"),
    )

    @property
    def remaining(self) -> int:
        return self.capacity - self.sold

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, name={self.name}, sold={self.sold}/{self.capacity})>"


class Game(Base, TimestampMixin):
    __tablename__ = "games"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    rules = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=GameStatus.OPEN.value)

    products = relationship("Product", back_populates="game")

    __table_args__ = (
        CheckConstraint(f"status IN {sql_in(GameStatus)}", name="check_game_status"),
    )

    def __repr__(self) -> str:
        return f"<Game(id={self.id}, name={self.name}, status={self.status})>"
