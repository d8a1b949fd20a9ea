"""
Sellable catalog: Product wraps an Event, a Game, or nothing (bundle);
TicketType is a price point under a Product.

The core only reads these rows. Catalog management writes them.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from parkpass.db.base import Base, TimestampMixin
from parkpass.models.enums import ProductKind, TicketCategory, sql_in


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    kind = Column(String(10), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="RESTRICT"), nullable=True, index=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="RESTRICT"), nullable=True, index=True)
    valid_days = Column(Integer, nullable=True, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    event = relationship("Event", back_populates="products", lazy="selectin")
    game = relationship("Game", back_populates="products", lazy="selectin")
    ticket_types = relationship(
        "TicketType", back_populates="product", lazy="selectin", order_by="TicketType.id"
    )

    __table_args__ = (
        CheckConstraint(f"kind IN {sql_in(ProductKind)}", name="check_product_kind"),
        # EVENT -> exactly one event, GAME -> exactly one game, BUNDLE -> neither
        CheckConstraint(
            "(kind = 'EVENT' AND event_id IS NOT NULL AND game_id IS NULL) OR "
            "(kind = 'GAME' AND game_id IS NOT NULL AND event_id IS NULL) OR "
            "(kind = 'BUNDLE' AND event_id IS NULL AND game_id IS NULL)",
            name="check_product_backing_entity",
        ),
        CheckConstraint("valid_days IS NULL OR valid_days > 0", name="check_product_valid_days"),
    )

    @property
    def is_capacity_bound(self) -> bool:
        return self.kind == ProductKind.EVENT.value

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, kind={self.kind}, name={self.name})>"


class TicketType(Base, TimestampMixin):
    __tablename__ = "ticket_types"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category = Column(String(10), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    max_quantity = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    product = relationship("Product", back_populates="ticket_types", lazy="selectin")

    __table_args__ = (
        CheckConstraint(f"category IN {sql_in(TicketCategory)}", name="check_ticket_type_category"),
        CheckConstraint("price >= 0", name="check_ticket_type_price_non_negative"),
        CheckConstraint(
            "max_quantity IS NULL OR max_quantity > 0", name="check_ticket_type_max_quantity"
        ),
    )

    def __repr__(self) -> str:
        return f"<TicketType(id={self.id}, product={self.product_id}, {self.category} @ {self.price})>"
