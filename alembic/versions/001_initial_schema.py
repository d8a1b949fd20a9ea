"""Initial schema: catalog, bookings, master tickets, entitlements, payments.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Events: the only capacity-bound entity
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("sold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("capacity > 0", name="check_event_capacity_positive"),
        sa.CheckConstraint("sold >= 0", name="check_event_sold_non_negative"),
        # Last line of defence against oversell if application code is bypassed.
        sa.CheckConstraint("sold <= capacity", name="check_event_sold_lte_capacity"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_starts_at", "events", ["starts_at"])

    op.create_table(
        "games",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("rules", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'OPEN'")),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('OPEN', 'ON_MAINTENANCE', 'UPCOMING', 'CLOSED')", name="check_game_status"
        ),
    )
    op.create_index("ix_games_id", "games", ["id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("kind", sa.String(10), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("game_id", sa.Integer(), sa.ForeignKey("games.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("valid_days", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("kind IN ('EVENT', 'GAME', 'BUNDLE')", name="check_product_kind"),
        sa.CheckConstraint(
            "(kind = 'EVENT' AND event_id IS NOT NULL AND game_id IS NULL) OR "
            "(kind = 'GAME' AND game_id IS NOT NULL AND event_id IS NULL) OR "
            "(kind = 'BUNDLE' AND event_id IS NULL AND game_id IS NULL)",
            name="check_product_backing_entity",
        ),
        sa.CheckConstraint("valid_days IS NULL OR valid_days > 0", name="check_product_valid_days"),
    )
    op.create_index("ix_products_id", "products", ["id"])
    op.create_index("ix_products_event_id", "products", ["event_id"])
    op.create_index("ix_products_game_id", "products", ["game_id"])

    op.create_table(
        "ticket_types",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", sa.String(10), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("max_quantity", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint(
            "category IN ('ADULT', 'CHILD', 'SENIOR', 'STUDENT', 'GROUP')",
            name="check_ticket_type_category",
        ),
        sa.CheckConstraint("price >= 0", name="check_ticket_type_price_non_negative"),
        sa.CheckConstraint("max_quantity IS NULL OR max_quantity > 0", name="check_ticket_type_max_quantity"),
    )
    op.create_index("ix_ticket_types_id", "ticket_types", ["id"])
    op.create_index("ix_ticket_types_product_id", "ticket_types", ["product_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("reference", sa.String(20), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("guest_email", sa.String(255), nullable=True),
        sa.Column("guest_name", sa.String(255), nullable=True),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("reference", name="uq_bookings_reference"),
        sa.CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'CANCELLED', 'REFUNDED')", name="check_booking_status"
        ),
        sa.CheckConstraint("user_id IS NOT NULL OR guest_email IS NOT NULL", name="check_booking_has_owner"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    # "My bookings" listing
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])

    op.create_table(
        "booking_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "ticket_type_id", sa.Integer(), sa.ForeignKey("ticket_types.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="check_booking_item_quantity_positive"),
        sa.CheckConstraint("unit_price >= 0", name="check_booking_item_price_non_negative"),
    )
    op.create_index("ix_booking_items_id", "booking_items", ["id"])
    op.create_index("ix_booking_items_booking_id", "booking_items", ["booking_id"])
    op.create_index("ix_booking_items_ticket_type_id", "booking_items", ["ticket_type_id"])

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        # One master ticket per booking
        sa.UniqueConstraint("booking_id", name="uq_tickets_booking_id"),
        sa.UniqueConstraint("code", name="uq_tickets_code"),
        sa.UniqueConstraint("token", name="uq_tickets_token"),
        sa.CheckConstraint("status IN ('ACTIVE', 'EXPIRED', 'CANCELLED')", name="check_ticket_status"),
    )
    op.create_index("ix_tickets_id", "tickets", ["id"])

    op.create_table(
        "entitlements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("total_quantity", sa.Integer(), nullable=False),
        sa.Column("used_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'AVAILABLE'")),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("ticket_id", "product_id", name="uq_entitlement_ticket_product"),
        sa.CheckConstraint("total_quantity > 0", name="check_entitlement_total_positive"),
        sa.CheckConstraint("used_quantity >= 0", name="check_entitlement_used_non_negative"),
        sa.CheckConstraint("used_quantity <= total_quantity", name="check_entitlement_used_lte_total"),
        sa.CheckConstraint("status IN ('AVAILABLE', 'USED')", name="check_entitlement_status"),
        sa.CheckConstraint(
            "(status = 'USED') = (used_quantity = total_quantity)",
            name="check_entitlement_status_matches_balance",
        ),
    )
    op.create_index("ix_entitlements_id", "entitlements", ["id"])
    op.create_index("ix_entitlements_ticket_id", "entitlements", ["ticket_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("transaction_reference", sa.String(64), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("transaction_reference", name="uq_payments_transaction_reference"),
        sa.CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
        sa.CheckConstraint(
            "method IN ('CREDIT_CARD', 'DEBIT_CARD', 'TELEBIRR', 'CASH')", name="check_payment_method"
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'COMPLETED', 'FAILED', 'REFUNDED')", name="check_payment_status"
        ),
    )
    op.create_index("ix_payments_id", "payments", ["id"])
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])


def downgrade() -> None:
    op.drop_table("payments")
    op.drop_table("entitlements")
    op.drop_table("tickets")
    op.drop_table("booking_items")
    op.drop_table("bookings")
    op.drop_table("ticket_types")
    op.drop_table("products")
    op.drop_table("games")
    op.drop_table("events")
