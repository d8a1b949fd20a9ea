"""
Status and category enumerations shared by models and schemas.
Stored as plain strings; CHECK constraints keep the columns honest.
"""

import enum


class ProductKind(str, enum.Enum):
    EVENT = "EVENT"
    GAME = "GAME"
    BUNDLE = "BUNDLE"


class GameStatus(str, enum.Enum):
    OPEN = "OPEN"
    ON_MAINTENANCE = "ON_MAINTENANCE"
    UPCOMING = "UPCOMING"
    CLOSED = "CLOSED"


class TicketCategory(str, enum.Enum):
    ADULT = "ADULT"
    CHILD = "CHILD"
    SENIOR = "SENIOR"
    STUDENT = "STUDENT"
    GROUP = "GROUP"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class TicketStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    FULLY_USED = "FULLY_USED"  # derived, never stored


class EntitlementStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    USED = "USED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, enum.Enum):
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    TELEBIRR = "TELEBIRR"
    CASH = "CASH"


def sql_in(enum_cls: type[enum.Enum], exclude: tuple = ()) -> str:
    """Render `('A', 'B')` for use inside a CHECK constraint."""
    values = ", ".join(f"'{member.value}'" for member in enum_cls if member not in exclude)
    return f"({values})"
