"""Domain error codes for the booking and entitlement engine.

Services raise these; the API layer maps each code to an HTTP status in one
exception handler (see ``parkpass.main``).
"""

from enum import Enum
from typing import Optional, Union


class ErrorCode(Enum):
    """Domain error codes."""

    UNKNOWN_TICKET_TYPE = "UNKNOWN_TICKET_TYPE"
    TICKET_TYPE_LIMIT_EXCEEDED = "TICKET_TYPE_LIMIT_EXCEEDED"
    INVALID_CART = "INVALID_CART"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    REFERENCE_GENERATION_EXHAUSTED = "REFERENCE_GENERATION_EXHAUSTED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    TICKET_EXPIRED = "TICKET_EXPIRED"
    TICKET_NOT_ACTIVE = "TICKET_NOT_ACTIVE"
    PRODUCT_NOT_ON_TICKET = "PRODUCT_NOT_ON_TICKET"
    PRODUCT_LOCKED = "PRODUCT_LOCKED"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class UnknownTicketType(DomainError):
    """Raised when a cart line names a missing or inactive ticket type."""

    code = ErrorCode.UNKNOWN_TICKET_TYPE

    def __init__(self, ticket_type_id: int) -> None:
        super().__init__(f"Ticket type {ticket_type_id} is unknown or not on sale")
        self.ticket_type_id = ticket_type_id


class TicketTypeLimitExceeded(DomainError):
    code = ErrorCode.TICKET_TYPE_LIMIT_EXCEEDED

    def __init__(self, ticket_type_id: int, requested: int, limit: int) -> None:
        super().__init__(
            f"At most {limit} tickets of type {ticket_type_id} per booking (requested {requested})"
        )
        self.ticket_type_id = ticket_type_id
        self.requested = requested
        self.limit = limit


class InvalidCart(DomainError):
    """Raised for structurally invalid booking requests."""

    code = ErrorCode.INVALID_CART


class InvalidQuantity(DomainError):
    code = ErrorCode.INVALID_QUANTITY

    def __init__(self, quantity: int) -> None:
        super().__init__(f"Quantity must be a positive integer, got {quantity}")
        self.quantity = quantity


class CapacityExceeded(DomainError):
    """Raised when an event cannot absorb the requested quantity."""

    code = ErrorCode.CAPACITY_EXCEEDED

    def __init__(self, event_id: int, requested: int, remaining: Optional[int] = None) -> None:
        if remaining is None:
            message = f"Not enough capacity for event {event_id}. Requested: {requested}"
        else:
            message = (
                f"Not enough capacity for event {event_id}. "
                f"Requested: {requested}, Available: {remaining}"
            )
        super().__init__(message)
        self.event_id = event_id
        self.requested = requested
        self.remaining = remaining


class ReferenceGenerationExhausted(DomainError):
    code = ErrorCode.REFERENCE_GENERATION_EXHAUSTED

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Could not allocate a unique booking reference after {attempts} attempts")
        self.attempts = attempts


class InsufficientBalance(DomainError):
    """Raised when a redemption would exceed the entitlement's total quantity."""

    code = ErrorCode.INSUFFICIENT_BALANCE

    def __init__(self, product_id: int, requested: int, remaining: int) -> None:
        super().__init__(
            f"Insufficient balance for product {product_id}. "
            f"Requested: {requested}, Remaining: {remaining}"
        )
        self.product_id = product_id
        self.requested = requested
        self.remaining = remaining


class TicketNotFound(DomainError):
    code = ErrorCode.TICKET_NOT_FOUND

    def __init__(self, ticket_code: str) -> None:
        super().__init__("Ticket not found")
        self.ticket_code = ticket_code


class TicketExpired(DomainError):
    code = ErrorCode.TICKET_EXPIRED

    def __init__(self, ticket_code: str) -> None:
        super().__init__("Ticket has expired")
        self.ticket_code = ticket_code


class TicketNotActive(DomainError):
    code = ErrorCode.TICKET_NOT_ACTIVE

    def __init__(self, ticket_code: str, status: str) -> None:
        super().__init__(f"Ticket is not active (status: {status})")
        self.ticket_code = ticket_code
        self.status = status


class ProductNotOnTicket(DomainError):
    code = ErrorCode.PRODUCT_NOT_ON_TICKET

    def __init__(self, ticket_code: str, product_id: int) -> None:
        super().__init__(f"Product {product_id} is not included on this ticket")
        self.ticket_code = ticket_code
        self.product_id = product_id


class ProductLocked(DomainError):
    """Raised when catalog management tries to change a product that has been sold."""

    code = ErrorCode.PRODUCT_LOCKED

    def __init__(self, product_id: int) -> None:
        super().__init__(f"Product {product_id} has bookings and can no longer be changed")
        self.product_id = product_id


class BookingNotFound(DomainError):
    code = ErrorCode.BOOKING_NOT_FOUND

    def __init__(self, booking_id: Union[int, str]) -> None:
        super().__init__("Booking not found")
        self.booking_id = booking_id


class AlreadyCancelled(DomainError):
    code = ErrorCode.ALREADY_CANCELLED

    def __init__(self, booking_id: int, status: str) -> None:
        super().__init__(f"Booking is not cancellable (status: {status})")
        self.booking_id = booking_id
        self.status = status


class PersistenceFailure(DomainError):
    """Wraps an underlying storage error. Callers may retry."""

    code = ErrorCode.PERSISTENCE_FAILURE
