from parkpass.models.event import Event, Game
from parkpass.models.product import Product, TicketType
from parkpass.models.booking import Booking, BookingItem
from parkpass.models.ticket import Ticket, Entitlement
from parkpass.models.payment import Payment

__all__ = [
    "Event", "Game",
    "Product", "TicketType",
    "Booking", "BookingItem",
    "Ticket", "Entitlement",
    "Payment",
]
