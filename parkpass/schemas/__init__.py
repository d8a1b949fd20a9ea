from parkpass.schemas.booking import (
    BookingCreate, BookingResponse, BookingCancelResponse, TicketResponse,
)
from parkpass.schemas.ticket import RedeemRequest, RedemptionResponse
from parkpass.schemas.catalog import ProductListResponse, AvailabilityResponse

__all__ = [
    "BookingCreate", "BookingResponse", "BookingCancelResponse", "TicketResponse",
    "RedeemRequest", "RedemptionResponse",
    "ProductListResponse", "AvailabilityResponse",
]
