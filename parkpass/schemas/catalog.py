"""
Pydantic schemas for the read-only catalog endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from parkpass.models.enums import GameStatus, ProductKind, TicketCategory


class EventSummary(BaseModel):
    """Static event details. Live counts come from the availability endpoint."""

    id: int
    name: str
    starts_at: datetime
    ends_at: Optional[datetime]
    capacity: int

    model_config = {"from_attributes": True}


class GameSummary(BaseModel):
    id: int
    name: str
    description: Optional[str]
    status: GameStatus

    model_config = {"from_attributes": True}


class TicketTypeResponse(BaseModel):
    id: int
    category: TicketCategory
    price: Decimal
    max_quantity: Optional[int]

    model_config = {"from_attributes": True}


class ProductResponse(BaseModel):
    id: int
    name: str
    kind: ProductKind
    valid_days: Optional[int]
    event: Optional[EventSummary]
    game: Optional[GameSummary]
    ticket_types: list[TicketTypeResponse]

    model_config = {"from_attributes": True}


class ProductListResponse(BaseModel):
    products: list[ProductResponse]
    cached: bool = False


class AvailabilityResponse(BaseModel):
    event_id: int
    capacity: int
    sold: int
    remaining: int
    is_active: bool

    model_config = {"from_attributes": True}
