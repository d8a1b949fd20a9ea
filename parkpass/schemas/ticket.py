"""
Pydantic schemas for gate redemption.
"""

from pydantic import BaseModel, Field

from parkpass.models.enums import TicketStatus
from parkpass.schemas.booking import EntitlementResponse


class RedeemRequest(BaseModel):
    product_id: int
    quantity: int = Field(default=1, gt=0, le=100)


class RedemptionResponse(BaseModel):
    ticket_code: str
    product_id: int
    remaining: int
    ticket_status: TicketStatus
    entitlement: EntitlementResponse
