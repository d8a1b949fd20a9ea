"""
Ticket endpoints: pass lookup and gate redemption.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from parkpass.core.security import Principal, get_current_principal, get_gate_principal
from parkpass.db.session import get_db
from parkpass.schemas.booking import EntitlementResponse, TicketResponse
from parkpass.schemas.ticket import RedeemRequest, RedemptionResponse
from parkpass.services.redemption_service import get_ticket, validate_and_redeem

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.get("/{ticket_code}", response_model=TicketResponse)
async def get_ticket_endpoint(
    ticket_code: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Master ticket with its remaining balances. Visible to the owner and gate staff."""
    ticket = await get_ticket(db, ticket_code)
    if not principal.can_scan and ticket.booking.user_id != principal.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    return ticket


@router.post("/{ticket_code}/redeem", response_model=RedemptionResponse)
async def redeem_ticket_endpoint(
    ticket_code: str,
    request: RedeemRequest,
    principal: Principal = Depends(get_gate_principal),
    db: AsyncSession = Depends(get_db),
):
    """
    Gate scan: consume `quantity` uses of a product from the pass.

    Safe under concurrent scans of the same pass; the balance can never go
    below zero.
    """
    redemption = await validate_and_redeem(db, ticket_code, request.product_id, request.quantity)
    return RedemptionResponse(
        ticket_code=ticket_code,
        product_id=request.product_id,
        remaining=redemption.remaining,
        ticket_status=redemption.ticket_status,
        entitlement=EntitlementResponse.model_validate(redemption.entitlement),
    )
