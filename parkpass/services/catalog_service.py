"""
Catalog index: read-only lookups from ticket type to price, product and
(for event products) the event's capacity counter.

Catalog rows are written by catalog management; nothing here mutates them.
"""

from typing import Iterable

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from parkpass.core.errors import ProductLocked, UnknownTicketType
from parkpass.core.logging import get_logger
from parkpass.models.booking import BookingItem
from parkpass.models.enums import GameStatus, ProductKind
from parkpass.models.product import Product, TicketType

logger = get_logger(__name__)


def _is_on_sale(ticket_type: TicketType) -> bool:
    product = ticket_type.product
    if not ticket_type.is_active or product is None or not product.is_active:
        return False
    if product.kind == ProductKind.EVENT.value:
        return product.event is not None and product.event.is_active
    if product.kind == ProductKind.GAME.value:
        return product.game is not None and product.game.status == GameStatus.OPEN.value
    return True


async def resolve_ticket_types(
    db: AsyncSession,
    ticket_type_ids: Iterable[int],
) -> dict[int, TicketType]:
    """
    Load every requested ticket type with its product and backing event/game.
    Raises UnknownTicketType for the first id that is missing or not on sale.
    """
    wanted = list(dict.fromkeys(ticket_type_ids))
    result = await db.execute(select(TicketType).where(TicketType.id.in_(wanted)))
    found = {tt.id: tt for tt in result.scalars().all()}

    for ticket_type_id in wanted:
        ticket_type = found.get(ticket_type_id)
        if ticket_type is None or not _is_on_sale(ticket_type):
            logger.warning("ticket_type_unavailable", ticket_type_id=ticket_type_id)
            raise UnknownTicketType(ticket_type_id)

    return found


async def list_active_products(db: AsyncSession) -> list[Product]:
    """Active products with their active ticket types, for the storefront."""
    result = await db.execute(
        select(Product).where(Product.is_active.is_(True)).order_by(Product.id)
    )
    products = []
    for product in result.scalars().all():
        if any(_is_on_sale(tt) for tt in product.ticket_types):
            products.append(product)
    return products


async def is_product_referenced(db: AsyncSession, product_id: int) -> bool:
    stmt = select(
        exists()
        .where(BookingItem.ticket_type_id == TicketType.id)
        .where(TicketType.product_id == product_id)
    )
    return bool((await db.execute(stmt)).scalar())


async def ensure_product_mutable(db: AsyncSession, product_id: int) -> None:
    """
    Guard for catalog management: a product is frozen once any booking
    references it through one of its ticket types.
    """
    if await is_product_referenced(db, product_id):
        raise ProductLocked(product_id)
