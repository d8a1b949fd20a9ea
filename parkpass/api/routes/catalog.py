"""
Read-only catalog endpoints with Redis caching on the product listing.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from parkpass.core.logging import get_logger
from parkpass.db.session import get_db
from parkpass.models.product import Product
from parkpass.schemas.catalog import AvailabilityResponse, ProductListResponse, ProductResponse
from parkpass.services import capacity_service
from parkpass.services.cache_service import get_cached_catalog, set_cached_catalog
from parkpass.services.catalog_service import list_active_products

logger = get_logger(__name__)
router = APIRouter(prefix="/catalog", tags=["Catalog"])


def _serialize(product: Product) -> dict:
    data = ProductResponse.model_validate(product).model_dump(mode="json")
    active_ids = {tt.id for tt in product.ticket_types if tt.is_active}
    data["ticket_types"] = [tt for tt in data["ticket_types"] if tt["id"] in active_ids]
    return data


@router.get("/products", response_model=ProductListResponse)
async def list_products_endpoint(db: AsyncSession = Depends(get_db)):
    """
    Products currently on sale with their ticket types.
    Cached in Redis; invalidated whenever a booking or cancellation moves availability.
    """
    cached = await get_cached_catalog()
    if cached is not None:
        logger.info("catalog_cache_hit")
        return ProductListResponse(products=cached, cached=True)

    products = [_serialize(p) for p in await list_active_products(db)]
    await set_cached_catalog(products)
    return ProductListResponse(products=products, cached=False)


@router.get("/events/{event_id}/availability", response_model=AvailabilityResponse)
async def event_availability_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    """Live capacity snapshot. Not cached."""
    snapshot = await capacity_service.availability(db, event_id)
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Event {event_id} not found")
    return AvailabilityResponse(
        event_id=snapshot.event_id,
        capacity=snapshot.capacity,
        sold=snapshot.sold,
        remaining=snapshot.remaining,
        is_active=snapshot.is_active,
    )
