"""
Product API Endpoints
Read-only view of the platform catalog, as the adapter would publish it on_search
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ondc_adapter.commerce.factory import get_commerce_backend
from ondc_adapter.commerce.interface import CommercePlatform
from ondc_adapter.core.errors import PlatformRejection, TransientUpstreamError
from ondc_adapter.mapping.catalog import build_catalog, filter_by_city, product_to_item

router = APIRouter(prefix="/api/v1/products", tags=["products"])


@router.get("")
async def list_products(
    city: Optional[str] = None,
    category: Optional[str] = None,
    platform: CommercePlatform = Depends(get_commerce_backend),
):
    """
    ONDC catalog of in-stock products

    Optionally narrowed to a city code (std:080) and a category id
    """
    filters = {"stock_status": "instock"}
    if category:
        filters["category"] = category
    try:
        products = await platform.list_products(filters)
    except TransientUpstreamError as e:
        raise HTTPException(status_code=503, detail=str(e))

    products = filter_by_city(products, city)
    return {"count": len(products), "catalog": build_catalog(products)}


@router.get("/{product_id}")
async def get_product(product_id: str, platform: CommercePlatform = Depends(get_commerce_backend)):
    """Single product as an ONDC item"""
    try:
        product = await platform.get_product(product_id)
    except PlatformRejection as e:
        if e.not_found:
            raise HTTPException(status_code=404, detail="Product not found")
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except TransientUpstreamError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return product_to_item(product)
