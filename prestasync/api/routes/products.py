from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any, List

from prestasync.config.database import get_db
from prestasync.api.dependencies import get_price_history_service
from prestasync.models.api import (
    ProductOut, ProductUpdate, PriceHistoryOut, PriceHistoryCreate, StockAlertOut,
)
from prestasync.services.product_service import ProductService
from prestasync.services.price_history_service import PriceHistoryService
from prestasync.services.stock_alert_service import StockAlertService

router = APIRouter()

@router.get("/{product_id}", response_model=ProductOut)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    return await ProductService(db).get_product(product_id)

@router.patch("/{product_id}", response_model=ProductOut)
async def update_product(product_id: int, payload: ProductUpdate, db: AsyncSession = Depends(get_db)):
    return await ProductService(db).update_product(product_id, payload.model_dump(exclude_unset=True))

@router.delete("/{product_id}")
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a product, its history and alerts, and the variants of a principal"""
    await ProductService(db).delete_product(product_id)
    return {"success": True, "message": "Product deleted"}

@router.get("/{product_id}/price-history", response_model=List[PriceHistoryOut])
async def list_price_history(
    product_id: int,
    price_service: PriceHistoryService = Depends(get_price_history_service),
):
    return await price_service.list_for_product(product_id)

@router.post("/{product_id}/price-history", response_model=PriceHistoryOut, status_code=201)
async def add_price_history(
    product_id: int,
    payload: PriceHistoryCreate,
    price_service: PriceHistoryService = Depends(get_price_history_service),
):
    return await price_service.add_manual_entry(product_id, payload.price, payload.type, payload.date)

@router.get("/{product_id}/price-history/remote")
async def get_remote_price_history(
    product_id: int,
    price_service: PriceHistoryService = Depends(get_price_history_service),
) -> Dict[str, Any]:
    """Store-side price timeline for the product"""
    return await price_service.fetch_remote_history(product_id)

@router.post("/{product_id}/price-history/refresh")
async def refresh_price_history(
    product_id: int,
    price_service: PriceHistoryService = Depends(get_price_history_service),
) -> Dict[str, Any]:
    """Import the store's price changes that are not recorded yet"""
    result = await price_service.refresh_price_history(product_id)
    return {"success": True, **result}

@router.get("/{product_id}/stock-alerts", response_model=List[StockAlertOut])
async def list_stock_alerts(product_id: int, db: AsyncSession = Depends(get_db)):
    return await StockAlertService(db).list_for_product(product_id)
