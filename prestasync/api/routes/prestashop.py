from fastapi import APIRouter, Depends, HTTPException, Request, Header
from typing import Dict, Any, Optional
from decimal import Decimal
import json
import structlog

from prestasync.api.dependencies import get_site_service
from prestasync.models.database import Site
from prestasync.services.site_service import SiteService
from prestasync.core.exceptions import ValidationError

logger = structlog.get_logger()
router = APIRouter()

async def get_pushing_site(
    request: Request,
    x_api_key: Optional[str] = Header(default=None),
    site_service: SiteService = Depends(get_site_service),
) -> Site:
    """Site owning the API key sent by the store module (header or query string)"""
    api_key = x_api_key or request.query_params.get("api_key")
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing API key")

    site = await site_service.find_by_api_key(api_key)
    if not site:
        logger.warning("Push rejected, unknown API key", path=request.url.path)
        raise HTTPException(status_code=401, detail="Invalid API key")
    return site

async def read_pushed_products(request: Request) -> list:
    body = await request.body()
    try:
        # Decimal so pushed prices never pass through a float
        payload = json.loads(body or b"null", parse_float=Decimal)
    except ValueError:
        raise ValidationError("Request body is not valid JSON")

    if not isinstance(payload, dict) or not isinstance(payload.get("products"), list):
        raise ValidationError("Invalid data format: expected an object with a products list")
    return payload["products"]

@router.post("/webhook")
async def prestashop_webhook(
    request: Request,
    site: Site = Depends(get_pushing_site),
    site_service: SiteService = Depends(get_site_service),
) -> Dict[str, Any]:
    """Automatic product push from the store module"""
    products = await read_pushed_products(request)
    report = await site_service.ingest_pushed_products(site, products, source="webhook")
    return {"success": not report.all_failed, "message": "Synchronization completed", **report.summary()}

@router.post("/sync")
async def prestashop_push_sync(
    request: Request,
    site: Site = Depends(get_pushing_site),
    site_service: SiteService = Depends(get_site_service),
) -> Dict[str, Any]:
    """Manual synchronization triggered from the store back office"""
    products = await read_pushed_products(request)
    report = await site_service.ingest_pushed_products(site, products, source="manual push")
    return {"success": not report.all_failed, "message": "Manual synchronization completed", **report.summary()}
