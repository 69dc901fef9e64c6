from typing import Callable
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from prestasync.config.database import get_db
from prestasync.clients.prestashop_client import PrestaShopClient
from prestasync.models.database import Site
from prestasync.services.site_service import SiteService
from prestasync.services.stats_service import SiteStatsService
from prestasync.services.price_history_service import PriceHistoryService

ClientFactory = Callable[[Site], PrestaShopClient]

def get_client_factory() -> ClientFactory:
    """How routes build store clients; overridden in tests"""
    return PrestaShopClient

def get_site_service(
    db: AsyncSession = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> SiteService:
    return SiteService(db, client_factory)

def get_stats_service(
    db: AsyncSession = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> SiteStatsService:
    return SiteStatsService(db, client_factory)

def get_price_history_service(
    db: AsyncSession = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> PriceHistoryService:
    return PriceHistoryService(db, client_factory)
