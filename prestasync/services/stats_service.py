from typing import Callable, Optional
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prestasync.clients.prestashop_client import PrestaShopClient
from prestasync.models.database import Site, SiteStats
from prestasync.models.prestashop import StatsPayload
from prestasync.services.module_log_service import ModuleLogService
from prestasync.core.exceptions import SiteNotFoundError, RemoteStoreError
from prestasync.utils.helpers import utcnow

logger = structlog.get_logger()

ZERO_STATS = StatsPayload()

class SiteStatsService:
    """Keeps the single aggregate counters row of each site"""

    def __init__(self, db: AsyncSession, client_factory: Callable[[Site], PrestaShopClient] = PrestaShopClient):
        self.db = db
        self.client_factory = client_factory
        self.logs = ModuleLogService(db)

    async def get_stats(self, site_id: int) -> Optional[SiteStats]:
        result = await self.db.execute(select(SiteStats).where(SiteStats.site_id == site_id))
        return result.scalar_one_or_none()

    async def fetch_stats(self, site_id: int) -> SiteStats:
        """Pull the store counters and upsert them"""
        site = await self.db.get(Site, site_id)
        if not site:
            raise SiteNotFoundError(site_id)

        logger.info("Fetching general statistics from PrestaShop", site_id=site_id)
        try:
            async with self.client_factory(site) as client:
                payload = await client.get_stats()
        except RemoteStoreError as e:
            await self.logs.record(site_id, "api", "error", f"Statistics fetch failed: {e}")
            raise

        stats = await self.upsert(site_id, payload, commit=False)
        await self.logs.record(site_id, "api", "success", "Statistics updated",
                               details=payload.model_dump(), commit=False)
        await self.db.commit()

        logger.info("Successfully fetched statistics", site_id=site_id, revenue=stats.total_revenue)
        return stats

    async def upsert(self, site_id: int, payload: StatsPayload, commit: bool = True) -> SiteStats:
        """Create the row if the site has none, else update it in place"""
        stats = await self.get_stats(site_id)
        if stats is None:
            stats = SiteStats(site_id=site_id)
            self.db.add(stats)

        stats.total_customers = payload.total_customers
        stats.total_orders = payload.total_orders
        stats.total_revenue = payload.total_revenue
        stats.total_products = payload.total_products
        stats.total_categories = payload.total_categories
        stats.last_update = utcnow()

        if commit:
            await self.db.commit()
        else:
            await self.db.flush()
        return stats

    async def reset(self, site_id: int, commit: bool = True) -> SiteStats:
        return await self.upsert(site_id, ZERO_STATS, commit=commit)
