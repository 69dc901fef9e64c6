from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from prestasync.models.api import SiteOut, SiteStatsOut
from prestasync.services.site_service import SiteService
from prestasync.services.product_service import ProductService
from prestasync.services.stock_alert_service import StockAlertService
from prestasync.services.price_history_service import PriceHistoryService
from prestasync.services.stats_service import SiteStatsService

class DashboardService:
    """Read-only aggregates for the overview pages"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.sites = SiteService(db)
        self.products = ProductService(db)
        self.alerts = StockAlertService(db)
        self.prices = PriceHistoryService(db)
        self.stats = SiteStatsService(db)

    async def overview(self, user_id: Optional[int] = None) -> Dict[str, Any]:
        sites = await self.sites.list_sites(user_id)
        site_ids = [site.id for site in sites]

        product_counts = {}
        site_stats = {}
        for site_id in site_ids:
            product_counts[site_id] = await self.products.count_products(site_id)
            stats = await self.stats.get_stats(site_id)
            if stats:
                site_stats[site_id] = SiteStatsOut.model_validate(stats).model_dump()

        return {
            "sites": [SiteOut.model_validate(site).model_dump() for site in sites],
            "product_counts": product_counts,
            "active_alerts": await self.alerts.list_active(site_ids),
            "recent_price_changes": await self.prices.recent_price_changes(site_ids),
            "site_stats": site_stats,
        }

    async def site_overview(self, site_id: int) -> Dict[str, Any]:
        site = await self.sites.get_site(site_id)
        stats = await self.stats.get_stats(site_id)

        return {
            "site": SiteOut.model_validate(site).model_dump(),
            "product_count": await self.products.count_products(site_id),
            "stock_alerts": await self.alerts.list_active([site_id]),
            "price_changes": await self.prices.recent_price_changes([site_id]),
            "site_stats": SiteStatsOut.model_validate(stats).model_dump() if stats else None,
        }
