from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
import structlog
from sqlalchemy import select, update, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from prestasync.config.settings import get_settings
from prestasync.clients.prestashop_client import PrestaShopClient
from prestasync.models.database import (
    Site, Product, PriceHistory, StockAlert, SiteStats,
    SITE_CONNECTED, SITE_DISCONNECTED, SITE_ERROR,
    SYNC_IDLE, SYNC_RUNNING,
)
from prestasync.models.prestashop import merge_attribute_feed
from prestasync.services.reconciliation_service import ReconciliationService, SyncReport
from prestasync.services.module_log_service import ModuleLogService
from prestasync.services.stats_service import SiteStatsService
from prestasync.core.exceptions import (
    SiteNotFoundError, SyncInProgressError, NoProductsFoundError, RemoteStoreError,
)
from prestasync.utils.helpers import utcnow

logger = structlog.get_logger()

SITE_FIELDS = (
    "user_id", "name", "url", "api_key", "version", "status",
    "http_auth_enabled", "http_auth_username", "http_auth_password",
)

class SiteService:
    """Owns per-site status, the sync lock, connection tests and data resets"""

    def __init__(self, db: AsyncSession, client_factory: Callable[[Site], PrestaShopClient] = PrestaShopClient):
        self.settings = get_settings()
        self.db = db
        self.client_factory = client_factory
        self.reconciliation = ReconciliationService(db)
        self.logs = ModuleLogService(db)
        self.stats = SiteStatsService(db, client_factory)

    # Sites

    async def get_site(self, site_id: int) -> Site:
        site = await self.db.get(Site, site_id)
        if not site:
            raise SiteNotFoundError(site_id)
        return site

    async def list_sites(self, user_id: Optional[int] = None) -> List[Site]:
        stmt = select(Site).order_by(Site.id)
        if user_id is not None:
            stmt = stmt.where(Site.user_id == user_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_by_api_key(self, api_key: str) -> Optional[Site]:
        """Resolve a pushing store by its API key (indexed lookup)"""
        if not api_key:
            return None
        result = await self.db.execute(select(Site).where(Site.api_key == api_key).order_by(Site.id).limit(1))
        return result.scalar_one_or_none()

    async def create_site(self, data: Dict[str, Any]) -> Site:
        site = Site(**{key: value for key, value in data.items() if key in SITE_FIELDS})
        site.sync_state = SYNC_IDLE
        if not site.http_auth_enabled:
            site.http_auth_enabled = False
        site.created_at = utcnow()
        self.db.add(site)
        await self.db.commit()
        logger.info("Created site", site_id=site.id, url=site.url)
        return site

    async def update_site(self, site_id: int, data: Dict[str, Any]) -> Site:
        site = await self.get_site(site_id)
        for key, value in data.items():
            if key in SITE_FIELDS:
                setattr(site, key, value)
        await self.db.commit()
        return site

    async def delete_site(self, site_id: int) -> None:
        """Delete a site and everything that hangs off it"""
        site = await self.get_site(site_id)
        async with self.sync_lock(site_id):
            await self._purge_site_data(site_id)
            await self.db.execute(
                delete(SiteStats).where(SiteStats.site_id == site_id).execution_options(synchronize_session=False)
            )
            await self.db.delete(site)
            await self.db.commit()
        logger.info("Deleted site", site_id=site_id)

    async def set_status(self, site_id: int, status: str, commit: bool = True) -> None:
        site = await self.get_site(site_id)
        site.status = status
        if commit:
            await self.db.commit()

    # Sync lock

    async def acquire_sync_lock(self, site_id: int) -> None:
        """Compare-and-swap idle -> syncing; stale locks are taken over"""
        now = utcnow()
        stale_before = now - timedelta(seconds=self.settings.SYNC_LOCK_TIMEOUT_SECONDS)
        stmt = (
            update(Site)
            .where(
                Site.id == site_id,
                or_(
                    Site.sync_state == SYNC_IDLE,
                    Site.sync_state.is_(None),
                    Site.sync_started_at < stale_before,
                ),
            )
            .values(sync_state=SYNC_RUNNING, sync_started_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        if result.rowcount != 1:
            logger.warning("Sync already in progress", site_id=site_id)
            raise SyncInProgressError(site_id)

    async def release_sync_lock(self, site_id: int) -> None:
        await self.db.execute(
            update(Site)
            .where(Site.id == site_id)
            .values(sync_state=SYNC_IDLE, sync_started_at=None)
        )
        await self.db.commit()

    @asynccontextmanager
    async def sync_lock(self, site_id: int):
        await self.acquire_sync_lock(site_id)
        try:
            yield
        except BaseException:
            await self.db.rollback()
            raise
        finally:
            await self.release_sync_lock(site_id)

    # Remote operations

    async def test_connection(self, site_id: int) -> Dict[str, Any]:
        """Ping the store and record the resulting status; failures are reported, not raised"""
        site = await self.get_site(site_id)
        logger.info("Testing connection to PrestaShop site", site_id=site_id)

        try:
            async with self.client_factory(site) as client:
                response = await client.ping()

            if response.get("status") == "ok":
                status, success, message = SITE_CONNECTED, True, "Connection established successfully"
            else:
                logger.warning("Connection failed to PrestaShop site", site_id=site_id, response=response)
                status, success, message = SITE_DISCONNECTED, False, "Connection to the PrestaShop store failed"
        except Exception as e:
            logger.error("Error testing connection to PrestaShop site", site_id=site_id, error=str(e))
            status, success, message = SITE_ERROR, False, f"Error: {e}"

        await self.set_status(site_id, status, commit=False)
        await self.logs.record(site_id, "api", "success" if success else "error", message,
                               details={"action": "ping", "status": status}, commit=False)
        await self.db.commit()
        return {"success": success, "message": message}

    async def fetch_raw_products(self, site_id: int) -> List[Any]:
        """The store product feed exactly as returned, without reconciliation"""
        site = await self.get_site(site_id)
        async with self.client_factory(site) as client:
            return await client.get_products()

    async def sync(self, site_id: int) -> SyncReport:
        """Pull the full product feed from the store and reconcile it"""
        site = await self.get_site(site_id)

        async with self.sync_lock(site_id):
            try:
                async with self.client_factory(site) as client:
                    raw_products = await client.get_products()
                    if self.settings.PRESTASHOP_SYNC_ATTRIBUTE_FEED:
                        # Variants after principals so parents always exist first
                        raw_products = merge_attribute_feed(raw_products, await client.get_products_with_attributes())
            except RemoteStoreError as e:
                await self.set_status(site_id, SITE_ERROR, commit=False)
                await self.logs.record(site_id, "sync", "error", f"Product fetch failed: {e}")
                raise

            if not raw_products:
                raise NoProductsFoundError("No products found on PrestaShop site")

            return await self._run_batch(site, raw_products, "Synchronized {synced} of {total} products")

    async def ingest_pushed_products(self, site: Site, raw_products: List[Any], source: str = "webhook") -> SyncReport:
        """Reconcile a product list pushed by the store module"""
        site_id = site.id
        async with self.sync_lock(site_id):
            message = "Synchronized {synced} of {total} products via " + source
            return await self._run_batch(site, raw_products, message)

    async def _run_batch(self, site: Site, raw_products: List[Any], message: str) -> SyncReport:
        site_id = site.id
        try:
            report = await self.reconciliation.sync_all_products(site, raw_products)
        except Exception as e:
            await self.logs.record(site_id, "sync", "error", f"Synchronization failed: {e}")
            raise

        summary = report.summary()
        status = "error" if report.all_failed else ("warning" if report.failed_count else "success")
        await self.logs.record(site_id, "sync", status, message.format(**summary), details=summary)
        return report

    # Data reset

    async def reset_site_data(self, site_id: int) -> None:
        """Wipe products, price history, alerts, logs and stats of a site"""
        site = await self.get_site(site_id)
        site_name = site.name

        async with self.sync_lock(site_id):
            await self._purge_site_data(site_id)
            await self.stats.reset(site_id, commit=False)
            site.last_sync = None
            await self.db.commit()

        logger.info("Site data reset", site_id=site_id, site_name=site_name)

    async def _purge_site_data(self, site_id: int) -> None:
        # Dependent rows reference products by value; no database cascade is assumed
        product_ids = select(Product.id).where(Product.site_id == site_id).scalar_subquery()

        await self.db.execute(
            delete(StockAlert).where(StockAlert.product_id.in_(product_ids)).execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(PriceHistory).where(PriceHistory.product_id.in_(product_ids)).execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(Product).where(Product.site_id == site_id).execution_options(synchronize_session=False)
        )
        await self._delete_orphans()
        await self.logs.clear(site_id, commit=False)

    async def cleanup_orphans(self) -> Dict[str, int]:
        """Remove price history and stock alerts whose product no longer exists"""
        counts = await self._delete_orphans()
        await self.db.commit()
        logger.info("Orphan cleanup finished", **counts)
        return counts

    async def _delete_orphans(self) -> Dict[str, int]:
        existing = select(Product.id).scalar_subquery()

        history = await self.db.execute(
            delete(PriceHistory).where(PriceHistory.product_id.not_in(existing)).execution_options(synchronize_session=False)
        )
        alerts = await self.db.execute(
            delete(StockAlert).where(StockAlert.product_id.not_in(existing)).execution_options(synchronize_session=False)
        )
        return {"price_history": history.rowcount, "stock_alerts": alerts.rowcount}
