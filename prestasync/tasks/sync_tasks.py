import asyncio
from typing import Any, Callable, Dict
import structlog
from sqlalchemy import select
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from prestasync.tasks.celery_app import celery_app
from prestasync.config.settings import get_settings
from prestasync.config.database import get_session_factory
from prestasync.models.database import Site, SITE_CONNECTED
from prestasync.services.site_service import SiteService
from prestasync.core.exceptions import NetworkError, PrestaSyncException

logger = structlog.get_logger()

async def sync_site_with_retry(session_factory: Callable, site_id: int, wait=None) -> Dict[str, Any]:
    """Sync one site, retrying transport failures only.

    Each attempt takes the site lock again, so a retry never overlaps
    with another sync of the same site.
    """
    settings = get_settings()
    retrying = AsyncRetrying(
        stop=stop_after_attempt(settings.SCHEDULED_SYNC_RETRY_ATTEMPTS),
        wait=wait if wait is not None else wait_exponential(multiplier=1, min=4, max=10),
        retry=retry_if_exception_type(NetworkError),
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            async with session_factory() as db:
                report = await SiteService(db).sync(site_id)
                return report.summary()

async def sync_connected_sites(session_factory: Callable, wait=None) -> Dict[str, Any]:
    """Sync every connected site; one failing site does not stop the others"""
    async with session_factory() as db:
        result = await db.execute(select(Site.id).where(Site.status == SITE_CONNECTED).order_by(Site.id))
        site_ids = list(result.scalars().all())

    results: Dict[str, Any] = {"synced": [], "failed": []}
    for site_id in site_ids:
        try:
            summary = await sync_site_with_retry(session_factory, site_id, wait=wait)
            results["synced"].append(summary)
        except PrestaSyncException as e:
            logger.error("Scheduled sync failed", site_id=site_id, error=str(e), error_type=type(e).__name__)
            results["failed"].append({"site_id": site_id, "error": str(e)})

    logger.info("Scheduled sync finished", synced=len(results["synced"]), failed=len(results["failed"]))
    return results

@celery_app.task(bind=True)
def sync_site_task(self, site_id: int):
    """Celery task syncing a single site"""
    self.update_state(state="PROGRESS", meta={"status": f"Synchronizing site {site_id}"})
    return asyncio.run(sync_site_with_retry(get_session_factory(), site_id))

@celery_app.task
def sync_all_sites_task():
    """Periodic task syncing every connected site"""
    return asyncio.run(sync_connected_sites(get_session_factory()))
