from typing import Any, Dict, Iterable, List, Optional
import structlog
from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from prestasync.models.database import (
    Product, Site, StockAlert,
    ALERT_LOW_STOCK, ALERT_OUT_OF_STOCK, ALERT_ACTIVE, ALERT_RESOLVED,
)
from prestasync.core.exceptions import ProductNotFoundError, StockAlertNotFoundError, ValidationError
from prestasync.utils.helpers import utcnow

logger = structlog.get_logger()

ALERT_TYPES = (ALERT_LOW_STOCK, ALERT_OUT_OF_STOCK)
ALERT_STATUSES = (ALERT_ACTIVE, ALERT_RESOLVED)

class StockAlertService:
    """Manual management of stock alerts; sync only ever creates them"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_alert(self, alert_id: int) -> StockAlert:
        alert = await self.db.get(StockAlert, alert_id)
        if not alert:
            raise StockAlertNotFoundError(alert_id)
        return alert

    async def list_for_product(self, product_id: int) -> List[StockAlert]:
        if not await self.db.get(Product, product_id):
            raise ProductNotFoundError(product_id)
        stmt = (
            select(StockAlert)
            .where(StockAlert.product_id == product_id)
            .order_by(desc(StockAlert.created_at), desc(StockAlert.id))
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_alert(self, product_id: int, alert_type: str, status: str = ALERT_ACTIVE) -> StockAlert:
        if not await self.db.get(Product, product_id):
            raise ProductNotFoundError(product_id)
        self._check(alert_type=alert_type, status=status)

        alert = StockAlert(product_id=product_id, alert_type=alert_type, status=status, created_at=utcnow())
        self.db.add(alert)
        await self.db.commit()
        logger.info("Created stock alert", product_id=product_id, alert_type=alert_type)
        return alert

    async def update_alert(self, alert_id: int, data: Dict[str, Any]) -> StockAlert:
        alert = await self.get_alert(alert_id)
        self._check(alert_type=data.get("alert_type"), status=data.get("status"))

        if data.get("alert_type"):
            alert.alert_type = data["alert_type"]
        if data.get("status"):
            alert.status = data["status"]

        await self.db.commit()
        return alert

    async def resolve_alert(self, alert_id: int) -> StockAlert:
        return await self.update_alert(alert_id, {"status": ALERT_RESOLVED})

    async def delete_alert(self, alert_id: int) -> None:
        alert = await self.get_alert(alert_id)
        await self.db.delete(alert)
        await self.db.commit()

    async def list_active(self, site_ids: Optional[Iterable[int]] = None, limit: int = 10) -> List[Dict[str, Any]]:
        """Active alerts with their product and site, newest first"""
        stmt = (
            select(StockAlert, Product, Site)
            .join(Product, Product.id == StockAlert.product_id)
            .join(Site, Site.id == Product.site_id)
            .where(StockAlert.status == ALERT_ACTIVE)
            .order_by(desc(StockAlert.created_at), desc(StockAlert.id))
            .limit(limit)
        )
        if site_ids is not None:
            stmt = stmt.where(Product.site_id.in_(list(site_ids)))

        result = await self.db.execute(stmt)
        return [
            {
                "id": alert.id,
                "product_id": alert.product_id,
                "alert_type": alert.alert_type,
                "status": alert.status,
                "created_at": alert.created_at,
                "product": {
                    "id": product.id,
                    "name": product.name,
                    "reference": product.reference,
                    "current_quantity": product.current_quantity,
                },
                "site": {"id": site.id, "name": site.name},
            }
            for alert, product, site in result.all()
        ]

    @staticmethod
    def _check(alert_type: Optional[str] = None, status: Optional[str] = None) -> None:
        if alert_type is not None and alert_type not in ALERT_TYPES:
            raise ValidationError(f"Unknown alert type: {alert_type}")
        if status is not None and status not in ALERT_STATUSES:
            raise ValidationError(f"Unknown alert status: {status}")
