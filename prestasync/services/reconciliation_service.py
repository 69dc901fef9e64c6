from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import structlog
from sqlalchemy import select, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from prestasync.config.settings import get_settings
from prestasync.models.database import (
    Site, Product, PriceHistory, StockAlert,
    SITE_CONNECTED, SITE_ERROR,
    PRICE_SYNC, PRICE_ATTRIBUTE,
    ALERT_LOW_STOCK, ALERT_OUT_OF_STOCK, ALERT_ACTIVE,
)
from prestasync.models.prestashop import (
    ProductRecord, PrincipalRecord, AttributeRecord, parse_product_record,
)
from prestasync.core.exceptions import ValidationError
from prestasync.utils.helpers import utcnow, build_attribute_name, log_performance

logger = structlog.get_logger()

OUTCOME_OK = "ok"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"

def stock_alert_type(quantity: int, low_stock_threshold: int = 5) -> Optional[str]:
    """Alert raised when stock lands on a quantity, or None"""
    if quantity == 0:
        return ALERT_OUT_OF_STOCK
    if 0 < quantity <= low_stock_threshold:
        return ALERT_LOW_STOCK
    return None

@dataclass
class RecordResult:
    """Outcome of one feed entry"""
    record: Any
    outcome: str
    action: Optional[str] = None
    product_id: Optional[int] = None
    reason: Optional[str] = None
    alert_type: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        if isinstance(self.record, (PrincipalRecord, AttributeRecord)):
            record = self.record.model_dump(mode="json")
        else:
            record = self.record
        return {
            "record": record,
            "outcome": self.outcome,
            "action": self.action,
            "product_id": self.product_id,
            "reason": self.reason,
            "alert_type": self.alert_type,
        }

@dataclass
class SyncReport:
    site_id: int
    results: List[RecordResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    site_status: Optional[str] = None

    def _count(self, outcome: str) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    @property
    def synced_count(self) -> int:
        return self._count(OUTCOME_OK)

    @property
    def skipped_count(self) -> int:
        return self._count(OUTCOME_SKIPPED)

    @property
    def failed_count(self) -> int:
        return self._count(OUTCOME_FAILED)

    @property
    def all_failed(self) -> bool:
        return bool(self.results) and self.failed_count == len(self.results)

    def summary(self) -> Dict[str, Any]:
        return {
            "site_id": self.site_id,
            "total": len(self.results),
            "synced": self.synced_count,
            "skipped": self.skipped_count,
            "failed": self.failed_count,
            "site_status": self.site_status,
        }

    def as_dict(self) -> Dict[str, Any]:
        data = self.summary()
        data["results"] = [result.as_dict() for result in self.results]
        return data

class ReconciliationService:
    """Reconciles store feed entries against the local product catalogue"""

    def __init__(self, db: AsyncSession):
        self.settings = get_settings()
        self.db = db

    async def sync_all_products(self, site: Site, raw_records: List[Any]) -> SyncReport:
        """Process a feed in order, one committed unit per record, then stamp the site.

        Records are never reordered: a variant depends on its parent having
        been stored by an earlier record or an earlier sync.
        """
        site_id = site.id
        report = SyncReport(site_id=site_id)
        logger.info("Starting product sync", site_id=site_id, records=len(raw_records))

        try:
            for index, raw in enumerate(raw_records):
                try:
                    record = parse_product_record(raw)
                except ValidationError as e:
                    logger.warning("Rejected malformed product record", site_id=site_id, index=index, error=str(e))
                    report.results.append(RecordResult(record=raw, outcome=OUTCOME_FAILED, reason=str(e)))
                    continue

                try:
                    result = await self.sync_product(site_id, record)
                    await self.db.commit()
                except Exception as e:
                    await self.db.rollback()
                    logger.error("Failed to sync product",
                                 site_id=site_id,
                                 presta_id=record.id,
                                 reference=record.reference,
                                 error=str(e))
                    result = RecordResult(record=record, outcome=OUTCOME_FAILED, reason=str(e))

                report.results.append(result)

            report.site_status = SITE_ERROR if report.all_failed else SITE_CONNECTED
            await self._stamp_site(site_id, report.site_status)
        except Exception as e:
            await self.db.rollback()
            logger.error("Error during bulk sync", site_id=site_id, error=str(e))
            await self._stamp_site(site_id, SITE_ERROR)
            raise

        report.finished_at = utcnow()
        log_performance("sync_all_products", report.started_at, report.finished_at, **report.summary())
        return report

    async def sync_product(self, site_id: int, record: ProductRecord) -> RecordResult:
        """Route a record to the principal or the attribute path"""
        if isinstance(record, AttributeRecord):
            return await self.sync_product_attribute(site_id, record)
        return await self.sync_principal_product(site_id, record)

    async def sync_principal_product(self, site_id: int, record: PrincipalRecord) -> RecordResult:
        logger.debug("Syncing product", site_id=site_id, reference=record.reference, presta_id=record.id)
        now = utcnow()

        product = await self.find_principal(site_id, record.id, record.reference)
        alert_type = None

        if product:
            if record.price is not None:
                self._add_price_point(product.id, record.price, PRICE_SYNC, now)
                product.price = record.price
            if record.name and record.name != product.name:
                product.name = record.name

            if product.current_quantity != record.quantity:
                product.current_quantity = record.quantity
                product.last_update = now
                alert_type = await self._raise_stock_alert(product, record.quantity, now)

            await self.db.flush()
            return RecordResult(record=record, outcome=OUTCOME_OK, action=ACTION_UPDATED,
                                product_id=product.id, alert_type=alert_type)

        product = Product(
            site_id=site_id,
            presta_id=record.id,
            name=record.name or record.reference or f"Product {record.id}",
            reference=record.reference,
            current_quantity=record.quantity,
            min_quantity=self.settings.DEFAULT_MIN_QUANTITY,
            product_type="simple",
            is_attribute=False,
            price=record.price,
            last_update=now,
            created_at=now,
        )
        self.db.add(product)
        await self.db.flush()
        logger.info("Created new product", site_id=site_id, product_id=product.id, name=product.name)

        if record.price is not None:
            self._add_price_point(product.id, record.price, PRICE_SYNC, now)
        # A new product counts as a transition from "unknown" stock
        alert_type = await self._raise_stock_alert(product, record.quantity, now)

        await self.db.flush()
        return RecordResult(record=record, outcome=OUTCOME_OK, action=ACTION_CREATED,
                            product_id=product.id, alert_type=alert_type)

    async def sync_product_attribute(self, site_id: int, record: AttributeRecord) -> RecordResult:
        logger.debug("Syncing product attribute",
                     site_id=site_id,
                     reference=record.reference,
                     id_product_attribute=record.id_product_attribute)
        now = utcnow()

        parent = await self.find_principal(site_id, record.remote_parent_id)
        if not parent:
            # Retried on the next full sync, once the parent row exists
            logger.info("Parent product not found for attribute, deferring",
                        site_id=site_id,
                        reference=record.reference,
                        parent_presta_id=record.remote_parent_id)
            return RecordResult(record=record, outcome=OUTCOME_SKIPPED,
                                reason=f"parent product {record.remote_parent_id} not synced yet")

        name = build_attribute_name(parent.name, record.declinaisons)
        attribute = await self.find_attribute(parent.id, record.id_product_attribute)

        if attribute:
            attribute.name = name
            attribute.reference = record.reference
            attribute.current_quantity = record.quantity
            attribute.last_update = now
            if record.price is not None:
                attribute.price = record.price
                self._add_price_point(attribute.id, record.price, PRICE_ATTRIBUTE, now)

            await self.db.flush()
            logger.info("Updated attribute", site_id=site_id, product_id=attribute.id, parent_id=parent.id)
            return RecordResult(record=record, outcome=OUTCOME_OK, action=ACTION_UPDATED, product_id=attribute.id)

        attribute = Product(
            site_id=site_id,
            presta_id=record.remote_parent_id,
            name=name,
            reference=record.reference,
            current_quantity=record.quantity,
            is_attribute=True,
            parent_id=parent.id,
            attribute_id=record.id_product_attribute,
            product_type="attribute",
            price=record.price,
            last_update=now,
            created_at=now,
        )
        self.db.add(attribute)
        await self.db.flush()

        if record.price is not None:
            self._add_price_point(attribute.id, record.price, PRICE_ATTRIBUTE, now)

        await self.db.flush()
        logger.info("Created new product attribute", site_id=site_id, product_id=attribute.id, name=name)
        return RecordResult(record=record, outcome=OUTCOME_OK, action=ACTION_CREATED, product_id=attribute.id)

    async def find_principal(self, site_id: int, presta_id: int, reference: Optional[str] = None) -> Optional[Product]:
        """Principal product matching the remote id or, failing that, the reference"""
        conditions = [Product.presta_id == presta_id]
        if reference:
            conditions.append(Product.reference == reference)

        stmt = (
            select(Product)
            .where(
                Product.site_id == site_id,
                Product.is_attribute == False,  # noqa: E712
                or_(*conditions),
            )
            .order_by(case((Product.presta_id == presta_id, 0), else_=1), Product.id)
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_attribute(self, parent_id: int, attribute_id: int) -> Optional[Product]:
        stmt = (
            select(Product)
            .where(
                Product.parent_id == parent_id,
                Product.attribute_id == attribute_id,
                Product.is_attribute == True,  # noqa: E712
            )
            .order_by(Product.id)
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    def _add_price_point(self, product_id: int, price: str, type: str, date: datetime) -> PriceHistory:
        entry = PriceHistory(product_id=product_id, price=price, type=type, date=date)
        self.db.add(entry)
        return entry

    async def _raise_stock_alert(self, product: Product, quantity: int, now: datetime) -> Optional[str]:
        """Create-only: alerts are never resolved here when stock recovers"""
        alert_type = stock_alert_type(quantity, self.settings.LOW_STOCK_THRESHOLD)
        if alert_type is None:
            return None

        self.db.add(StockAlert(product_id=product.id, alert_type=alert_type, status=ALERT_ACTIVE, created_at=now))
        logger.info("Created stock alert", product_id=product.id, reference=product.reference, alert_type=alert_type)
        return alert_type

    async def _stamp_site(self, site_id: int, status: str) -> None:
        site = await self.db.get(Site, site_id)
        if not site:
            return
        site.status = status
        site.last_sync = utcnow()
        await self.db.commit()
