from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional
import structlog
from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from prestasync.clients.prestashop_client import PrestaShopClient
from prestasync.models.database import Site, Product, PriceHistory, PRICE_MANUAL
from prestasync.core.exceptions import (
    SiteNotFoundError, ProductNotFoundError, InvalidProductError, ValidationError,
)
from prestasync.utils.helpers import utcnow, normalize_price, price_key

logger = structlog.get_logger()

def dedup_key(date: datetime, price: str):
    """Identity of a price point: timestamp to the second plus the canonical price"""
    return date.replace(microsecond=0), price_key(price)

class PriceHistoryService:
    def __init__(self, db: AsyncSession, client_factory: Callable[[Site], PrestaShopClient] = PrestaShopClient):
        self.db = db
        self.client_factory = client_factory

    async def _get_product(self, product_id: int) -> Product:
        product = await self.db.get(Product, product_id)
        if not product:
            raise ProductNotFoundError(product_id)
        return product

    async def _get_site(self, site_id: int) -> Site:
        site = await self.db.get(Site, site_id)
        if not site:
            raise SiteNotFoundError(site_id)
        return site

    async def list_for_product(self, product_id: int) -> List[PriceHistory]:
        await self._get_product(product_id)
        stmt = (
            select(PriceHistory)
            .where(PriceHistory.product_id == product_id)
            .order_by(desc(PriceHistory.date), desc(PriceHistory.id))
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def add_manual_entry(self, product_id: int, price: Any, type: Optional[str] = None,
                               date: Optional[datetime] = None) -> PriceHistory:
        await self._get_product(product_id)
        try:
            price_text = normalize_price(price)
        except ValueError as e:
            raise ValidationError(str(e))
        if price_text is None:
            raise ValidationError("A price is required")

        entry = PriceHistory(product_id=product_id, price=price_text, type=type or PRICE_MANUAL, date=date or utcnow())
        self.db.add(entry)
        await self.db.commit()
        logger.info("Added price history entry", product_id=product_id, price=price_text, type=entry.type)
        return entry

    async def fetch_remote_history(self, product_id: int) -> Dict[str, Any]:
        """The store's price timeline for a product, tagged with the local ids"""
        product = await self._get_product(product_id)
        if not product.presta_id:
            raise InvalidProductError(f"Product {product_id} has no PrestaShop id")

        site = await self._get_site(product.site_id)
        async with self.client_factory(site) as client:
            payload = await client.get_price_history(product.presta_id)

        data = payload.model_dump(mode="json", by_alias=True)
        data["local_data"] = {"product_id": product.id, "site_id": product.site_id}
        return data

    async def refresh_price_history(self, product_id: int) -> Dict[str, int]:
        """Insert the store's price changes that are not already recorded locally"""
        product = await self._get_product(product_id)
        if not product.presta_id:
            raise InvalidProductError(f"Product {product_id} has no PrestaShop id")

        site = await self._get_site(product.site_id)
        logger.info("Refreshing price history", product_id=product.id, presta_id=product.presta_id)

        async with self.client_factory(site) as client:
            payload = await client.get_price_history(product.presta_id)

        existing = await self.db.execute(
            select(PriceHistory.date, PriceHistory.price).where(PriceHistory.product_id == product.id)
        )
        seen = {dedup_key(date, price) for date, price in existing.all() if date is not None}

        added_count = 0
        for change in payload.history.price_changes:
            key = dedup_key(change.date, change.new_price)
            if key in seen:
                continue
            seen.add(key)
            self.db.add(PriceHistory(product_id=product.id, price=change.new_price, date=change.date, type=change.type))
            added_count += 1

        await self.db.commit()
        logger.info("Price history refreshed", product_id=product.id, added_count=added_count)
        return {"added_count": added_count}

    async def recent_price_changes(self, site_ids: Optional[Iterable[int]] = None, limit: int = 10) -> List[Dict[str, Any]]:
        """Products whose two latest price points differ, most recent first"""
        ranked = (
            select(
                PriceHistory.id,
                PriceHistory.product_id,
                PriceHistory.price,
                PriceHistory.date,
                PriceHistory.type,
                func.row_number().over(
                    partition_by=PriceHistory.product_id,
                    order_by=(desc(PriceHistory.date), desc(PriceHistory.id)),
                ).label("row_rank"),
            )
            .subquery()
        )

        stmt = (
            select(ranked, Product.name, Product.reference, Product.site_id, Site.name.label("site_name"))
            .join(Product, Product.id == ranked.c.product_id)
            .join(Site, Site.id == Product.site_id)
            .where(ranked.c.row_rank <= 2)
            .order_by(ranked.c.product_id, ranked.c.row_rank)
        )
        if site_ids is not None:
            stmt = stmt.where(Product.site_id.in_(list(site_ids)))

        result = await self.db.execute(stmt)

        latest: Dict[int, Any] = {}
        changes: List[Dict[str, Any]] = []
        for row in result.all():
            if row.row_rank == 1:
                latest[row.product_id] = row
                continue
            current = latest.get(row.product_id)
            if current is None or price_key(current.price) == price_key(row.price):
                continue
            changes.append({
                "id": current.id,
                "product_id": current.product_id,
                "price": current.price,
                "old_price": row.price,
                "date": current.date,
                "type": current.type or "sync",
                "product": {"id": current.product_id, "name": current.name, "reference": current.reference},
                "site": {"id": current.site_id, "name": current.site_name},
            })

        changes.sort(key=lambda change: change["date"], reverse=True)
        return changes[:limit]
