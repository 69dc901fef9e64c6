from typing import Any, Dict, List, Optional, Tuple
import structlog
from sqlalchemy import select, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from prestasync.models.database import Product, PriceHistory, StockAlert
from prestasync.core.exceptions import ProductNotFoundError, ValidationError
from prestasync.utils.helpers import utcnow, normalize_price

logger = structlog.get_logger()

EDITABLE_FIELDS = (
    "name", "reference", "current_quantity", "min_quantity",
    "product_type", "status", "condition", "price",
)

class ProductService:
    """Local product catalogue queries and manual edits"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_product(self, product_id: int) -> Product:
        product = await self.db.get(Product, product_id)
        if not product:
            raise ProductNotFoundError(product_id)
        return product

    async def list_products(
        self,
        site_id: int,
        status: Optional[str] = None,
        condition: Optional[str] = None,
        reference: Optional[str] = None,
        product_type: Optional[str] = None,
        is_attribute: Optional[bool] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[Product], int]:
        """Filtered products of a site and the unpaginated total"""
        conditions = [Product.site_id == site_id]
        if status:
            conditions.append(Product.status == status)
        if condition:
            conditions.append(Product.condition == condition)
        if reference:
            conditions.append(Product.reference.contains(reference, autoescape=True))
        if product_type:
            conditions.append(Product.product_type == product_type)
        if is_attribute is not None:
            conditions.append(Product.is_attribute == is_attribute)

        total = await self.db.scalar(select(func.count(Product.id)).where(*conditions))

        stmt = select(Product).where(*conditions).order_by(Product.id)
        if page and limit:
            stmt = stmt.limit(limit).offset((page - 1) * limit)

        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total or 0

    async def count_products(self, site_id: int) -> int:
        total = await self.db.scalar(select(func.count(Product.id)).where(Product.site_id == site_id))
        return total or 0

    async def update_product(self, product_id: int, data: Dict[str, Any]) -> Product:
        product = await self.get_product(product_id)

        for key, value in data.items():
            if key not in EDITABLE_FIELDS:
                continue
            if key == "price":
                try:
                    value = normalize_price(value)
                except ValueError as e:
                    raise ValidationError(str(e))
            setattr(product, key, value)

        product.last_update = utcnow()
        await self.db.commit()
        logger.info("Updated product", product_id=product_id, fields=sorted(k for k in data if k in EDITABLE_FIELDS))
        return product

    async def delete_product(self, product_id: int) -> None:
        """Delete a product with its history and alerts; a principal takes its attribute rows along"""
        product = await self.get_product(product_id)

        doomed = select(Product.id).where(or_(Product.id == product.id, Product.parent_id == product.id))
        if product.is_attribute:
            doomed = select(Product.id).where(Product.id == product.id)
        doomed_ids = list((await self.db.execute(doomed)).scalars().all())

        await self.db.execute(
            delete(StockAlert).where(StockAlert.product_id.in_(doomed_ids)).execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(PriceHistory).where(PriceHistory.product_id.in_(doomed_ids)).execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(Product).where(Product.id.in_(doomed_ids)).execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info("Deleted product", product_id=product_id, deleted_rows=len(doomed_ids))
