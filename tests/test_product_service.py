import pytest
from sqlalchemy import select, func

from prestasync.models.database import (
    Product, PriceHistory, StockAlert, ALERT_ACTIVE, ALERT_RESOLVED, ALERT_LOW_STOCK,
)
from prestasync.services.product_service import ProductService
from prestasync.services.stock_alert_service import StockAlertService
from prestasync.services.reconciliation_service import ReconciliationService
from prestasync.core.exceptions import ProductNotFoundError, StockAlertNotFoundError, ValidationError

FEED = [
    {"id": 10, "reference": "SKU1", "name": "T-shirt", "price": "19.99", "quantity": 3},
    {"id": 10, "parent_id": 10, "id_product_attribute": 5, "reference": "SKU1-RED", "price": "21.99", "quantity": 1},
    {"id": 11, "reference": "MUG-1", "name": "Mug", "price": "9.90", "quantity": 40},
    {"id": 12, "reference": "MUG-2", "name": "Big mug", "price": "12.90", "quantity": 0},
]

async def count(db, model, *where):
    return await db.scalar(select(func.count(model.id)).where(*where))

@pytest.fixture
async def catalogue(db, site):
    await ReconciliationService(db).sync_all_products(site, FEED)
    result = await db.execute(select(Product).order_by(Product.id))
    return {product.reference: product for product in result.scalars().all()}

async def test_list_filters_and_total(db, site, catalogue):
    service = ProductService(db)

    products, total = await service.list_products(site.id, reference="MUG")
    assert total == 2
    assert {p.reference for p in products} == {"MUG-1", "MUG-2"}

    products, total = await service.list_products(site.id, is_attribute=True)
    assert [p.reference for p in products] == ["SKU1-RED"]

    products, total = await service.list_products(site.id, product_type="simple", page=2, limit=2)
    assert total == 3
    assert [p.reference for p in products] == ["MUG-2"]

async def test_update_product_validates_price(db, catalogue):
    product = catalogue["MUG-1"]

    updated = await ProductService(db).update_product(product.id, {"price": "10.000", "min_quantity": 2, "site_id": 99})

    assert updated.price == "10.000"
    assert updated.min_quantity == 2
    assert updated.site_id == product.site_id

async def test_update_product_rejects_bad_price(db, catalogue):
    with pytest.raises(ValidationError):
        await ProductService(db).update_product(catalogue["MUG-1"].id, {"price": "ten"})

async def test_delete_principal_takes_variants_history_and_alerts(db, catalogue):
    parent_id = catalogue["SKU1"].id
    variant_id = catalogue["SKU1-RED"].id

    await ProductService(db).delete_product(parent_id)

    assert await count(db, Product, Product.id.in_([parent_id, variant_id])) == 0
    assert await count(db, PriceHistory, PriceHistory.product_id.in_([parent_id, variant_id])) == 0
    assert await count(db, StockAlert, StockAlert.product_id == parent_id) == 0
    assert await count(db, Product) == 2

async def test_delete_variant_keeps_parent(db, catalogue):
    await ProductService(db).delete_product(catalogue["SKU1-RED"].id)

    assert await count(db, Product, Product.reference == "SKU1") == 1

async def test_get_unknown_product(db):
    with pytest.raises(ProductNotFoundError):
        await ProductService(db).get_product(31337)

async def test_alert_lifecycle(db, site, catalogue):
    service = StockAlertService(db)
    product = catalogue["MUG-1"]

    alert = await service.create_alert(product.id, ALERT_LOW_STOCK)
    assert alert.status == ALERT_ACTIVE

    resolved = await service.resolve_alert(alert.id)
    assert resolved.status == ALERT_RESOLVED

    active = await service.list_active([site.id])
    assert alert.id not in [a["id"] for a in active]
    # SKU1 low stock and MUG-2 out of stock remain from the sync
    assert len(active) == 2
    assert active[0]["site"]["name"] == "Demo store"

    await service.delete_alert(alert.id)
    with pytest.raises(StockAlertNotFoundError):
        await service.get_alert(alert.id)

async def test_alert_validation(db, catalogue):
    service = StockAlertService(db)

    with pytest.raises(ValidationError):
        await service.create_alert(catalogue["MUG-1"].id, "overheating")
    with pytest.raises(ProductNotFoundError):
        await service.create_alert(999, ALERT_LOW_STOCK)

async def test_alerts_listed_per_product_newest_first(db, catalogue):
    service = StockAlertService(db)
    product = catalogue["SKU1"]
    extra = await service.create_alert(product.id, ALERT_LOW_STOCK)

    alerts = await service.list_for_product(product.id)

    assert alerts[0].id == extra.id
    assert len(alerts) == 2
