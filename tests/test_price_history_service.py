from datetime import datetime, timedelta

import pytest
from sqlalchemy import select, func

from prestasync.models.database import Product, PriceHistory, PRICE_MANUAL
from prestasync.services.price_history_service import PriceHistoryService
from prestasync.core.exceptions import InvalidProductError, ProductNotFoundError, ValidationError

TIMELINE = {
    "product": {"id": 10, "name": "T-shirt", "reference": "SKU1", "current_price": "21.00"},
    "history": {
        "current": {"price": "21.00", "date": "2024-03-01 12:00:00"},
        "specific_prices": [],
        "order_prices": [{"price": "19.99", "date": "2024-02-10 09:00:00"}],
        "price_changes": [
            {"old_price": "18.00", "new_price": "19.99", "date": "2024-01-05 10:15:30", "type": "change"},
            {"old_price": "19.99", "new_price": "21.00", "date": "2024-03-01 12:00:00", "type": "specific"},
        ],
    },
}

@pytest.fixture
async def product(db, site) -> Product:
    product = Product(site_id=site.id, presta_id=10, name="T-shirt", reference="SKU1", current_quantity=4)
    db.add(product)
    await db.commit()
    return product

@pytest.fixture
def service(db, store):
    return PriceHistoryService(db, store.client_factory)

async def history_count(db, product_id):
    return await db.scalar(select(func.count(PriceHistory.id)).where(PriceHistory.product_id == product_id))

async def test_refresh_inserts_remote_changes(service, store, product, db):
    store.reply("price_history", TIMELINE)

    result = await service.refresh_price_history(product.id)

    assert result == {"added_count": 2}
    rows = (await db.execute(
        select(PriceHistory).where(PriceHistory.product_id == product.id).order_by(PriceHistory.date)
    )).scalars().all()
    assert [(r.price, r.type) for r in rows] == [("19.99", "change"), ("21.00", "specific")]
    assert rows[0].date == datetime(2024, 1, 5, 10, 15, 30)
    assert store.calls("price_history")[0].url.params["id_product"] == "10"

async def test_refresh_twice_adds_nothing_the_second_time(service, store, product, db):
    store.reply("price_history", TIMELINE)

    await service.refresh_price_history(product.id)
    second = await service.refresh_price_history(product.id)

    assert second == {"added_count": 0}
    assert await history_count(db, product.id) == 2

async def test_refresh_skips_points_already_recorded_to_the_second(service, store, product, db):
    db.add(PriceHistory(product_id=product.id, price="19.99", date=datetime(2024, 1, 5, 10, 15, 30, 640000)))
    await db.commit()
    store.reply("price_history", TIMELINE)

    result = await service.refresh_price_history(product.id)

    assert result == {"added_count": 1}

async def test_refresh_matches_prices_by_value_not_text(service, store, product, db):
    db.add(PriceHistory(product_id=product.id, price="19.990", date=datetime(2024, 1, 5, 10, 15, 30)))
    await db.commit()
    store.reply("price_history", TIMELINE)

    result = await service.refresh_price_history(product.id)

    assert result == {"added_count": 1}

async def test_refresh_requires_remote_id(service, site, db):
    product = Product(site_id=site.id, presta_id=0, name="Local only")
    db.add(product)
    await db.commit()

    with pytest.raises(InvalidProductError):
        await service.refresh_price_history(product.id)

async def test_refresh_unknown_product(service):
    with pytest.raises(ProductNotFoundError):
        await service.refresh_price_history(999)

async def test_remote_history_is_tagged_with_local_ids(service, store, product):
    store.reply("price_history", TIMELINE)

    data = await service.fetch_remote_history(product.id)

    assert data["local_data"] == {"product_id": product.id, "site_id": product.site_id}
    assert data["history"]["order_prices"][0]["price"] == "19.99"

async def test_manual_entry_and_listing_newest_first(service, product):
    await service.add_manual_entry(product.id, "10.50", date=datetime(2024, 1, 1))
    latest = await service.add_manual_entry(product.id, "12", type="order", date=datetime(2024, 2, 1))

    rows = await service.list_for_product(product.id)

    assert [r.id for r in rows][0] == latest.id
    assert [(r.price, r.type) for r in rows] == [("12", "order"), ("10.50", PRICE_MANUAL)]

async def test_manual_entry_needs_a_price(service, product):
    with pytest.raises(ValidationError):
        await service.add_manual_entry(product.id, None)
    with pytest.raises(ValidationError):
        await service.add_manual_entry(product.id, "free")

async def test_recent_price_changes(service, product, site, db):
    steady = Product(site_id=site.id, presta_id=11, name="Mug", reference="SKU2")
    db.add(steady)
    await db.commit()

    now = datetime(2024, 6, 1, 12, 0, 0)
    db.add_all([
        PriceHistory(product_id=product.id, price="18", date=now - timedelta(days=3)),
        PriceHistory(product_id=product.id, price="19.99", date=now - timedelta(days=2)),
        PriceHistory(product_id=product.id, price="21", date=now - timedelta(days=1)),
        PriceHistory(product_id=steady.id, price="9.9", date=now - timedelta(days=2)),
        PriceHistory(product_id=steady.id, price="9.90", date=now - timedelta(days=1)),
    ])
    await db.commit()

    changes = await service.recent_price_changes([site.id])

    assert len(changes) == 1
    change = changes[0]
    assert (change["product_id"], change["price"], change["old_price"]) == (product.id, "21", "19.99")
    assert change["site"] == {"id": site.id, "name": "Demo store"}
    assert await service.recent_price_changes([site.id + 1]) == []
