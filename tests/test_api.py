import httpx
import pytest
from sqlalchemy import select, func

from prestasync.main import app
from prestasync.config.database import get_db
from prestasync.api.dependencies import get_client_factory
from prestasync.models.database import Site, Product, ModuleLog, SITE_CONNECTED, SYNC_IDLE, SYNC_RUNNING
from prestasync.utils.helpers import utcnow

FEED = {"products": [
    {"id": 10, "reference": "SKU1", "name": "T-shirt", "price": "19.99", "quantity": 3},
    {"id": 11, "reference": "SKU2", "name": "Mug", "price": "9.90", "quantity": 0},
]}

@pytest.fixture
async def client(session_factory, store):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_client_factory] = lambda: store.client_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

async def test_health(client):
    response = await client.get("/health/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    detailed = (await client.get("/health/detailed")).json()
    assert detailed["database"] == "healthy"

async def test_site_crud(client):
    response = await client.post("/sites/", json={
        "user_id": 1, "name": "Shop", "url": "https://shop.example.com", "api_key": "k1",
        "http_auth_password": "hidden",
    })
    assert response.status_code == 201
    site = response.json()
    assert "api_key" not in site
    assert "http_auth_password" not in site

    response = await client.patch(f"/sites/{site['id']}", json={"name": "Renamed"})
    assert response.json()["name"] == "Renamed"

    assert [s["id"] for s in (await client.get("/sites/", params={"user_id": 1})).json()] == [site["id"]]

    assert (await client.delete(f"/sites/{site['id']}")).status_code == 200
    response = await client.get(f"/sites/{site['id']}")
    assert response.status_code == 404
    assert response.json()["error"] == "SiteNotFoundError"

async def test_connection_failure_is_reported_in_body(client, store, site):
    store.reply("ping", status_code=503, text="<html><title>Maintenance</title></html>")

    response = await client.post(f"/sites/{site.id}/test-connection")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert "<html>" not in body["message"]

async def test_sync_then_browse_products(client, store, site):
    store.reply("products", FEED)

    response = await client.post(f"/sites/{site.id}/sync")
    assert response.status_code == 200
    assert response.json()["synced"] == 2

    listing = (await client.get(f"/sites/{site.id}/products", params={"reference": "SKU2"})).json()
    assert listing["total"] == 1
    product = listing["products"][0]
    assert product["price"] == "9.90"

    history = (await client.get(f"/products/{product['id']}/price-history")).json()
    assert [h["price"] for h in history] == ["9.90"]

    alerts = (await client.get(f"/products/{product['id']}/stock-alerts")).json()
    assert [a["alert_type"] for a in alerts] == ["out_of_stock"]

    dashboard = (await client.get("/dashboard/")).json()
    assert dashboard["product_counts"][str(site.id)] == 2
    assert len(dashboard["active_alerts"]) == 2

    logs = (await client.get(f"/sites/{site.id}/logs")).json()
    assert logs[0]["type"] == "sync"

async def test_sync_remote_error_maps_to_bad_gateway(client, store, site):
    store.reply("products", status_code=500, text="Fatal error")

    response = await client.post(f"/sites/{site.id}/sync")

    assert response.status_code == 502
    assert response.json()["error"] == "HttpStatusError"

async def test_sync_while_locked_is_conflict(client, store, site, db):
    site.sync_state = SYNC_RUNNING
    site.sync_started_at = utcnow()
    await db.commit()
    store.reply("products", FEED)

    response = await client.post(f"/sites/{site.id}/sync")

    assert response.status_code == 409

async def test_webhook_requires_known_api_key(client, site):
    assert (await client.post("/prestashop/webhook", json=FEED)).status_code == 401
    response = await client.post("/prestashop/webhook", json=FEED, headers={"X-Api-Key": "wrong"})
    assert response.status_code == 401

@pytest.mark.parametrize("body", [
    "{not json",
    '{"items": []}',
    '{"products": {"id": 10}}',
])
async def test_webhook_rejects_invalid_payload(client, site, session_factory, body):
    site_id = site.id

    response = await client.post(
        "/prestashop/webhook",
        content=body,
        headers={"X-Api-Key": "secret-key", "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    async with session_factory() as other:
        assert await other.scalar(select(func.count(Product.id))) == 0
        stored = await other.get(Site, site_id)
        assert (stored.status, stored.last_sync, stored.sync_state) == (SITE_CONNECTED, None, SYNC_IDLE)

async def test_webhook_ingests_products(client, site, db):
    response = await client.post(
        "/prestashop/webhook",
        content='{"products": [{"id": 10, "reference": "SKU1", "price": 19.990, "quantity": 3}, {"id": "bad"}]}',
        headers={"X-Api-Key": "secret-key", "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["synced"], body["failed"]) == (1, 1)

    product = (await db.execute(select(Product))).scalars().one()
    assert product.price == "19.990"
    log = (await db.execute(select(ModuleLog))).scalars().one()
    assert "webhook" in log.message

async def test_push_sync_accepts_query_api_key(client, site):
    response = await client.post("/prestashop/sync", params={"api_key": "secret-key"}, json=FEED)

    assert response.status_code == 200
    assert response.json()["synced"] == 2

async def test_stats_fetch_and_reset(client, store, site):
    store.reply("stats", {"stats": {"total_orders": 5, "total_revenue": "42.50"}})

    stats = (await client.post(f"/sites/{site.id}/stats/fetch")).json()
    assert stats["total_revenue"] == "42.50"

    assert (await client.post(f"/sites/{site.id}/reset")).status_code == 200
    stats = (await client.get(f"/sites/{site.id}/stats")).json()
    assert (stats["total_orders"], stats["total_revenue"]) == (0, "0")

async def test_refresh_price_history_for_local_only_product_is_bad_request(client, site, db):
    product = Product(site_id=site.id, presta_id=0, name="Local")
    db.add(product)
    await db.commit()

    response = await client.post(f"/products/{product.id}/price-history/refresh")

    assert response.status_code == 400

async def test_manual_price_and_alert_endpoints(client, site, db):
    product = Product(site_id=site.id, presta_id=5, name="Cap", reference="CAP")
    db.add(product)
    await db.commit()

    response = await client.post(f"/products/{product.id}/price-history", json={"price": "15.00"})
    assert response.status_code == 201
    assert (response.json()["price"], response.json()["type"]) == ("15.00", "manual")

    alert = (await client.post("/stock-alerts/", json={"product_id": product.id, "alert_type": "low_stock"})).json()
    active = (await client.get("/stock-alerts/active")).json()
    assert [a["id"] for a in active] == [alert["id"]]

    resolved = (await client.post(f"/stock-alerts/{alert['id']}/resolve")).json()
    assert resolved["status"] == "resolved"

    assert (await client.post("/stock-alerts/", json={"product_id": product.id, "alert_type": "bogus"})).status_code == 400
