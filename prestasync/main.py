from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import structlog

from prestasync.config.settings import get_settings
from prestasync.api.routes import health, sites, products, stock_alerts, dashboard, prestashop
from prestasync.api.errors import register_exception_handlers
from prestasync.core.logging import setup_logging

setup_logging()
logger = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting PrestaSync dashboard API")

    try:
        from prestasync.config.database import create_tables
        await create_tables()
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.warning("Database setup failed", error=str(e))

    yield
    logger.info("Shutting down API")

app = FastAPI(
    title="PrestaSync Dashboard API",
    description="Multi-tenant inventory and price tracking for PrestaShop stores",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(sites.router, prefix="/sites", tags=["sites"])
app.include_router(products.router, prefix="/products", tags=["products"])
app.include_router(stock_alerts.router, prefix="/stock-alerts", tags=["stock-alerts"])
app.include_router(dashboard.price_changes_router, prefix="/price-changes", tags=["price-changes"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
app.include_router(prestashop.router, prefix="/prestashop", tags=["prestashop"])

if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "prestasync.main:app",
        host="0.0.0.0",
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_config=None
    )
