from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON, Index
from prestasync.config.database import Base
from prestasync.utils.helpers import utcnow

# Site.status
SITE_CONNECTED = "connected"
SITE_DISCONNECTED = "disconnected"
SITE_ERROR = "error"

# Site.sync_state
SYNC_IDLE = "idle"
SYNC_RUNNING = "syncing"

# PriceHistory.type
PRICE_SYNC = "sync"
PRICE_CHANGE = "change"
PRICE_MANUAL = "manual"
PRICE_ORDER = "order"
PRICE_ATTRIBUTE = "attribute"

# StockAlert.alert_type / status
ALERT_LOW_STOCK = "low_stock"
ALERT_OUT_OF_STOCK = "out_of_stock"
ALERT_ACTIVE = "active"
ALERT_RESOLVED = "resolved"

class Site(Base):
    __tablename__ = "sites"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    url = Column(String(500), nullable=False)
    api_key = Column(String(255), nullable=False, index=True)
    version = Column(String(50))
    status = Column(String(20), default=SITE_DISCONNECTED)
    http_auth_enabled = Column(Boolean, default=False)
    http_auth_username = Column(String(255))
    http_auth_password = Column(String(255))
    last_sync = Column(DateTime)
    sync_state = Column(String(20), nullable=False, default=SYNC_IDLE)
    sync_started_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)

class Product(Base):
    """Principal product or attribute (variant) row, told apart by is_attribute"""
    __tablename__ = "products"
    __table_args__ = (
        Index("ix_products_site_presta", "site_id", "presta_id", "is_attribute"),
        Index("ix_products_site_reference", "site_id", "reference"),
        Index("ix_products_parent_attribute", "parent_id", "attribute_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, nullable=False)
    presta_id = Column(Integer, nullable=False)  # id in the PrestaShop store
    name = Column(String(500), nullable=False)
    reference = Column(String(255))
    current_quantity = Column(Integer, default=0)
    min_quantity = Column(Integer, default=0)
    product_type = Column(String(50), default="simple")
    is_attribute = Column(Boolean, nullable=False, default=False)
    parent_id = Column(Integer)  # local id of the principal product
    attribute_id = Column(Integer)  # id_product_attribute in PrestaShop
    status = Column(String(50), default="active")
    price = Column(String(64))  # exact decimal text
    condition = Column(String(50), default="new")
    last_update = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)

class PriceHistory(Base):
    __tablename__ = "price_history"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, nullable=False, index=True)
    price = Column(String(64), nullable=False)  # exact decimal text
    date = Column(DateTime, default=utcnow)
    type = Column(String(50), nullable=False, default=PRICE_SYNC)

class StockAlert(Base):
    __tablename__ = "stock_alerts"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, nullable=False, index=True)
    alert_type = Column(String(50), nullable=False)
    status = Column(String(20), default=ALERT_ACTIVE)
    created_at = Column(DateTime, default=utcnow)

class SiteStats(Base):
    __tablename__ = "site_stats"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, nullable=False, unique=True)
    total_customers = Column(Integer, default=0)
    total_orders = Column(Integer, default=0)
    total_revenue = Column(String(64), default="0")  # exact decimal text
    total_products = Column(Integer, default=0)
    total_categories = Column(Integer, default=0)
    last_update = Column(DateTime, default=utcnow)

class ModuleLog(Base):
    __tablename__ = "module_logs"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, nullable=False, index=True)
    type = Column(String(50), nullable=False)  # api, sync, error
    status = Column(String(20), nullable=False)  # success, error, warning, info
    message = Column(Text, nullable=False)
    details = Column(JSON)
    created_at = Column(DateTime, default=utcnow)
