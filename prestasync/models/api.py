from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional
from datetime import datetime

from prestasync.models.prestashop import PriceText

class SiteCreate(BaseModel):
    user_id: int
    name: str
    url: str
    api_key: str
    version: Optional[str] = None
    http_auth_enabled: bool = False
    http_auth_username: Optional[str] = None
    http_auth_password: Optional[str] = None

class SiteUpdate(BaseModel):
    name: Optional[str] = None
    url: Optional[str] = None
    api_key: Optional[str] = None
    version: Optional[str] = None
    status: Optional[str] = None
    http_auth_enabled: Optional[bool] = None
    http_auth_username: Optional[str] = None
    http_auth_password: Optional[str] = None

class SiteOut(BaseModel):
    """Site as returned to the dashboard; credentials stay server side"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    url: str
    version: Optional[str] = None
    status: Optional[str] = None
    http_auth_enabled: Optional[bool] = None
    last_sync: Optional[datetime] = None
    sync_state: Optional[str] = None
    created_at: Optional[datetime] = None

class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    site_id: int
    presta_id: int
    name: str
    reference: Optional[str] = None
    current_quantity: Optional[int] = None
    min_quantity: Optional[int] = None
    product_type: Optional[str] = None
    is_attribute: bool
    parent_id: Optional[int] = None
    attribute_id: Optional[int] = None
    status: Optional[str] = None
    price: Optional[str] = None
    condition: Optional[str] = None
    last_update: Optional[datetime] = None

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    reference: Optional[str] = None
    current_quantity: Optional[int] = Field(default=None, ge=0)
    min_quantity: Optional[int] = Field(default=None, ge=0)
    product_type: Optional[str] = None
    status: Optional[str] = None
    condition: Optional[str] = None
    price: PriceText = None

class PriceHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    price: str
    date: Optional[datetime] = None
    type: str

class PriceHistoryCreate(BaseModel):
    price: PriceText = None
    type: Optional[str] = None
    date: Optional[datetime] = None

class StockAlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    alert_type: str
    status: Optional[str] = None
    created_at: Optional[datetime] = None

class StockAlertCreate(BaseModel):
    product_id: int
    alert_type: str
    status: str = "active"

class StockAlertUpdate(BaseModel):
    alert_type: Optional[str] = None
    status: Optional[str] = None

class SiteStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    site_id: int
    total_customers: int = 0
    total_orders: int = 0
    total_revenue: str = "0"
    total_products: int = 0
    total_categories: int = 0
    last_update: Optional[datetime] = None

class ModuleLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    site_id: int
    type: str
    status: str
    message: str
    details: Optional[Any] = None
    created_at: Optional[datetime] = None
