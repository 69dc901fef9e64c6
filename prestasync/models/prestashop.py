from pydantic import BaseModel, Field, field_validator, ConfigDict, BeforeValidator
from pydantic import ValidationError as PydanticValidationError
from typing import List, Dict, Optional, Any, Literal, Tuple, Union
from typing_extensions import Annotated
from decimal import Decimal
from datetime import datetime

from prestasync.core.exceptions import ValidationError
from prestasync.utils.helpers import normalize_price, parse_remote_datetime

def _zero_if_none(value: Any) -> Any:
    return 0 if value is None or value == "" else value

def _text_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)

# Prices are exact-decimal text, never binary floats
PriceText = Annotated[Optional[str], BeforeValidator(normalize_price)]
RequiredPriceText = Annotated[str, BeforeValidator(normalize_price)]
Count = Annotated[int, BeforeValidator(_zero_if_none)]
OptionalText = Annotated[Optional[str], BeforeValidator(_text_or_none)]
RemoteDatetime = Annotated[datetime, BeforeValidator(parse_remote_datetime)]

class PrincipalRecord(BaseModel):
    """A product row of the store feed (no variant id)"""
    kind: Literal["principal"] = "principal"
    id: int
    name: str = ""
    reference: OptionalText = None
    price: PriceText = None
    quantity: Count = 0

    @field_validator("name", mode="before")
    @classmethod
    def name_as_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

class AttributeRecord(BaseModel):
    """A variant (combination) row; id_product_attribute is always > 0"""
    kind: Literal["attribute"] = "attribute"
    id: int
    parent_id: Optional[int] = None
    id_product_attribute: int = Field(gt=0)
    name: OptionalText = None
    reference: OptionalText = None
    price: PriceText = None
    quantity: Count = 0
    declinaisons: OptionalText = None

    @field_validator("parent_id", mode="before")
    @classmethod
    def parent_or_none(cls, value: Any) -> Any:
        return None if value in (None, "", 0, "0") else value

    @property
    def remote_parent_id(self) -> int:
        """PrestaShop id of the owning product"""
        return self.parent_id or self.id

ProductRecord = Union[PrincipalRecord, AttributeRecord]

def _attribute_id(raw: Dict[str, Any]) -> int:
    value = raw.get("id_product_attribute")
    try:
        return int(value) if value not in (None, "") else 0
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid id_product_attribute: {value!r}")

def parse_product_record(raw: Any) -> ProductRecord:
    """Validate one feed entry and return the matching record type"""
    if not isinstance(raw, dict):
        raise ValidationError(f"Product record must be an object, got {type(raw).__name__}")

    data = dict(raw)
    data.pop("kind", None)
    # products_with_attributes entries carry id_product instead of id/parent_id
    if "id" not in data and "id_product" in data:
        data["id"] = data["id_product"]
        data.setdefault("parent_id", data["id_product"])

    try:
        if _attribute_id(data) > 0:
            return AttributeRecord.model_validate(data)
        return PrincipalRecord.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid product record: {e.errors(include_url=False)}")

def parse_product_records(raws: List[Any]) -> Tuple[List[ProductRecord], List[Dict[str, Any]]]:
    """Validate a feed, quarantining malformed entries instead of failing the batch"""
    records: List[ProductRecord] = []
    rejected: List[Dict[str, Any]] = []

    for index, raw in enumerate(raws):
        try:
            records.append(parse_product_record(raw))
        except ValidationError as e:
            rejected.append({"index": index, "record": raw, "reason": str(e)})

    return records, rejected

class StatsPayload(BaseModel):
    total_customers: Count = 0
    total_orders: Count = 0
    total_revenue: str = "0"
    total_products: Count = 0
    total_categories: Count = 0

    @field_validator("total_revenue", mode="before")
    @classmethod
    def revenue_as_text(cls, value: Any) -> str:
        return normalize_price(value) or "0"

class PriceHistoryProduct(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str = ""
    reference: OptionalText = None
    current_price: PriceText = None
    date_add: OptionalText = None
    date_upd: OptionalText = None

class CurrentPrice(BaseModel):
    price: PriceText = None
    date: OptionalText = None

class SpecificPrice(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    price: PriceText = None
    original_price: PriceText = None
    reduction: Optional[Decimal] = None
    reduction_type: OptionalText = None
    from_quantity: Optional[int] = None
    from_: OptionalText = Field(default=None, alias="from")
    to: OptionalText = None
    date_added: OptionalText = None

class OrderPrice(BaseModel):
    price: PriceText = None
    date: OptionalText = None

class PriceChange(BaseModel):
    old_price: PriceText = None
    new_price: RequiredPriceText
    change: Optional[Decimal] = None
    percent_change: Optional[Decimal] = None
    date: RemoteDatetime
    type: str = "change"

    @field_validator("type", mode="before")
    @classmethod
    def type_or_change(cls, value: Any) -> str:
        return str(value) if value else "change"

class PriceTimeline(BaseModel):
    current: Optional[CurrentPrice] = None
    specific_prices: List[SpecificPrice] = Field(default_factory=list)
    order_prices: List[OrderPrice] = Field(default_factory=list)
    price_changes: List[PriceChange] = Field(default_factory=list)

    @field_validator("specific_prices", "order_prices", "price_changes", mode="before")
    @classmethod
    def list_or_empty(cls, value: Any) -> Any:
        return [] if value is None else value

class PriceHistoryPayload(BaseModel):
    product: PriceHistoryProduct
    history: PriceTimeline

def variant_key(raw: Any) -> Optional[Tuple[str, str]]:
    """(parent id, id_product_attribute) of a raw variant row, None for anything else"""
    if not isinstance(raw, dict):
        return None
    attribute_id = raw.get("id_product_attribute")
    if attribute_id in (None, "", 0, "0"):
        return None
    parent_id = raw.get("parent_id") or raw.get("id_product") or raw.get("id")
    return str(parent_id), str(attribute_id)

def merge_attribute_feed(products: List[Any], attributes: List[Any]) -> List[Any]:
    """Append the attribute feed's variants the product feed does not already carry"""
    seen = {key for key in map(variant_key, products) if key is not None}
    merged = list(products)
    for raw in attributes:
        key = variant_key(raw)
        if key is not None and key in seen:
            continue
        if key is not None:
            seen.add(key)
        merged.append(raw)
    return merged
