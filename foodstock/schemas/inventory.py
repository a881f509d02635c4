"""Master Data and Stock Schemas"""

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from foodstock.models.enums import LocationType, UnitOfMeasure


def _upper_code(value: str) -> str:
    value = value.strip().upper()
    if not value:
        raise ValueError("Code cannot be blank")
    return value


# Location Schemas
class LocationBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=10)
    name: str = Field(..., min_length=1, max_length=100)
    type: LocationType = LocationType.KITCHEN
    address: Optional[str] = None

    @field_validator('code')
    @classmethod
    def normalise_code(cls, v):
        return _upper_code(v)


class LocationCreate(LocationBase):
    pass


class LocationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[LocationType] = None
    address: Optional[str] = None
    is_active: Optional[bool] = None


class LocationResponse(LocationBase):
    id: int
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Item Schemas
class ItemBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    unit: UnitOfMeasure = UnitOfMeasure.EA
    category: Optional[str] = Field(None, max_length=50)
    sub_category: Optional[str] = Field(None, max_length=50)

    @field_validator('code')
    @classmethod
    def normalise_code(cls, v):
        return _upper_code(v)


class ItemCreate(ItemBase):
    pass


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    unit: Optional[UnitOfMeasure] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None
    is_active: Optional[bool] = None


class ItemResponse(ItemBase):
    id: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# Supplier Schemas
class SupplierBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=200)
    contact: Optional[str] = None
    email: Optional[str] = None

    @field_validator('code')
    @classmethod
    def normalise_code(cls, v):
        return _upper_code(v)


class SupplierCreate(SupplierBase):
    pass


class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    contact: Optional[str] = None
    email: Optional[str] = None
    is_active: Optional[bool] = None


class SupplierResponse(SupplierBase):
    id: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# Stock Schemas
class LocationStockResponse(BaseModel):
    location_id: int
    item_id: int
    item_code: str
    item_name: str
    unit: str
    on_hand: Decimal
    wac: Decimal
    stock_value: Decimal
    min_stock: Optional[Decimal] = None
    max_stock: Optional[Decimal] = None
    last_counted: Optional[datetime] = None


class ConsolidatedStockResponse(BaseModel):
    item_id: int
    item_code: str
    item_name: str
    unit: str
    total_on_hand: Decimal
    total_value: Decimal
    locations: int


class StockCountCreate(BaseModel):
    """Physical count of one item"""
    item_id: int
    counted_quantity: Decimal = Field(..., ge=0)


class StockCountResponse(BaseModel):
    location_id: int
    item_id: int
    system_quantity: Decimal
    actual_quantity: Decimal
    variance: Decimal
    wac: Decimal
    variance_value: Decimal


class LowStockItem(BaseModel):
    item_id: int
    item_code: str
    item_name: str
    on_hand: Decimal
    min_stock: Optional[Decimal] = None


class DocumentTotals(BaseModel):
    total: Decimal
    count: int


class DashboardResponse(BaseModel):
    location_id: int
    location_name: str
    period_id: Optional[int] = None
    period_name: Optional[str] = None
    deliveries: DocumentTotals
    issues: DocumentTotals
    stock_value: Decimal
    item_count: int
    open_ncr_count: int
    low_stock_items: List[LowStockItem] = []
