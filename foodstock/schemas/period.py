"""Period, Price and Approval Schemas"""

from pydantic import BaseModel, Field, model_validator, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime, date
from decimal import Decimal

from foodstock.models.enums import (
    PeriodStatus, PeriodLocationStatus, ApprovalEntityType, ApprovalStatus
)


class PeriodCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date
    status: PeriodStatus = PeriodStatus.DRAFT

    @model_validator(mode='after')
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class PeriodLocationResponse(BaseModel):
    location_id: int
    location_name: Optional[str] = None
    status: PeriodLocationStatus
    opening_value: Decimal
    closing_value: Optional[Decimal] = None
    ready_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None


class PeriodResponse(BaseModel):
    id: int
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus
    approved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    locations: List[PeriodLocationResponse] = []


class PeriodSummary(BaseModel):
    id: int
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus

    model_config = ConfigDict(from_attributes=True)


class SnapshotResponse(BaseModel):
    location_id: int
    status: PeriodLocationStatus
    closing_value: Optional[Decimal] = None
    snapshot: Optional[Dict[str, Any]] = None


class ItemPriceEntry(BaseModel):
    item_id: int
    price: Decimal = Field(..., gt=0)


class ItemPricesUpdate(BaseModel):
    prices: List[ItemPriceEntry] = Field(..., min_length=1)


class CopyPricesRequest(BaseModel):
    source_period_id: int


class ItemPriceResponse(BaseModel):
    item_id: int
    item_code: Optional[str] = None
    item_name: Optional[str] = None
    price: Decimal
    currency: str


class RollForwardRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    end_date: Optional[date] = None
    copy_prices: bool = True


class ApprovalResponse(BaseModel):
    id: int
    entity_type: ApprovalEntityType
    entity_id: int
    status: ApprovalStatus
    requested_by: int
    reviewed_by: Optional[int] = None
    requested_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    comments: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ApprovalReview(BaseModel):
    comments: Optional[str] = None


class CloseSummary(BaseModel):
    period_id: int
    total_locations: int
    total_closing_value: Decimal


class ApprovalResult(BaseModel):
    approval: ApprovalResponse
    summary: Optional[CloseSummary] = None
