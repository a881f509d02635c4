"""Delivery, Issue and Transfer Schemas"""

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal

from foodstock.models.enums import DocumentStatus, TransferStatus, CostCentre


def _require_lines(lines):
    if not lines:
        raise ValueError("At least one line is required")
    return lines


class LineItem(BaseModel):
    """Item fields flattened onto a line response"""
    item_id: int
    item_code: Optional[str] = None
    item_name: Optional[str] = None
    unit: Optional[str] = None


# Delivery Schemas
class DeliveryLineCreate(BaseModel):
    item_id: int
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)


class DeliveryCreate(BaseModel):
    supplier_id: int
    invoice_no: Optional[str] = Field(None, max_length=100)
    delivery_note: Optional[str] = None
    delivery_date: Optional[date] = None
    status: DocumentStatus = DocumentStatus.POSTED
    lines: List[DeliveryLineCreate]

    @field_validator('lines')
    @classmethod
    def validate_lines(cls, v):
        return _require_lines(v)


class DeliveryLineResponse(LineItem):
    id: int
    quantity: Decimal
    unit_price: Decimal
    period_price: Optional[Decimal] = None
    price_variance: Decimal
    line_value: Decimal
    ncr_id: Optional[int] = None


class DeliveryResponse(BaseModel):
    id: int
    delivery_no: str
    period_id: int
    location_id: int
    supplier_id: int
    supplier_name: Optional[str] = None
    invoice_no: Optional[str] = None
    delivery_note: Optional[str] = None
    delivery_date: date
    total_amount: Decimal
    has_variance: bool
    status: DocumentStatus
    posted_at: Optional[datetime] = None
    lines: List[DeliveryLineResponse] = []

    model_config = ConfigDict(from_attributes=True)


class DeliverySummary(BaseModel):
    id: int
    delivery_no: str
    supplier_id: int
    invoice_no: Optional[str] = None
    delivery_date: date
    total_amount: Decimal
    has_variance: bool
    status: DocumentStatus

    model_config = ConfigDict(from_attributes=True)


# Issue Schemas
class IssueLineCreate(BaseModel):
    item_id: int
    quantity: Decimal = Field(..., gt=0)


class IssueCreate(BaseModel):
    issue_date: Optional[date] = None
    cost_centre: Optional[CostCentre] = None
    notes: Optional[str] = None
    lines: List[IssueLineCreate]

    @field_validator('lines')
    @classmethod
    def validate_lines(cls, v):
        return _require_lines(v)


class IssueLineResponse(LineItem):
    id: int
    quantity: Decimal
    wac_at_issue: Decimal
    line_value: Decimal


class IssueResponse(BaseModel):
    id: int
    issue_no: str
    period_id: int
    location_id: int
    issue_date: date
    cost_centre: CostCentre
    total_value: Decimal
    status: DocumentStatus
    notes: Optional[str] = None
    posted_at: Optional[datetime] = None
    lines: List[IssueLineResponse] = []

    model_config = ConfigDict(from_attributes=True)


# Transfer Schemas
class TransferLineCreate(BaseModel):
    item_id: int
    quantity: Decimal = Field(..., gt=0)


class TransferCreate(BaseModel):
    from_location_id: int
    to_location_id: int
    request_date: Optional[date] = None
    notes: Optional[str] = None
    lines: List[TransferLineCreate]

    @field_validator('lines')
    @classmethod
    def validate_lines(cls, v):
        return _require_lines(v)


class TransferReview(BaseModel):
    comment: Optional[str] = None


class TransferReject(BaseModel):
    comment: str = Field(..., min_length=1)


class TransferLineResponse(LineItem):
    id: int
    quantity: Decimal
    wac_at_transfer: Decimal
    line_value: Decimal


class TransferResponse(BaseModel):
    id: int
    transfer_no: str
    from_location_id: int
    to_location_id: int
    from_location_name: Optional[str] = None
    to_location_name: Optional[str] = None
    status: TransferStatus
    request_date: date
    approval_date: Optional[date] = None
    transfer_date: Optional[date] = None
    total_value: Decimal
    notes: Optional[str] = None
    lines: List[TransferLineResponse] = []

    model_config = ConfigDict(from_attributes=True)
