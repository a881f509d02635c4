"""NCR Schemas"""

from pydantic import BaseModel, Field, model_validator, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from foodstock.models.enums import NCRType, NCRStatus, NCRResolutionType


class NCRCreate(BaseModel):
    """Manual non-conformance report"""
    reason: str = Field(..., min_length=1)
    value: Decimal = Field(..., gt=0)
    quantity: Optional[Decimal] = Field(None, gt=0)
    delivery_id: Optional[int] = None
    delivery_line_id: Optional[int] = None

    @model_validator(mode='after')
    def line_needs_delivery(self):
        if self.delivery_line_id and not self.delivery_id:
            raise ValueError("delivery_line_id requires delivery_id")
        return self


class NCRUpdate(BaseModel):
    status: Optional[NCRStatus] = None
    resolution_type: Optional[NCRResolutionType] = None
    resolution_notes: Optional[str] = None
    reason: Optional[str] = Field(None, min_length=1)


class NCRResponse(BaseModel):
    id: int
    ncr_no: str
    location_id: int
    type: NCRType
    auto_generated: bool
    delivery_id: Optional[int] = None
    delivery_line_id: Optional[int] = None
    reason: str
    quantity: Optional[Decimal] = None
    value: Decimal
    status: NCRStatus
    resolution_type: Optional[NCRResolutionType] = None
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NCRSummaryItem(BaseModel):
    id: int
    ncr_no: str
    type: NCRType
    status: NCRStatus
    value: Decimal


class NCRSummaryGroup(BaseModel):
    total: Decimal
    count: int
    items: List[NCRSummaryItem] = []


class NCRSummaryResponse(BaseModel):
    credited: NCRSummaryGroup
    losses: NCRSummaryGroup
    pending: NCRSummaryGroup
    open: NCRSummaryGroup
