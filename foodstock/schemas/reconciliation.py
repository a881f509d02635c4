"""Reconciliation and POB Schemas"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal

from foodstock.schemas.period import PeriodSummary


class ReconciliationUpdate(BaseModel):
    back_charges: Optional[Decimal] = Field(None, ge=0)
    credits: Optional[Decimal] = Field(None, ge=0)
    condemnations: Optional[Decimal] = Field(None, ge=0)
    adjustments: Optional[Decimal] = None


class ReconciliationResponse(BaseModel):
    id: Optional[int] = None
    period_id: int
    period_name: str
    location_id: int
    location_code: Optional[str] = None
    location_name: str
    opening_stock: Decimal
    receipts: Decimal
    transfers_in: Decimal
    transfers_out: Decimal
    issues: Decimal
    closing_stock: Decimal
    adjustments: Decimal
    back_charges: Decimal
    credits: Decimal
    condemnations: Decimal
    total_adjustments: Decimal
    consumption: Decimal
    calculated_closing: Decimal
    variance: Decimal
    total_mandays: int
    manday_cost: Optional[Decimal] = None
    is_auto_calculated: bool
    last_updated: Optional[datetime] = None


class ReconciliationTotals(BaseModel):
    opening_stock: Decimal
    receipts: Decimal
    transfers_in: Decimal
    transfers_out: Decimal
    issues: Decimal
    closing_stock: Decimal
    adjustments: Decimal
    back_charges: Decimal
    credits: Decimal
    condemnations: Decimal
    consumption: Decimal
    total_mandays: int
    average_manday_cost: Optional[Decimal] = None


class ConsolidatedSummary(BaseModel):
    total_locations: int
    saved_reconciliations: int
    auto_calculated: int


class ConsolidatedReconciliationResponse(BaseModel):
    period: PeriodSummary
    locations: List[ReconciliationResponse]
    grand_totals: ReconciliationTotals
    summary: ConsolidatedSummary


class POBEntry(BaseModel):
    date: date
    crew_count: int = Field(..., ge=0)
    extra_count: int = Field(0, ge=0)


class POBUpsert(BaseModel):
    period_id: Optional[int] = None
    entries: List[POBEntry] = Field(..., min_length=1)


class POBResponse(POBEntry):
    id: int
    period_id: int
    location_id: int
    mandays: int

    model_config = ConfigDict(from_attributes=True)
