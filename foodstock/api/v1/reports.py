"""
Report API endpoints
Operators see their assigned locations; supervisors and admins see all
"""
from datetime import date
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.models.auth import User
from foodstock.models.enums import CostCentre, DocumentStatus
from foodstock.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/stock-now")
async def stock_now_report(
    location_id: Optional[int] = Query(None, description="Single location"),
    category: Optional[str] = Query(None, description="Item category"),
    low_stock: bool = Query(False, description="Only items below minimum stock"),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Dict[str, Any]:
    """Current stock with WAC and value per location"""
    return ReportService(db, current_user).stock_now(location_id, category, low_stock)


@router.get("/deliveries")
async def deliveries_report(
    period_id: Optional[int] = Query(None),
    location_id: Optional[int] = Query(None),
    supplier_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    has_variance: Optional[bool] = Query(None, description="Only deliveries with (or without) price variance"),
    status: Optional[DocumentStatus] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Dict[str, Any]:
    return ReportService(db, current_user).deliveries_report(
        period_id=period_id, location_id=location_id, supplier_id=supplier_id,
        start_date=start_date, end_date=end_date, has_variance=has_variance, status=status
    )


@router.get("/issues")
async def issues_report(
    period_id: Optional[int] = Query(None),
    location_id: Optional[int] = Query(None),
    cost_centre: Optional[CostCentre] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Dict[str, Any]:
    return ReportService(db, current_user).issues_report(
        period_id=period_id, location_id=location_id, cost_centre=cost_centre,
        start_date=start_date, end_date=end_date
    )


@router.get("/reconciliation")
async def reconciliation_report(
    period_id: int = Query(..., description="Period to report on"),
    location_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Dict[str, Any]:
    """
    Period reconciliation per location with grand totals and the
    average manday cost.
    """
    return ReportService(db, current_user).reconciliation_report(period_id, location_id)
