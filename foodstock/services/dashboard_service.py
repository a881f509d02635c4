"""
Dashboard Service
Current-period figures for a location
"""
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from foodstock.models import Delivery, Issue, Location, LocationStock, User
from foodstock.models.enums import DocumentStatus
from foodstock.services.business_logic import round_currency, to_decimal
from foodstock.services.ncr_service import NCRService
from foodstock.services.periods.period_service import PeriodService
from foodstock.services.stock.stock_levels import StockLevelService
from foodstock.core.exceptions import NotFoundError


class DashboardService:

    def __init__(self, db: Session, current_user: Optional[User] = None):
        self.db = db
        self.current_user = current_user

    def _posted_totals(self, model, amount_column, location_id: int, period_id: int) -> Dict[str, Any]:
        total, count = self.db.query(
            func.coalesce(func.sum(amount_column), 0), func.count(model.id)
        ).filter(
            model.location_id == location_id,
            model.period_id == period_id,
            model.status == DocumentStatus.POSTED.value
        ).one()
        return {"total": round_currency(to_decimal(total)), "count": count}

    def location_dashboard(self, location_id: int) -> Dict[str, Any]:
        location = self.db.query(Location).filter(Location.id == location_id).first()
        if not location:
            raise NotFoundError("Location not found", code="LOCATION_NOT_FOUND")

        period = PeriodService(self.db).get_current_period()
        empty = {"total": Decimal("0.00"), "count": 0}
        deliveries = self._posted_totals(Delivery, Delivery.total_amount, location_id, period.id) if period else empty
        issues = self._posted_totals(Issue, Issue.total_value, location_id, period.id) if period else empty

        low_stock = [
            {
                "item_id": row.item_id,
                "item_code": row.item.code,
                "item_name": row.item.name,
                "on_hand": row.on_hand,
                "min_stock": row.min_stock,
            }
            for row in StockLevelService(self.db).get_location_stock(location_id, low_stock_only=True)
        ]
        item_count = self.db.query(func.count(LocationStock.item_id)).filter(
            LocationStock.location_id == location_id, LocationStock.on_hand > 0
        ).scalar() or 0

        return {
            "location_id": location.id,
            "location_name": location.name,
            "period_id": period.id if period else None,
            "period_name": period.name if period else None,
            "deliveries": deliveries,
            "issues": issues,
            "stock_value": round_currency(StockLevelService(self.db).location_value(location_id)),
            "item_count": item_count,
            "open_ncr_count": NCRService(self.db).count_open(location_id),
            "low_stock_items": low_stock,
        }
