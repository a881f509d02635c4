"""
Report Service
Stock-now, delivery, issue and reconciliation reports across locations
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from foodstock.models import Delivery, Issue, Item, Location, LocationStock, NCR, User
from foodstock.models.enums import CostCentre, DocumentStatus
from foodstock.services.auth_service import AuthService
from foodstock.services.business_logic import round_currency, to_decimal
from foodstock.services.periods.period_service import PeriodService
from foodstock.services.reconciliation_service import ReconciliationService
from foodstock.core.exceptions import LocationAccessDeniedError
from foodstock.core.logging import get_logger

logger = get_logger("business")

TOP_ITEMS = 10


class ReportService:
    """
    Every report is scoped to the locations the user can see. Operators
    get their assigned locations; asking for any other location is a
    LOCATION_ACCESS_DENIED error.
    """

    def __init__(self, db: Session, current_user: User):
        self.db = db
        self.current_user = current_user

    def _location_scope(self, location_id: Optional[int] = None) -> Optional[List[int]]:
        """Location ids the report may cover; None means every location"""
        accessible = AuthService(self.db).accessible_location_ids(self.current_user)
        if location_id is not None:
            if accessible is not None and location_id not in accessible:
                raise LocationAccessDeniedError("You do not have access to this location")
            return [location_id]
        return accessible

    def _header(self, report_type: str, filters: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "report_type": report_type,
            "generated_at": datetime.utcnow().isoformat(),
            "generated_by": {"id": self.current_user.id, "username": self.current_user.username},
            "filters": filters,
        }

    def _period_info(self, period_id: Optional[int]) -> Optional[Dict[str, Any]]:
        if period_id is None:
            return None
        period = PeriodService(self.db).get_period(period_id)
        return {
            "id": period.id,
            "name": period.name,
            "start_date": period.start_date,
            "end_date": period.end_date,
            "status": period.status,
        }

    # Stock now

    def stock_now(
        self,
        location_id: Optional[int] = None,
        category: Optional[str] = None,
        low_stock_only: bool = False
    ) -> Dict[str, Any]:
        """Current on hand, WAC and value per location with min/max flags"""
        scope = self._location_scope(location_id)

        location_query = self.db.query(Location).filter(Location.is_active.is_(True))
        if scope is not None:
            location_query = location_query.filter(Location.id.in_(scope))
        locations = location_query.order_by(Location.code).all()

        stock_query = (
            self.db.query(LocationStock)
            .join(Item)
            .options(joinedload(LocationStock.item))
            .filter(
                LocationStock.location_id.in_([location.id for location in locations]),
                Item.is_active.is_(True)
            )
        )
        if category:
            stock_query = stock_query.filter(Item.category == category)
        stock_rows = stock_query.order_by(Item.name).all()

        sections = []
        for location in locations:
            items = []
            total_value = Decimal("0")
            low_count = 0
            for row in (r for r in stock_rows if r.location_id == location.id):
                on_hand = to_decimal(row.on_hand)
                is_low = row.min_stock is not None and on_hand < to_decimal(row.min_stock)
                is_over = row.max_stock is not None and on_hand > to_decimal(row.max_stock)
                if is_low:
                    low_count += 1
                if low_stock_only and not is_low:
                    continue
                value = round_currency(on_hand * to_decimal(row.wac))
                total_value += value
                items.append({
                    "item_id": row.item_id,
                    "item_code": row.item.code,
                    "item_name": row.item.name,
                    "unit": row.item.unit,
                    "category": row.item.category,
                    "sub_category": row.item.sub_category,
                    "on_hand": on_hand,
                    "wac": to_decimal(row.wac),
                    "stock_value": value,
                    "min_stock": row.min_stock,
                    "max_stock": row.max_stock,
                    "is_low_stock": is_low,
                    "is_over_stock": is_over,
                    "last_counted": row.last_counted,
                })
            if low_stock_only and not items:
                continue
            sections.append({
                "location_id": location.id,
                "location_code": location.code,
                "location_name": location.name,
                "location_type": location.type,
                "total_items": len(items),
                "total_value": round_currency(total_value),
                "low_stock_items": low_count,
                "items": items,
            })

        return {
            **self._header("stock-now", {
                "location_id": location_id,
                "category": category,
                "low_stock_only": low_stock_only,
            }),
            "locations": sections,
            "grand_totals": {
                "total_locations": len(sections),
                "total_items": sum(s["total_items"] for s in sections),
                "total_value": round_currency(sum((s["total_value"] for s in sections), Decimal("0"))),
                "low_stock_items": sum(s["low_stock_items"] for s in sections),
            },
            "available_categories": sorted({r.item.category for r in stock_rows if r.item.category}),
        }

    # Deliveries

    def _ncr_counts(self, delivery_ids: List[int]) -> Dict[int, int]:
        if not delivery_ids:
            return {}
        rows = (
            self.db.query(NCR.delivery_id, func.count(NCR.id))
            .filter(NCR.delivery_id.in_(delivery_ids))
            .group_by(NCR.delivery_id)
            .all()
        )
        return dict(rows)

    def deliveries_report(
        self,
        period_id: Optional[int] = None,
        location_id: Optional[int] = None,
        supplier_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        has_variance: Optional[bool] = None,
        status: Optional[DocumentStatus] = None
    ) -> Dict[str, Any]:
        """
        Deliveries with their lines, grouped by location and by supplier.

        A delivery's variance is the sum of price variance times quantity
        over its lines. Operators see posted deliveries and their own drafts.
        """
        scope = self._location_scope(location_id)
        period = self._period_info(period_id)

        query = self.db.query(Delivery).options(
            joinedload(Delivery.location), joinedload(Delivery.supplier), joinedload(Delivery.period)
        )
        if scope is not None:
            query = query.filter(Delivery.location_id.in_(scope))
        if period_id is not None:
            query = query.filter(Delivery.period_id == period_id)
        if supplier_id is not None:
            query = query.filter(Delivery.supplier_id == supplier_id)
        if start_date:
            query = query.filter(Delivery.delivery_date >= start_date)
        if end_date:
            query = query.filter(Delivery.delivery_date <= end_date)
        if has_variance is not None:
            query = query.filter(Delivery.has_variance.is_(has_variance))
        if status:
            query = query.filter(Delivery.status == DocumentStatus(status).value)
        if not self.current_user.is_supervisor_or_admin:
            query = query.filter(
                (Delivery.status == DocumentStatus.POSTED.value)
                | (Delivery.created_by == self.current_user.id)
            )
        deliveries = query.order_by(Delivery.delivery_date.desc(), Delivery.delivery_no.desc()).all()
        ncr_counts = self._ncr_counts([d.id for d in deliveries])

        rows = []
        by_location: Dict[int, Dict[str, Any]] = {}
        by_supplier: Dict[int, Dict[str, Any]] = {}
        for delivery in deliveries:
            variance = round_currency(sum(
                (to_decimal(line.price_variance) * to_decimal(line.quantity) for line in delivery.lines),
                Decimal("0")
            ))
            total = to_decimal(delivery.total_amount)
            rows.append({
                "id": delivery.id,
                "delivery_no": delivery.delivery_no,
                "delivery_date": delivery.delivery_date,
                "invoice_no": delivery.invoice_no,
                "supplier_code": delivery.supplier.code,
                "supplier_name": delivery.supplier.name,
                "location_code": delivery.location.code,
                "location_name": delivery.location.name,
                "period_name": delivery.period.name,
                "total_amount": total,
                "has_variance": delivery.has_variance,
                "total_variance": variance,
                "status": delivery.status,
                "posted_at": delivery.posted_at,
                "ncr_count": ncr_counts.get(delivery.id, 0),
                "lines": [
                    {
                        "item_code": line.item.code,
                        "item_name": line.item.name,
                        "unit": line.item.unit,
                        "quantity": line.quantity,
                        "unit_price": line.unit_price,
                        "period_price": line.period_price,
                        "price_variance": line.price_variance,
                        "line_value": line.line_value,
                    }
                    for line in delivery.lines
                ],
            })

            groups = (
                (by_location, delivery.location_id, {
                    "location_id": delivery.location_id,
                    "location_code": delivery.location.code,
                    "location_name": delivery.location.name,
                }),
                (by_supplier, delivery.supplier_id, {
                    "supplier_id": delivery.supplier_id,
                    "supplier_code": delivery.supplier.code,
                    "supplier_name": delivery.supplier.name,
                }),
            )
            for summaries, key, identity in groups:
                summary = summaries.setdefault(key, {
                    **identity,
                    "delivery_count": 0,
                    "total_value": Decimal("0.00"),
                    "variance_count": 0,
                    "total_variance": Decimal("0.00"),
                })
                summary["delivery_count"] += 1
                summary["total_value"] += total
                if delivery.has_variance:
                    summary["variance_count"] += 1
                    summary["total_variance"] += abs(variance)

        return {
            **self._header("deliveries", {
                "period_id": period_id,
                "location_id": location_id,
                "supplier_id": supplier_id,
                "start_date": start_date,
                "end_date": end_date,
                "has_variance": has_variance,
                "status": status,
            }),
            "period": period,
            "deliveries": rows,
            "by_location": sorted(by_location.values(), key=lambda s: s["location_code"]),
            "by_supplier": sorted(by_supplier.values(), key=lambda s: s["total_value"], reverse=True),
            "grand_totals": {
                "total_deliveries": len(rows),
                "total_value": round_currency(sum((r["total_amount"] for r in rows), Decimal("0"))),
                "deliveries_with_variance": sum(1 for r in rows if r["has_variance"]),
                "total_variance": round_currency(sum((abs(r["total_variance"]) for r in rows), Decimal("0"))),
                "total_ncrs": sum(r["ncr_count"] for r in rows),
                "total_line_items": sum(len(r["lines"]) for r in rows),
            },
        }

    # Issues

    def issues_report(
        self,
        period_id: Optional[int] = None,
        location_id: Optional[int] = None,
        cost_centre: Optional[CostCentre] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> Dict[str, Any]:
        """Posted issues by location and by cost centre, with the top items per cost centre"""
        scope = self._location_scope(location_id)
        period = self._period_info(period_id)

        query = self.db.query(Issue).options(joinedload(Issue.location)).filter(
            Issue.status == DocumentStatus.POSTED.value
        )
        if scope is not None:
            query = query.filter(Issue.location_id.in_(scope))
        if period_id is not None:
            query = query.filter(Issue.period_id == period_id)
        if cost_centre:
            query = query.filter(Issue.cost_centre == CostCentre(cost_centre).value)
        if start_date:
            query = query.filter(Issue.issue_date >= start_date)
        if end_date:
            query = query.filter(Issue.issue_date <= end_date)
        issues = query.order_by(Issue.issue_date.desc(), Issue.issue_no.desc()).all()

        centres = {
            centre.value: {"issue_count": 0, "total_value": Decimal("0.00"), "line_count": 0, "items": {}}
            for centre in CostCentre
        }
        by_location: Dict[int, Dict[str, Any]] = {}
        rows = []
        for issue in issues:
            total = to_decimal(issue.total_value)
            rows.append({
                "id": issue.id,
                "issue_no": issue.issue_no,
                "issue_date": issue.issue_date,
                "location_code": issue.location.code,
                "location_name": issue.location.name,
                "cost_centre": issue.cost_centre,
                "total_value": total,
                "notes": issue.notes,
                "line_count": len(issue.lines),
            })

            location = by_location.setdefault(issue.location_id, {
                "location_id": issue.location_id,
                "location_code": issue.location.code,
                "location_name": issue.location.name,
                "issue_count": 0,
                "total_value": Decimal("0.00"),
                "by_cost_centre": {centre.value: Decimal("0.00") for centre in CostCentre},
            })
            location["issue_count"] += 1
            location["total_value"] += total
            location["by_cost_centre"][issue.cost_centre] += total

            centre = centres[issue.cost_centre]
            centre["issue_count"] += 1
            centre["total_value"] += total
            centre["line_count"] += len(issue.lines)
            for line in issue.lines:
                item = centre["items"].setdefault(line.item_id, {
                    "item_code": line.item.code,
                    "item_name": line.item.name,
                    "total_quantity": Decimal("0"),
                    "total_value": Decimal("0.00"),
                })
                item["total_quantity"] += to_decimal(line.quantity)
                item["total_value"] += to_decimal(line.line_value)

        by_cost_centre = [
            {
                "cost_centre": name,
                "issue_count": data["issue_count"],
                "total_value": round_currency(data["total_value"]),
                "line_count": data["line_count"],
                "top_items": sorted(
                    data["items"].values(), key=lambda i: i["total_value"], reverse=True
                )[:TOP_ITEMS],
            }
            for name, data in centres.items()
        ]

        return {
            **self._header("issues", {
                "period_id": period_id,
                "location_id": location_id,
                "cost_centre": cost_centre,
                "start_date": start_date,
                "end_date": end_date,
            }),
            "period": period,
            "issues": rows,
            "by_location": sorted(by_location.values(), key=lambda s: s["location_code"]),
            "by_cost_centre": by_cost_centre,
            "grand_totals": {
                "total_issues": len(rows),
                "total_value": round_currency(sum((r["total_value"] for r in rows), Decimal("0"))),
                "total_line_items": sum(r["line_count"] for r in rows),
            },
        }

    # Reconciliation

    def reconciliation_report(self, period_id: int, location_id: Optional[int] = None) -> Dict[str, Any]:
        """Consolidated reconciliation limited to the locations the user can see"""
        scope = self._location_scope(location_id)
        data = ReconciliationService(self.db, self.current_user).consolidated(period_id, location_ids=scope)
        logger.info(
            f"Reconciliation report for period {period_id} by {self.current_user.username}: "
            f"{data['summary']['total_locations']} locations"
        )
        return {
            **self._header("reconciliation", {"period_id": period_id, "location_id": location_id}),
            **data,
        }
