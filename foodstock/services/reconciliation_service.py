"""
Reconciliation Service
Period roll-ups per location, persons on board and manday cost
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from foodstock.models import (
    Reconciliation, POB, Period, PeriodLocation, Location, Delivery, Issue, Transfer, User
)
from foodstock.models.enums import DocumentStatus, TransferStatus, PeriodStatus
from foodstock.services.business_logic import ReconciliationCalculator, round_currency, to_decimal
from foodstock.services.periods.period_service import PeriodService
from foodstock.services.stock.stock_levels import StockLevelService
from foodstock.core.security import log_user_action
from foodstock.core.exceptions import NotFoundError, PeriodClosedError, ValidationError
from foodstock.core.logging import get_logger

logger = get_logger("business")

ADJUSTMENT_FIELDS = ("back_charges", "credits", "condemnations", "adjustments")
LEDGER_FIELDS = ("opening_stock", "receipts", "transfers_in", "transfers_out", "issues", "closing_stock")


class ReconciliationService:
    """
    A saved Reconciliation is returned as stored. Without one, the figures
    are computed from the period's postings and current stock but not
    saved; saving happens on the first adjustment update.
    """

    def __init__(self, db: Session, current_user: Optional[User] = None):
        self.db = db
        self.current_user = current_user
        self.periods = PeriodService(db, current_user)

    def _get_location(self, location_id: int) -> Location:
        location = self.db.query(Location).filter(Location.id == location_id).first()
        if not location:
            raise NotFoundError("Location not found", code="LOCATION_NOT_FOUND")
        return location

    def get_saved(self, period_id: int, location_id: int) -> Optional[Reconciliation]:
        return self.db.query(Reconciliation).filter(
            Reconciliation.period_id == period_id,
            Reconciliation.location_id == location_id
        ).first()

    # Ledger figures

    def _opening_stock(self, period: Period, location_id: int) -> Decimal:
        previous = self.periods.get_previous_period(period)
        if previous:
            saved = self.get_saved(previous.id, location_id)
            if saved:
                return to_decimal(saved.closing_stock)
        period_location = self.db.query(PeriodLocation).filter(
            PeriodLocation.period_id == period.id,
            PeriodLocation.location_id == location_id
        ).first()
        return to_decimal(period_location.opening_value) if period_location else Decimal("0")

    def _receipts(self, period_id: int, location_id: int) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(Delivery.total_amount), 0)).filter(
            Delivery.period_id == period_id,
            Delivery.location_id == location_id,
            Delivery.status == DocumentStatus.POSTED.value
        ).scalar()
        return to_decimal(total)

    def _issues(self, period_id: int, location_id: int) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(Issue.total_value), 0)).filter(
            Issue.period_id == period_id,
            Issue.location_id == location_id,
            Issue.status == DocumentStatus.POSTED.value
        ).scalar()
        return to_decimal(total)

    def _transfers(self, period: Period, column, location_id: int) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(Transfer.total_value), 0)).filter(
            column == location_id,
            Transfer.status == TransferStatus.COMPLETED.value,
            Transfer.transfer_date >= period.start_date,
            Transfer.transfer_date <= period.end_date
        ).scalar()
        return to_decimal(total)

    def calculate_ledger(self, period: Period, location_id: int) -> Dict[str, Decimal]:
        """Opening, movements and closing value for a location in a period"""
        return {
            "opening_stock": round_currency(self._opening_stock(period, location_id)),
            "receipts": round_currency(self._receipts(period.id, location_id)),
            "transfers_in": round_currency(self._transfers(period, Transfer.to_location_id, location_id)),
            "transfers_out": round_currency(self._transfers(period, Transfer.from_location_id, location_id)),
            "issues": round_currency(self._issues(period.id, location_id)),
            "closing_stock": round_currency(StockLevelService(self.db).location_value(location_id)),
        }

    # Reads

    def get_reconciliation(self, period_id: int, location_id: int) -> Dict[str, Any]:
        """Saved or auto-calculated reconciliation with consumption and manday cost"""
        period = self.periods.get_period(period_id)
        location = self._get_location(location_id)
        saved = self.get_saved(period_id, location_id)

        if saved:
            figures = {name: to_decimal(getattr(saved, name)) for name in LEDGER_FIELDS + ADJUSTMENT_FIELDS}
            last_updated = saved.last_updated
        else:
            figures = self.calculate_ledger(period, location_id)
            figures.update({name: Decimal("0.00") for name in ADJUSTMENT_FIELDS})
            last_updated = None

        return self._build_response(period, location, figures, is_auto_calculated=saved is None,
                                    reconciliation_id=saved.id if saved else None,
                                    last_updated=last_updated)

    def _build_response(
        self,
        period: Period,
        location: Location,
        figures: Dict[str, Decimal],
        is_auto_calculated: bool,
        reconciliation_id: Optional[int] = None,
        last_updated: Optional[datetime] = None
    ) -> Dict[str, Any]:
        consumption = ReconciliationCalculator.calculate_consumption(**figures)
        total_mandays = self.total_mandays(period.id, location.id)
        manday_cost = None
        if total_mandays > 0:
            manday_cost = ReconciliationCalculator.calculate_manday_cost(
                consumption.consumption, total_mandays
            ).manday_cost
        calculated_closing = ReconciliationCalculator.calculated_closing(
            figures["opening_stock"], figures["receipts"], figures["transfers_in"],
            figures["transfers_out"], figures["issues"], figures["adjustments"],
            figures["back_charges"], figures["credits"], figures["condemnations"]
        )

        return {
            "id": reconciliation_id,
            "period_id": period.id,
            "period_name": period.name,
            "location_id": location.id,
            "location_code": location.code,
            "location_name": location.name,
            **figures,
            "total_adjustments": consumption.total_adjustments,
            "consumption": consumption.consumption,
            "calculated_closing": calculated_closing,
            "variance": round_currency(figures["closing_stock"] - calculated_closing),
            "total_mandays": total_mandays,
            "manday_cost": manday_cost,
            "is_auto_calculated": is_auto_calculated,
            "last_updated": last_updated,
        }

    def consolidated(self, period_id: int, location_ids: Optional[List[int]] = None) -> Dict[str, Any]:
        """
        Reconciliation of every active location in a period with grand totals.

        location_ids narrows the locations; None means all of them.
        """
        period = self.periods.get_period(period_id)
        query = self.db.query(Location).filter(Location.is_active.is_(True))
        if location_ids is not None:
            query = query.filter(Location.id.in_(location_ids))
        locations = query.order_by(Location.code).all()

        rows = [self.get_reconciliation(period.id, location.id) for location in locations]

        totals = {name: Decimal("0.00") for name in LEDGER_FIELDS + ADJUSTMENT_FIELDS + ("consumption",)}
        total_mandays = 0
        for row in rows:
            for name in totals:
                totals[name] += row[name]
            total_mandays += row["total_mandays"]
        average_manday_cost = None
        if total_mandays > 0:
            average_manday_cost = ReconciliationCalculator.calculate_manday_cost(
                totals["consumption"], total_mandays
            ).manday_cost

        saved = sum(1 for row in rows if not row["is_auto_calculated"])
        return {
            "period": {
                "id": period.id,
                "name": period.name,
                "start_date": period.start_date,
                "end_date": period.end_date,
                "status": period.status,
            },
            "locations": rows,
            "grand_totals": {
                **{name: round_currency(value) for name, value in totals.items()},
                "total_mandays": total_mandays,
                "average_manday_cost": average_manday_cost,
            },
            "summary": {
                "total_locations": len(rows),
                "saved_reconciliations": saved,
                "auto_calculated": len(rows) - saved,
            },
        }

    def snapshot(self, period: Period, location_id: int) -> Dict[str, Any]:
        """Reconciliation figures for the period close snapshot"""
        data = self.get_reconciliation(period.id, location_id)
        return {
            key: (str(value) if isinstance(value, Decimal) else value)
            for key, value in data.items()
            if key in LEDGER_FIELDS + ADJUSTMENT_FIELDS
            or key in ("consumption", "calculated_closing", "variance", "total_mandays", "manday_cost")
        }

    # Writes

    def update_adjustments(self, period_id: int, location_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Save the reconciliation, creating it from the calculated ledger
        the first time, then apply the given adjustment fields.
        """
        period = self.periods.get_period(period_id)
        self._get_location(location_id)
        if period.status == PeriodStatus.CLOSED.value:
            raise PeriodClosedError("Cannot change the reconciliation of a closed period", code="PERIOD_CLOSED")

        changes = {name: to_decimal(data[name]) for name in ADJUSTMENT_FIELDS if data.get(name) is not None}
        for name, value in changes.items():
            if name != "adjustments" and value < 0:
                raise ValidationError(f"{name} cannot be negative", details={name: str(value)})

        try:
            reconciliation = self.get_saved(period_id, location_id)
            old_values = None
            if reconciliation is None:
                reconciliation = Reconciliation(
                    period_id=period_id,
                    location_id=location_id,
                    **self.calculate_ledger(period, location_id)
                )
                self.db.add(reconciliation)
            else:
                old_values = {name: getattr(reconciliation, name) for name in changes}

            for name, value in changes.items():
                setattr(reconciliation, name, value)
            reconciliation.last_updated = datetime.utcnow()
            self.db.flush()

            log_user_action(
                db=self.db, user=self.current_user, action="UPDATE_RECONCILIATION",
                table="reconciliations", key=f"{period_id}:{location_id}",
                old_values=old_values, new_values=changes, module="RECONCILIATION"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Reconciliation saved for period {period_id} location {location_id}")
        return self.get_reconciliation(period_id, location_id)

    # Persons on board

    def total_mandays(self, period_id: int, location_id: int) -> int:
        total = self.db.query(
            func.coalesce(func.sum(POB.crew_count + POB.extra_count), 0)
        ).filter(POB.period_id == period_id, POB.location_id == location_id).scalar()
        return int(total or 0)

    def list_pob(self, location_id: int, period_id: Optional[int] = None) -> List[POB]:
        if period_id is None:
            period = self.periods.get_current_period()
            if not period:
                return []
            period_id = period.id
        return self.db.query(POB).filter(
            POB.period_id == period_id,
            POB.location_id == location_id
        ).order_by(POB.date).all()

    def upsert_pob(self, location_id: int, entries: List[Dict[str, Any]], period_id: Optional[int] = None) -> List[POB]:
        """
        Insert or replace daily counts.

        The period defaults to the one currently open and must not be
        closed; every date must fall inside it.
        """
        if period_id is None:
            period = self.periods.get_current_period()
            if not period:
                raise PeriodClosedError("No open period found", code="NO_OPEN_PERIOD")
        else:
            period = self.periods.get_period(period_id)
        if period.status == PeriodStatus.CLOSED.value:
            raise PeriodClosedError("Cannot record POB for a closed period", code="PERIOD_CLOSED")
        self._get_location(location_id)
        if not entries:
            raise ValidationError("At least one POB entry is required")

        for entry in entries:
            if entry["crew_count"] < 0 or entry.get("extra_count", 0) < 0:
                raise ValidationError("POB counts cannot be negative", details={"date": str(entry["date"])})
            if not (period.start_date <= entry["date"] <= period.end_date):
                raise ValidationError(
                    f"Date {entry['date']} is outside period {period.name}", code="DATE_OUTSIDE_PERIOD"
                )

        dates: List[date] = [entry["date"] for entry in entries]
        existing = {
            row.date: row
            for row in self.db.query(POB).filter(
                POB.period_id == period.id, POB.location_id == location_id, POB.date.in_(dates)
            ).all()
        }
        try:
            for entry in entries:
                row = existing.get(entry["date"])
                if row is None:
                    row = POB(period_id=period.id, location_id=location_id, date=entry["date"],
                              entered_by=self.current_user.id)
                    self.db.add(row)
                    existing[entry["date"]] = row
                row.crew_count = entry["crew_count"]
                row.extra_count = entry.get("extra_count", 0)
                row.entered_by = self.current_user.id
            log_user_action(
                db=self.db, user=self.current_user, action="UPSERT_POB",
                table="pob", key=f"{period.id}:{location_id}",
                new_values={"entries": len(entries)}, module="RECONCILIATION"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"{len(entries)} POB entries saved for location {location_id} period {period.name}")
        return self.list_pob(location_id, period.id)
