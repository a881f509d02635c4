"""
Period Service
Period lifecycle, locked prices, location readiness and close requests
"""
import calendar
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload

from foodstock.models import (
    Period, PeriodLocation, ItemPrice, Item, Location, Reconciliation, Approval, User
)
from foodstock.models.enums import (
    PeriodStatus, PeriodLocationStatus, ApprovalEntityType, ApprovalStatus
)
from foodstock.core.security import log_user_action
from foodstock.core.exceptions import (
    ValidationError, NotFoundError, ConflictError, PeriodClosedError, InvalidStatusError,
    BusinessLogicError
)
from foodstock.core.logging import get_logger

logger = get_logger("business")


def period_name_for(start: date) -> str:
    return f"{calendar.month_name[start.month]} {start.year}"


def last_day_of_month(value: date) -> date:
    return value.replace(day=calendar.monthrange(value.year, value.month)[1])


class PeriodService:
    """
    Accounting period workflow

    DRAFT -> OPEN -> PENDING_CLOSE -> CLOSED, with each location moving
    OPEN -> READY -> CLOSED inside the period.
    """

    def __init__(self, db: Session, current_user: Optional[User] = None):
        self.db = db
        self.current_user = current_user

    # Queries

    def get_period(self, period_id: int) -> Period:
        period = (
            self.db.query(Period)
            .options(joinedload(Period.period_locations).joinedload(PeriodLocation.location))
            .filter(Period.id == period_id)
            .first()
        )
        if not period:
            raise NotFoundError("Period not found", code="PERIOD_NOT_FOUND")
        return period

    def list_periods(self, status: Optional[PeriodStatus] = None, skip: int = 0, limit: int = 100) -> List[Period]:
        query = self.db.query(Period)
        if status:
            query = query.filter(Period.status == PeriodStatus(status).value)
        return query.order_by(Period.start_date.desc()).offset(skip).limit(limit).all()

    def get_current_period(self) -> Optional[Period]:
        return self.db.query(Period).filter(Period.status == PeriodStatus.OPEN.value).first()

    def get_period_location(self, period_id: int, location_id: int) -> PeriodLocation:
        period_location = self.db.query(PeriodLocation).filter(
            PeriodLocation.period_id == period_id,
            PeriodLocation.location_id == location_id
        ).first()
        if not period_location:
            raise NotFoundError("Period location not found", code="PERIOD_LOCATION_NOT_FOUND")
        return period_location

    def require_open_period(self, location_id: int) -> Tuple[Period, PeriodLocation]:
        """
        The OPEN period and this location's entry in it.

        Raises PeriodClosedError when there is no open period or the
        location has already been marked ready or closed.
        """
        period = self.get_current_period()
        if not period:
            raise PeriodClosedError("No open period found", code="NO_OPEN_PERIOD")
        period_location = self.db.query(PeriodLocation).filter(
            PeriodLocation.period_id == period.id,
            PeriodLocation.location_id == location_id
        ).first()
        if not period_location:
            raise PeriodClosedError(
                "Location is not part of the current period", code="PERIOD_LOCATION_NOT_FOUND"
            )
        if period_location.status != PeriodLocationStatus.OPEN.value:
            raise PeriodClosedError(
                f"Period is {period_location.status.lower()} for this location",
                code="PERIOD_LOCATION_CLOSED",
                details={"period_location_status": period_location.status},
            )
        return period, period_location

    def get_previous_period(self, period: Period) -> Optional[Period]:
        return (
            self.db.query(Period)
            .filter(Period.end_date < period.start_date)
            .order_by(Period.end_date.desc())
            .first()
        )

    def _find_overlap(self, start: date, end: date, exclude_id: Optional[int] = None) -> Optional[Period]:
        query = self.db.query(Period).filter(
            or_(
                and_(Period.start_date <= start, Period.end_date >= start),
                and_(Period.start_date <= end, Period.end_date >= end),
                and_(Period.start_date >= start, Period.end_date <= end),
            )
        )
        if exclude_id:
            query = query.filter(Period.id != exclude_id)
        return query.first()

    # Lifecycle

    def create_period(
        self,
        name: str,
        start_date: date,
        end_date: date,
        status: PeriodStatus = PeriodStatus.DRAFT
    ) -> Period:
        """Create a period with an OPEN entry for every active location"""
        if end_date <= start_date:
            raise ValidationError("End date must be after start date", code="INVALID_DATE_RANGE")
        status = PeriodStatus(status)
        if status not in (PeriodStatus.DRAFT, PeriodStatus.OPEN):
            raise ValidationError("New periods start as DRAFT or OPEN", code="INVALID_PERIOD_STATUS")
        overlap = self._find_overlap(start_date, end_date)
        if overlap:
            raise ConflictError(
                f"Period overlaps with existing period '{overlap.name}'", code="OVERLAPPING_PERIOD"
            )
        if status == PeriodStatus.OPEN:
            self._ensure_no_open_period()

        try:
            period = Period(name=name, start_date=start_date, end_date=end_date, status=status.value)
            self.db.add(period)
            self.db.flush()
            self._create_period_locations(period)
            log_user_action(
                db=self.db, user=self.current_user, action="CREATE_PERIOD",
                table="periods", key=str(period.id),
                new_values={"name": name, "start_date": start_date, "end_date": end_date, "status": status.value},
                module="PERIOD"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Period created: {period.name} ({start_date} - {end_date})")
        return self.get_period(period.id)

    def _create_period_locations(self, period: Period, opening_values: Optional[Dict[int, Decimal]] = None) -> None:
        opening_values = opening_values or {}
        locations = self.db.query(Location).filter(Location.is_active.is_(True)).all()
        for location in locations:
            self.db.add(PeriodLocation(
                period_id=period.id,
                location_id=location.id,
                status=PeriodLocationStatus.OPEN.value,
                opening_value=opening_values.get(location.id, Decimal("0")),
            ))
        self.db.flush()

    def _ensure_no_open_period(self) -> None:
        existing = self.get_current_period()
        if existing:
            raise ConflictError(
                f"Cannot open period - '{existing.name}' is currently open. Close it first.",
                code="PERIOD_ALREADY_OPEN"
            )

    def open_period(self, period_id: int) -> Period:
        """DRAFT -> OPEN; only one period may be open"""
        period = self.get_period(period_id)
        if period.status != PeriodStatus.DRAFT.value:
            raise InvalidStatusError(
                f"Period cannot be opened - current status is {period.status}",
                code="INVALID_PERIOD_STATUS",
                details={"current_status": period.status}
            )
        self._ensure_no_open_period()
        if not period.period_locations:
            raise BusinessLogicError("Period has no locations", code="NO_LOCATIONS")

        period.status = PeriodStatus.OPEN.value
        log_user_action(
            db=self.db, user=self.current_user, action="OPEN_PERIOD",
            table="periods", key=str(period.id), module="PERIOD"
        )
        self.db.commit()
        logger.info(f"Period opened: {period.name}")
        return self.get_period(period_id)

    # Prices

    def get_prices(self, period_id: int) -> List[ItemPrice]:
        self.get_period(period_id)
        return (
            self.db.query(ItemPrice)
            .join(Item)
            .options(joinedload(ItemPrice.item))
            .filter(ItemPrice.period_id == period_id)
            .order_by(Item.code)
            .all()
        )

    def get_price_map(self, period_id: int, item_ids: List[int]) -> Dict[int, Decimal]:
        rows = self.db.query(ItemPrice).filter(
            ItemPrice.period_id == period_id,
            ItemPrice.item_id.in_(item_ids)
        ).all()
        return {row.item_id: row.price for row in rows}

    def set_prices(self, period_id: int, prices: List[Dict]) -> List[ItemPrice]:
        """Upsert locked prices; a closed period's prices are frozen"""
        period = self.get_period(period_id)
        if period.status == PeriodStatus.CLOSED.value:
            raise PeriodClosedError("Cannot set prices for a closed period", code="PERIOD_CLOSED")
        if not prices:
            raise ValidationError("At least one price is required")

        item_ids = [p["item_id"] for p in prices]
        active = self.db.query(Item.id).filter(Item.id.in_(item_ids), Item.is_active.is_(True)).all()
        if len({row[0] for row in active}) != len(set(item_ids)):
            raise ValidationError("Some items do not exist or are inactive", code="INVALID_ITEMS")

        existing = {
            row.item_id: row
            for row in self.db.query(ItemPrice).filter(
                ItemPrice.period_id == period_id, ItemPrice.item_id.in_(item_ids)
            ).all()
        }
        try:
            for entry in prices:
                price = Decimal(str(entry["price"]))
                if price <= 0:
                    raise ValidationError("Price must be greater than zero", details={"item_id": entry["item_id"]})
                row = existing.get(entry["item_id"])
                if row:
                    row.price = price
                else:
                    row = ItemPrice(item_id=entry["item_id"], period_id=period_id, price=price)
                    self.db.add(row)
                    existing[entry["item_id"]] = row
            log_user_action(
                db=self.db, user=self.current_user, action="SET_PRICES",
                table="item_prices", key=str(period_id),
                new_values={"count": len(prices)}, module="PERIOD"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"{len(prices)} item prices set for period {period.name}")
        return self.get_prices(period_id)

    def copy_prices(self, target_period_id: int, source_period_id: int) -> int:
        """Copy every price from source into target, overwriting; returns count"""
        source = self.get_prices(source_period_id)
        if not source:
            raise BusinessLogicError("Source period has no prices", code="NO_SOURCE_PRICES")
        self.set_prices(target_period_id, [{"item_id": p.item_id, "price": p.price} for p in source])
        return len(source)

    # Location readiness

    def mark_location_ready(self, period_id: int, location_id: int) -> PeriodLocation:
        """A location is ready once its reconciliation has been saved"""
        period = self.get_period(period_id)
        if period.status != PeriodStatus.OPEN.value:
            raise InvalidStatusError(
                f"Period must be open to mark locations ready - current status is {period.status}",
                code="INVALID_PERIOD_STATUS",
                details={"current_status": period.status}
            )
        period_location = self.get_period_location(period_id, location_id)
        if period_location.status == PeriodLocationStatus.CLOSED.value:
            raise InvalidStatusError("Location is already closed for this period", code="LOCATION_ALREADY_CLOSED")

        reconciliation = self.db.query(Reconciliation).filter(
            Reconciliation.period_id == period_id,
            Reconciliation.location_id == location_id
        ).first()
        if not reconciliation:
            raise BusinessLogicError(
                "Reconciliation must be completed before marking the location ready",
                code="RECONCILIATION_REQUIRED"
            )

        period_location.status = PeriodLocationStatus.READY.value
        period_location.ready_at = datetime.utcnow()
        log_user_action(
            db=self.db, user=self.current_user, action="LOCATION_READY",
            table="period_locations", key=f"{period_id}:{location_id}", module="PERIOD"
        )
        self.db.commit()
        self.db.refresh(period_location)
        logger.info(f"Location {location_id} marked ready for period {period_id}")
        return period_location

    def mark_location_unready(self, period_id: int, location_id: int) -> PeriodLocation:
        period_location = self.get_period_location(period_id, location_id)
        if period_location.status != PeriodLocationStatus.READY.value:
            raise InvalidStatusError("Location is not in READY status", code="LOCATION_NOT_READY")
        period = self.get_period(period_id)
        if period.status == PeriodStatus.PENDING_CLOSE.value:
            raise InvalidStatusError(
                "Period close is awaiting approval; reject it first", code="PERIOD_PENDING_CLOSE"
            )

        period_location.status = PeriodLocationStatus.OPEN.value
        period_location.ready_at = None
        log_user_action(
            db=self.db, user=self.current_user, action="LOCATION_UNREADY",
            table="period_locations", key=f"{period_id}:{location_id}", module="PERIOD"
        )
        self.db.commit()
        self.db.refresh(period_location)
        return period_location

    # Close

    def request_close(self, period_id: int) -> Approval:
        """
        Ask for the period to be closed.

        Every location must be READY; the period moves to PENDING_CLOSE
        and waits for an admin to approve the close.
        """
        period = self.get_period(period_id)
        if period.status != PeriodStatus.OPEN.value:
            raise InvalidStatusError(
                f"Period must be open to request close - current status is {period.status}",
                code="INVALID_PERIOD_STATUS",
                details={"current_status": period.status}
            )

        not_ready = [
            pl.location.name for pl in period.period_locations
            if pl.status != PeriodLocationStatus.READY.value
        ]
        if not_ready:
            raise BusinessLogicError(
                f"All locations must be ready before closing. Not ready: {', '.join(not_ready)}",
                code="LOCATIONS_NOT_READY",
                details={"locations": not_ready}
            )

        pending = self.db.query(Approval).filter(
            Approval.entity_type == ApprovalEntityType.PERIOD_CLOSE.value,
            Approval.entity_id == period_id,
            Approval.status == ApprovalStatus.PENDING.value
        ).first()
        if pending:
            raise ConflictError("A close request is already pending for this period", code="APPROVAL_PENDING")

        try:
            approval = Approval(
                entity_type=ApprovalEntityType.PERIOD_CLOSE.value,
                entity_id=period_id,
                status=ApprovalStatus.PENDING.value,
                requested_by=self.current_user.id,
            )
            self.db.add(approval)
            period.status = PeriodStatus.PENDING_CLOSE.value
            log_user_action(
                db=self.db, user=self.current_user, action="REQUEST_CLOSE",
                table="periods", key=str(period_id), module="PERIOD"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(approval)
        logger.info(f"Close requested for period {period.name} (approval {approval.id})")
        return approval

    def roll_forward(
        self,
        period_id: int,
        name: Optional[str] = None,
        end_date: Optional[date] = None,
        copy_prices: bool = True
    ) -> Period:
        """
        Create the next DRAFT period from a closed one.

        Each location opens at the value it closed at; prices are copied
        unless copy_prices is False.
        """
        source = self.get_period(period_id)
        if source.status != PeriodStatus.CLOSED.value:
            raise InvalidStatusError(
                f"Cannot roll forward a period that is not closed. Current status: {source.status}",
                code="PERIOD_NOT_CLOSED",
                details={"current_status": source.status}
            )

        start = source.end_date + timedelta(days=1)
        end = end_date or last_day_of_month(start)
        if end <= start:
            raise ValidationError("End date must be after start date", code="INVALID_DATE_RANGE")
        overlap = self._find_overlap(start, end)
        if overlap:
            raise ConflictError(
                f"New period would overlap with existing period '{overlap.name}'", code="OVERLAPPING_PERIOD"
            )

        closing_values = {
            pl.location_id: pl.closing_value
            for pl in source.period_locations
            if pl.closing_value is not None
        }

        try:
            period = Period(
                name=name or period_name_for(start),
                start_date=start,
                end_date=end,
                status=PeriodStatus.DRAFT.value,
            )
            self.db.add(period)
            self.db.flush()
            self._create_period_locations(period, closing_values)

            copied = 0
            if copy_prices:
                for price in source.item_prices:
                    self.db.add(ItemPrice(
                        item_id=price.item_id,
                        period_id=period.id,
                        price=price.price,
                        currency=price.currency,
                    ))
                    copied += 1

            log_user_action(
                db=self.db, user=self.current_user, action="ROLL_FORWARD",
                table="periods", key=str(period.id),
                new_values={"source_period_id": period_id, "prices_copied": copied},
                module="PERIOD"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Period {source.name} rolled forward to {period.name}")
        return self.get_period(period.id)
