"""
Tests for Period Lifecycle
Creation, locked prices, readiness, close approval and roll-forward
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy.orm import Session

from foodstock.core.exceptions import (
    ValidationError, ConflictError, PeriodClosedError, InvalidStatusError, BusinessLogicError
)
from foodstock.models import Period, PeriodLocation, Approval
from foodstock.models.enums import (
    PeriodStatus, PeriodLocationStatus, ApprovalStatus, ApprovalEntityType
)
from foodstock.services.periods.period_service import PeriodService, period_name_for, last_day_of_month
from foodstock.services.periods.approvals import ApprovalService
from foodstock.services.reconciliation_service import ReconciliationService
from foodstock.services.stock.issues import IssueService


def _ready_all(db_session: Session, user, period: Period) -> None:
    """Save a reconciliation for every location and mark it ready"""
    service = PeriodService(db_session, user)
    for period_location in list(period.period_locations):
        ReconciliationService(db_session, user).update_adjustments(period.id, period_location.location_id, {})
        service.mark_location_ready(period.id, period_location.location_id)


def _close(db_session: Session, supervisor, admin, period: Period) -> dict:
    _ready_all(db_session, supervisor, period)
    approval = PeriodService(db_session, supervisor).request_close(period.id)
    _, summary = ApprovalService(db_session, admin).approve(approval.id, "Month end")
    return summary


class TestPeriodHelpers:

    def test_period_name(self):
        assert period_name_for(date(2025, 1, 1)) == "January 2025"

    def test_last_day_of_month(self):
        assert last_day_of_month(date(2024, 2, 10)) == date(2024, 2, 29)
        assert last_day_of_month(date(2025, 12, 1)) == date(2025, 12, 31)


class TestPeriodLifecycle:
    """Test suite for period creation and opening"""

    def test_create_draft_period(self, db_session: Session, admin_user, kitchen, store):
        period = PeriodService(db_session, admin_user).create_period(
            "January 2025", date(2025, 1, 1), date(2025, 1, 31)
        )

        assert period.status == PeriodStatus.DRAFT.value
        assert {pl.location_id for pl in period.period_locations} == {kitchen.id, store.id}
        for period_location in period.period_locations:
            assert period_location.status == PeriodLocationStatus.OPEN.value
            assert period_location.opening_value == Decimal("0")

    def test_inactive_locations_are_skipped(self, db_session: Session, admin_user, kitchen, store):
        store.is_active = False
        db_session.commit()

        period = PeriodService(db_session, admin_user).create_period(
            "January 2025", date(2025, 1, 1), date(2025, 1, 31)
        )
        assert [pl.location_id for pl in period.period_locations] == [kitchen.id]

    def test_invalid_date_range(self, db_session: Session, admin_user):
        with pytest.raises(ValidationError) as exc_info:
            PeriodService(db_session, admin_user).create_period(
                "Backwards", date(2025, 1, 31), date(2025, 1, 1)
            )
        assert exc_info.value.code == "INVALID_DATE_RANGE"

    def test_overlapping_period(self, db_session: Session, admin_user, kitchen):
        service = PeriodService(db_session, admin_user)
        service.create_period("January 2025", date(2025, 1, 1), date(2025, 1, 31))

        with pytest.raises(ConflictError) as exc_info:
            service.create_period("Mid January", date(2025, 1, 15), date(2025, 2, 14))
        assert exc_info.value.code == "OVERLAPPING_PERIOD"

    def test_only_one_open_period(self, db_session: Session, admin_user, kitchen):
        service = PeriodService(db_session, admin_user)
        service.create_period("January 2025", date(2025, 1, 1), date(2025, 1, 31), PeriodStatus.OPEN)
        february = service.create_period("February 2025", date(2025, 2, 1), date(2025, 2, 28))

        with pytest.raises(ConflictError) as exc_info:
            service.open_period(february.id)
        assert exc_info.value.code == "PERIOD_ALREADY_OPEN"

    def test_open_draft(self, db_session: Session, admin_user, kitchen):
        service = PeriodService(db_session, admin_user)
        period = service.create_period("January 2025", date(2025, 1, 1), date(2025, 1, 31))

        opened = service.open_period(period.id)
        assert opened.status == PeriodStatus.OPEN.value
        assert service.get_current_period().id == period.id

        with pytest.raises(InvalidStatusError) as exc_info:
            service.open_period(period.id)
        assert exc_info.value.code == "INVALID_PERIOD_STATUS"

    def test_open_without_locations(self, db_session: Session, admin_user):
        service = PeriodService(db_session, admin_user)
        period = service.create_period("January 2025", date(2025, 1, 1), date(2025, 1, 31))

        with pytest.raises(BusinessLogicError) as exc_info:
            service.open_period(period.id)
        assert exc_info.value.code == "NO_LOCATIONS"


class TestPeriodPrices:
    """Test suite for period-locked prices"""

    def test_prices_are_upserted(self, db_session: Session, admin_user, rice, open_period):
        service = PeriodService(db_session, admin_user)
        prices = service.set_prices(open_period.id, [{"item_id": rice.id, "price": Decimal("12.25")}])

        by_item = {p.item_id: p.price for p in prices}
        assert by_item[rice.id] == Decimal("12.25")
        assert len(prices) == 2
        assert service.get_price_map(open_period.id, [rice.id]) == {rice.id: Decimal("12.25")}

    def test_price_must_be_positive(self, db_session: Session, admin_user, rice, open_period):
        with pytest.raises(ValidationError, match="greater than zero"):
            PeriodService(db_session, admin_user).set_prices(open_period.id, [{"item_id": rice.id, "price": 0}])

        # The failed update left the old price in place
        assert PeriodService(db_session).get_price_map(open_period.id, [rice.id])[rice.id] == Decimal("12.00")

    def test_copy_prices(self, db_session: Session, admin_user, rice, oil, open_period):
        service = PeriodService(db_session, admin_user)
        start = last_day_of_month(open_period.start_date) + timedelta(days=1)
        draft = service.create_period("Next", start, last_day_of_month(start))

        assert service.copy_prices(draft.id, open_period.id) == 2
        assert service.get_price_map(draft.id, [rice.id, oil.id]) == {
            rice.id: Decimal("12.00"), oil.id: Decimal("8.50")
        }

    def test_copy_from_period_without_prices(self, db_session: Session, admin_user, kitchen):
        service = PeriodService(db_session, admin_user)
        january = service.create_period("January 2025", date(2025, 1, 1), date(2025, 1, 31))
        february = service.create_period("February 2025", date(2025, 2, 1), date(2025, 2, 28))

        with pytest.raises(BusinessLogicError) as exc_info:
            service.copy_prices(february.id, january.id)
        assert exc_info.value.code == "NO_SOURCE_PRICES"


class TestLocationReadiness:
    """Test suite for marking locations ready for close"""

    def test_reconciliation_required(self, db_session: Session, supervisor_user, kitchen, open_period):
        with pytest.raises(BusinessLogicError) as exc_info:
            PeriodService(db_session, supervisor_user).mark_location_ready(open_period.id, kitchen.id)
        assert exc_info.value.code == "RECONCILIATION_REQUIRED"

    def test_draft_period_cannot_be_readied(self, db_session: Session, admin_user, supervisor_user, kitchen):
        """Locations can only be marked ready once the period is open"""
        period = PeriodService(db_session, admin_user).create_period(
            "March 2025", date(2025, 3, 1), date(2025, 3, 31)
        )
        ReconciliationService(db_session, supervisor_user).update_adjustments(period.id, kitchen.id, {})

        with pytest.raises(InvalidStatusError) as exc_info:
            PeriodService(db_session, supervisor_user).mark_location_ready(period.id, kitchen.id)

        assert exc_info.value.code == "INVALID_PERIOD_STATUS"
        period_location = PeriodService(db_session).get_period_location(period.id, kitchen.id)
        assert period_location.status == PeriodLocationStatus.OPEN.value

    def test_ready_and_unready(self, db_session: Session, supervisor_user, kitchen, open_period):
        ReconciliationService(db_session, supervisor_user).update_adjustments(open_period.id, kitchen.id, {})
        service = PeriodService(db_session, supervisor_user)

        ready = service.mark_location_ready(open_period.id, kitchen.id)
        assert ready.status == PeriodLocationStatus.READY.value
        assert ready.ready_at is not None

        reopened = service.mark_location_unready(open_period.id, kitchen.id)
        assert reopened.status == PeriodLocationStatus.OPEN.value
        assert reopened.ready_at is None

        with pytest.raises(InvalidStatusError) as exc_info:
            service.mark_location_unready(open_period.id, kitchen.id)
        assert exc_info.value.code == "LOCATION_NOT_READY"

    def test_ready_location_blocks_postings(self, db_session: Session, supervisor_user, operator_user,
                                            kitchen, rice, open_period, kitchen_stock):
        ReconciliationService(db_session, supervisor_user).update_adjustments(open_period.id, kitchen.id, {})
        PeriodService(db_session, supervisor_user).mark_location_ready(open_period.id, kitchen.id)

        with pytest.raises(PeriodClosedError):
            IssueService(db_session, operator_user).create_issue(kitchen.id, {
                "lines": [{"item_id": rice.id, "quantity": 1}],
            })


class TestPeriodClose:
    """Test suite for close requests and their approval"""

    def test_all_locations_must_be_ready(self, db_session: Session, supervisor_user, kitchen, store, open_period):
        with pytest.raises(BusinessLogicError) as exc_info:
            PeriodService(db_session, supervisor_user).request_close(open_period.id)

        assert exc_info.value.code == "LOCATIONS_NOT_READY"
        assert set(exc_info.value.details["locations"]) == {"Main Kitchen", "Central Store"}

    def test_request_close(self, db_session: Session, supervisor_user, open_period):
        _ready_all(db_session, supervisor_user, open_period)
        approval = PeriodService(db_session, supervisor_user).request_close(open_period.id)

        assert approval.status == ApprovalStatus.PENDING.value
        assert approval.entity_type == ApprovalEntityType.PERIOD_CLOSE.value
        assert approval.entity_id == open_period.id
        assert PeriodService(db_session).get_period(open_period.id).status == PeriodStatus.PENDING_CLOSE.value

        # No period is open while the close is pending
        assert PeriodService(db_session).get_current_period() is None

    def test_approve_close_snapshots_stock(self, db_session: Session, supervisor_user, admin_user,
                                           kitchen, store, open_period, kitchen_stock):
        """Kitchen closes at 100 x 10.00 + 10 x 8.00 = 1080.00"""
        summary = _close(db_session, supervisor_user, admin_user, open_period)

        assert summary["total_locations"] == 2
        assert summary["total_closing_value"] == Decimal("1080.00")

        period = PeriodService(db_session).get_period(open_period.id)
        assert period.status == PeriodStatus.CLOSED.value
        assert period.closed_at is not None

        kitchen_entry = PeriodService(db_session).get_period_location(period.id, kitchen.id)
        assert kitchen_entry.status == PeriodLocationStatus.CLOSED.value
        assert kitchen_entry.closing_value == Decimal("1080.00")
        snapshot = kitchen_entry.snapshot_data
        assert snapshot["total_value"] == "1080.00"
        assert snapshot["item_count"] == 2
        assert {item["item_code"] for item in snapshot["items"]} == {"RICE-01", "OIL-01"}
        assert snapshot["reconciliation"]["closing_stock"] == "1080.00"

        store_entry = PeriodService(db_session).get_period_location(period.id, store.id)
        assert store_entry.closing_value == Decimal("0")

        approval = db_session.query(Approval).one()
        assert approval.status == ApprovalStatus.APPROVED.value
        assert approval.reviewed_by == admin_user.id
        assert approval.comments == "Month end"

    def test_closed_period_is_frozen(self, db_session: Session, supervisor_user, admin_user, rice,
                                     kitchen, open_period):
        _close(db_session, supervisor_user, admin_user, open_period)

        with pytest.raises(PeriodClosedError):
            PeriodService(db_session, admin_user).set_prices(open_period.id, [{"item_id": rice.id, "price": 1}])
        with pytest.raises(PeriodClosedError):
            ReconciliationService(db_session, supervisor_user).update_adjustments(
                open_period.id, kitchen.id, {"credits": 10}
            )

    def test_duplicate_close_request(self, db_session: Session, supervisor_user, open_period):
        _ready_all(db_session, supervisor_user, open_period)
        service = PeriodService(db_session, supervisor_user)
        approval = service.request_close(open_period.id)

        # The pending period itself can't be asked to close again
        with pytest.raises(InvalidStatusError):
            service.request_close(open_period.id)
        with pytest.raises(InvalidStatusError) as exc_info:
            service.mark_location_unready(open_period.id, open_period.period_locations[0].location_id)
        assert exc_info.value.code == "PERIOD_PENDING_CLOSE"
        assert approval.status == ApprovalStatus.PENDING.value

    def test_approval_processed_once(self, db_session: Session, supervisor_user, admin_user, open_period):
        _ready_all(db_session, supervisor_user, open_period)
        approval = PeriodService(db_session, supervisor_user).request_close(open_period.id)
        service = ApprovalService(db_session, admin_user)
        service.approve(approval.id)

        with pytest.raises(ConflictError) as exc_info:
            service.reject(approval.id, "Too late")
        assert exc_info.value.code == "APPROVAL_ALREADY_PROCESSED"

    def test_reject_reopens_period(self, db_session: Session, supervisor_user, admin_user, open_period):
        _ready_all(db_session, supervisor_user, open_period)
        approval = PeriodService(db_session, supervisor_user).request_close(open_period.id)

        rejected = ApprovalService(db_session, admin_user).reject(approval.id, "Recount the store")

        assert rejected.status == ApprovalStatus.REJECTED.value
        assert rejected.comments == "Recount the store"
        period = PeriodService(db_session).get_period(open_period.id)
        assert period.status == PeriodStatus.OPEN.value
        # Locations stay READY until they are marked unready
        assert all(pl.status == PeriodLocationStatus.READY.value for pl in period.period_locations)

    def test_list_pending_approvals(self, db_session: Session, supervisor_user, admin_user, open_period):
        _ready_all(db_session, supervisor_user, open_period)
        PeriodService(db_session, supervisor_user).request_close(open_period.id)

        pending = ApprovalService(db_session, admin_user).list_approvals(status=ApprovalStatus.PENDING)
        assert len(pending) == 1
        assert ApprovalService(db_session, admin_user).list_approvals(status=ApprovalStatus.APPROVED) == []


class TestRollForward:
    """Test suite for rolling a closed period forward"""

    def test_open_period_cannot_roll_forward(self, db_session: Session, admin_user, open_period):
        with pytest.raises(InvalidStatusError) as exc_info:
            PeriodService(db_session, admin_user).roll_forward(open_period.id)
        assert exc_info.value.code == "PERIOD_NOT_CLOSED"

    def test_roll_forward(self, db_session: Session, supervisor_user, admin_user, kitchen, store,
                          rice, oil, open_period, kitchen_stock):
        _close(db_session, supervisor_user, admin_user, open_period)

        service = PeriodService(db_session, admin_user)
        next_period = service.roll_forward(open_period.id)

        start = open_period.end_date + timedelta(days=1)
        assert next_period.status == PeriodStatus.DRAFT.value
        assert next_period.start_date == start
        assert next_period.end_date == last_day_of_month(start)
        assert next_period.name == period_name_for(start)

        opening = {pl.location_id: pl.opening_value for pl in next_period.period_locations}
        assert opening[kitchen.id] == Decimal("1080.00")
        assert opening[store.id] == Decimal("0")

        assert service.get_price_map(next_period.id, [rice.id, oil.id]) == {
            rice.id: Decimal("12.00"), oil.id: Decimal("8.50")
        }

    def test_roll_forward_without_prices(self, db_session: Session, supervisor_user, admin_user, rice,
                                         open_period):
        _close(db_session, supervisor_user, admin_user, open_period)

        next_period = PeriodService(db_session, admin_user).roll_forward(
            open_period.id, name="Short period", end_date=open_period.end_date + timedelta(days=14),
            copy_prices=False
        )
        assert next_period.name == "Short period"
        assert PeriodService(db_session).get_prices(next_period.id) == []

    def test_roll_forward_twice_overlaps(self, db_session: Session, supervisor_user, admin_user, open_period):
        _close(db_session, supervisor_user, admin_user, open_period)
        service = PeriodService(db_session, admin_user)
        service.roll_forward(open_period.id)

        with pytest.raises(ConflictError) as exc_info:
            service.roll_forward(open_period.id)
        assert exc_info.value.code == "OVERLAPPING_PERIOD"
