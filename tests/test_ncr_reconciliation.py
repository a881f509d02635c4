"""
Tests for NCRs and Reconciliation
Manual NCRs, resolution, period summaries, consumption, POB and manday cost
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy.orm import Session

from foodstock.core.exceptions import ValidationError, PeriodClosedError, NotFoundError
from foodstock.models import PeriodLocation
from foodstock.models.enums import NCRStatus, NCRType, NCRResolutionType, DocumentStatus
from foodstock.services.ncr_service import NCRService
from foodstock.services.periods.approvals import ApprovalService
from foodstock.services.periods.period_service import PeriodService
from foodstock.services.reconciliation_service import ReconciliationService
from foodstock.services.stock.deliveries import DeliveryService
from foodstock.services.stock.issues import IssueService
from foodstock.services.stock.transfers import StockTransferService
from foodstock.services.dashboard_service import DashboardService


@pytest.fixture
def kitchen_opening(db_session: Session, kitchen, open_period, kitchen_stock):
    """Kitchen opens the period at the value of its stock"""
    entry = db_session.query(PeriodLocation).filter(
        PeriodLocation.period_id == open_period.id,
        PeriodLocation.location_id == kitchen.id
    ).first()
    entry.opening_value = Decimal("1080.00")
    db_session.commit()
    return entry


@pytest.fixture
def month_activity(db_session: Session, operator_user, supervisor_user, kitchen, store, rice, kitchen_opening):
    """Issue 30 rice and transfer 20 rice to the store, both at 10.00"""
    IssueService(db_session, operator_user).create_issue(kitchen.id, {
        "lines": [{"item_id": rice.id, "quantity": 30}],
    })
    transfer = StockTransferService(db_session, operator_user).create_transfer({
        "from_location_id": kitchen.id,
        "to_location_id": store.id,
        "lines": [{"item_id": rice.id, "quantity": 20}],
    })
    StockTransferService(db_session, supervisor_user).approve_transfer(transfer.id)


class TestNCRService:
    """Test suite for NCRService"""

    def test_create_manual_ncr(self, db_session: Session, operator_user, kitchen):
        ncr = NCRService(db_session, operator_user).create_manual_ncr(kitchen.id, {
            "reason": "Damaged packaging",
            "quantity": Decimal("3"),
            "value": Decimal("45.00"),
        })

        assert ncr.ncr_no == f"NCR-{date.today().year}-001"
        assert ncr.type == NCRType.MANUAL.value
        assert ncr.auto_generated is False
        assert ncr.status == NCRStatus.OPEN.value
        assert ncr.value == Decimal("45.00")
        assert ncr.created_by == operator_user.id

    def test_value_must_be_positive(self, db_session: Session, operator_user, kitchen):
        with pytest.raises(ValidationError, match="greater than zero"):
            NCRService(db_session, operator_user).create_manual_ncr(kitchen.id, {
                "reason": "Nothing wrong", "value": 0,
            })

    def test_delivery_from_other_location(self, db_session: Session, operator_user, kitchen, store, rice,
                                          supplier, open_period):
        delivery = DeliveryService(db_session, operator_user).create_delivery(kitchen.id, {
            "supplier_id": supplier.id,
            "invoice_no": "INV-7000",
            "lines": [{"item_id": rice.id, "quantity": 5, "unit_price": 12}],
        })

        with pytest.raises(ValidationError) as exc_info:
            NCRService(db_session, operator_user).create_manual_ncr(store.id, {
                "reason": "Short delivered", "value": 12, "delivery_id": delivery.id,
            })
        assert exc_info.value.code == "DELIVERY_LOCATION_MISMATCH"

    def test_line_without_its_delivery(self, db_session: Session, operator_user, kitchen, rice,
                                       supplier, open_period):
        delivery = DeliveryService(db_session, operator_user).create_delivery(kitchen.id, {
            "supplier_id": supplier.id,
            "invoice_no": "INV-7001",
            "lines": [{"item_id": rice.id, "quantity": 5, "unit_price": 12}],
        })

        with pytest.raises(ValidationError) as exc_info:
            NCRService(db_session, operator_user).create_manual_ncr(kitchen.id, {
                "reason": "Wrong grade", "value": 12, "delivery_line_id": delivery.lines[0].id,
            })
        assert exc_info.value.code == "DELIVERY_LINE_MISMATCH"

    def test_unknown_delivery(self, db_session: Session, operator_user, kitchen):
        with pytest.raises(NotFoundError):
            NCRService(db_session, operator_user).create_manual_ncr(kitchen.id, {
                "reason": "Missing", "value": 5, "delivery_id": 999,
            })

    def test_resolved_at_is_stamped_once(self, db_session: Session, operator_user, supervisor_user, kitchen):
        service = NCRService(db_session, supervisor_user)
        ncr = NCRService(db_session, operator_user).create_manual_ncr(kitchen.id, {
            "reason": "Spoiled on arrival", "value": 20,
        })

        sent = service.update_ncr(ncr.id, {"status": NCRStatus.SENT})
        assert sent.resolved_at is None

        credited = service.update_ncr(ncr.id, {"status": NCRStatus.CREDITED, "resolution_notes": "Credit note CN-9"})
        stamped = credited.resolved_at
        assert stamped is not None
        assert credited.resolution_notes == "Credit note CN-9"

        resolved = service.update_ncr(ncr.id, {
            "status": NCRStatus.RESOLVED, "resolution_type": NCRResolutionType.CREDIT
        })
        assert resolved.resolved_at == stamped
        assert resolved.resolution_type == NCRResolutionType.CREDIT.value

    def test_period_summary(self, db_session: Session, operator_user, kitchen, open_period):
        """Each NCR lands in one group by status and resolution type"""
        service = NCRService(db_session, operator_user)
        updates = [
            ("10", {}),
            ("20", {"status": NCRStatus.SENT}),
            ("30", {"status": NCRStatus.CREDITED}),
            ("40", {"status": NCRStatus.RESOLVED, "resolution_type": NCRResolutionType.LOSS}),
            ("50", {"status": NCRStatus.RESOLVED}),
        ]
        for value, update in updates:
            ncr = service.create_manual_ncr(kitchen.id, {"reason": f"NCR worth {value}", "value": Decimal(value)})
            if update:
                service.update_ncr(ncr.id, update)

        summary = service.period_summary(open_period.id, kitchen.id)

        assert summary["open"]["total"] == Decimal("10")
        assert summary["pending"]["total"] == Decimal("20")
        assert summary["credited"]["total"] == Decimal("30")
        assert summary["losses"]["total"] == Decimal("40")
        # RESOLVED without a resolution type is not counted anywhere
        assert sum(group["count"] for group in summary.values()) == 4

    def test_count_open(self, db_session: Session, operator_user, kitchen, store):
        service = NCRService(db_session, operator_user)
        first = service.create_manual_ncr(kitchen.id, {"reason": "A", "value": 1})
        service.create_manual_ncr(kitchen.id, {"reason": "B", "value": 2})
        service.create_manual_ncr(store.id, {"reason": "C", "value": 3})
        service.update_ncr(first.id, {"status": NCRStatus.REJECTED})

        assert service.count_open(kitchen.id) == 1
        assert len(service.list_ncrs(location_ids=[kitchen.id])) == 2
        assert len(service.list_ncrs(status=NCRStatus.OPEN)) == 2


class TestReconciliationService:
    """Test suite for ReconciliationService"""

    def test_auto_calculated_figures(self, db_session: Session, kitchen, open_period, month_activity):
        """1080 opening, 300 issued, 200 transferred out, 580 left"""
        data = ReconciliationService(db_session).get_reconciliation(open_period.id, kitchen.id)

        assert data["is_auto_calculated"] is True
        assert data["id"] is None
        assert data["opening_stock"] == Decimal("1080.00")
        assert data["receipts"] == Decimal("0.00")
        assert data["issues"] == Decimal("300.00")
        assert data["transfers_out"] == Decimal("200.00")
        assert data["closing_stock"] == Decimal("580.00")
        assert data["consumption"] == Decimal("300.00")
        assert data["calculated_closing"] == Decimal("580.00")
        assert data["variance"] == Decimal("0.00")
        assert data["manday_cost"] is None

    def test_transfer_in_at_destination(self, db_session: Session, store, open_period, month_activity):
        data = ReconciliationService(db_session).get_reconciliation(open_period.id, store.id)

        assert data["transfers_in"] == Decimal("200.00")
        assert data["closing_stock"] == Decimal("200.00")
        assert data["consumption"] == Decimal("0.00")

    def test_receipts_from_posted_deliveries(self, db_session: Session, operator_user, kitchen, rice,
                                             supplier, open_period, kitchen_opening):
        service = DeliveryService(db_session, operator_user)
        service.create_delivery(kitchen.id, {
            "supplier_id": supplier.id,
            "invoice_no": "INV-8000",
            "lines": [{"item_id": rice.id, "quantity": 10, "unit_price": 12}],
        })
        service.create_delivery(kitchen.id, {
            "supplier_id": supplier.id,
            "status": DocumentStatus.DRAFT,
            "lines": [{"item_id": rice.id, "quantity": 99, "unit_price": 12}],
        })

        data = ReconciliationService(db_session).get_reconciliation(open_period.id, kitchen.id)
        assert data["receipts"] == Decimal("120.00")

    def test_saving_adjustments(self, db_session: Session, supervisor_user, kitchen, open_period, month_activity):
        """Credits reduce consumption and the saved ledger is returned as stored"""
        service = ReconciliationService(db_session, supervisor_user)
        data = service.update_adjustments(open_period.id, kitchen.id, {
            "credits": Decimal("50.00"), "adjustments": Decimal("-5.00")
        })

        assert data["is_auto_calculated"] is False
        assert data["id"] is not None
        assert data["credits"] == Decimal("50.00")
        assert data["total_adjustments"] == Decimal("-55.00")
        assert data["consumption"] == Decimal("245.00")
        assert data["last_updated"] is not None

        # A second update keeps the other fields
        data = service.update_adjustments(open_period.id, kitchen.id, {"condemnations": Decimal("15.00")})
        assert data["credits"] == Decimal("50.00")
        assert data["total_adjustments"] == Decimal("-70.00")

    def test_negative_credit_rejected(self, db_session: Session, supervisor_user, kitchen, open_period):
        with pytest.raises(ValidationError, match="credits cannot be negative"):
            ReconciliationService(db_session, supervisor_user).update_adjustments(
                open_period.id, kitchen.id, {"credits": -1}
            )

    def test_opening_from_previous_close(self, db_session: Session, supervisor_user, admin_user, kitchen,
                                         open_period, kitchen_stock):
        """The next period opens at the closing stock saved for this one"""
        for period_location in list(open_period.period_locations):
            ReconciliationService(db_session, supervisor_user).update_adjustments(
                open_period.id, period_location.location_id, {}
            )
            PeriodService(db_session, supervisor_user).mark_location_ready(
                open_period.id, period_location.location_id
            )
        approval = PeriodService(db_session, supervisor_user).request_close(open_period.id)
        ApprovalService(db_session, admin_user).approve(approval.id)
        next_period = PeriodService(db_session, admin_user).roll_forward(open_period.id)

        data = ReconciliationService(db_session).get_reconciliation(next_period.id, kitchen.id)
        assert data["opening_stock"] == Decimal("1080.00")

    def test_consolidated_across_locations(self, db_session: Session, supervisor_user, kitchen, store,
                                           open_period, month_activity):
        """Transfers cancel out in the grand totals; consumption is the kitchen's 300"""
        service = ReconciliationService(db_session, supervisor_user)
        service.upsert_pob(kitchen.id, [{"date": open_period.start_date, "crew_count": 20, "extra_count": 4}])
        service.update_adjustments(open_period.id, store.id, {})

        data = service.consolidated(open_period.id)

        assert data["period"]["id"] == open_period.id
        assert [row["location_code"] for row in data["locations"]] == ["KIT01", "STR01"]
        totals = data["grand_totals"]
        assert totals["opening_stock"] == Decimal("1080.00")
        assert totals["issues"] == Decimal("300.00")
        assert totals["transfers_in"] == totals["transfers_out"] == Decimal("200.00")
        assert totals["closing_stock"] == Decimal("780.00")
        assert totals["consumption"] == Decimal("300.00")
        assert totals["total_mandays"] == 24
        assert totals["average_manday_cost"] == Decimal("12.50")
        assert data["summary"] == {"total_locations": 2, "saved_reconciliations": 1, "auto_calculated": 1}

    def test_consolidated_limited_to_locations(self, db_session: Session, kitchen, store, open_period,
                                               kitchen_stock):
        data = ReconciliationService(db_session).consolidated(open_period.id, location_ids=[store.id])

        assert [row["location_id"] for row in data["locations"]] == [store.id]
        assert data["grand_totals"]["closing_stock"] == Decimal("0.00")
        assert data["grand_totals"]["average_manday_cost"] is None


class TestPersonsOnBoard:
    """Test suite for POB entry and manday cost"""

    def test_upsert_and_manday_cost(self, db_session: Session, supervisor_user, kitchen, open_period,
                                    month_activity):
        """300.00 consumed over 24 mandays is 12.50 per manday"""
        service = ReconciliationService(db_session, supervisor_user)
        first_day = open_period.start_date
        rows = service.upsert_pob(kitchen.id, [
            {"date": first_day, "crew_count": 10, "extra_count": 2},
            {"date": first_day + timedelta(days=1), "crew_count": 12},
        ])

        assert len(rows) == 2
        assert service.total_mandays(open_period.id, kitchen.id) == 24

        data = service.get_reconciliation(open_period.id, kitchen.id)
        assert data["total_mandays"] == 24
        assert data["manday_cost"] == Decimal("12.50")

    def test_same_date_is_replaced(self, db_session: Session, supervisor_user, kitchen, open_period):
        service = ReconciliationService(db_session, supervisor_user)
        day = open_period.start_date
        service.upsert_pob(kitchen.id, [{"date": day, "crew_count": 10, "extra_count": 0}])
        rows = service.upsert_pob(kitchen.id, [{"date": day, "crew_count": 8, "extra_count": 1}])

        assert len(rows) == 1
        assert rows[0].crew_count == 8
        assert service.total_mandays(open_period.id, kitchen.id) == 9

    def test_date_outside_period(self, db_session: Session, supervisor_user, kitchen, open_period):
        with pytest.raises(ValidationError) as exc_info:
            ReconciliationService(db_session, supervisor_user).upsert_pob(kitchen.id, [
                {"date": open_period.end_date + timedelta(days=1), "crew_count": 5},
            ])
        assert exc_info.value.code == "DATE_OUTSIDE_PERIOD"

    def test_negative_counts(self, db_session: Session, supervisor_user, kitchen, open_period):
        with pytest.raises(ValidationError, match="cannot be negative"):
            ReconciliationService(db_session, supervisor_user).upsert_pob(kitchen.id, [
                {"date": open_period.start_date, "crew_count": -1},
            ])

    def test_no_open_period(self, db_session: Session, supervisor_user, kitchen):
        with pytest.raises(PeriodClosedError) as exc_info:
            ReconciliationService(db_session, supervisor_user).upsert_pob(kitchen.id, [
                {"date": date.today(), "crew_count": 5},
            ])
        assert exc_info.value.code == "NO_OPEN_PERIOD"


class TestDashboard:

    def test_location_dashboard(self, db_session: Session, operator_user, kitchen, rice, oil, supplier,
                                open_period, kitchen_stock):
        DeliveryService(db_session, operator_user).create_delivery(kitchen.id, {
            "supplier_id": supplier.id,
            "invoice_no": "INV-9000",
            "lines": [{"item_id": oil.id, "quantity": 2, "unit_price": Decimal("9.00")}],
        })
        IssueService(db_session, operator_user).create_issue(kitchen.id, {
            "lines": [{"item_id": rice.id, "quantity": 5}],
        })

        data = DashboardService(db_session).location_dashboard(kitchen.id)

        assert data["period_id"] == open_period.id
        assert data["deliveries"] == {"total": Decimal("18.00"), "count": 1}
        assert data["issues"] == {"total": Decimal("50.00"), "count": 1}
        assert data["open_ncr_count"] == 1
        assert data["item_count"] == 2
        # Oil is at 12 against a minimum of 15
        assert [row["item_code"] for row in data["low_stock_items"]] == ["OIL-01"]
