"""
Report Tests
Stock-now, delivery, issue and reconciliation reports and their location scoping
"""

import pytest
from decimal import Decimal
from sqlalchemy.orm import Session

from foodstock.core.exceptions import LocationAccessDeniedError
from foodstock.models.enums import CostCentre, DocumentStatus
from foodstock.services.report_service import ReportService
from foodstock.services.stock.deliveries import DeliveryService
from foodstock.services.stock.issues import IssueService


@pytest.fixture
def variance_delivery(db_session: Session, operator_user, kitchen, rice, oil, supplier, open_period,
                      kitchen_stock):
    """Rice 0.50 over and oil 0.50 under the period price: two NCRs, net variance 15.00"""
    return DeliveryService(db_session, operator_user).create_delivery(kitchen.id, {
        "supplier_id": supplier.id,
        "invoice_no": "INV-7001",
        "lines": [
            {"item_id": rice.id, "quantity": 40, "unit_price": Decimal("12.50")},
            {"item_id": oil.id, "quantity": 10, "unit_price": Decimal("8.00")},
        ],
    })


class TestStockNowReport:

    def test_all_locations_for_supervisor(self, db_session: Session, supervisor_user, kitchen, store,
                                          kitchen_stock):
        report = ReportService(db_session, supervisor_user).stock_now()

        assert report["report_type"] == "stock-now"
        assert [s["location_code"] for s in report["locations"]] == ["KIT01", "STR01"]
        kitchen_section = report["locations"][0]
        assert [i["item_code"] for i in kitchen_section["items"]] == ["RICE-01", "OIL-01"]
        assert kitchen_section["total_value"] == Decimal("1080.00")
        assert kitchen_section["low_stock_items"] == 1
        assert report["grand_totals"] == {
            "total_locations": 2,
            "total_items": 2,
            "total_value": Decimal("1080.00"),
            "low_stock_items": 1,
        }
        assert report["available_categories"] == ["Dry Goods"]

    def test_low_stock_only(self, db_session: Session, supervisor_user, kitchen, store, kitchen_stock):
        """Oil is under its minimum of 15; locations with nothing low drop out"""
        report = ReportService(db_session, supervisor_user).stock_now(low_stock_only=True)

        assert len(report["locations"]) == 1
        items = report["locations"][0]["items"]
        assert [i["item_code"] for i in items] == ["OIL-01"]
        assert items[0]["is_low_stock"] is True
        assert items[0]["stock_value"] == Decimal("80.00")
        assert report["grand_totals"]["total_value"] == Decimal("80.00")

    def test_category_filter(self, db_session: Session, supervisor_user, kitchen, kitchen_stock):
        report = ReportService(db_session, supervisor_user).stock_now(category="Frozen")
        assert report["grand_totals"]["total_items"] == 0

    def test_operator_sees_assigned_locations(self, db_session: Session, operator_user, kitchen, store,
                                              kitchen_stock):
        report = ReportService(db_session, operator_user).stock_now()
        assert [s["location_id"] for s in report["locations"]] == [kitchen.id]

    def test_operator_cannot_ask_for_other_location(self, db_session: Session, operator_user, store):
        with pytest.raises(LocationAccessDeniedError):
            ReportService(db_session, operator_user).stock_now(location_id=store.id)


class TestDeliveriesReport:

    def test_variance_and_ncr_counts(self, db_session: Session, supervisor_user, supplier, open_period,
                                     variance_delivery):
        report = ReportService(db_session, supervisor_user).deliveries_report(period_id=open_period.id)

        assert report["period"]["id"] == open_period.id
        row = report["deliveries"][0]
        assert row["delivery_no"] == variance_delivery.delivery_no
        assert row["total_amount"] == Decimal("580.00")
        assert row["total_variance"] == Decimal("15.00")
        assert row["ncr_count"] == 2
        assert len(row["lines"]) == 2

        by_supplier = report["by_supplier"][0]
        assert by_supplier["supplier_id"] == supplier.id
        assert by_supplier["variance_count"] == 1
        assert by_supplier["total_variance"] == Decimal("15.00")
        assert report["grand_totals"]["total_ncrs"] == 2
        assert report["grand_totals"]["deliveries_with_variance"] == 1

    def test_operator_does_not_see_other_drafts(self, db_session: Session, operator_user, supervisor_user,
                                                kitchen, rice, supplier, variance_delivery):
        DeliveryService(db_session, supervisor_user).create_delivery(kitchen.id, {
            "supplier_id": supplier.id,
            "status": DocumentStatus.DRAFT,
            "lines": [{"item_id": rice.id, "quantity": 5, "unit_price": Decimal("12.00")}],
        })

        operator_report = ReportService(db_session, operator_user).deliveries_report()
        supervisor_report = ReportService(db_session, supervisor_user).deliveries_report()

        assert operator_report["grand_totals"]["total_deliveries"] == 1
        assert supervisor_report["grand_totals"]["total_deliveries"] == 2
        drafts = ReportService(db_session, supervisor_user).deliveries_report(status=DocumentStatus.DRAFT)
        assert [d["status"] for d in drafts["deliveries"]] == [DocumentStatus.DRAFT.value]

    def test_variance_filter(self, db_session: Session, supervisor_user, variance_delivery):
        report = ReportService(db_session, supervisor_user).deliveries_report(has_variance=False)
        assert report["deliveries"] == []


class TestIssuesReport:

    def test_totals_by_cost_centre(self, db_session: Session, operator_user, kitchen, rice, oil,
                                   open_period, kitchen_stock):
        service = IssueService(db_session, operator_user)
        service.create_issue(kitchen.id, {"lines": [{"item_id": rice.id, "quantity": 30}]})
        service.create_issue(kitchen.id, {
            "cost_centre": CostCentre.CLEAN,
            "lines": [{"item_id": oil.id, "quantity": 5}],
        })

        report = ReportService(db_session, operator_user).issues_report(period_id=open_period.id)

        assert report["grand_totals"] == {"total_issues": 2, "total_value": Decimal("340.00"), "total_line_items": 2}
        centres = {c["cost_centre"]: c for c in report["by_cost_centre"]}
        assert centres["FOOD"]["total_value"] == Decimal("300.00")
        assert centres["FOOD"]["top_items"][0]["item_code"] == "RICE-01"
        assert centres["FOOD"]["top_items"][0]["total_quantity"] == Decimal("30")
        assert centres["CLEAN"]["total_value"] == Decimal("40.00")
        assert centres["OTHER"]["issue_count"] == 0

        location = report["by_location"][0]
        assert location["issue_count"] == 2
        assert location["by_cost_centre"]["CLEAN"] == Decimal("40.00")

    def test_cost_centre_filter(self, db_session: Session, operator_user, kitchen, rice, open_period,
                                kitchen_stock):
        IssueService(db_session, operator_user).create_issue(kitchen.id, {
            "lines": [{"item_id": rice.id, "quantity": 10}],
        })
        report = ReportService(db_session, operator_user).issues_report(cost_centre=CostCentre.CLEAN)
        assert report["issues"] == []


class TestReconciliationReport:

    def test_scoped_to_operator_locations(self, db_session: Session, operator_user, kitchen, store,
                                          open_period, kitchen_stock):
        report = ReportService(db_session, operator_user).reconciliation_report(open_period.id)

        assert report["report_type"] == "reconciliation"
        assert [row["location_id"] for row in report["locations"]] == [kitchen.id]
        assert report["grand_totals"]["closing_stock"] == Decimal("1080.00")
        assert report["summary"]["total_locations"] == 1

    def test_supervisor_single_location(self, db_session: Session, supervisor_user, store, open_period):
        report = ReportService(db_session, supervisor_user).reconciliation_report(
            open_period.id, location_id=store.id
        )
        assert [row["location_id"] for row in report["locations"]] == [store.id]
