"""
Tests for Stock Costing and Reconciliation Calculations
Pure arithmetic: WAC, sufficiency, price variance, consumption and counts
"""

import pytest
from decimal import Decimal

from foodstock.core.config import settings
from foodstock.core.exceptions import ValidationError, InsufficientStockError
from foodstock.services.business_logic import (
    StockCostingService, StockValidationService, PriceVarianceService,
    ReconciliationCalculator, StockCheckResult, round_currency
)


class TestRounding:

    def test_currency_rounds_half_up(self):
        assert round_currency(Decimal("10.005")) == Decimal("10.01")
        assert round_currency(Decimal("10.004")) == Decimal("10.00")

    def test_currency_places_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "CURRENCY_DECIMAL_PLACES", 0)
        assert round_currency(Decimal("10.5")) == Decimal("11")


class TestWeightedAverageCost:
    """Test suite for WAC updates"""

    def test_delivery_into_existing_stock(self):
        """100 @ 10.00 plus 50 @ 12.00 gives 150 @ 10.67"""
        result = StockCostingService.calculate_wac(100, Decimal("10.00"), 50, Decimal("12.00"))

        assert result.new_quantity == Decimal("150")
        assert result.new_wac == Decimal("10.67")
        assert result.current_value == Decimal("1000.00")
        assert result.receipt_value == Decimal("600.00")
        assert result.new_value == Decimal("1600.50")

    def test_first_receipt_takes_incoming_price(self):
        """With nothing on hand the WAC is the receipt price"""
        result = StockCostingService.calculate_wac(0, 0, 25, Decimal("4.35"))

        assert result.new_wac == Decimal("4.35")
        assert result.new_quantity == Decimal("25")

    def test_rounds_half_up(self):
        """(1 x 1.00 + 1 x 1.01) / 2 = 1.005 rounds to 1.01"""
        result = StockCostingService.calculate_wac(1, Decimal("1.00"), 1, Decimal("1.01"))
        assert result.new_wac == Decimal("1.01")

    def test_float_inputs_are_exact(self):
        """Floats are converted through str, not binary"""
        result = StockCostingService.calculate_wac(0.1, 0.2, 0.2, 0.2)
        assert result.new_wac == Decimal("0.20")
        assert result.new_quantity == Decimal("0.3")

    @pytest.mark.parametrize("current_qty,current_wac,incoming_qty,price", [
        (-1, 10, 5, 10),
        (10, -1, 5, 10),
        (10, 10, 0, 10),
        (10, 10, -5, 10),
        (10, 10, 5, -1),
    ])
    def test_invalid_inputs_rejected(self, current_qty, current_wac, incoming_qty, price):
        """Invalid inputs raise rather than clamp"""
        with pytest.raises(ValidationError):
            StockCostingService.calculate_wac(current_qty, current_wac, incoming_qty, price)

    def test_preview_matches_calculation(self):
        """Preview returns the same WAC without side effects"""
        assert StockCostingService.preview_wac(100, 10, 50, 12) == Decimal("10.67")

    def test_receipt_value_impact(self):
        """Change in average in absolute and percentage terms"""
        impact = StockCostingService.receipt_value_impact(100, Decimal("10.00"), 50, Decimal("12.00"))

        assert impact["old_wac"] == Decimal("10.00")
        assert impact["new_wac"] == Decimal("10.67")
        assert impact["wac_change"] == Decimal("0.67")
        assert impact["wac_change_percent"] == Decimal("6.70")

    def test_receipt_value_impact_from_zero(self):
        """No percentage when there was no previous cost"""
        impact = StockCostingService.receipt_value_impact(0, 0, 5, 3)
        assert impact["wac_change_percent"] == Decimal("0.00")


class TestStockValidation:
    """Test suite for stock sufficiency"""

    def test_sufficient_stock(self):
        """Requesting exactly what is on hand is allowed"""
        result = StockValidationService.check_sufficiency(10, 10)
        assert result.is_sufficient
        assert result.shortfall == Decimal("0")

    def test_insufficient_stock(self):
        """Issuing 15 from 10 is short by 5"""
        result = StockValidationService.check_sufficiency(15, 10, item_id=7)

        assert not result.is_sufficient
        assert result.shortfall == Decimal("5")
        assert result.item_id == 7

    def test_positive_quantity_required(self):
        """Zero and negative quantities are rejected"""
        with pytest.raises(ValidationError, match="quantity must be greater than zero"):
            StockValidationService.validate_positive_quantity(0)
        with pytest.raises(ValidationError):
            StockValidationService.validate_positive_quantity(Decimal("-1"))

    def test_error_lists_every_short_line(self):
        """One error names each short item with requested and available"""
        shortages = [
            StockCheckResult(1, Decimal("15"), Decimal("10"), False, Decimal("5"), "Basmati Rice", "RICE-01", "KG"),
            StockCheckResult(2, Decimal("3"), Decimal("0"), False, Decimal("3"), "Sunflower Oil", "OIL-01", "LTR"),
        ]
        error = StockValidationService.build_insufficient_stock_error(shortages, "Main Kitchen")

        assert isinstance(error, InsufficientStockError)
        assert error.code == "INSUFFICIENT_STOCK"
        assert error.message.startswith("Insufficient stock for 2 item(s) at location Main Kitchen.")
        assert "Basmati Rice (RICE-01): requested 15 KG, available 10 KG" in error.message
        assert "Sunflower Oil (OIL-01): requested 3 LTR, available 0 LTR" in error.message
        assert [i["item_code"] for i in error.details["insufficient_items"]] == ["RICE-01", "OIL-01"]
        assert error.details["insufficient_items"][0]["shortfall"] == "5"


class TestPriceVariance:
    """Test suite for price variance against period prices"""

    def test_price_increase(self):
        """12.50 against 12.00 for 40 units"""
        result = PriceVarianceService.check_price_variance(Decimal("12.50"), Decimal("12.00"), 40)

        assert result.has_variance
        assert result.exceeds_threshold
        assert result.variance == Decimal("0.5000")
        assert result.variance_amount == Decimal("20.00")
        assert result.variance_percent == Decimal("4.17")

    def test_price_decrease(self):
        """Decreases are variances too, with a negative impact"""
        result = PriceVarianceService.check_price_variance(Decimal("11.00"), Decimal("12.00"), 10)

        assert result.has_variance
        assert result.variance_amount == Decimal("-10.00")
        assert result.variance_percent == Decimal("-8.33")

    def test_matching_price(self):
        """Same price, no variance"""
        result = PriceVarianceService.check_price_variance(12, 12, 10)
        assert not result.has_variance
        assert not result.exceeds_threshold
        assert result.variance_amount == Decimal("0.00")

    def test_zero_period_price(self):
        """Any price against a zero locked price is 100 percent"""
        result = PriceVarianceService.check_price_variance(5, 0, 1)
        assert result.variance_percent == Decimal("100.00")
        assert result.exceeds_threshold

    def test_threshold_percent(self):
        """Variances inside the percentage threshold don't exceed it"""
        small = PriceVarianceService.check_price_variance(Decimal("12.50"), 12, 40, threshold_percent=5)
        large = PriceVarianceService.check_price_variance(Decimal("13.00"), 12, 40, threshold_percent=5)

        assert small.has_variance and not small.exceeds_threshold
        assert large.exceeds_threshold

    def test_threshold_amount(self):
        """Either threshold being crossed is enough"""
        result = PriceVarianceService.check_price_variance(
            Decimal("12.10"), 12, 1000, threshold_percent=5, threshold_amount=50
        )
        assert result.exceeds_threshold

    def test_invalid_quantity(self):
        with pytest.raises(ValidationError, match="Invalid quantity"):
            PriceVarianceService.check_price_variance(12, 12, 0)

    def test_ncr_reason(self):
        """Reason states expected, actual, variance and direction"""
        result = PriceVarianceService.check_price_variance(Decimal("12.50"), Decimal("12.00"), 40)
        reason = PriceVarianceService.ncr_reason(result, "Basmati Rice", "RICE-01")

        assert "Basmati Rice (RICE-01)" in reason
        assert "Expected Price (Period): SAR 12.0000" in reason
        assert "Actual Price (Delivery): SAR 12.5000" in reason
        assert "4.17% increase" in reason
        assert "Total Variance Amount: SAR 20.00" in reason


class TestReconciliationCalculator:
    """Test suite for consumption, manday cost and count variance"""

    def test_consumption(self):
        """Opening + receipts + in - out - closing + adjustments"""
        result = ReconciliationCalculator.calculate_consumption(
            opening_stock=1000, receipts=600, transfers_in=100, transfers_out=50,
            closing_stock=900, back_charges=20, credits=30, condemnations=10, adjustments=5
        )

        assert result.total_adjustments == Decimal("-15.00")
        assert result.consumption == Decimal("735.00")
        assert result.breakdown["receipts"] == Decimal("600.00")

    def test_consumption_rejects_negative_components(self):
        with pytest.raises(ValidationError, match="closing_stock"):
            ReconciliationCalculator.calculate_consumption(100, 0, 0, 0, -1)

    def test_manday_cost(self):
        result = ReconciliationCalculator.calculate_manday_cost(Decimal("1000.00"), 300)
        assert result.manday_cost == Decimal("3.33")

    def test_manday_cost_needs_mandays(self):
        with pytest.raises(ValidationError, match="total_mandays"):
            ReconciliationCalculator.calculate_manday_cost(100, 0)

    def test_calculated_closing(self):
        """Ledger closing from movements"""
        closing = ReconciliationCalculator.calculated_closing(1000, 600, 100, 50, 700)
        assert closing == Decimal("950.00")

    def test_count_variance(self):
        """Short count valued at WAC"""
        result = ReconciliationCalculator.calculate_count_variance(100, Decimal("97.5"), Decimal("10.67"))

        assert result.variance == Decimal("-2.5")
        assert result.variance_value == Decimal("-26.68")

    def test_count_variance_rejects_negative_count(self):
        with pytest.raises(ValidationError):
            ReconciliationCalculator.calculate_count_variance(10, -1, 5)
