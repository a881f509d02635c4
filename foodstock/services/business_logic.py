"""
Stock Costing and Reconciliation Calculations

Pure Decimal arithmetic used inside the posting services: weighted
average cost, stock sufficiency, price variance against the locked
period price, consumption, manday cost and count variance.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Union
from dataclasses import dataclass, field

from foodstock.core.config import settings
from foodstock.core.exceptions import ValidationError, InsufficientStockError
from foodstock.core.logging import get_logger

logger = get_logger("business")

Number = Union[Decimal, int, float, str]

PRICE = Decimal("0.0001")
PERCENT = Decimal("0.01")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Coerce ints, floats and strings to Decimal without binary float noise"""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def currency_quantum() -> Decimal:
    return Decimal(1).scaleb(-settings.CURRENCY_DECIMAL_PLACES)


def round_currency(value: Decimal) -> Decimal:
    return value.quantize(currency_quantum(), rounding=ROUND_HALF_UP)


def wac_quantum() -> Decimal:
    return Decimal(1).scaleb(-settings.WAC_DECIMAL_PLACES)


@dataclass
class WACResult:
    """Result of a weighted average cost update"""
    new_wac: Decimal
    new_quantity: Decimal
    new_value: Decimal
    current_value: Decimal
    receipt_value: Decimal


@dataclass
class StockCheckResult:
    """Result of a stock sufficiency check for one line"""
    item_id: Optional[int]
    requested: Decimal
    available: Decimal
    is_sufficient: bool
    shortfall: Decimal
    item_name: str = ""
    item_code: str = ""
    unit: str = ""


@dataclass
class PriceVarianceResult:
    """Delivery price compared to the period-locked price"""
    actual_price: Decimal
    expected_price: Decimal
    quantity: Decimal
    variance: Decimal
    variance_percent: Decimal
    variance_amount: Decimal
    has_variance: bool
    exceeds_threshold: bool


@dataclass
class ConsumptionResult:
    """Consumption value for a location over a period"""
    consumption: Decimal
    total_adjustments: Decimal
    breakdown: Dict[str, Decimal] = field(default_factory=dict)


@dataclass
class MandayCostResult:
    consumption: Decimal
    total_mandays: int
    manday_cost: Decimal


@dataclass
class CountVarianceResult:
    """Physical count against the system quantity"""
    system_quantity: Decimal
    actual_quantity: Decimal
    variance: Decimal
    wac: Decimal
    variance_value: Decimal


class StockCostingService:
    """
    Weighted average cost calculations

    Formula: New WAC = ((Current Qty x Current WAC) + (Incoming Qty x Incoming Price))
                       / (Current Qty + Incoming Qty)
    """

    @staticmethod
    def calculate_wac(
        current_qty: Number,
        current_wac: Number,
        incoming_qty: Number,
        incoming_price: Number
    ) -> WACResult:
        """
        Calculate the new WAC after a delivery or transfer-in.

        Args:
            current_qty: Quantity on hand before the receipt
            current_wac: WAC before the receipt
            incoming_qty: Quantity received (must be positive)
            incoming_price: Unit price paid, or the source WAC for transfers

        Returns:
            WACResult with the new WAC rounded to WAC_DECIMAL_PLACES

        Raises:
            ValidationError: negative quantities or prices, non-positive receipt
        """
        current_qty = to_decimal(current_qty)
        current_wac = to_decimal(current_wac)
        incoming_qty = to_decimal(incoming_qty)
        incoming_price = to_decimal(incoming_price)

        if current_qty < 0:
            raise ValidationError("Current quantity cannot be negative", details={"current_qty": str(current_qty)})
        if current_wac < 0:
            raise ValidationError("Current WAC cannot be negative", details={"current_wac": str(current_wac)})
        if incoming_qty <= 0:
            raise ValidationError("Received quantity must be positive", details={"incoming_qty": str(incoming_qty)})
        if incoming_price < 0:
            raise ValidationError("Receipt price cannot be negative", details={"incoming_price": str(incoming_price)})

        current_value = current_qty * current_wac
        receipt_value = incoming_qty * incoming_price
        new_quantity = current_qty + incoming_qty

        if current_qty == 0:
            new_wac = incoming_price.quantize(wac_quantum(), rounding=ROUND_HALF_UP)
        else:
            new_wac = ((current_value + receipt_value) / new_quantity).quantize(
                wac_quantum(), rounding=ROUND_HALF_UP
            )

        logger.debug(
            f"WAC calculation: current_qty={current_qty}, current_wac={current_wac}, "
            f"incoming_qty={incoming_qty}, incoming_price={incoming_price}, new_wac={new_wac}"
        )

        return WACResult(
            new_wac=new_wac,
            new_quantity=new_quantity,
            new_value=round_currency(new_quantity * new_wac),
            current_value=round_currency(current_value),
            receipt_value=round_currency(receipt_value),
        )

    @staticmethod
    def preview_wac(
        current_qty: Number,
        current_wac: Number,
        incoming_qty: Number,
        incoming_price: Number
    ) -> Decimal:
        """WAC a receipt would produce; nothing is stored"""
        return StockCostingService.calculate_wac(
            current_qty, current_wac, incoming_qty, incoming_price
        ).new_wac

    @staticmethod
    def receipt_value_impact(
        current_qty: Number,
        current_wac: Number,
        incoming_qty: Number,
        incoming_price: Number
    ) -> Dict[str, Decimal]:
        """How far a receipt moves the average, absolute and as a percentage"""
        current_wac = to_decimal(current_wac)
        result = StockCostingService.calculate_wac(current_qty, current_wac, incoming_qty, incoming_price)
        wac_change = result.new_wac - current_wac
        if current_wac > 0:
            change_percent = (wac_change / current_wac * 100).quantize(PERCENT, rounding=ROUND_HALF_UP)
        else:
            change_percent = Decimal("0.00")
        return {
            "old_wac": current_wac,
            "new_wac": result.new_wac,
            "wac_change": wac_change,
            "wac_change_percent": change_percent,
            "receipt_value": result.receipt_value,
        }

    @staticmethod
    def line_value(quantity: Number, unit_cost: Number) -> Decimal:
        return round_currency(to_decimal(quantity) * to_decimal(unit_cost))


class StockValidationService:
    """Stock sufficiency checks for issues and transfers-out"""

    @staticmethod
    def validate_positive_quantity(quantity: Number, field_name: str = "quantity") -> Decimal:
        qty = to_decimal(quantity)
        if qty <= 0:
            raise ValidationError(f"{field_name} must be greater than zero", details={field_name: str(qty)})
        return qty

    @staticmethod
    def check_sufficiency(
        requested: Number,
        available: Number,
        item_id: Optional[int] = None
    ) -> StockCheckResult:
        requested = to_decimal(requested)
        available = to_decimal(available)
        shortfall = requested - available if requested > available else Decimal("0")
        return StockCheckResult(
            item_id=item_id,
            requested=requested,
            available=available,
            is_sufficient=requested <= available,
            shortfall=shortfall,
        )

    @staticmethod
    def insufficient_items(results: Iterable[StockCheckResult]) -> List[StockCheckResult]:
        return [r for r in results if not r.is_sufficient]

    @staticmethod
    def build_insufficient_stock_error(
        shortages: List[StockCheckResult],
        location_name: str
    ) -> InsufficientStockError:
        """One error naming every short line"""
        parts = [
            f"{s.item_name} ({s.item_code}): requested {s.requested.normalize():f} {s.unit}, "
            f"available {s.available.normalize():f} {s.unit}"
            for s in shortages
        ]
        message = (
            f"Insufficient stock for {len(shortages)} item(s) at location {location_name}. "
            + "; ".join(parts)
        )
        details = {
            "insufficient_items": [
                {
                    "item_id": s.item_id,
                    "item_code": s.item_code,
                    "item_name": s.item_name,
                    "requested": str(s.requested),
                    "available": str(s.available),
                    "shortfall": str(s.shortfall),
                    "unit": s.unit,
                }
                for s in shortages
            ]
        }
        return InsufficientStockError(message, details=details)


class PriceVarianceService:
    """Delivery prices against period-locked prices"""

    @staticmethod
    def check_price_variance(
        unit_price: Number,
        period_price: Number,
        quantity: Number,
        threshold_percent: Optional[Number] = None,
        threshold_amount: Optional[Number] = None
    ) -> PriceVarianceResult:
        """
        Compare a delivered price with the locked price.

        Any non-zero difference is a variance. When neither threshold is
        set (or both are zero) every variance exceeds the threshold.
        """
        actual = to_decimal(unit_price)
        expected = to_decimal(period_price)
        qty = to_decimal(quantity)

        if actual < 0:
            raise ValidationError("Invalid unit price: cannot be negative")
        if expected < 0:
            raise ValidationError("Invalid period price: cannot be negative")
        if qty <= 0:
            raise ValidationError("Invalid quantity: must be greater than zero")

        variance = actual - expected
        if expected > 0:
            variance_percent = (variance / expected * 100).quantize(PERCENT, rounding=ROUND_HALF_UP)
        elif actual > 0:
            variance_percent = Decimal("100.00")
        else:
            variance_percent = Decimal("0.00")
        variance_amount = round_currency(variance * qty)
        has_variance = variance != 0

        pct = to_decimal(threshold_percent) if threshold_percent else Decimal("0")
        amt = to_decimal(threshold_amount) if threshold_amount else Decimal("0")
        has_pct, has_amt = pct > 0, amt > 0

        exceeds = has_variance and (
            (not has_pct and not has_amt)
            or (has_pct and abs(variance_percent) > pct)
            or (has_amt and abs(variance_amount) > amt)
        )

        return PriceVarianceResult(
            actual_price=actual,
            expected_price=expected,
            quantity=qty,
            variance=variance.quantize(PRICE, rounding=ROUND_HALF_UP),
            variance_percent=variance_percent,
            variance_amount=variance_amount,
            has_variance=has_variance,
            exceeds_threshold=exceeds,
        )

    @staticmethod
    def ncr_reason(result: PriceVarianceResult, item_name: str, item_code: str) -> str:
        currency = settings.DEFAULT_CURRENCY
        direction = "increase" if result.variance > 0 else "decrease"
        return (
            "Automatic NCR for price variance detected on delivery.\n\n"
            f"Item: {item_name} ({item_code})\n"
            f"Quantity: {result.quantity.normalize():f}\n"
            f"Expected Price (Period): {currency} {result.expected_price.quantize(PRICE)}\n"
            f"Actual Price (Delivery): {currency} {result.actual_price.quantize(PRICE)}\n"
            f"Variance: {currency} {result.variance} ({result.variance_percent}% {direction})\n"
            f"Total Variance Amount: {currency} {result.variance_amount}\n\n"
            "This NCR was automatically generated due to price difference from period-locked price."
        )


class ReconciliationCalculator:
    """Consumption, manday cost and count variance"""

    STOCK_COMPONENTS = ("opening_stock", "receipts", "transfers_in", "transfers_out", "closing_stock")

    @staticmethod
    def calculate_consumption(
        opening_stock: Number,
        receipts: Number,
        transfers_in: Number,
        transfers_out: Number,
        closing_stock: Number,
        issues: Number = 0,
        adjustments: Number = 0,
        back_charges: Number = 0,
        credits: Number = 0,
        condemnations: Number = 0
    ) -> ConsumptionResult:
        """
        Consumption = Opening + Receipts + Transfers In - Transfers Out - Closing
                      + (Back Charges - Credits - Condemnations + Adjustments)

        Issues are accepted for the breakdown only; consumption is derived
        from the stock movement, not from recorded issues.
        """
        values = {
            "opening_stock": to_decimal(opening_stock),
            "receipts": to_decimal(receipts),
            "transfers_in": to_decimal(transfers_in),
            "transfers_out": to_decimal(transfers_out),
            "closing_stock": to_decimal(closing_stock),
            "issues": to_decimal(issues),
            "adjustments": to_decimal(adjustments),
            "back_charges": to_decimal(back_charges),
            "credits": to_decimal(credits),
            "condemnations": to_decimal(condemnations),
        }

        for name in ReconciliationCalculator.STOCK_COMPONENTS:
            if values[name] < 0:
                raise ValidationError(f"Invalid {name}: cannot be negative")

        total_adjustments = (
            values["back_charges"] - values["credits"]
            - values["condemnations"] + values["adjustments"]
        )
        consumption = (
            values["opening_stock"] + values["receipts"] + values["transfers_in"]
            - values["transfers_out"] - values["closing_stock"] + total_adjustments
        )

        return ConsumptionResult(
            consumption=round_currency(consumption),
            total_adjustments=round_currency(total_adjustments),
            breakdown={name: round_currency(value) for name, value in values.items()},
        )

    @staticmethod
    def calculate_manday_cost(consumption: Number, total_mandays: int) -> MandayCostResult:
        if total_mandays is None or total_mandays <= 0:
            raise ValidationError("Invalid total_mandays: must be greater than zero")
        consumption = to_decimal(consumption)
        return MandayCostResult(
            consumption=round_currency(consumption),
            total_mandays=total_mandays,
            manday_cost=round_currency(consumption / Decimal(total_mandays)),
        )

    @staticmethod
    def calculated_closing(
        opening_stock: Number,
        receipts: Number,
        transfers_in: Number,
        transfers_out: Number,
        issues: Number,
        adjustments: Number = 0,
        back_charges: Number = 0,
        credits: Number = 0,
        condemnations: Number = 0
    ) -> Decimal:
        """Closing value expected from the ledger movements"""
        return round_currency(
            to_decimal(opening_stock) + to_decimal(receipts) + to_decimal(transfers_in)
            - to_decimal(transfers_out) - to_decimal(issues) + to_decimal(adjustments)
            - to_decimal(back_charges) + to_decimal(credits) - to_decimal(condemnations)
        )

    @staticmethod
    def calculate_count_variance(
        system_quantity: Number,
        actual_quantity: Number,
        wac: Number
    ) -> CountVarianceResult:
        """
        variance = actual - system; variance_value = variance x WAC.

        The result is reported only; stored stock is never adjusted here.
        """
        system_quantity = to_decimal(system_quantity)
        actual_quantity = to_decimal(actual_quantity)
        wac = to_decimal(wac)
        if actual_quantity < 0:
            raise ValidationError("Counted quantity cannot be negative")
        variance = actual_quantity - system_quantity
        return CountVarianceResult(
            system_quantity=system_quantity,
            actual_quantity=actual_quantity,
            variance=variance,
            wac=wac,
            variance_value=round_currency(variance * wac),
        )
