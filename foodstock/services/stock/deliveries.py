"""
Delivery Service
Receiving goods: WAC update, price variance detection and NCRs
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session, joinedload

from foodstock.models import Delivery, DeliveryLine, Location, Supplier, User
from foodstock.models.enums import DocumentStatus
from foodstock.services.business_logic import (
    StockCostingService, StockValidationService, PriceVarianceService, round_currency
)
from foodstock.services.document_numbering import DocumentNumberService
from foodstock.services.master_data import ItemService
from foodstock.services.ncr_service import NCRService
from foodstock.services.periods.period_service import PeriodService
from foodstock.services.stock.stock_levels import StockLevelService
from foodstock.core.config import settings
from foodstock.core.security import log_user_action
from foodstock.core.exceptions import (
    ValidationError, NotFoundError, ConflictError, InvalidStatusError
)
from foodstock.core.logging import get_logger

logger = get_logger("business")


class DeliveryService:
    """
    Deliveries move through DRAFT -> POSTED.

    Posting locks the affected stock rows, updates WAC, compares each
    line price with the period-locked price and raises an NCR for every
    variance, all in one transaction.
    """

    def __init__(self, db: Session, current_user: Optional[User] = None):
        self.db = db
        self.current_user = current_user
        self.stock = StockLevelService(db, current_user)
        self.periods = PeriodService(db, current_user)
        self.ncrs = NCRService(db, current_user)
        self.numbers = DocumentNumberService(db)

    def get_delivery(self, delivery_id: int, location_id: Optional[int] = None) -> Delivery:
        query = (
            self.db.query(Delivery)
            .options(
                joinedload(Delivery.lines).joinedload(DeliveryLine.item),
                joinedload(Delivery.supplier),
                joinedload(Delivery.location),
            )
            .filter(Delivery.id == delivery_id)
        )
        if location_id is not None:
            query = query.filter(Delivery.location_id == location_id)
        delivery = query.first()
        if not delivery:
            raise NotFoundError("Delivery not found", code="DELIVERY_NOT_FOUND")
        return delivery

    def list_deliveries(
        self,
        location_id: Optional[int] = None,
        period_id: Optional[int] = None,
        status: Optional[DocumentStatus] = None,
        supplier_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Delivery]:
        query = self.db.query(Delivery).options(joinedload(Delivery.supplier))
        if location_id is not None:
            query = query.filter(Delivery.location_id == location_id)
        if period_id is not None:
            query = query.filter(Delivery.period_id == period_id)
        if status:
            query = query.filter(Delivery.status == DocumentStatus(status).value)
        if supplier_id is not None:
            query = query.filter(Delivery.supplier_id == supplier_id)
        return query.order_by(Delivery.delivery_date.desc(), Delivery.id.desc()).offset(skip).limit(limit).all()

    def create_delivery(self, location_id: int, data: Dict[str, Any]) -> Delivery:
        """
        Create a delivery, posting it unless status is DRAFT.

        data: supplier_id, invoice_no, delivery_note, delivery_date,
        status and lines of {item_id, quantity, unit_price}.
        """
        status = DocumentStatus(data.get("status") or DocumentStatus.POSTED)
        lines = data.get("lines") or []
        if not lines:
            raise ValidationError("A delivery needs at least one line")

        location = self._get_location(location_id)
        supplier = self.db.query(Supplier).filter(
            Supplier.id == data["supplier_id"], Supplier.is_active.is_(True)
        ).first()
        if not supplier:
            raise NotFoundError("Supplier not found", code="SUPPLIER_NOT_FOUND")

        period, _ = self.periods.require_open_period(location_id)
        invoice_no = data.get("invoice_no") or None
        if status == DocumentStatus.POSTED and not invoice_no:
            raise ValidationError("Invoice number is required to post a delivery", code="INVOICE_REQUIRED")
        self._check_invoice_unique(invoice_no)

        items = self._validate_items([line["item_id"] for line in lines])
        prices = self.periods.get_price_map(period.id, list(items))
        missing = [items[item_id].code for item_id in items if item_id not in prices]
        if missing:
            raise ValidationError(
                f"Items have no locked price for period {period.name}: {', '.join(sorted(missing))}",
                code="MISSING_PERIOD_PRICES",
                details={"items": sorted(missing)}
            )
        for line in lines:
            StockValidationService.validate_positive_quantity(line["quantity"])
            if Decimal(str(line["unit_price"])) < 0:
                raise ValidationError("Unit price cannot be negative", details={"item_id": line["item_id"]})

        delivery_date = data.get("delivery_date") or date.today()
        try:
            delivery = Delivery(
                delivery_no=self.numbers.next_delivery_number(location.name, delivery_date),
                period_id=period.id,
                location_id=location_id,
                supplier_id=supplier.id,
                invoice_no=invoice_no,
                delivery_note=data.get("delivery_note"),
                delivery_date=delivery_date,
                status=DocumentStatus.DRAFT.value,
                created_by=self.current_user.id,
            )
            self.db.add(delivery)
            self.db.flush()

            total = Decimal("0")
            for line in lines:
                quantity = Decimal(str(line["quantity"]))
                unit_price = Decimal(str(line["unit_price"]))
                line_value = StockCostingService.line_value(quantity, unit_price)
                delivery.lines.append(DeliveryLine(
                    item_id=line["item_id"],
                    quantity=quantity,
                    unit_price=unit_price,
                    period_price=prices[line["item_id"]],
                    price_variance=unit_price - prices[line["item_id"]],
                    line_value=line_value,
                ))
                total += line_value
            delivery.total_amount = round_currency(total)
            self.db.flush()

            if status == DocumentStatus.POSTED:
                self._post(delivery, location, items, prices)

            log_user_action(
                db=self.db, user=self.current_user, action="CREATE_DELIVERY",
                table="deliveries", key=delivery.delivery_no,
                new_values={
                    "location_id": location_id,
                    "supplier_id": supplier.id,
                    "status": delivery.status,
                    "total_amount": delivery.total_amount,
                },
                module="DELIVERY"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Delivery at {location.name} failed", exc_info=True)
            raise

        logger.info(
            f"Delivery {delivery.delivery_no} {delivery.status.lower()} at {location.name}: "
            f"{len(lines)} lines, total {delivery.total_amount}"
        )
        return self.get_delivery(delivery.id)

    def post_delivery(self, delivery_id: int, location_id: int) -> Delivery:
        """Post a saved draft against the current open period"""
        delivery = self.get_delivery(delivery_id, location_id)
        if delivery.status != DocumentStatus.DRAFT.value:
            raise InvalidStatusError("Only draft deliveries can be posted", code="DELIVERY_ALREADY_POSTED")
        if not delivery.invoice_no:
            raise ValidationError("Invoice number is required to post a delivery", code="INVOICE_REQUIRED")

        period, _ = self.periods.require_open_period(location_id)
        item_ids = [line.item_id for line in delivery.lines]
        items = self._validate_items(item_ids)
        prices = self.periods.get_price_map(period.id, item_ids)
        missing = [items[item_id].code for item_id in items if item_id not in prices]
        if missing:
            raise ValidationError(
                f"Items have no locked price for period {period.name}: {', '.join(sorted(missing))}",
                code="MISSING_PERIOD_PRICES",
                details={"items": sorted(missing)}
            )

        try:
            delivery.period_id = period.id
            self._post(delivery, delivery.location, items, prices)
            log_user_action(
                db=self.db, user=self.current_user, action="POST_DELIVERY",
                table="deliveries", key=delivery.delivery_no,
                new_values={"total_amount": delivery.total_amount, "has_variance": delivery.has_variance},
                module="DELIVERY"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Posting delivery {delivery.delivery_no} failed", exc_info=True)
            raise

        logger.info(f"Delivery {delivery.delivery_no} posted")
        return self.get_delivery(delivery.id)

    def delete_draft(self, delivery_id: int, location_id: int) -> None:
        delivery = self.get_delivery(delivery_id, location_id)
        if delivery.status != DocumentStatus.DRAFT.value:
            raise InvalidStatusError("Posted deliveries cannot be deleted", code="DELIVERY_ALREADY_POSTED")
        self.db.delete(delivery)
        log_user_action(
            db=self.db, user=self.current_user, action="DELETE_DELIVERY",
            table="deliveries", key=delivery.delivery_no, module="DELIVERY"
        )
        self.db.commit()
        logger.info(f"Draft delivery {delivery.delivery_no} deleted")

    def _post(self, delivery: Delivery, location: Location, items: Dict, prices: Dict) -> None:
        """Apply stock, WAC and variance handling for every line; no commit"""
        rows = self.stock.lock_rows(location.id, [line.item_id for line in delivery.lines])
        threshold_percent = settings.PRICE_VARIANCE_THRESHOLD_PERCENT
        threshold_amount = settings.PRICE_VARIANCE_THRESHOLD_AMOUNT

        has_variance = False
        for line in delivery.lines:
            period_price = prices[line.item_id]
            line.period_price = period_price
            line.price_variance = line.unit_price - period_price

            self.stock.receive(location.id, line.item_id, line.quantity, line.unit_price, rows.get(line.item_id))
            if line.item_id not in rows:
                rows[line.item_id] = self.stock.get_stock(location.id, line.item_id)

            variance = PriceVarianceService.check_price_variance(
                line.unit_price, period_price, line.quantity, threshold_percent, threshold_amount
            )
            if variance.exceeds_threshold:
                has_variance = True
                self.ncrs.create_price_variance_ncr(delivery, line, items[line.item_id], variance)

        delivery.has_variance = has_variance
        delivery.status = DocumentStatus.POSTED.value
        delivery.posted_at = datetime.utcnow()
        self.db.flush()

    def _get_location(self, location_id: int) -> Location:
        location = self.db.query(Location).filter(
            Location.id == location_id, Location.is_active.is_(True)
        ).first()
        if not location:
            raise NotFoundError("Location not found", code="LOCATION_NOT_FOUND")
        return location

    def _validate_items(self, item_ids: List[int]) -> Dict:
        items = ItemService(self.db).get_active_items(item_ids)
        if len(items) != len(set(item_ids)):
            missing = sorted(set(item_ids) - set(items))
            raise ValidationError(
                "Some items do not exist or are inactive",
                code="INVALID_ITEMS",
                details={"item_ids": missing}
            )
        return items

    def _check_invoice_unique(self, invoice_no: Optional[str]) -> None:
        if invoice_no and self.db.query(Delivery).filter(Delivery.invoice_no == invoice_no).first():
            raise ConflictError(
                f"Invoice number {invoice_no} has already been used", code="DUPLICATE_INVOICE_NO"
            )
