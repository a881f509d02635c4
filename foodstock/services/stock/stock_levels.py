"""
Stock Level Service
Row-locked reads and updates of per-location stock
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy.orm import Session, joinedload

from foodstock.models import LocationStock, Location, Item, User
from foodstock.services.business_logic import (
    StockCostingService, StockValidationService, ReconciliationCalculator,
    WACResult, StockCheckResult, CountVarianceResult, to_decimal
)
from foodstock.core.exceptions import NotFoundError
from foodstock.core.security import log_user_action
from foodstock.core.logging import get_logger

logger = get_logger("business")


class StockLevelService:
    """
    All LocationStock mutations go through here.

    Rows are read with SELECT ... FOR UPDATE so concurrent postings
    against the same (location, item) serialize in the database. The
    caller owns the transaction and commits.
    """

    def __init__(self, db: Session, current_user: Optional[User] = None):
        self.db = db
        self.current_user = current_user

    def get_stock(self, location_id: int, item_id: int, lock: bool = False) -> Optional[LocationStock]:
        query = self.db.query(LocationStock).filter(
            LocationStock.location_id == location_id,
            LocationStock.item_id == item_id
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    def lock_rows(self, location_id: int, item_ids: Iterable[int]) -> Dict[int, LocationStock]:
        """Lock every stock row the posting will touch, in item order"""
        ids = sorted(set(item_ids))
        rows = (
            self.db.query(LocationStock)
            .filter(LocationStock.location_id == location_id, LocationStock.item_id.in_(ids))
            .order_by(LocationStock.item_id)
            .with_for_update()
            .all()
        )
        return {row.item_id: row for row in rows}

    def receive(
        self,
        location_id: int,
        item_id: int,
        quantity: Decimal,
        unit_cost: Decimal,
        stock: Optional[LocationStock] = None
    ) -> WACResult:
        """
        Add stock at a unit cost and recompute WAC.

        A first receipt creates the row with WAC equal to the unit cost.
        """
        if stock is None:
            stock = self.get_stock(location_id, item_id, lock=True)
        current_qty = stock.on_hand if stock else Decimal("0")
        current_wac = stock.wac if stock else Decimal("0")

        result = StockCostingService.calculate_wac(current_qty, current_wac, quantity, unit_cost)

        if stock is None:
            stock = LocationStock(location_id=location_id, item_id=item_id)
            self.db.add(stock)
        stock.on_hand = result.new_quantity
        stock.wac = result.new_wac
        self.db.flush()

        logger.debug(
            f"Received {quantity} of item {item_id} at location {location_id}: "
            f"on_hand={result.new_quantity}, wac={result.new_wac}"
        )
        return result

    def deduct(self, stock: LocationStock, quantity: Decimal) -> None:
        """Lower on_hand; WAC is unchanged. Sufficiency is checked by the caller."""
        stock.on_hand = to_decimal(stock.on_hand) - to_decimal(quantity)
        self.db.flush()

    def check_lines(
        self,
        location: Location,
        lines: List[Tuple[Item, Decimal]],
        rows: Dict[int, LocationStock]
    ) -> None:
        """
        Check every line against locked stock before anything is written.

        Quantities for the same item are summed. Raises
        InsufficientStockError naming every short item.
        """
        requested: Dict[int, Decimal] = {}
        items: Dict[int, Item] = {}
        for item, quantity in lines:
            requested[item.id] = requested.get(item.id, Decimal("0")) + to_decimal(quantity)
            items[item.id] = item

        results: List[StockCheckResult] = []
        for item_id, qty in requested.items():
            row = rows.get(item_id)
            result = StockValidationService.check_sufficiency(qty, row.on_hand if row else 0, item_id)
            result.item_name = items[item_id].name
            result.item_code = items[item_id].code
            result.unit = items[item_id].unit
            results.append(result)

        shortages = StockValidationService.insufficient_items(results)
        if shortages:
            logger.warning(
                f"Insufficient stock at {location.name} for items "
                f"{', '.join(s.item_code for s in shortages)}"
            )
            raise StockValidationService.build_insufficient_stock_error(shortages, location.name)

    def get_location_stock(
        self,
        location_id: int,
        search: Optional[str] = None,
        low_stock_only: bool = False
    ) -> List[LocationStock]:
        query = (
            self.db.query(LocationStock)
            .join(Item)
            .options(joinedload(LocationStock.item))
            .filter(LocationStock.location_id == location_id)
        )
        if search:
            pattern = f"%{search}%"
            query = query.filter((Item.code.ilike(pattern)) | (Item.name.ilike(pattern)))
        if low_stock_only:
            query = query.filter(
                LocationStock.min_stock.isnot(None),
                LocationStock.on_hand < LocationStock.min_stock
            )
        return query.order_by(Item.name).all()

    def location_value(self, location_id: int) -> Decimal:
        rows = self.db.query(LocationStock).filter(LocationStock.location_id == location_id).all()
        return sum((to_decimal(r.on_hand) * to_decimal(r.wac) for r in rows), Decimal("0"))

    def consolidated_stock(self) -> List[Dict]:
        """Total on hand and value per item across active locations"""
        rows = (
            self.db.query(LocationStock)
            .join(Location)
            .options(joinedload(LocationStock.item))
            .filter(Location.is_active.is_(True), LocationStock.on_hand > 0)
            .all()
        )
        totals: Dict[int, Dict] = {}
        for row in rows:
            entry = totals.setdefault(row.item_id, {
                "item_id": row.item_id,
                "item_code": row.item.code,
                "item_name": row.item.name,
                "unit": row.item.unit,
                "total_on_hand": Decimal("0"),
                "total_value": Decimal("0"),
                "locations": 0,
            })
            entry["total_on_hand"] += to_decimal(row.on_hand)
            entry["total_value"] += to_decimal(row.on_hand) * to_decimal(row.wac)
            entry["locations"] += 1
        return sorted(totals.values(), key=lambda e: e["item_name"])

    def record_count(self, location_id: int, item_id: int, counted_quantity: Decimal) -> CountVarianceResult:
        """
        Record a physical count and report its variance against the system.

        Only last_counted changes; on_hand and WAC are left for the
        supervisor to disposition.
        """
        stock = self.get_stock(location_id, item_id, lock=True)
        if stock is None:
            raise NotFoundError("No stock record for this item at this location", code="STOCK_NOT_FOUND")

        try:
            result = ReconciliationCalculator.calculate_count_variance(stock.on_hand, counted_quantity, stock.wac)
            stock.last_counted = datetime.utcnow()
            log_user_action(
                db=self.db, user=self.current_user, action="STOCK_COUNT",
                table="location_stock", key=f"{location_id}:{item_id}",
                new_values={
                    "system_quantity": result.system_quantity,
                    "actual_quantity": result.actual_quantity,
                    "variance_value": result.variance_value,
                },
                module="STOCK"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if result.variance != 0:
            logger.info(
                f"Count variance at location {location_id} item {item_id}: "
                f"{result.variance} units, value {result.variance_value}"
            )
        return result
