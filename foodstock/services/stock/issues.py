"""
Issue Service
Stock consumed at a location, valued at the current WAC
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session, joinedload

from foodstock.models import Issue, IssueLine, Location, User
from foodstock.models.enums import DocumentStatus, CostCentre
from foodstock.services.business_logic import StockCostingService, StockValidationService, round_currency
from foodstock.services.document_numbering import DocumentNumberService
from foodstock.services.master_data import ItemService
from foodstock.services.periods.period_service import PeriodService
from foodstock.services.stock.stock_levels import StockLevelService
from foodstock.core.config import settings
from foodstock.core.security import log_user_action
from foodstock.core.exceptions import ValidationError, NotFoundError
from foodstock.core.logging import get_logger

logger = get_logger("business")


class IssueService:
    """Issues post immediately; all lines are checked before any stock moves"""

    def __init__(self, db: Session, current_user: Optional[User] = None):
        self.db = db
        self.current_user = current_user
        self.stock = StockLevelService(db, current_user)
        self.periods = PeriodService(db, current_user)
        self.numbers = DocumentNumberService(db)

    def get_issue(self, issue_id: int, location_id: Optional[int] = None) -> Issue:
        query = (
            self.db.query(Issue)
            .options(joinedload(Issue.lines).joinedload(IssueLine.item))
            .filter(Issue.id == issue_id)
        )
        if location_id is not None:
            query = query.filter(Issue.location_id == location_id)
        issue = query.first()
        if not issue:
            raise NotFoundError("Issue not found", code="ISSUE_NOT_FOUND")
        return issue

    def list_issues(
        self,
        location_id: int,
        period_id: Optional[int] = None,
        cost_centre: Optional[CostCentre] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Issue]:
        query = self.db.query(Issue).filter(Issue.location_id == location_id)
        if period_id is not None:
            query = query.filter(Issue.period_id == period_id)
        if cost_centre:
            query = query.filter(Issue.cost_centre == CostCentre(cost_centre).value)
        return query.order_by(Issue.issue_date.desc(), Issue.id.desc()).offset(skip).limit(limit).all()

    def create_issue(self, location_id: int, data: Dict[str, Any]) -> Issue:
        """
        Post an issue.

        data: issue_date, cost_centre, notes and lines of {item_id, quantity}.
        Raises InsufficientStockError listing every short line; nothing is
        written in that case.
        """
        lines = data.get("lines") or []
        if not lines:
            raise ValidationError("An issue needs at least one line")

        location = self.db.query(Location).filter(
            Location.id == location_id, Location.is_active.is_(True)
        ).first()
        if not location:
            raise NotFoundError("Location not found", code="LOCATION_NOT_FOUND")

        period, _ = self.periods.require_open_period(location_id)
        item_ids = [line["item_id"] for line in lines]
        items = ItemService(self.db).get_active_items(item_ids)
        if len(items) != len(set(item_ids)):
            raise ValidationError(
                "Some items do not exist or are inactive",
                code="INVALID_ITEMS",
                details={"item_ids": sorted(set(item_ids) - set(items))}
            )
        quantities = [
            StockValidationService.validate_positive_quantity(line["quantity"]) for line in lines
        ]
        cost_centre = CostCentre(data.get("cost_centre") or settings.DEFAULT_COST_CENTRE)

        try:
            rows = self.stock.lock_rows(location_id, item_ids)
            self.stock.check_lines(
                location, [(items[line["item_id"]], qty) for line, qty in zip(lines, quantities)], rows
            )

            issue = Issue(
                issue_no=self.numbers.next_issue_number(),
                period_id=period.id,
                location_id=location_id,
                issue_date=data.get("issue_date") or date.today(),
                cost_centre=cost_centre.value,
                status=DocumentStatus.POSTED.value,
                notes=data.get("notes"),
                posted_by=self.current_user.id,
                posted_at=datetime.utcnow(),
            )
            self.db.add(issue)

            total = Decimal("0")
            for line, quantity in zip(lines, quantities):
                row = rows[line["item_id"]]
                line_value = StockCostingService.line_value(quantity, row.wac)
                issue.lines.append(IssueLine(
                    item_id=line["item_id"],
                    quantity=quantity,
                    wac_at_issue=row.wac,
                    line_value=line_value,
                ))
                self.stock.deduct(row, quantity)
                total += line_value
            issue.total_value = round_currency(total)
            self.db.flush()

            log_user_action(
                db=self.db, user=self.current_user, action="CREATE_ISSUE",
                table="issues", key=issue.issue_no,
                new_values={
                    "location_id": location_id,
                    "cost_centre": cost_centre.value,
                    "total_value": issue.total_value,
                },
                module="ISSUE"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Issue {issue.issue_no} posted at {location.name}: "
            f"{len(lines)} lines, total {issue.total_value}"
        )
        return self.get_issue(issue.id)
