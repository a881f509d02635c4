"""
Approval Service
Review of period close requests
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session, joinedload

from foodstock.models import Approval, Period, PeriodLocation, LocationStock, User
from foodstock.models.enums import (
    ApprovalEntityType, ApprovalStatus, PeriodStatus, PeriodLocationStatus
)
from foodstock.services.business_logic import round_currency, to_decimal
from foodstock.services.periods.period_service import PeriodService
from foodstock.services.reconciliation_service import ReconciliationService
from foodstock.core.security import log_user_action
from foodstock.core.exceptions import (
    NotFoundError, ConflictError, InvalidStatusError, BusinessLogicError
)
from foodstock.core.logging import get_logger

logger = get_logger("business")


class ApprovalService:
    """
    Approving a PERIOD_CLOSE snapshots every location's stock and
    reconciliation, stores the closing values and closes the period in a
    single transaction. Rejecting sends the period back to OPEN.
    """

    def __init__(self, db: Session, current_user: Optional[User] = None):
        self.db = db
        self.current_user = current_user
        self.periods = PeriodService(db, current_user)
        self.reconciliations = ReconciliationService(db, current_user)

    def get_approval(self, approval_id: int) -> Approval:
        approval = self.db.query(Approval).filter(Approval.id == approval_id).first()
        if not approval:
            raise NotFoundError("Approval not found", code="APPROVAL_NOT_FOUND")
        return approval

    def list_approvals(
        self,
        status: Optional[ApprovalStatus] = None,
        entity_type: Optional[ApprovalEntityType] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Approval]:
        query = self.db.query(Approval)
        if status:
            query = query.filter(Approval.status == ApprovalStatus(status).value)
        if entity_type:
            query = query.filter(Approval.entity_type == ApprovalEntityType(entity_type).value)
        return query.order_by(Approval.requested_at.desc(), Approval.id.desc()).offset(skip).limit(limit).all()

    def _require_pending(self, approval: Approval) -> None:
        if approval.status != ApprovalStatus.PENDING.value:
            raise ConflictError(
                f"Approval has already been {approval.status.lower()}",
                code="APPROVAL_ALREADY_PROCESSED",
                details={"current_status": approval.status}
            )

    def approve(self, approval_id: int, comments: Optional[str] = None) -> Tuple[Approval, Dict[str, Any]]:
        """Approve a close request; returns the approval and a summary of the close"""
        approval = self.get_approval(approval_id)
        self._require_pending(approval)
        return approval, self._close_period(approval, comments)

    def _close_period(self, approval: Approval, comments: Optional[str]) -> Dict[str, Any]:
        period = self.periods.get_period(approval.entity_id)
        if period.status != PeriodStatus.PENDING_CLOSE.value:
            raise InvalidStatusError(
                f"Period must be pending close - current status is {period.status}",
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

        now = datetime.utcnow()
        total_closing = Decimal("0")
        try:
            for period_location in period.period_locations:
                snapshot = self.build_snapshot(period, period_location, now)
                closing_value = to_decimal(snapshot["total_value"])
                period_location.closing_value = closing_value
                period_location.snapshot_data = snapshot
                period_location.status = PeriodLocationStatus.CLOSED.value
                period_location.closed_at = now
                total_closing += closing_value

            approval.status = ApprovalStatus.APPROVED.value
            approval.reviewed_by = self.current_user.id
            approval.reviewed_at = now
            approval.comments = comments
            period.status = PeriodStatus.CLOSED.value
            period.approved_at = now
            period.closed_at = now

            log_user_action(
                db=self.db, user=self.current_user, action="CLOSE_PERIOD",
                table="periods", key=str(period.id),
                old_values={"status": PeriodStatus.PENDING_CLOSE.value},
                new_values={"status": PeriodStatus.CLOSED.value, "total_closing_value": total_closing},
                module="PERIOD"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Closing period {period.name} failed", exc_info=True)
            raise

        logger.info(
            f"Period {period.name} closed: {len(period.period_locations)} locations, "
            f"closing value {round_currency(total_closing)}"
        )
        return {
            "period_id": period.id,
            "total_locations": len(period.period_locations),
            "total_closing_value": round_currency(total_closing),
        }

    def build_snapshot(self, period: Period, period_location: PeriodLocation, taken_at: datetime) -> Dict[str, Any]:
        """Items on hand with WAC and value, totals and the reconciliation"""
        rows = (
            self.db.query(LocationStock)
            .options(joinedload(LocationStock.item))
            .filter(LocationStock.location_id == period_location.location_id, LocationStock.on_hand > 0)
            .order_by(LocationStock.item_id)
            .all()
        )
        items = []
        total = Decimal("0")
        for row in rows:
            value = round_currency(to_decimal(row.on_hand) * to_decimal(row.wac))
            total += value
            items.append({
                "item_id": row.item_id,
                "item_code": row.item.code,
                "item_name": row.item.name,
                "unit": row.item.unit,
                "quantity": str(row.on_hand),
                "wac": str(row.wac),
                "value": str(value),
            })
        return {
            "location_id": period_location.location_id,
            "items": items,
            "total_value": str(round_currency(total)),
            "item_count": len(items),
            "reconciliation": self.reconciliations.snapshot(period, period_location.location_id),
            "snapshot_at": taken_at.isoformat(),
        }

    def reject(self, approval_id: int, comments: Optional[str] = None) -> Approval:
        approval = self.get_approval(approval_id)
        self._require_pending(approval)

        try:
            approval.status = ApprovalStatus.REJECTED.value
            approval.reviewed_by = self.current_user.id
            approval.reviewed_at = datetime.utcnow()
            approval.comments = comments
            period = self.db.query(Period).filter(Period.id == approval.entity_id).first()
            if period and period.status == PeriodStatus.PENDING_CLOSE.value:
                period.status = PeriodStatus.OPEN.value
            log_user_action(
                db=self.db, user=self.current_user, action="REJECT_APPROVAL",
                table="approvals", key=str(approval.id),
                new_values={"comments": comments}, module="PERIOD"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Approval {approval.id} ({approval.entity_type}) rejected")
        self.db.refresh(approval)
        return approval
