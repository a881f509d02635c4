"""
NCR Service
Non-conformance reports: automatic price-variance reports, manual
reports and their resolution
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy import or_, and_, func
from sqlalchemy.orm import Session, joinedload

from foodstock.models import NCR, Delivery, DeliveryLine, Item, Period, User
from foodstock.models.enums import NCRType, NCRStatus, NCRResolutionType
from foodstock.services.business_logic import PriceVarianceResult, PriceVarianceService, to_decimal
from foodstock.services.document_numbering import DocumentNumberService
from foodstock.core.security import log_user_action
from foodstock.core.exceptions import ValidationError, NotFoundError
from foodstock.core.logging import get_logger

logger = get_logger("business")

RESOLVED_STATUSES = {NCRStatus.CREDITED.value, NCRStatus.REJECTED.value, NCRStatus.RESOLVED.value}


class NCRService:
    """Service for non-conformance report operations"""

    def __init__(self, db: Session, current_user: Optional[User] = None):
        self.db = db
        self.current_user = current_user
        self.numbers = DocumentNumberService(db)

    def get_ncr(self, ncr_id: int) -> NCR:
        ncr = (
            self.db.query(NCR)
            .options(joinedload(NCR.location), joinedload(NCR.delivery))
            .filter(NCR.id == ncr_id)
            .first()
        )
        if not ncr:
            raise NotFoundError("NCR not found", code="NCR_NOT_FOUND")
        return ncr

    def list_ncrs(
        self,
        location_ids: Optional[List[int]] = None,
        status: Optional[NCRStatus] = None,
        ncr_type: Optional[NCRType] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[NCR]:
        query = self.db.query(NCR).options(joinedload(NCR.location))
        if location_ids is not None:
            query = query.filter(NCR.location_id.in_(location_ids))
        if status:
            query = query.filter(NCR.status == NCRStatus(status).value)
        if ncr_type:
            query = query.filter(NCR.type == NCRType(ncr_type).value)
        return query.order_by(NCR.created_at.desc(), NCR.id.desc()).offset(skip).limit(limit).all()

    def create_price_variance_ncr(
        self,
        delivery: Delivery,
        line: DeliveryLine,
        item: Item,
        variance: PriceVarianceResult
    ) -> NCR:
        """
        Raise the automatic NCR for one delivery line.

        Runs inside the delivery posting transaction; the caller commits.
        """
        ncr = NCR(
            ncr_no=self.numbers.next_ncr_number(),
            location_id=delivery.location_id,
            type=NCRType.PRICE_VARIANCE.value,
            auto_generated=True,
            delivery_id=delivery.id,
            delivery_line_id=line.id,
            reason=PriceVarianceService.ncr_reason(variance, item.name, item.code),
            quantity=line.quantity,
            value=abs(variance.variance_amount),
            status=NCRStatus.OPEN.value,
            created_by=delivery.created_by,
        )
        self.db.add(ncr)
        self.db.flush()
        line.ncr_id = ncr.id

        logger.info(
            f"Price variance NCR {ncr.ncr_no} raised for {item.code} on {delivery.delivery_no}: "
            f"{variance.variance_amount}"
        )
        return ncr

    def create_manual_ncr(self, location_id: int, data: Dict[str, Any]) -> NCR:
        """Create a manual NCR, optionally tied to a delivery and one of its lines"""
        value = to_decimal(data.get("value"))
        if value <= 0:
            raise ValidationError("NCR value must be greater than zero")

        delivery_id = data.get("delivery_id")
        delivery_line_id = data.get("delivery_line_id")
        if delivery_id:
            delivery = self.db.query(Delivery).filter(Delivery.id == delivery_id).first()
            if not delivery:
                raise NotFoundError("Delivery not found", code="DELIVERY_NOT_FOUND")
            if delivery.location_id != location_id:
                raise ValidationError(
                    "Delivery does not belong to this location", code="DELIVERY_LOCATION_MISMATCH"
                )
        if delivery_line_id:
            line = self.db.query(DeliveryLine).filter(DeliveryLine.id == delivery_line_id).first()
            if not line:
                raise NotFoundError("Delivery line not found", code="DELIVERY_LINE_NOT_FOUND")
            if not delivery_id or line.delivery_id != delivery_id:
                raise ValidationError(
                    "Delivery line does not belong to the delivery", code="DELIVERY_LINE_MISMATCH"
                )

        try:
            ncr = NCR(
                ncr_no=self.numbers.next_ncr_number(),
                location_id=location_id,
                type=NCRType.MANUAL.value,
                auto_generated=False,
                delivery_id=delivery_id,
                delivery_line_id=delivery_line_id,
                reason=data["reason"],
                quantity=data.get("quantity"),
                value=value,
                status=NCRStatus.OPEN.value,
                created_by=self.current_user.id,
            )
            self.db.add(ncr)
            self.db.flush()
            log_user_action(
                db=self.db, user=self.current_user, action="CREATE_NCR",
                table="ncrs", key=ncr.ncr_no,
                new_values={"location_id": location_id, "value": value, "delivery_id": delivery_id},
                module="NCR"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Manual NCR created: {ncr.ncr_no} at location {location_id}")
        return self.get_ncr(ncr.id)

    def update_ncr(self, ncr_id: int, data: Dict[str, Any]) -> NCR:
        """
        Change status or resolution details.

        resolved_at is stamped the first time the NCR reaches CREDITED,
        REJECTED or RESOLVED and is not moved afterwards.
        """
        ncr = self.get_ncr(ncr_id)
        old_values = {"status": ncr.status, "resolution_type": ncr.resolution_type}

        if data.get("status"):
            ncr.status = NCRStatus(data["status"]).value
            if ncr.status in RESOLVED_STATUSES and ncr.resolved_at is None:
                ncr.resolved_at = datetime.utcnow()
        if data.get("resolution_type"):
            ncr.resolution_type = NCRResolutionType(data["resolution_type"]).value
        if data.get("resolution_notes") is not None:
            ncr.resolution_notes = data["resolution_notes"]
        if data.get("reason"):
            ncr.reason = data["reason"]

        log_user_action(
            db=self.db, user=self.current_user, action="UPDATE_NCR",
            table="ncrs", key=ncr.ncr_no, old_values=old_values,
            new_values={"status": ncr.status, "resolution_type": ncr.resolution_type},
            module="NCR"
        )
        self.db.commit()
        logger.info(f"NCR {ncr.ncr_no} updated: {old_values['status']} -> {ncr.status}")
        return self.get_ncr(ncr_id)

    def count_open(self, location_id: int) -> int:
        return self.db.query(func.count(NCR.id)).filter(
            NCR.location_id == location_id,
            NCR.status == NCRStatus.OPEN.value
        ).scalar() or 0

    def period_summary(self, period_id: int, location_id: int) -> Dict[str, Any]:
        """
        NCR totals for a location in a period.

        Includes NCRs linked to the period's deliveries and unlinked NCRs
        created within the period dates.
        """
        period = self.db.query(Period).filter(Period.id == period_id).first()
        if not period:
            raise NotFoundError("Period not found", code="PERIOD_NOT_FOUND")

        period_deliveries = self.db.query(Delivery.id).filter(
            Delivery.period_id == period_id,
            Delivery.location_id == location_id
        )
        start = datetime.combine(period.start_date, datetime.min.time())
        end = datetime.combine(period.end_date, datetime.max.time())
        ncrs = self.db.query(NCR).filter(
            NCR.location_id == location_id,
            or_(
                NCR.delivery_id.in_(period_deliveries),
                and_(NCR.delivery_id.is_(None), NCR.created_at >= start, NCR.created_at <= end),
            )
        ).all()

        groups = {name: {"total": Decimal("0"), "count": 0, "items": []}
                  for name in ("credited", "losses", "pending", "open")}
        for ncr in ncrs:
            group = self._summary_group(ncr)
            if group is None:
                continue
            groups[group]["total"] += to_decimal(ncr.value)
            groups[group]["count"] += 1
            groups[group]["items"].append({
                "id": ncr.id,
                "ncr_no": ncr.ncr_no,
                "type": ncr.type,
                "status": ncr.status,
                "value": ncr.value,
            })
        return groups

    @staticmethod
    def _summary_group(ncr: NCR) -> Optional[str]:
        if ncr.status == NCRStatus.CREDITED.value:
            return "credited"
        if ncr.status == NCRStatus.REJECTED.value:
            return "losses"
        if ncr.status == NCRStatus.RESOLVED.value:
            if ncr.resolution_type == NCRResolutionType.CREDIT.value:
                return "credited"
            if ncr.resolution_type == NCRResolutionType.LOSS.value:
                return "losses"
            return None
        if ncr.status == NCRStatus.SENT.value:
            return "pending"
        return "open"
