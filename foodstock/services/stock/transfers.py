"""
Stock Transfer Service
Inter-location transfers with supervisor approval
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from foodstock.models import Transfer, TransferLine, Location, User
from foodstock.models.enums import TransferStatus
from foodstock.services.business_logic import StockCostingService, StockValidationService, round_currency
from foodstock.services.document_numbering import DocumentNumberService
from foodstock.services.master_data import ItemService
from foodstock.services.stock.stock_levels import StockLevelService
from foodstock.core.security import log_user_action
from foodstock.core.exceptions import ValidationError, NotFoundError, InvalidStatusError
from foodstock.core.logging import get_logger

logger = get_logger("business")


class StockTransferService:
    """
    Transfers are requested at PENDING_APPROVAL with the source WAC
    captured per line. Approval moves the stock: the source is deducted
    and the destination receives at the captured WAC.
    """

    def __init__(self, db: Session, current_user: Optional[User] = None):
        self.db = db
        self.current_user = current_user
        self.stock = StockLevelService(db, current_user)
        self.numbers = DocumentNumberService(db)

    def get_transfer(self, transfer_id: int) -> Transfer:
        transfer = (
            self.db.query(Transfer)
            .options(
                joinedload(Transfer.lines).joinedload(TransferLine.item),
                joinedload(Transfer.from_location),
                joinedload(Transfer.to_location),
            )
            .filter(Transfer.id == transfer_id)
            .first()
        )
        if not transfer:
            raise NotFoundError("Transfer not found", code="TRANSFER_NOT_FOUND")
        return transfer

    def list_transfers(
        self,
        location_ids: Optional[List[int]] = None,
        status: Optional[TransferStatus] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Transfer]:
        query = self.db.query(Transfer).options(
            joinedload(Transfer.from_location), joinedload(Transfer.to_location)
        )
        if location_ids is not None:
            query = query.filter(or_(
                Transfer.from_location_id.in_(location_ids),
                Transfer.to_location_id.in_(location_ids),
            ))
        if status:
            query = query.filter(Transfer.status == TransferStatus(status).value)
        return query.order_by(Transfer.request_date.desc(), Transfer.id.desc()).offset(skip).limit(limit).all()

    def _get_location(self, location_id: int) -> Location:
        location = self.db.query(Location).filter(
            Location.id == location_id, Location.is_active.is_(True)
        ).first()
        if not location:
            raise NotFoundError(f"Location {location_id} not found", code="LOCATION_NOT_FOUND")
        return location

    def create_transfer(self, data: Dict[str, Any]) -> Transfer:
        """
        Request a transfer.

        data: from_location_id, to_location_id, notes, request_date and
        lines of {item_id, quantity}. Source stock is checked now and again
        on approval.
        """
        from_id, to_id = data["from_location_id"], data["to_location_id"]
        if from_id == to_id:
            raise ValidationError(
                "Source and destination locations must be different", code="SAME_LOCATION_TRANSFER"
            )
        lines = data.get("lines") or []
        if not lines:
            raise ValidationError("A transfer needs at least one line")

        source = self._get_location(from_id)
        self._get_location(to_id)

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

        try:
            rows = self.stock.lock_rows(from_id, item_ids)
            self.stock.check_lines(
                source, [(items[line["item_id"]], qty) for line, qty in zip(lines, quantities)], rows
            )

            transfer = Transfer(
                transfer_no=self.numbers.next_transfer_number(),
                from_location_id=from_id,
                to_location_id=to_id,
                status=TransferStatus.PENDING_APPROVAL.value,
                requested_by=self.current_user.id,
                request_date=data.get("request_date") or date.today(),
                notes=data.get("notes"),
            )
            self.db.add(transfer)

            total = Decimal("0")
            for line, quantity in zip(lines, quantities):
                wac = rows[line["item_id"]].wac
                line_value = StockCostingService.line_value(quantity, wac)
                transfer.lines.append(TransferLine(
                    item_id=line["item_id"],
                    quantity=quantity,
                    wac_at_transfer=wac,
                    line_value=line_value,
                ))
                total += line_value
            transfer.total_value = round_currency(total)
            self.db.flush()

            log_user_action(
                db=self.db, user=self.current_user, action="CREATE_TRANSFER",
                table="transfers", key=transfer.transfer_no,
                new_values={"from_location_id": from_id, "to_location_id": to_id, "total_value": transfer.total_value},
                module="TRANSFER"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Transfer {transfer.transfer_no} requested: {source.name} -> location {to_id}, "
            f"value {transfer.total_value}"
        )
        return self.get_transfer(transfer.id)

    def approve_transfer(self, transfer_id: int, comments: Optional[str] = None) -> Transfer:
        """Move the stock; the source is re-checked under lock first"""
        transfer = self.get_transfer(transfer_id)
        self._require_pending(transfer)

        try:
            rows = self.stock.lock_rows(transfer.from_location_id, [line.item_id for line in transfer.lines])
            self.stock.check_lines(
                transfer.from_location, [(line.item, line.quantity) for line in transfer.lines], rows
            )

            destination = self.stock.lock_rows(transfer.to_location_id, [line.item_id for line in transfer.lines])
            for line in transfer.lines:
                self.stock.deduct(rows[line.item_id], line.quantity)
                self.stock.receive(
                    transfer.to_location_id, line.item_id, line.quantity, line.wac_at_transfer,
                    destination.get(line.item_id)
                )
                if line.item_id not in destination:
                    destination[line.item_id] = self.stock.get_stock(transfer.to_location_id, line.item_id)

            today = date.today()
            transfer.status = TransferStatus.COMPLETED.value
            transfer.approved_by = self.current_user.id
            transfer.approval_date = today
            transfer.transfer_date = today
            if comments:
                transfer.notes = self._append_note(transfer.notes, f"APPROVED: {comments}")

            log_user_action(
                db=self.db, user=self.current_user, action="APPROVE_TRANSFER",
                table="transfers", key=transfer.transfer_no,
                old_values={"status": TransferStatus.PENDING_APPROVAL.value},
                new_values={"status": transfer.status},
                module="TRANSFER"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Approving transfer {transfer.transfer_no} failed", exc_info=True)
            raise

        logger.info(f"Transfer {transfer.transfer_no} completed, value {transfer.total_value}")
        return self.get_transfer(transfer_id)

    def reject_transfer(self, transfer_id: int, comment: str) -> Transfer:
        transfer = self.get_transfer(transfer_id)
        self._require_pending(transfer)

        transfer.status = TransferStatus.REJECTED.value
        transfer.approved_by = self.current_user.id
        transfer.approval_date = date.today()
        transfer.notes = self._append_note(transfer.notes, f"REJECTED: {comment}")
        log_user_action(
            db=self.db, user=self.current_user, action="REJECT_TRANSFER",
            table="transfers", key=transfer.transfer_no,
            new_values={"status": transfer.status, "comment": comment},
            module="TRANSFER"
        )
        self.db.commit()
        logger.info(f"Transfer {transfer.transfer_no} rejected")
        return self.get_transfer(transfer_id)

    @staticmethod
    def _require_pending(transfer: Transfer) -> None:
        if transfer.status != TransferStatus.PENDING_APPROVAL.value:
            raise InvalidStatusError(
                f"Transfer is {transfer.status}, only pending transfers can be reviewed",
                details={"current_status": transfer.status}
            )

    @staticmethod
    def _append_note(notes: Optional[str], entry: str) -> str:
        return f"{notes}\n{entry}" if notes else entry
