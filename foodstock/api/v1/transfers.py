"""Stock Transfer API endpoints"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Any, List, Optional

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.core.exceptions import LocationAccessDeniedError
from foodstock.models.auth import User
from foodstock.models.enums import TransferStatus
from foodstock.schemas.transactions import (
    TransferCreate, TransferResponse, TransferLineResponse, TransferReview, TransferReject
)
from foodstock.services.auth_service import AuthService
from foodstock.services.stock.transfers import StockTransferService

router = APIRouter(prefix="/transfers", tags=["transfers"])


def transfer_response(transfer, with_lines: bool = True) -> TransferResponse:
    lines = []
    if with_lines:
        lines = [
            TransferLineResponse(
                id=line.id,
                item_id=line.item_id,
                item_code=line.item.code,
                item_name=line.item.name,
                unit=line.item.unit,
                quantity=line.quantity,
                wac_at_transfer=line.wac_at_transfer,
                line_value=line.line_value,
            )
            for line in transfer.lines
        ]
    return TransferResponse(
        id=transfer.id,
        transfer_no=transfer.transfer_no,
        from_location_id=transfer.from_location_id,
        to_location_id=transfer.to_location_id,
        from_location_name=transfer.from_location.name,
        to_location_name=transfer.to_location.name,
        status=transfer.status,
        request_date=transfer.request_date,
        approval_date=transfer.approval_date,
        transfer_date=transfer.transfer_date,
        total_value=transfer.total_value,
        notes=transfer.notes,
        lines=lines,
    )


@router.post("", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    transfer_in: TransferCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    """
    Request a transfer between locations.

    Needs POST access at the source; stock moves only on approval.
    """
    AuthService(db).check_location_access(current_user, transfer_in.from_location_id, require_post=True)
    transfer = StockTransferService(db, current_user).create_transfer(transfer_in.model_dump())
    return transfer_response(transfer)


@router.get("", response_model=List[TransferResponse])
async def list_transfers(
    transfer_status: Optional[TransferStatus] = Query(None, alias="status", description="Filter by status"),
    pagination: dict = Depends(deps.get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    location_ids = AuthService(db).accessible_location_ids(current_user)
    transfers = StockTransferService(db).list_transfers(location_ids, transfer_status, **pagination)
    return [transfer_response(t, with_lines=False) for t in transfers]


@router.get("/{transfer_id}", response_model=TransferResponse)
async def get_transfer(
    transfer_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    transfer = StockTransferService(db).get_transfer(transfer_id)
    location_ids = AuthService(db).accessible_location_ids(current_user)
    if location_ids is not None and not (
        transfer.from_location_id in location_ids or transfer.to_location_id in location_ids
    ):
        raise LocationAccessDeniedError("You do not have access to this transfer")
    return transfer_response(transfer)


@router.patch("/{transfer_id}/approve", response_model=TransferResponse)
async def approve_transfer(
    transfer_id: int,
    review: Optional[TransferReview] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_supervisor)
) -> Any:
    """
    Approve and complete a pending transfer.

    Source stock is re-checked; the destination receives at the source WAC.
    """
    transfer = StockTransferService(db, current_user).approve_transfer(
        transfer_id, review.comment if review else None
    )
    return transfer_response(transfer)


@router.patch("/{transfer_id}/reject", response_model=TransferResponse)
async def reject_transfer(
    transfer_id: int,
    review: TransferReject,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_supervisor)
) -> Any:
    transfer = StockTransferService(db, current_user).reject_transfer(transfer_id, review.comment)
    return transfer_response(transfer)
