"""Approval API endpoints"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, List, Optional

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.models.auth import User
from foodstock.models.enums import ApprovalStatus, ApprovalEntityType
from foodstock.schemas.period import ApprovalResponse, ApprovalReview, ApprovalResult, CloseSummary
from foodstock.services.periods.approvals import ApprovalService

router = APIRouter(prefix="/approvals", tags=["approvals"])


@router.get("", response_model=List[ApprovalResponse])
async def list_approvals(
    approval_status: Optional[ApprovalStatus] = Query(None, alias="status", description="Filter by status"),
    entity_type: Optional[ApprovalEntityType] = Query(None, description="Filter by request type"),
    pagination: dict = Depends(deps.get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_supervisor)
) -> Any:
    return ApprovalService(db).list_approvals(approval_status, entity_type, **pagination)


@router.get("/{approval_id}", response_model=ApprovalResponse)
async def get_approval(
    approval_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_supervisor)
) -> Any:
    return ApprovalService(db).get_approval(approval_id)


@router.patch("/{approval_id}/approve", response_model=ApprovalResult)
async def approve_request(
    approval_id: int,
    review: Optional[ApprovalReview] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    """
    Approve a pending request.

    For a period close this snapshots every location and closes the period.
    """
    approval, summary = ApprovalService(db, current_user).approve(
        approval_id, review.comments if review else None
    )
    return ApprovalResult(
        approval=ApprovalResponse.model_validate(approval),
        summary=CloseSummary(**summary),
    )


@router.patch("/{approval_id}/reject", response_model=ApprovalResult)
async def reject_request(
    approval_id: int,
    review: Optional[ApprovalReview] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    approval = ApprovalService(db, current_user).reject(approval_id, review.comments if review else None)
    return ApprovalResult(approval=ApprovalResponse.model_validate(approval))
