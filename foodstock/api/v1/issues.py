"""Issue API endpoints"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Any, List, Optional

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.models.auth import User
from foodstock.models.enums import CostCentre
from foodstock.schemas.transactions import IssueCreate, IssueResponse, IssueLineResponse
from foodstock.services.stock.issues import IssueService

router = APIRouter(prefix="/locations/{location_id}/issues", tags=["issues"])


def issue_response(issue, with_lines: bool = True) -> IssueResponse:
    lines = []
    if with_lines:
        lines = [
            IssueLineResponse(
                id=line.id,
                item_id=line.item_id,
                item_code=line.item.code,
                item_name=line.item.name,
                unit=line.item.unit,
                quantity=line.quantity,
                wac_at_issue=line.wac_at_issue,
                line_value=line.line_value,
            )
            for line in issue.lines
        ]
    return IssueResponse(
        id=issue.id,
        issue_no=issue.issue_no,
        period_id=issue.period_id,
        location_id=issue.location_id,
        issue_date=issue.issue_date,
        cost_centre=issue.cost_centre,
        total_value=issue.total_value,
        status=issue.status,
        notes=issue.notes,
        posted_at=issue.posted_at,
        lines=lines,
    )


@router.post("", response_model=IssueResponse, status_code=status.HTTP_201_CREATED)
async def create_issue(
    location_id: int,
    issue_in: IssueCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_post)
) -> Any:
    """
    Issue stock at the current WAC.

    Every line is checked first; a shortfall on any line rejects the
    whole issue.
    """
    issue = IssueService(db, current_user).create_issue(location_id, issue_in.model_dump())
    return issue_response(issue)


@router.get("", response_model=List[IssueResponse])
async def list_issues(
    location_id: int,
    period_id: Optional[int] = Query(None, description="Filter by period"),
    cost_centre: Optional[CostCentre] = Query(None, description="Filter by cost centre"),
    pagination: dict = Depends(deps.get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_view)
) -> Any:
    issues = IssueService(db).list_issues(location_id, period_id, cost_centre, **pagination)
    return [issue_response(issue, with_lines=False) for issue in issues]


@router.get("/{issue_id}", response_model=IssueResponse)
async def get_issue(
    location_id: int,
    issue_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_view)
) -> Any:
    return issue_response(IssueService(db).get_issue(issue_id, location_id))
