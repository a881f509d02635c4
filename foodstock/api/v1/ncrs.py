"""Non-Conformance Report API endpoints"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Any, List, Optional

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.models.auth import User
from foodstock.models.enums import NCRStatus, NCRType
from foodstock.schemas.ncr import NCRCreate, NCRUpdate, NCRResponse, NCRSummaryResponse
from foodstock.services.auth_service import AuthService
from foodstock.services.ncr_service import NCRService

router = APIRouter(tags=["ncrs"])


@router.post(
    "/locations/{location_id}/ncrs",
    response_model=NCRResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_ncr(
    location_id: int,
    ncr_in: NCRCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_post)
) -> Any:
    """Raise a manual NCR at a location"""
    return NCRService(db, current_user).create_manual_ncr(location_id, ncr_in.model_dump())


@router.get("/locations/{location_id}/ncrs/summary", response_model=NCRSummaryResponse)
async def get_ncr_summary(
    location_id: int,
    period_id: int = Query(..., description="Period to summarise"),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_view)
) -> Any:
    """
    NCR totals for the period grouped as credited, losses, pending and open.
    """
    return NCRService(db).period_summary(period_id, location_id)


@router.get("/ncrs", response_model=List[NCRResponse])
async def list_ncrs(
    location_id: Optional[int] = Query(None, description="Filter by location"),
    ncr_status: Optional[NCRStatus] = Query(None, alias="status", description="Filter by status"),
    ncr_type: Optional[NCRType] = Query(None, alias="type", description="Filter by type"),
    pagination: dict = Depends(deps.get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    auth = AuthService(db)
    if location_id is not None:
        auth.check_location_access(current_user, location_id)
        location_ids = [location_id]
    else:
        location_ids = auth.accessible_location_ids(current_user)
    return NCRService(db).list_ncrs(location_ids, ncr_status, ncr_type, **pagination)


@router.get("/ncrs/{ncr_id}", response_model=NCRResponse)
async def get_ncr(
    ncr_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    ncr = NCRService(db).get_ncr(ncr_id)
    AuthService(db).check_location_access(current_user, ncr.location_id)
    return ncr


@router.patch("/ncrs/{ncr_id}", response_model=NCRResponse)
async def update_ncr(
    ncr_id: int,
    ncr_in: NCRUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    """
    Update status or resolution.

    Operators need POST access at the NCR's location.
    """
    service = NCRService(db, current_user)
    ncr = service.get_ncr(ncr_id)
    AuthService(db).check_location_access(current_user, ncr.location_id, require_post=True)
    return service.update_ncr(ncr_id, ncr_in.model_dump(exclude_unset=True))
