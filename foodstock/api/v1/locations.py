"""
Location API endpoints
Location master data, user access, stock, counts and dashboard
"""
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.models.auth import User
from foodstock.schemas.auth import UserLocationAssign, UserLocationResponse
from foodstock.schemas.common import SuccessResponse
from foodstock.schemas.inventory import (
    LocationCreate, LocationUpdate, LocationResponse, LocationStockResponse,
    StockCountCreate, StockCountResponse, DashboardResponse
)
from foodstock.services.auth_service import AuthService
from foodstock.services.dashboard_service import DashboardService
from foodstock.services.master_data import LocationService
from foodstock.services.stock.stock_levels import StockLevelService

router = APIRouter(prefix="/locations", tags=["locations"])


@router.get("", response_model=List[LocationResponse])
async def list_locations(
    search: Optional[str] = Query(None, description="Code or name search"),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    """
    List the active locations the user can reach.
    """
    location_ids = AuthService(db).accessible_location_ids(current_user)
    locations = LocationService(db).list_for_ids(location_ids)
    if search:
        term = search.lower()
        locations = [l for l in locations if term in l.code.lower() or term in l.name.lower()]
    return locations


@router.post("", response_model=LocationResponse, status_code=status.HTTP_201_CREATED)
async def create_location(
    location_in: LocationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    return LocationService(db, current_user).create(location_in.model_dump(mode="json"))


@router.get("/{location_id}", response_model=LocationResponse)
async def get_location(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_view)
) -> Any:
    return LocationService(db).get(location_id)


@router.patch("/{location_id}", response_model=LocationResponse)
async def update_location(
    location_id: int,
    location_in: LocationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    return LocationService(db, current_user).update(
        location_id, location_in.model_dump(mode="json", exclude_unset=True)
    )


@router.delete("/{location_id}", response_model=SuccessResponse)
async def deactivate_location(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    location = LocationService(db, current_user).deactivate(location_id)
    return SuccessResponse(message=f"Location {location.code} deactivated")


# User access

@router.get("/{location_id}/users", response_model=List[UserLocationResponse])
async def list_location_users(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    LocationService(db).get(location_id)
    return [
        UserLocationResponse(
            user_id=access.user_id,
            location_id=access.location_id,
            access_level=access.access_level,
            assigned_at=access.assigned_at,
            username=access.user.username,
        )
        for access in AuthService(db).list_location_users(location_id)
    ]


@router.post("/{location_id}/users", response_model=UserLocationResponse, status_code=status.HTTP_201_CREATED)
async def assign_location_user(
    location_id: int,
    assignment_in: UserLocationAssign,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    """
    Grant a user access to the location, or change their access level.
    """
    access = AuthService(db, current_user).assign_location(
        location_id, assignment_in.user_id, assignment_in.access_level
    )
    return UserLocationResponse(
        user_id=access.user_id,
        location_id=access.location_id,
        access_level=access.access_level,
        assigned_at=access.assigned_at,
        username=access.user.username,
    )


@router.delete("/{location_id}/users/{user_id}", response_model=SuccessResponse)
async def revoke_location_user(
    location_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    AuthService(db, current_user).revoke_location(location_id, user_id)
    return SuccessResponse(message="Location access revoked")


# Stock

def _stock_response(row) -> LocationStockResponse:
    return LocationStockResponse(
        location_id=row.location_id,
        item_id=row.item_id,
        item_code=row.item.code,
        item_name=row.item.name,
        unit=row.item.unit,
        on_hand=row.on_hand,
        wac=row.wac,
        stock_value=row.stock_value,
        min_stock=row.min_stock,
        max_stock=row.max_stock,
        last_counted=row.last_counted,
    )


@router.get("/{location_id}/stock", response_model=List[LocationStockResponse])
async def get_location_stock(
    location_id: int,
    search: Optional[str] = Query(None, description="Item code or name search"),
    low_stock_only: bool = Query(False, description="Only items below minimum stock"),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_view)
) -> Any:
    """
    Stock on hand at a location with WAC and value.
    """
    LocationService(db).get(location_id)
    rows = StockLevelService(db).get_location_stock(location_id, search, low_stock_only)
    return [_stock_response(row) for row in rows]


@router.post("/{location_id}/stock-counts", response_model=StockCountResponse)
async def record_stock_count(
    location_id: int,
    count_in: StockCountCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_post)
) -> Any:
    """
    Record a physical count and report the variance.

    Stored stock is not adjusted.
    """
    result = StockLevelService(db, current_user).record_count(
        location_id, count_in.item_id, count_in.counted_quantity
    )
    return StockCountResponse(location_id=location_id, item_id=count_in.item_id, **vars(result))


@router.get("/{location_id}/dashboard", response_model=DashboardResponse)
async def get_location_dashboard(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_view)
) -> Any:
    return DashboardService(db, current_user).location_dashboard(location_id)
