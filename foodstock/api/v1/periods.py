"""
Period API endpoints
Lifecycle, locked prices, location readiness, close and roll-forward
"""
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.core.exceptions import NotFoundError
from foodstock.models.auth import User
from foodstock.models.enums import PeriodStatus
from foodstock.schemas.common import SuccessResponse
from foodstock.schemas.period import (
    PeriodCreate, PeriodResponse, PeriodLocationResponse, PeriodSummary, ItemPricesUpdate,
    ItemPriceResponse, CopyPricesRequest, RollForwardRequest, ApprovalResponse, SnapshotResponse
)
from foodstock.services.periods.period_service import PeriodService

router = APIRouter(prefix="/periods", tags=["periods"])


def period_location_response(pl) -> PeriodLocationResponse:
    return PeriodLocationResponse(
        location_id=pl.location_id,
        location_name=pl.location.name if pl.location else None,
        status=pl.status,
        opening_value=pl.opening_value,
        closing_value=pl.closing_value,
        ready_at=pl.ready_at,
        closed_at=pl.closed_at,
    )


def period_response(period) -> PeriodResponse:
    return PeriodResponse(
        id=period.id,
        name=period.name,
        start_date=period.start_date,
        end_date=period.end_date,
        status=period.status,
        approved_at=period.approved_at,
        closed_at=period.closed_at,
        locations=[period_location_response(pl) for pl in period.period_locations],
    )


def price_response(price) -> ItemPriceResponse:
    return ItemPriceResponse(
        item_id=price.item_id,
        item_code=price.item.code,
        item_name=price.item.name,
        price=price.price,
        currency=price.currency,
    )


@router.get("", response_model=List[PeriodSummary])
async def list_periods(
    period_status: Optional[PeriodStatus] = Query(None, alias="status", description="Filter by status"),
    pagination: dict = Depends(deps.get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    return PeriodService(db).list_periods(period_status, **pagination)


@router.post("", response_model=PeriodResponse, status_code=status.HTTP_201_CREATED)
async def create_period(
    period_in: PeriodCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    """
    Create a period with every active location OPEN in it.
    """
    period = PeriodService(db, current_user).create_period(
        period_in.name, period_in.start_date, period_in.end_date, period_in.status
    )
    return period_response(period)


@router.get("/current", response_model=PeriodResponse)
async def get_current_period(
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    period = PeriodService(db).get_current_period()
    if not period:
        raise NotFoundError("No open period found", code="NO_OPEN_PERIOD")
    return period_response(PeriodService(db).get_period(period.id))


@router.get("/{period_id}", response_model=PeriodResponse)
async def get_period(
    period_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    return period_response(PeriodService(db).get_period(period_id))


@router.post("/{period_id}/open", response_model=PeriodResponse)
async def open_period(
    period_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    """Move a DRAFT period to OPEN"""
    return period_response(PeriodService(db, current_user).open_period(period_id))


# Prices

@router.get("/{period_id}/prices", response_model=List[ItemPriceResponse])
async def get_period_prices(
    period_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    return [price_response(p) for p in PeriodService(db).get_prices(period_id)]


@router.put("/{period_id}/prices", response_model=List[ItemPriceResponse])
async def set_period_prices(
    period_id: int,
    prices_in: ItemPricesUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    """
    Set locked prices for the period.

    Existing prices for the same items are replaced.
    """
    prices = PeriodService(db, current_user).set_prices(
        period_id, [entry.model_dump() for entry in prices_in.prices]
    )
    return [price_response(p) for p in prices]


@router.post("/{period_id}/prices/copy", response_model=SuccessResponse)
async def copy_period_prices(
    period_id: int,
    copy_in: CopyPricesRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    count = PeriodService(db, current_user).copy_prices(period_id, copy_in.source_period_id)
    return SuccessResponse(message=f"{count} prices copied", data={"count": count})


# Location readiness

@router.post("/{period_id}/locations/{location_id}/ready", response_model=PeriodLocationResponse)
async def mark_location_ready(
    period_id: int,
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_supervisor)
) -> Any:
    """
    Mark a location ready for close; its reconciliation must be saved.
    """
    pl = PeriodService(db, current_user).mark_location_ready(period_id, location_id)
    return period_location_response(pl)


@router.post("/{period_id}/locations/{location_id}/unready", response_model=PeriodLocationResponse)
async def mark_location_unready(
    period_id: int,
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_supervisor)
) -> Any:
    pl = PeriodService(db, current_user).mark_location_unready(period_id, location_id)
    return period_location_response(pl)


@router.get("/{period_id}/locations/{location_id}/snapshot", response_model=SnapshotResponse)
async def get_location_snapshot(
    period_id: int,
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_view)
) -> Any:
    """Closing snapshot taken when the period was closed"""
    pl = PeriodService(db).get_period_location(period_id, location_id)
    return SnapshotResponse(
        location_id=pl.location_id,
        status=pl.status,
        closing_value=pl.closing_value,
        snapshot=pl.snapshot_data,
    )


# Close and roll-forward

@router.post("/{period_id}/close", response_model=ApprovalResponse, status_code=status.HTTP_201_CREATED)
async def request_period_close(
    period_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    """
    Request the period close.

    All locations must be READY. The close itself happens when the
    returned approval is approved.
    """
    return PeriodService(db, current_user).request_close(period_id)


@router.post("/{period_id}/roll-forward", response_model=PeriodResponse, status_code=status.HTTP_201_CREATED)
async def roll_forward_period(
    period_id: int,
    roll_in: Optional[RollForwardRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    roll_in = roll_in or RollForwardRequest()
    period = PeriodService(db, current_user).roll_forward(
        period_id, name=roll_in.name, end_date=roll_in.end_date, copy_prices=roll_in.copy_prices
    )
    return period_response(period)
