"""
Reconciliation API endpoints
Period reconciliations and persons-on-board entries per location
"""
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.models.auth import User
from foodstock.schemas.reconciliation import (
    ReconciliationResponse, ReconciliationUpdate, ConsolidatedReconciliationResponse,
    POBUpsert, POBResponse
)
from foodstock.services.reconciliation_service import ReconciliationService

router = APIRouter(prefix="/locations/{location_id}", tags=["reconciliations"])
consolidated_router = APIRouter(prefix="/reconciliations", tags=["reconciliations"])


@consolidated_router.get("/consolidated", response_model=ConsolidatedReconciliationResponse)
async def get_consolidated_reconciliation(
    period_id: int = Query(..., description="Period to reconcile"),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_supervisor)
) -> Any:
    """
    Every active location's reconciliation for a period, with grand
    totals and the average manday cost across locations.
    """
    return ReconciliationService(db).consolidated(period_id)


@router.get("/reconciliations/{period_id}", response_model=ReconciliationResponse)
async def get_reconciliation(
    location_id: int,
    period_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_view)
) -> Any:
    """
    Saved reconciliation, or one calculated from the period's postings.

    Includes consumption and manday cost.
    """
    return ReconciliationService(db).get_reconciliation(period_id, location_id)


@router.patch("/reconciliations/{period_id}", response_model=ReconciliationResponse)
async def update_reconciliation(
    location_id: int,
    period_id: int,
    update_in: ReconciliationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_supervisor)
) -> Any:
    return ReconciliationService(db, current_user).update_adjustments(
        period_id, location_id, update_in.model_dump(exclude_unset=True)
    )


@router.get("/pob", response_model=List[POBResponse])
async def list_pob(
    location_id: int,
    period_id: Optional[int] = Query(None, description="Defaults to the open period"),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_view)
) -> Any:
    return ReconciliationService(db).list_pob(location_id, period_id)


@router.post("/pob", response_model=List[POBResponse])
async def upsert_pob(
    location_id: int,
    pob_in: POBUpsert,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_post)
) -> Any:
    """Insert or replace daily crew and extra counts"""
    return ReconciliationService(db, current_user).upsert_pob(
        location_id, [entry.model_dump() for entry in pob_in.entries], pob_in.period_id
    )
