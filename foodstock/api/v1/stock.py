"""Consolidated stock across locations"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Any, List

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.models.auth import User
from foodstock.schemas.inventory import ConsolidatedStockResponse
from foodstock.services.stock.stock_levels import StockLevelService

router = APIRouter(prefix="/stock", tags=["stock"])


@router.get("/consolidated", response_model=List[ConsolidatedStockResponse])
async def get_consolidated_stock(
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_supervisor)
) -> Any:
    """
    Total on hand and value per item across all active locations.
    """
    return StockLevelService(db).consolidated_stock()
