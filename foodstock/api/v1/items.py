"""Item API endpoints"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Any, List, Optional

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.models.auth import User
from foodstock.schemas.common import SuccessResponse
from foodstock.schemas.inventory import ItemCreate, ItemUpdate, ItemResponse
from foodstock.services.master_data import ItemService

router = APIRouter(prefix="/items", tags=["items"])


@router.get("", response_model=List[ItemResponse])
async def list_items(
    search: Optional[str] = Query(None, description="Code or name search"),
    is_active: Optional[bool] = Query(True, description="Filter by active flag"),
    pagination: dict = Depends(deps.get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    return ItemService(db).list(search=search, is_active=is_active, **pagination)


@router.post("", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
async def create_item(
    item_in: ItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    return ItemService(db, current_user).create(item_in.model_dump(mode="json"))


@router.get("/{item_id}", response_model=ItemResponse)
async def get_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    return ItemService(db).get(item_id)


@router.patch("/{item_id}", response_model=ItemResponse)
async def update_item(
    item_id: int,
    item_in: ItemUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    return ItemService(db, current_user).update(item_id, item_in.model_dump(mode="json", exclude_unset=True))


@router.delete("/{item_id}", response_model=SuccessResponse)
async def deactivate_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    item = ItemService(db, current_user).deactivate(item_id)
    return SuccessResponse(message=f"Item {item.code} deactivated")
