"""Supplier API endpoints"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Any, List, Optional

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.models.auth import User
from foodstock.schemas.common import SuccessResponse
from foodstock.schemas.inventory import SupplierCreate, SupplierUpdate, SupplierResponse
from foodstock.services.master_data import SupplierService

router = APIRouter(prefix="/suppliers", tags=["suppliers"])


@router.get("", response_model=List[SupplierResponse])
async def list_suppliers(
    search: Optional[str] = Query(None, description="Code or name search"),
    is_active: Optional[bool] = Query(True, description="Filter by active flag"),
    pagination: dict = Depends(deps.get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    return SupplierService(db).list(search=search, is_active=is_active, **pagination)


@router.post("", response_model=SupplierResponse, status_code=status.HTTP_201_CREATED)
async def create_supplier(
    supplier_in: SupplierCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    return SupplierService(db, current_user).create(supplier_in.model_dump(mode="json"))


@router.get("/{supplier_id}", response_model=SupplierResponse)
async def get_supplier(
    supplier_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
) -> Any:
    return SupplierService(db).get(supplier_id)


@router.patch("/{supplier_id}", response_model=SupplierResponse)
async def update_supplier(
    supplier_id: int,
    supplier_in: SupplierUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    return SupplierService(db, current_user).update(
        supplier_id, supplier_in.model_dump(mode="json", exclude_unset=True)
    )


@router.delete("/{supplier_id}", response_model=SuccessResponse)
async def deactivate_supplier(
    supplier_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
) -> Any:
    supplier = SupplierService(db, current_user).deactivate(supplier_id)
    return SuccessResponse(message=f"Supplier {supplier.code} deactivated")
