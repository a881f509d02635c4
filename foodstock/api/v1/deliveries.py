"""Delivery API endpoints"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Any, List, Optional

from foodstock.api import deps
from foodstock.core.database import get_db
from foodstock.models.auth import User
from foodstock.models.enums import DocumentStatus
from foodstock.schemas.common import SuccessResponse
from foodstock.schemas.transactions import (
    DeliveryCreate, DeliveryResponse, DeliveryLineResponse, DeliverySummary
)
from foodstock.services.stock.deliveries import DeliveryService

router = APIRouter(prefix="/locations/{location_id}/deliveries", tags=["deliveries"])


def delivery_response(delivery) -> DeliveryResponse:
    return DeliveryResponse(
        id=delivery.id,
        delivery_no=delivery.delivery_no,
        period_id=delivery.period_id,
        location_id=delivery.location_id,
        supplier_id=delivery.supplier_id,
        supplier_name=delivery.supplier.name if delivery.supplier else None,
        invoice_no=delivery.invoice_no,
        delivery_note=delivery.delivery_note,
        delivery_date=delivery.delivery_date,
        total_amount=delivery.total_amount,
        has_variance=delivery.has_variance,
        status=delivery.status,
        posted_at=delivery.posted_at,
        lines=[
            DeliveryLineResponse(
                id=line.id,
                item_id=line.item_id,
                item_code=line.item.code,
                item_name=line.item.name,
                unit=line.item.unit,
                quantity=line.quantity,
                unit_price=line.unit_price,
                period_price=line.period_price,
                price_variance=line.price_variance,
                line_value=line.line_value,
                ncr_id=line.ncr_id,
            )
            for line in delivery.lines
        ],
    )


@router.post("", response_model=DeliveryResponse, status_code=status.HTTP_201_CREATED)
async def create_delivery(
    location_id: int,
    delivery_in: DeliveryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_post)
) -> Any:
    """
    Receive a delivery.

    Posted deliveries update stock and WAC immediately; any line priced
    differently from the period price raises a PRICE_VARIANCE NCR.
    """
    delivery = DeliveryService(db, current_user).create_delivery(location_id, delivery_in.model_dump())
    return delivery_response(delivery)


@router.get("", response_model=List[DeliverySummary])
async def list_deliveries(
    location_id: int,
    period_id: Optional[int] = Query(None, description="Filter by period"),
    delivery_status: Optional[DocumentStatus] = Query(None, alias="status", description="Filter by status"),
    supplier_id: Optional[int] = Query(None, description="Filter by supplier"),
    pagination: dict = Depends(deps.get_pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_view)
) -> Any:
    return DeliveryService(db).list_deliveries(
        location_id=location_id,
        period_id=period_id,
        status=delivery_status,
        supplier_id=supplier_id,
        **pagination
    )


@router.get("/{delivery_id}", response_model=DeliveryResponse)
async def get_delivery(
    location_id: int,
    delivery_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_view)
) -> Any:
    return delivery_response(DeliveryService(db).get_delivery(delivery_id, location_id))


@router.post("/{delivery_id}/post", response_model=DeliveryResponse)
async def post_delivery(
    location_id: int,
    delivery_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_post)
) -> Any:
    """Post a draft delivery"""
    delivery = DeliveryService(db, current_user).post_delivery(delivery_id, location_id)
    return delivery_response(delivery)


@router.delete("/{delivery_id}", response_model=SuccessResponse)
async def delete_draft_delivery(
    location_id: int,
    delivery_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_location_post)
) -> Any:
    DeliveryService(db, current_user).delete_draft(delivery_id, location_id)
    return SuccessResponse(message="Draft delivery deleted")
