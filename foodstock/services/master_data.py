"""
Master Data Services
Locations, items and suppliers
"""
from typing import Any, Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session

from foodstock.models import Location, Item, Supplier, User
from foodstock.core.security import log_user_action
from foodstock.core.exceptions import ConflictError, NotFoundError
from foodstock.core.logging import get_logger

logger = get_logger("business")


class _MasterDataService:
    """Shared create/update/deactivate for code-keyed master records"""

    model = None
    label = ""
    not_found_code = "NOT_FOUND"

    def __init__(self, db: Session, current_user: Optional[User] = None):
        self.db = db
        self.current_user = current_user

    def get(self, record_id: int):
        record = self.db.query(self.model).filter(self.model.id == record_id).first()
        if not record:
            raise NotFoundError(f"{self.label} not found", code=self.not_found_code)
        return record

    def list(
        self,
        search: Optional[str] = None,
        is_active: Optional[bool] = True,
        skip: int = 0,
        limit: int = 100
    ) -> List[Any]:
        query = self.db.query(self.model)
        if is_active is not None:
            query = query.filter(self.model.is_active == is_active)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(self.model.code.ilike(pattern), self.model.name.ilike(pattern)))
        return query.order_by(self.model.code).offset(skip).limit(limit).all()

    def create(self, data: Dict[str, Any]):
        code = data["code"].strip().upper()
        if self.db.query(self.model).filter(self.model.code == code).first():
            raise ConflictError(
                f"{self.label} code {code} already exists",
                code=f"DUPLICATE_{self.label.upper()}_CODE"
            )
        record = self.model(**{**data, "code": code})
        self.db.add(record)
        self.db.flush()
        log_user_action(
            db=self.db, user=self.current_user, action="CREATE",
            table=self.model.__tablename__, key=code, new_values=data, module="MASTER"
        )
        self.db.commit()
        self.db.refresh(record)
        logger.info(f"{self.label} created: {code}")
        return record

    def update(self, record_id: int, data: Dict[str, Any]):
        record = self.get(record_id)
        for field_name, value in data.items():
            setattr(record, field_name, value)
        log_user_action(
            db=self.db, user=self.current_user, action="UPDATE",
            table=self.model.__tablename__, key=record.code, new_values=data, module="MASTER"
        )
        self.db.commit()
        self.db.refresh(record)
        return record

    def deactivate(self, record_id: int):
        """Soft delete; history keeps referring to the record"""
        record = self.get(record_id)
        record.is_active = False
        log_user_action(
            db=self.db, user=self.current_user, action="DEACTIVATE",
            table=self.model.__tablename__, key=record.code, module="MASTER"
        )
        self.db.commit()
        logger.info(f"{self.label} deactivated: {record.code}")
        return record


class LocationService(_MasterDataService):
    model = Location
    label = "Location"
    not_found_code = "LOCATION_NOT_FOUND"

    def list_for_ids(self, location_ids: Optional[List[int]]) -> List[Location]:
        """Active locations, restricted to the given ids unless None"""
        query = self.db.query(Location).filter(Location.is_active.is_(True))
        if location_ids is not None:
            query = query.filter(Location.id.in_(location_ids))
        return query.order_by(Location.name).all()


class ItemService(_MasterDataService):
    model = Item
    label = "Item"
    not_found_code = "ITEM_NOT_FOUND"

    def get_active_items(self, item_ids: List[int]) -> Dict[int, Item]:
        """Map id -> item for the active items among item_ids"""
        items = self.db.query(Item).filter(Item.id.in_(item_ids), Item.is_active.is_(True)).all()
        return {item.id: item for item in items}


class SupplierService(_MasterDataService):
    model = Supplier
    label = "Supplier"
    not_found_code = "SUPPLIER_NOT_FOUND"
