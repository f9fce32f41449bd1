from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from rentalhub.core import property_status
from rentalhub.db.database import get_db
from rentalhub.models.property import PROPERTY_STATUSES, Property
from rentalhub.models.rental import STATUS_ACTIVE, Rental
from rentalhub.utils.settings_loader import format_currency

router = APIRouter()


def _check_status(v):
    if v is not None and v not in PROPERTY_STATUSES:
        raise ValueError(f"Invalid status. Accepted values: {', '.join(PROPERTY_STATUSES)}")
    return v


def _non_negative(v):
    if v is not None and v < 0:
        raise ValueError("Amounts and areas must be positive.")
    return v


class PropertyCreate(BaseModel):
    property_name: str
    address: str | None = None
    details: str | None = None
    estimated_monthly: Decimal | None = None
    lot_area: Decimal | None = None
    floor_area: Decimal | None = None
    status: str = "Available"
    is_featured: bool = False

    @field_validator("status")
    @classmethod
    def valid_status(cls, v):
        return _check_status(v)

    @field_validator("estimated_monthly", "lot_area", "floor_area")
    @classmethod
    def positive_values(cls, v):
        return _non_negative(v)


class PropertyUpdate(BaseModel):
    property_name: str | None = None
    address: str | None = None
    details: str | None = None
    estimated_monthly: Decimal | None = None
    lot_area: Decimal | None = None
    floor_area: Decimal | None = None
    status: str | None = None
    is_featured: bool | None = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v):
        return _check_status(v)

    @field_validator("estimated_monthly", "lot_area", "floor_area")
    @classmethod
    def positive_values(cls, v):
        return _non_negative(v)


class EstimatedMonthlyUpdate(BaseModel):
    estimated_monthly: Decimal

    @field_validator("estimated_monthly")
    @classmethod
    def positive(cls, v):
        return _non_negative(v)


class PropertyResponse(BaseModel):
    id: int
    property_name: str
    address: str | None
    details: str | None
    estimated_monthly: float | None
    lot_area: float | None
    floor_area: float | None
    status: str
    is_featured: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


@router.get("/", response_model=list[PropertyResponse])
def list_properties(status: str | None = None, db: Session = Depends(get_db)):
    stmt = select(Property).order_by(Property.property_name)
    if status:
        stmt = stmt.where(Property.status == status)
    return db.scalars(stmt).all()


@router.post("/", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED)
def create_property(data: PropertyCreate, db: Session = Depends(get_db)):
    return property_status.create_property(db, **data.model_dump())


@router.get("/{property_id}", response_model=PropertyResponse)
def get_property(property_id: int, db: Session = Depends(get_db)):
    return property_status.get_property_or_raise(db, property_id)


@router.put("/{property_id}", response_model=PropertyResponse)
def update_property(property_id: int, data: PropertyUpdate, db: Session = Depends(get_db)):
    return property_status.update_property(db, property_id, data.model_dump(exclude_none=True))


@router.put("/{property_id}/estimated-monthly", response_model=PropertyResponse)
def update_estimated_monthly(
    property_id: int, data: EstimatedMonthlyUpdate, db: Session = Depends(get_db)
):
    return property_status.update_estimated_monthly(db, property_id, data.estimated_monthly)


@router.delete("/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_property(property_id: int, db: Session = Depends(get_db)):
    property_status.delete_property(db, property_id)


@router.post("/{property_id}/sync-status", response_model=PropertyResponse)
def sync_status(property_id: int, db: Session = Depends(get_db)):
    property_status.sync_property_status(db, property_id)
    return property_status.get_property_or_raise(db, property_id)


@router.get("/{property_id}/rate")
def get_property_rate(property_id: int, db: Session = Depends(get_db)):
    prop = property_status.get_property_or_raise(db, property_id)
    rate = prop.estimated_monthly
    return {
        "estimated_monthly": float(rate) if rate is not None else None,
        "formatted_rate": format_currency(rate) if rate is not None else None,
    }


@router.get("/{property_id}/rentals")
def rental_history(property_id: int, db: Session = Depends(get_db)):
    property_status.get_property_or_raise(db, property_id)
    rentals = db.scalars(
        select(Rental).where(Rental.property_id == property_id).order_by(Rental.created_at.desc())
    ).all()
    return [
        {
            "id": r.id,
            "client_id": r.client_id,
            "status": r.status,
            "start_date": r.start_date,
            "end_date": r.end_date,
            "monthly_rent": float(r.monthly_rent),
            "is_current": r.status == STATUS_ACTIVE,
        }
        for r in rentals
    ]
