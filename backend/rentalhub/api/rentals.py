from datetime import date, datetime, timedelta
from decimal import Decimal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from rentalhub.core import rental_lifecycle
from rentalhub.core.property_status import sync_all_property_statuses
from rentalhub.db.database import get_db
from rentalhub.models.rental import RENTAL_STATUSES, STATUS_ACTIVE, STATUS_EXPIRED, Rental

router = APIRouter()

NULLABLE_FIELDS = {"end_date", "security_deposit", "terms_conditions", "contract_signed_at"}


def _check_status(v):
    if v is not None and v not in RENTAL_STATUSES:
        raise ValueError(f"Invalid status. Accepted values: {', '.join(RENTAL_STATUSES)}")
    return v


def _non_negative(v):
    if v is not None and v < 0:
        raise ValueError("Amounts cannot be negative.")
    return v


class RentalCreate(BaseModel):
    client_id: int
    property_id: int
    start_date: date
    end_date: date | None = None
    # Defaults to the property's estimated monthly rate
    monthly_rent: Decimal | None = None
    security_deposit: Decimal | None = None
    status: str = STATUS_ACTIVE
    terms_conditions: str | None = None
    notes: str | None = None
    contract_signed_at: datetime | None = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v):
        return _check_status(v)

    @field_validator("monthly_rent", "security_deposit")
    @classmethod
    def positive_amounts(cls, v):
        return _non_negative(v)


class RentalUpdate(BaseModel):
    client_id: int | None = None
    property_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    monthly_rent: Decimal | None = None
    security_deposit: Decimal | None = None
    status: str | None = None
    terms_conditions: str | None = None
    contract_signed_at: datetime | None = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v):
        return _check_status(v)

    @field_validator("monthly_rent", "security_deposit")
    @classmethod
    def positive_amounts(cls, v):
        return _non_negative(v)


class ReasonBody(BaseModel):
    reason: str | None = None

    @field_validator("reason")
    @classmethod
    def max_length(cls, v):
        if v is not None and len(v) > 500:
            raise ValueError("The reason may not be longer than 500 characters.")
        return v


class RenewBody(BaseModel):
    end_date: date
    remarks: str | None = None


class RateCheckBody(BaseModel):
    property_id: int
    monthly_rent: Decimal


class RentalResponse(BaseModel):
    id: int
    client_id: int
    property_id: int
    monthly_rent: float
    security_deposit: float | None
    start_date: date
    end_date: date | None
    status: str
    remarks: str | None
    notes: str | None
    terms_conditions: str | None
    contract_signed_at: datetime | None
    remaining_days: int | None

    model_config = {"from_attributes": True}


def _to_response(rental: Rental) -> RentalResponse:
    # The stored remarks is a write-time snapshot; readers get today's value
    response = RentalResponse.model_validate(rental)
    response.remarks = rental_lifecycle.compute_remarks(rental.end_date)
    return response


@router.get("/", response_model=list[RentalResponse])
def list_rentals(
    status: str | None = None,
    property_id: int | None = None,
    client_id: int | None = None,
    expiring_within_days: int | None = None,
    db: Session = Depends(get_db),
):
    stmt = select(Rental)
    if status == STATUS_EXPIRED:
        # Active rentals past their end date count as expired too
        stmt = stmt.where(
            (Rental.status == STATUS_EXPIRED)
            | ((Rental.status == STATUS_ACTIVE) & (Rental.end_date < date.today()))
        )
    elif status:
        stmt = stmt.where(Rental.status == status)
    if property_id:
        stmt = stmt.where(Rental.property_id == property_id)
    if client_id:
        stmt = stmt.where(Rental.client_id == client_id)
    if expiring_within_days is not None:
        today = date.today()
        cutoff = today + timedelta(days=expiring_within_days)
        stmt = stmt.where(
            Rental.status == STATUS_ACTIVE,
            Rental.end_date.is_not(None),
            Rental.end_date >= today,
            Rental.end_date <= cutoff,
        )
    rentals = db.scalars(stmt.order_by(Rental.start_date.desc(), Rental.id.desc())).all()
    return [_to_response(r) for r in rentals]


@router.post("/", response_model=RentalResponse, status_code=status.HTTP_201_CREATED)
def create_rental(data: RentalCreate, db: Session = Depends(get_db)):
    return _to_response(rental_lifecycle.create_rental(db, **data.model_dump()))


@router.get("/statistics")
def statistics(db: Session = Depends(get_db)):
    stats = rental_lifecycle.rental_statistics(db)
    stats["total_monthly_revenue"] = float(stats["total_monthly_revenue"])
    stats["average_rent"] = float(stats["average_rent"])
    return stats


@router.post("/validate")
def validate_rental(data: RateCheckBody, db: Session = Depends(get_db)):
    check = rental_lifecycle.validate_rental_rate(db, data.property_id, data.monthly_rent)
    return {
        "valid": check.valid,
        "message": check.message,
        "expected_rate": float(check.expected_rate) if check.expected_rate is not None else None,
        "provided_rate": float(check.provided_rate) if check.provided_rate is not None else None,
    }


@router.post("/sync-property-statuses")
def sync_property_statuses(db: Session = Depends(get_db)):
    updated = sync_all_property_statuses(db)
    return {
        "message": f"Successfully synced property statuses. {updated} properties updated.",
        "updated_count": updated,
    }


@router.get("/{rental_id}", response_model=RentalResponse)
def get_rental(rental_id: int, db: Session = Depends(get_db)):
    return _to_response(rental_lifecycle.get_rental_or_raise(db, rental_id))


@router.put("/{rental_id}", response_model=RentalResponse)
def update_rental(rental_id: int, data: RentalUpdate, db: Session = Depends(get_db)):
    fields = {
        k: v
        for k, v in data.model_dump(exclude_unset=True).items()
        if v is not None or k in NULLABLE_FIELDS
    }
    return _to_response(rental_lifecycle.update_rental(db, rental_id, fields))


@router.delete("/{rental_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rental(rental_id: int, db: Session = Depends(get_db)):
    rental_lifecycle.delete_rental(db, rental_id)


@router.post("/{rental_id}/activate", response_model=RentalResponse)
def activate(rental_id: int, db: Session = Depends(get_db)):
    return _to_response(rental_lifecycle.activate(db, rental_id))


@router.post("/{rental_id}/terminate", response_model=RentalResponse)
def terminate(rental_id: int, body: ReasonBody | None = None, db: Session = Depends(get_db)):
    reason = body.reason if body else None
    return _to_response(rental_lifecycle.terminate(db, rental_id, reason))


@router.post("/{rental_id}/expire", response_model=RentalResponse)
def mark_expired(rental_id: int, db: Session = Depends(get_db)):
    return _to_response(rental_lifecycle.mark_expired(db, rental_id))


@router.post("/{rental_id}/end", response_model=RentalResponse)
def end_rental(rental_id: int, body: ReasonBody | None = None, db: Session = Depends(get_db)):
    reason = body.reason if body else None
    return _to_response(rental_lifecycle.end_rental(db, rental_id, reason))


@router.post("/{rental_id}/renew", response_model=RentalResponse)
def renew(rental_id: int, body: RenewBody, db: Session = Depends(get_db)):
    return _to_response(rental_lifecycle.renew(db, rental_id, body.end_date, body.remarks))
