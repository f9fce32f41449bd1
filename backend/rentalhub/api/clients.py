from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentalhub.db.database import get_db
from rentalhub.models.client import Client
from rentalhub.models.rental import STATUS_ACTIVE, Rental

router = APIRouter()


class ClientCreate(BaseModel):
    name: str
    email: str
    phone: str | None = None
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def valid_email(cls, v):
        if "@" not in v:
            raise ValueError("Please enter a valid e-mail address.")
        return v.lower()


class ClientUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    is_active: bool | None = None


class ClientResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: str | None
    is_active: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


def _get_client_or_404(client_id: int, db: Session) -> Client:
    client = db.get(Client, client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found.")
    return client


def _commit_unique(db: Session):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="A client with this e-mail already exists.")


@router.get("/", response_model=list[ClientResponse])
def list_clients(search: str | None = None, db: Session = Depends(get_db)):
    stmt = select(Client).order_by(Client.name)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(Client.name.like(pattern) | Client.email.like(pattern))
    return db.scalars(stmt).all()


@router.post("/", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
def create_client(data: ClientCreate, db: Session = Depends(get_db)):
    client = Client(**data.model_dump())
    db.add(client)
    _commit_unique(db)
    db.refresh(client)
    return client


@router.get("/{client_id}", response_model=ClientResponse)
def get_client(client_id: int, db: Session = Depends(get_db)):
    return _get_client_or_404(client_id, db)


@router.put("/{client_id}", response_model=ClientResponse)
def update_client(client_id: int, data: ClientUpdate, db: Session = Depends(get_db)):
    client = _get_client_or_404(client_id, db)
    for field, value in data.model_dump(exclude_none=True).items():
        setattr(client, field, value)
    _commit_unique(db)
    db.refresh(client)
    return client


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client(client_id: int, db: Session = Depends(get_db)):
    client = _get_client_or_404(client_id, db)
    if client.rentals:
        active = any(r.status == STATUS_ACTIVE for r in client.rentals)
        detail = (
            "Cannot delete client with active rental contracts."
            if active
            else "Cannot delete client with rental history."
        )
        raise HTTPException(status_code=409, detail=detail)
    db.delete(client)
    db.commit()


@router.get("/{client_id}/rentals")
def client_rentals(client_id: int, db: Session = Depends(get_db)):
    _get_client_or_404(client_id, db)
    rentals = db.scalars(
        select(Rental).where(Rental.client_id == client_id).order_by(Rental.start_date.desc())
    ).all()
    return [
        {
            "id": r.id,
            "property_id": r.property_id,
            "status": r.status,
            "start_date": r.start_date,
            "end_date": r.end_date,
            "monthly_rent": float(r.monthly_rent),
        }
        for r in rentals
    ]
