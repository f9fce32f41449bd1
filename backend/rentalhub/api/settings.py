from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from rentalhub.core.site_settings import get_site_settings, update_site_settings
from rentalhub.db.database import get_db

router = APIRouter()


class SiteSettingsUpdate(BaseModel):
    site_name: str | None = None
    site_description: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    address: str | None = None
    maintenance_mode: bool | None = None


@router.get("/")
def read_settings(db: Session = Depends(get_db)):
    return get_site_settings(db)


@router.put("/")
def write_settings(data: SiteSettingsUpdate, db: Session = Depends(get_db)):
    return update_site_settings(db, data.model_dump(exclude_none=True))
