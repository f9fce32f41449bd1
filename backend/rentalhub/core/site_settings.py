from sqlalchemy import select
from sqlalchemy.orm import Session

from rentalhub.models.site_setting import SiteSetting

DEFAULT_SITE_SETTINGS = {
    "site_name": "RentalHub",
    "site_description": "Your trusted property rental partner",
    "contact_email": "support@rentalhub.local",
    "contact_phone": None,
    "address": None,
    "maintenance_mode": False,
}

FIELDS = tuple(DEFAULT_SITE_SETTINGS)

# Process-local read cache; every write goes through update_site_settings
_cache: dict[str, dict] = {}


def clear_site_settings_cache() -> None:
    _cache.clear()


def get_site_settings(db: Session) -> dict:
    if "settings" in _cache:
        return _cache["settings"]

    row = db.scalars(select(SiteSetting).limit(1)).first()
    if row is None:
        result = dict(DEFAULT_SITE_SETTINGS)
    else:
        result = {field: getattr(row, field) for field in FIELDS}
    _cache["settings"] = result
    return result


def update_site_settings(db: Session, fields: dict) -> dict:
    row = db.scalars(select(SiteSetting).limit(1)).first()
    if row is None:
        row = SiteSetting(**{**DEFAULT_SITE_SETTINGS, **fields})
        db.add(row)
    else:
        for field, value in fields.items():
            setattr(row, field, value)
    db.commit()
    clear_site_settings_cache()
    return get_site_settings(db)
