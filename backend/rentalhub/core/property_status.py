"""
Property availability derived from rental activity.

A property is "Rented" exactly when an active rental references it. When the
last active rental goes away a "Rented" property falls back to "Available";
manual states (Renovation, Sold, Under Maintenance) are left untouched.
"""
import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from rentalhub.core.errors import NotFound, ValidationConflict
from rentalhub.models.property import (
    PROPERTY_STATUSES,
    STATUS_AVAILABLE,
    STATUS_RENTED,
    Property,
)
from rentalhub.models.rental import STATUS_ACTIVE, Rental

logger = logging.getLogger(__name__)

DELETE_BLOCKED = (
    "Cannot delete property with active rental contracts. Please terminate the rental first."
)
RATE_LOCKED = "Cannot change estimated monthly rate while property has active rental contracts."


def get_property_or_raise(db: Session, property_id: int) -> Property:
    prop = db.get(Property, property_id)
    if prop is None:
        raise NotFound("Property", property_id)
    return prop


def has_active_rental(db: Session, property_id: int) -> bool:
    stmt = (
        select(Rental.id)
        .where(Rental.property_id == property_id, Rental.status == STATUS_ACTIVE)
        .limit(1)
    )
    return db.execute(stmt).first() is not None


def appropriate_status(db: Session, prop: Property) -> str:
    if has_active_rental(db, prop.id):
        return STATUS_RENTED
    if prop.status == STATUS_RENTED:
        return STATUS_AVAILABLE
    return prop.status


def apply_status(db: Session, prop: Property) -> bool:
    """Write the derived status only when it differs. Caller commits."""
    target = appropriate_status(db, prop)
    if prop.status == target:
        return False
    logger.info("Property %s status %s -> %s", prop.id, prop.status, target)
    prop.status = target
    return True


def sync_property_status(db: Session, property_id: int) -> bool:
    prop = get_property_or_raise(db, property_id)
    changed = apply_status(db, prop)
    if changed:
        db.commit()
    return changed


def sync_all_property_statuses(db: Session) -> int:
    updated = 0
    for prop in db.scalars(select(Property).order_by(Property.id)):
        if apply_status(db, prop):
            updated += 1
    if updated:
        db.commit()
    logger.info("Property status sync finished: %s updated", updated)
    return updated


def _check_status_value(status: str) -> None:
    if status not in PROPERTY_STATUSES:
        raise ValidationConflict(
            f"Invalid property status '{status}'. Allowed: {', '.join(PROPERTY_STATUSES)}."
        )


def create_property(db: Session, **fields) -> Property:
    status = fields.get("status") or STATUS_AVAILABLE
    _check_status_value(status)
    # A fresh property has no rentals, so it cannot start out as Rented
    if status == STATUS_RENTED:
        status = STATUS_AVAILABLE
    prop = Property(**{**fields, "status": status})
    db.add(prop)
    db.commit()
    db.refresh(prop)
    return prop


def update_estimated_monthly(db: Session, property_id: int, amount) -> Property:
    prop = get_property_or_raise(db, property_id)
    _set_estimated_monthly(db, prop, amount)
    db.commit()
    db.refresh(prop)
    return prop


def _set_estimated_monthly(db: Session, prop: Property, amount) -> None:
    new_amount = None if amount is None else Decimal(str(amount))
    current = prop.estimated_monthly
    if new_amount == (None if current is None else Decimal(str(current))):
        return
    if has_active_rental(db, prop.id):
        raise ValidationConflict(RATE_LOCKED)
    prop.estimated_monthly = new_amount


def update_property(db: Session, property_id: int, fields: dict) -> Property:
    prop = get_property_or_raise(db, property_id)
    fields = dict(fields)

    if "estimated_monthly" in fields:
        _set_estimated_monthly(db, prop, fields.pop("estimated_monthly"))
    if "status" in fields:
        _check_status_value(fields["status"])

    for field, value in fields.items():
        setattr(prop, field, value)

    # A manual status is still overridden by an active rental
    db.flush()
    apply_status(db, prop)
    db.commit()
    db.refresh(prop)
    return prop


def delete_property(db: Session, property_id: int) -> None:
    prop = get_property_or_raise(db, property_id)
    if has_active_rental(db, prop.id):
        raise ValidationConflict(DELETE_BLOCKED)
    db.delete(prop)
    db.commit()
    logger.info("Property %s deleted", property_id)
