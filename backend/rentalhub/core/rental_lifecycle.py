"""
Rental lifecycle state machine.

States: pending, active, expired, terminated, ended. Every public operation
runs the same ordered pipeline:

1. resolve the rental and its related client/property
2. run the invariant checks (rent matches the property rate, single active
   rental per property, date ordering)
3. persist, refreshing the remarks snapshot just before the write
4. recompute the status of every property the change touched

Terminated and ended rentals accept no further edits or renewals.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentalhub.core.errors import InvalidRentalDates, NotFound, ValidationConflict
from rentalhub.core.property_status import apply_status, get_property_or_raise
from rentalhub.models.client import Client
from rentalhub.models.property import Property
from rentalhub.models.rental import (
    RENTAL_STATUSES,
    STATUS_ACTIVE,
    STATUS_ENDED,
    STATUS_EXPIRED,
    STATUS_PENDING,
    STATUS_TERMINATED,
    Rental,
)
from rentalhub.utils.settings_loader import format_currency

logger = logging.getLogger(__name__)

RENT_TOLERANCE = Decimal("0.01")
DUPLICATE_ACTIVE = "This property already has an active rental contract."

UPDATABLE_FIELDS = {
    "client_id",
    "property_id",
    "start_date",
    "end_date",
    "status",
    "monthly_rent",
    "security_deposit",
    "terms_conditions",
    "contract_signed_at",
}


def compute_remarks(end_date: date | None, today: date | None = None) -> str:
    """Human label for how close a rental is to its end date."""
    if end_date is None:
        return "No end date set"

    days = (end_date - (today or date.today())).days
    if days > 5:
        return "Active"
    if days == 5:
        return "Almost Due Date"
    if days == 0:
        return "Due Date Today"
    if days < 0:
        overdue = abs(days)
        return f"Over Due ({overdue} day{'s' if overdue > 1 else ''})"
    return "Due Soon"


def _append_note(rental: Rental, note: str) -> None:
    rental.notes = f"{rental.notes}\n\n{note}" if rental.notes else note


def get_rental_or_raise(db: Session, rental_id: int) -> Rental:
    rental = db.get(Rental, rental_id)
    if rental is None:
        raise NotFound("Rental", rental_id)
    return rental


def _get_client_or_raise(db: Session, client_id: int) -> Client:
    client = db.get(Client, client_id)
    if client is None:
        raise NotFound("Client", client_id)
    return client


# ---------------------------------------------------------------------------
# Invariant checks
# ---------------------------------------------------------------------------

def check_rent_matches(rental: Rental, prop: Property | None) -> None:
    # A zero rate means the property has no rate set yet
    if prop is None or not prop.estimated_monthly or rental.monthly_rent is None:
        return
    rent = Decimal(str(rental.monthly_rent))
    expected = Decimal(str(prop.estimated_monthly))
    if abs(rent - expected) > RENT_TOLERANCE:
        raise ValidationConflict(
            f"Monthly rent ({format_currency(rent)}) must match the property's "
            f"estimated monthly rate ({format_currency(expected)})."
        )


def check_single_active(db: Session, rental: Rental) -> None:
    if rental.status != STATUS_ACTIVE:
        return
    stmt = select(Rental.id).where(
        Rental.property_id == rental.property_id,
        Rental.status == STATUS_ACTIVE,
    )
    if rental.id is not None:
        stmt = stmt.where(Rental.id != rental.id)
    if db.execute(stmt.limit(1)).first() is not None:
        raise ValidationConflict(DUPLICATE_ACTIVE)


def check_dates(rental: Rental) -> None:
    if rental.start_date is None:
        raise InvalidRentalDates("Start date is required.")
    if rental.end_date is not None and rental.end_date <= rental.start_date:
        raise InvalidRentalDates("The end date must be after the start date.")


def _check_status_value(status: str) -> None:
    if status not in RENTAL_STATUSES:
        raise ValidationConflict(
            f"Invalid rental status '{status}'. Allowed: {', '.join(RENTAL_STATUSES)}."
        )


# ---------------------------------------------------------------------------
# Persistence pipeline
# ---------------------------------------------------------------------------

def _save(db: Session, rental: Rental, touched_property_ids: set[int], check_dates_rule: bool = True) -> Rental:
    prop = db.get(Property, rental.property_id)
    if prop is None:
        raise NotFound("Property", rental.property_id)

    if rental.monthly_rent is None:
        if not prop.estimated_monthly:
            raise ValidationConflict("Monthly rent is required.")
        rental.monthly_rent = prop.estimated_monthly

    _check_status_value(rental.status)
    if check_dates_rule:
        check_dates(rental)
    check_rent_matches(rental, prop)
    check_single_active(db, rental)

    rental.remarks = compute_remarks(rental.end_date)

    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        # Lost a race against another writer: the partial unique index has the final say
        if "uq_rentals_active_property" in str(exc.orig) or "rentals.property_id" in str(exc.orig):
            raise ValidationConflict(DUPLICATE_ACTIVE) from exc
        raise

    for property_id in touched_property_ids | {rental.property_id}:
        touched = db.get(Property, property_id)
        if touched is not None:
            apply_status(db, touched)

    db.commit()
    db.refresh(rental)
    return rental


def create_rental(
    db: Session,
    client_id: int,
    property_id: int,
    start_date: date,
    end_date: date | None = None,
    monthly_rent=None,
    status: str | None = None,
    security_deposit=None,
    terms_conditions: str | None = None,
    notes: str | None = None,
    contract_signed_at: datetime | None = None,
) -> Rental:
    _get_client_or_raise(db, client_id)
    get_property_or_raise(db, property_id)

    rental = Rental(
        client_id=client_id,
        property_id=property_id,
        start_date=start_date,
        end_date=end_date,
        monthly_rent=None if monthly_rent is None else Decimal(str(monthly_rent)),
        status=status or STATUS_ACTIVE,
        security_deposit=None if security_deposit is None else Decimal(str(security_deposit)),
        terms_conditions=terms_conditions,
        notes=notes,
        contract_signed_at=contract_signed_at,
    )
    db.add(rental)
    try:
        rental = _save(db, rental, set())
    except Exception:
        db.rollback()
        raise
    logger.info("Rental %s created for property %s (%s)", rental.id, property_id, rental.status)
    return rental


def update_rental(db: Session, rental_id: int, fields: dict) -> Rental:
    rental = get_rental_or_raise(db, rental_id)
    if rental.status == STATUS_TERMINATED:
        raise ValidationConflict("Terminated rentals cannot be updated.")
    if rental.status == STATUS_ENDED:
        raise ValidationConflict("Ended rentals cannot be updated.")

    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationConflict(f"Fields cannot be updated: {', '.join(sorted(unknown))}.")

    if "client_id" in fields:
        _get_client_or_raise(db, fields["client_id"])

    original_property_id = rental.property_id
    new_property_id = fields.get("property_id", original_property_id)
    new_property = get_property_or_raise(db, new_property_id)
    becomes_active = fields.get("status") == STATUS_ACTIVE and rental.status != STATUS_ACTIVE

    for field, value in fields.items():
        if field in ("monthly_rent", "security_deposit") and value is not None:
            value = Decimal(str(value))
        setattr(rental, field, value)

    if becomes_active and rental.contract_signed_at is None:
        rental.contract_signed_at = datetime.now()

    # Rent always follows the (possibly new) property's rate unless given explicitly
    if "monthly_rent" not in fields and new_property.estimated_monthly:
        rental.monthly_rent = new_property.estimated_monthly

    try:
        rental = _save(db, rental, {original_property_id})
    except Exception:
        db.rollback()
        raise
    logger.info("Rental %s updated (%s)", rental.id, ", ".join(sorted(fields)))
    return rental


def delete_rental(db: Session, rental_id: int) -> None:
    """Hard delete. The audit trail in notes goes with it."""
    rental = get_rental_or_raise(db, rental_id)
    property_id = rental.property_id
    db.delete(rental)
    db.flush()
    prop = db.get(Property, property_id)
    if prop is not None:
        apply_status(db, prop)
    db.commit()
    logger.info("Rental %s deleted", rental_id)


def _transition(db: Session, rental: Rental, status: str) -> Rental:
    rental.status = status
    try:
        # Historic rows may predate the date rules; a transition only changes status
        return _save(db, rental, set(), check_dates_rule=False)
    except Exception:
        db.rollback()
        raise


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def activate(db: Session, rental_id: int) -> Rental:
    rental = get_rental_or_raise(db, rental_id)
    if rental.status == STATUS_ACTIVE:
        raise ValidationConflict("Rental is already active.")
    if rental.contract_signed_at is None:
        rental.contract_signed_at = datetime.now()
    rental = _transition(db, rental, STATUS_ACTIVE)
    logger.info("Rental %s activated", rental.id)
    return rental


def terminate(db: Session, rental_id: int, reason: str | None = None) -> Rental:
    rental = get_rental_or_raise(db, rental_id)
    if rental.status == STATUS_TERMINATED:
        raise ValidationConflict("Rental is already terminated.")
    if reason:
        _append_note(rental, f"Terminated: {reason}")
    rental = _transition(db, rental, STATUS_TERMINATED)
    logger.info("Rental %s terminated", rental.id)
    return rental


def mark_expired(db: Session, rental_id: int) -> Rental:
    rental = get_rental_or_raise(db, rental_id)
    if rental.status == STATUS_EXPIRED:
        raise ValidationConflict("Rental is already expired.")
    rental = _transition(db, rental, STATUS_EXPIRED)
    logger.info("Rental %s marked expired", rental.id)
    return rental


def end_rental(db: Session, rental_id: int, reason: str | None = None) -> Rental:
    """Close a rental that will not be renewed."""
    rental = get_rental_or_raise(db, rental_id)
    if rental.status == STATUS_ENDED:
        raise ValidationConflict("Rental is already ended.")
    if reason:
        _append_note(rental, f"Ended (Not Renewed): {reason}")
    rental = _transition(db, rental, STATUS_ENDED)
    logger.info("Rental %s ended", rental.id)
    return rental


def renew(db: Session, rental_id: int, new_end_date: date, remarks: str | None = None) -> Rental:
    rental = get_rental_or_raise(db, rental_id)
    if rental.is_locked:
        raise ValidationConflict(
            f"This rental cannot be renewed because it is already {rental.status}."
        )

    today = date.today()
    if rental.start_date is not None:
        if new_end_date <= rental.start_date:
            raise InvalidRentalDates("The new end date must be after the start date.")
    elif new_end_date <= today:
        raise InvalidRentalDates("The new end date must be after today.")

    if rental.end_date is not None and new_end_date <= rental.end_date:
        raise InvalidRentalDates("The new end date must be later than the current end date.")

    old_end_date = rental.end_date
    rental.end_date = new_end_date

    parts = [f"Renewed until {new_end_date.isoformat()}"]
    if old_end_date is not None:
        parts.append(f"(previously {old_end_date.isoformat()})")
    if remarks:
        parts.append(f"Remarks: {remarks}")
    _append_note(rental, " ".join(parts))

    if rental.status == STATUS_EXPIRED and new_end_date >= today:
        rental.status = STATUS_ACTIVE

    prop = db.get(Property, rental.property_id)
    if prop is not None and prop.estimated_monthly:
        rental.monthly_rent = prop.estimated_monthly

    try:
        rental = _save(db, rental, set())
    except Exception:
        db.rollback()
        raise
    logger.info("Rental %s renewed until %s", rental.id, new_end_date)
    return rental


def expire_overdue_rentals(db: Session, today: date | None = None) -> int:
    """Mark every active rental whose end date has passed as expired."""
    today = today or date.today()
    overdue = db.scalars(
        select(Rental).where(
            Rental.status == STATUS_ACTIVE,
            Rental.end_date.is_not(None),
            Rental.end_date < today,
        )
    ).all()
    for rental in overdue:
        _transition(db, rental, STATUS_EXPIRED)
    if overdue:
        logger.info("Expired %s overdue rental(s)", len(overdue))
    return len(overdue)


# ---------------------------------------------------------------------------
# Read helpers
# ---------------------------------------------------------------------------

@dataclass
class RateCheck:
    valid: bool
    message: str
    expected_rate: Decimal | None = None
    provided_rate: Decimal | None = None


def validate_rental_rate(db: Session, property_id: int, monthly_rent) -> RateCheck:
    prop = get_property_or_raise(db, property_id)
    if not prop.estimated_monthly:
        return RateCheck(False, "Property does not have an estimated monthly rate set.")

    provided = Decimal(str(monthly_rent))
    expected = Decimal(str(prop.estimated_monthly))
    if abs(provided - expected) > RENT_TOLERANCE:
        return RateCheck(
            False,
            f"Monthly rent must match the property's estimated monthly rate of "
            f"{format_currency(expected)}.",
            expected,
            provided,
        )
    return RateCheck(True, "Rental data is valid.", expected, provided)


def rental_statistics(db: Session) -> dict:
    counts = dict(
        db.execute(select(Rental.status, func.count(Rental.id)).group_by(Rental.status)).all()
    )
    revenue, average = db.execute(
        select(func.sum(Rental.monthly_rent), func.avg(Rental.monthly_rent)).where(
            Rental.status == STATUS_ACTIVE
        )
    ).one()
    return {
        "total": sum(counts.values()),
        "pending": counts.get(STATUS_PENDING, 0),
        "active": counts.get(STATUS_ACTIVE, 0),
        "expired": counts.get(STATUS_EXPIRED, 0),
        "terminated": counts.get(STATUS_TERMINATED, 0),
        "ended": counts.get(STATUS_ENDED, 0),
        "total_monthly_revenue": Decimal(str(revenue or 0)).quantize(Decimal("0.01")),
        "average_rent": Decimal(str(average or 0)).quantize(Decimal("0.01")),
    }
