"""
Backup lifecycle: create, trash, restore, permanent deletion, retention and
database restore from a completed backup.

States: pending -> in_progress -> completed | failed, plus the orthogonal
trashed flag (trashed_at). Export problems never escape create_backup; the
returned record's status tells the caller what happened.
"""
import logging
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, func, insert, or_, select
from sqlalchemy.orm import Session

from rentalhub.core.backup_exporters import Exporter, Importer, select_exporter, select_importer
from rentalhub.core.errors import (
    ExternalToolFailure,
    FilesystemError,
    NotFound,
    ValidationConflict,
)
from rentalhub.models.backup import (
    BACKUP_TYPES,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    TYPE_MANUAL,
    DatabaseBackup,
)
from rentalhub.utils.settings_loader import get_backup_settings

logger = logging.getLogger(__name__)

SORT_ORDERS = {
    "latest": DatabaseBackup.created_at.desc(),
    "oldest": DatabaseBackup.created_at.asc(),
    "name_asc": DatabaseBackup.filename.asc(),
    "name_desc": DatabaseBackup.filename.desc(),
    "size_asc": DatabaseBackup.file_size.asc(),
    "size_desc": DatabaseBackup.file_size.desc(),
}


@dataclass
class SweepResult:
    moved_to_trash: int = 0
    permanently_deleted: int = 0
    bytes_freed: int = 0


def format_bytes(size: int | None, precision: int = 2) -> str:
    if not size:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, precision):g} {units[unit]}"


def get_backup_or_raise(db: Session, backup_id: int) -> DatabaseBackup:
    backup = db.get(DatabaseBackup, backup_id)
    if backup is None:
        raise NotFound("Backup", backup_id)
    return backup


def _remove_artifact(path: str) -> int:
    """Delete the file at `path`, returning its size. A missing file is not an error."""
    try:
        size = os.path.getsize(path)
        os.remove(path)
        return size
    except FileNotFoundError:
        logger.warning("Backup file not found (removing record only): %s", path)
    except OSError as exc:
        logger.warning("Could not remove backup file %s: %s", path, exc)
    return 0


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def create_backup(
    db: Session,
    type: str = TYPE_MANUAL,
    scheduled_at: datetime | None = None,
    exporter: Exporter | None = None,
) -> DatabaseBackup:
    if type not in BACKUP_TYPES:
        raise ValidationConflict(f"Invalid backup type '{type}'. Use 'manual' or 'scheduled'.")

    settings = get_backup_settings()
    directory = os.path.abspath(settings["directory"])
    now = datetime.now()
    unique_id = secrets.token_hex(8)
    filename = f"backup_{now:%Y_%m_%d_%H_%M_%S}_{unique_id}.sql"

    backup = DatabaseBackup(
        filename=filename,
        unique_identifier=unique_id,
        file_path=os.path.join(directory, filename),
        file_size=0,
        status=STATUS_PENDING,
        type=type,
        scheduled_at=scheduled_at,
        created_at=now,
    )
    db.add(backup)
    db.commit()

    backup.status = STATUS_IN_PROGRESS
    db.commit()
    logger.info("Starting %s backup %s (%s)", type, backup.id, filename)

    try:
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(f"Backup directory {directory} is not writable: {exc}") from exc

        if exporter is None:
            exporter = select_exporter(db.get_bind(), timeout=settings.get("timeout_seconds"))
        exporter.export(backup.file_path)

        if not os.path.exists(backup.file_path):
            raise FilesystemError("Backup file was not created")
        size = os.path.getsize(backup.file_path)
        if size == 0:
            raise FilesystemError("Backup file is empty")
    except Exception as exc:
        backup.status = STATUS_FAILED
        backup.error_message = str(exc) or exc.__class__.__name__
        if os.path.exists(backup.file_path):
            _remove_artifact(backup.file_path)
        db.commit()
        logger.error("Backup %s failed: %s", backup.id, backup.error_message)
        return backup

    backup.status = STATUS_COMPLETED
    backup.file_size = size
    backup.completed_at = datetime.now()
    backup.error_message = None
    db.commit()
    db.refresh(backup)
    logger.info("Backup %s completed (%s) using %s", backup.id, format_bytes(size), exporter.name)
    return backup


# ---------------------------------------------------------------------------
# Trash / restore / delete
# ---------------------------------------------------------------------------

def _trash(backup: DatabaseBackup, now: datetime | None = None) -> None:
    backup.trashed_at = now or datetime.now()


def soft_delete(db: Session, backup_id: int) -> DatabaseBackup:
    backup = get_backup_or_raise(db, backup_id)
    if backup.is_trashed:
        raise ValidationConflict("Backup is already in trash.")
    _trash(backup)
    db.commit()
    db.refresh(backup)
    logger.info("Backup %s moved to trash", backup.id)
    return backup


def restore(db: Session, backup_id: int) -> DatabaseBackup:
    backup = get_backup_or_raise(db, backup_id)
    if not backup.is_trashed:
        raise ValidationConflict("Backup is not in trash.")
    backup.trashed_at = None
    db.commit()
    db.refresh(backup)
    logger.info("Backup %s restored from trash", backup.id)
    return backup


def _delete(db: Session, backup: DatabaseBackup) -> int:
    freed = _remove_artifact(backup.file_path) if backup.file_path else 0
    db.delete(backup)
    return freed


def permanently_delete(db: Session, backup_id: int) -> int:
    """Remove the artifact (if any) and the record. Returns bytes freed."""
    backup = get_backup_or_raise(db, backup_id)
    freed = _delete(db, backup)
    db.commit()
    logger.info("Backup %s permanently deleted (%s freed)", backup_id, format_bytes(freed))
    return freed


def restore_database(db: Session, backup_id: int, importer: Importer | None = None) -> DatabaseBackup:
    """
    Replace the live database with the contents of a completed backup.

    The backup catalogue itself is kept as it was before the restore, so
    backups taken after the dumped snapshot stay listed and downloadable.
    Tool failures are raised, unlike create_backup.
    """
    backup = get_backup_or_raise(db, backup_id)
    if backup.status != STATUS_COMPLETED:
        raise ValidationConflict("Cannot restore from incomplete or failed backup")
    if not backup.file_path or not os.path.exists(backup.file_path):
        raise NotFound("Backup file", backup.filename)

    source_path = backup.file_path
    table = DatabaseBackup.__table__
    catalogue = [dict(row._mapping) for row in db.execute(select(table))]
    engine = db.get_bind()
    # Release the session's connection before the schema is replaced underneath it
    db.rollback()

    if importer is None:
        importer = select_importer(engine, timeout=get_backup_settings().get("timeout_seconds"))
    logger.info("Restoring database from backup %s using %s", backup_id, importer.name)
    try:
        importer.load(source_path)
    except ExternalToolFailure as exc:
        logger.error("Restore from backup %s failed: %s", backup_id, exc.message)
        raise

    db.execute(delete(table))
    if catalogue:
        db.execute(insert(table), catalogue)
    db.commit()
    logger.info("Database restored from backup %s", backup_id)
    return get_backup_or_raise(db, backup_id)


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------

def auto_trash(db: Session, trash_days: int, now: datetime | None = None) -> int:
    """Move every active backup older than `trash_days` to trash."""
    now = now or datetime.now()
    eligible = db.scalars(
        DatabaseBackup.active().where(DatabaseBackup.older_than(trash_days, now))
    ).all()
    for backup in eligible:
        _trash(backup, now)
    db.commit()
    return len(eligible)


def purge_trash(db: Session, delete_days: int, now: datetime | None = None) -> tuple[int, int]:
    """Permanently delete trashed backups whose trashed_at is older than `delete_days`."""
    now = now or datetime.now()
    cutoff = now - timedelta(days=delete_days)
    eligible = db.scalars(
        DatabaseBackup.trashed().where(DatabaseBackup.trashed_at <= cutoff)
    ).all()
    freed = 0
    for backup in eligible:
        freed += _delete(db, backup)
    db.commit()
    return len(eligible), freed


def retention_sweep(
    db: Session, trash_days: int, delete_days: int, now: datetime | None = None
) -> SweepResult:
    now = now or datetime.now()
    moved = auto_trash(db, trash_days, now)
    deleted, freed = purge_trash(db, delete_days, now)
    result = SweepResult(moved_to_trash=moved, permanently_deleted=deleted, bytes_freed=freed)
    logger.info(
        "Backup retention sweep: %s moved to trash, %s permanently deleted, %s freed",
        result.moved_to_trash,
        result.permanently_deleted,
        format_bytes(result.bytes_freed),
    )
    return result


def cleanup_by_age(db: Session, days: int, now: datetime | None = None) -> SweepResult:
    """Age-only policy without the trash step: completed backups older than `days` go for good."""
    now = now or datetime.now()
    eligible = db.scalars(
        select(DatabaseBackup).where(
            DatabaseBackup.status == STATUS_COMPLETED,
            DatabaseBackup.older_than(days, now),
        )
    ).all()
    result = SweepResult()
    for backup in eligible:
        result.bytes_freed += _delete(db, backup)
        result.permanently_deleted += 1
    db.commit()
    logger.info(
        "Backup age cleanup: %s deleted older than %s days", result.permanently_deleted, days
    )
    return result


# ---------------------------------------------------------------------------
# Listing / stats
# ---------------------------------------------------------------------------

def list_backups(
    db: Session,
    view: str = "active",
    status: str | None = None,
    search: str | None = None,
    sort: str = "latest",
) -> list[DatabaseBackup]:
    stmt = DatabaseBackup.trashed() if view == "trash" else DatabaseBackup.active()
    if status:
        stmt = stmt.where(DatabaseBackup.status == status)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                DatabaseBackup.filename.like(pattern),
                DatabaseBackup.unique_identifier.like(pattern),
            )
        )
    stmt = stmt.order_by(SORT_ORDERS.get(sort, SORT_ORDERS["latest"]))
    return list(db.scalars(stmt))


def backup_statistics(db: Session) -> dict:
    def count(*criteria) -> int:
        return db.scalar(select(func.count(DatabaseBackup.id)).where(*criteria)) or 0

    completed = DatabaseBackup.status == STATUS_COMPLETED
    total_size, average_size = db.execute(
        select(func.sum(DatabaseBackup.file_size), func.avg(DatabaseBackup.file_size)).where(
            completed
        )
    ).one()
    latest = db.scalars(
        select(DatabaseBackup).where(completed).order_by(DatabaseBackup.created_at.desc()).limit(1)
    ).first()
    return {
        "total_backups": count(),
        "completed_backups": count(completed),
        "failed_backups": count(DatabaseBackup.status == STATUS_FAILED),
        "trashed_backups": count(DatabaseBackup.trashed_at.is_not(None)),
        "total_size": int(total_size or 0),
        "total_size_formatted": format_bytes(int(total_size or 0)),
        "average_size": int(average_size or 0),
        "latest_backup": latest.filename if latest else None,
    }


def backup_file_path(db: Session, backup_id: int) -> tuple[str, str]:
    backup = get_backup_or_raise(db, backup_id)
    if not backup.file_path or not os.path.exists(backup.file_path):
        raise NotFound("Backup file", backup.filename)
    return backup.file_path, backup.filename
