from datetime import datetime

from fastapi import APIRouter, Depends, status
from fastapi.responses import FileResponse
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from rentalhub.core import backup_lifecycle
from rentalhub.db.database import get_db
from rentalhub.models.backup import BACKUP_TYPES, TYPE_MANUAL, DatabaseBackup
from rentalhub.utils.settings_loader import get_backup_settings

router = APIRouter()


class BackupCreate(BaseModel):
    type: str = TYPE_MANUAL
    scheduled_at: datetime | None = None

    @field_validator("type")
    @classmethod
    def valid_type(cls, v):
        if v not in BACKUP_TYPES:
            raise ValueError("Invalid type. Use 'manual' or 'scheduled'.")
        return v


class SweepRequest(BaseModel):
    trash_days: int | None = None
    delete_days: int | None = None

    @field_validator("trash_days", "delete_days")
    @classmethod
    def non_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("Retention days cannot be negative.")
        return v


class BackupResponse(BaseModel):
    id: int
    filename: str
    unique_identifier: str
    file_size: int
    formatted_size: str = ""
    status: str
    type: str
    error_message: str | None
    scheduled_at: datetime | None
    completed_at: datetime | None
    trashed_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


def _to_response(backup: DatabaseBackup) -> BackupResponse:
    response = BackupResponse.model_validate(backup)
    response.formatted_size = backup_lifecycle.format_bytes(backup.file_size)
    return response


@router.get("/", response_model=list[BackupResponse])
def list_backups(
    view: str = "active",
    status: str | None = None,
    search: str | None = None,
    sort: str = "latest",
    db: Session = Depends(get_db),
):
    backups = backup_lifecycle.list_backups(db, view=view, status=status, search=search, sort=sort)
    return [_to_response(b) for b in backups]


@router.post("/", response_model=BackupResponse, status_code=status.HTTP_201_CREATED)
def create_backup(data: BackupCreate, db: Session = Depends(get_db)):
    return _to_response(backup_lifecycle.create_backup(db, data.type, data.scheduled_at))


@router.get("/statistics")
def statistics(db: Session = Depends(get_db)):
    return backup_lifecycle.backup_statistics(db)


@router.post("/retention-sweep")
def retention_sweep(data: SweepRequest, db: Session = Depends(get_db)):
    settings = get_backup_settings()
    trash_days = settings["trash_after_days"] if data.trash_days is None else data.trash_days
    delete_days = settings["delete_after_days"] if data.delete_days is None else data.delete_days
    result = backup_lifecycle.retention_sweep(db, trash_days, delete_days)
    return {
        "moved_to_trash": result.moved_to_trash,
        "permanently_deleted": result.permanently_deleted,
        "bytes_freed": result.bytes_freed,
        "freed_formatted": backup_lifecycle.format_bytes(result.bytes_freed),
    }


@router.get("/{backup_id}", response_model=BackupResponse)
def get_backup(backup_id: int, db: Session = Depends(get_db)):
    return _to_response(backup_lifecycle.get_backup_or_raise(db, backup_id))


@router.get("/{backup_id}/download")
def download_backup(backup_id: int, db: Session = Depends(get_db)):
    path, filename = backup_lifecycle.backup_file_path(db, backup_id)
    return FileResponse(path, media_type="application/sql", filename=filename)


@router.post("/{backup_id}/trash", response_model=BackupResponse)
def trash_backup(backup_id: int, db: Session = Depends(get_db)):
    return _to_response(backup_lifecycle.soft_delete(db, backup_id))


@router.post("/{backup_id}/restore", response_model=BackupResponse)
def restore_backup(backup_id: int, db: Session = Depends(get_db)):
    return _to_response(backup_lifecycle.restore(db, backup_id))


@router.post("/{backup_id}/restore-database", response_model=BackupResponse)
def restore_database(backup_id: int, db: Session = Depends(get_db)):
    return _to_response(backup_lifecycle.restore_database(db, backup_id))


@router.delete("/{backup_id}")
def delete_backup(backup_id: int, db: Session = Depends(get_db)):
    freed = backup_lifecycle.permanently_delete(db, backup_id)
    return {"deleted": backup_id, "bytes_freed": freed}
