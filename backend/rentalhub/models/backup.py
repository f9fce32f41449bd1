from datetime import datetime, timedelta

from sqlalchemy import BigInteger, DateTime, String, Text, select
from sqlalchemy.orm import Mapped, mapped_column

from rentalhub.db.database import Base

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

TYPE_MANUAL = "manual"
TYPE_SCHEDULED = "scheduled"
BACKUP_TYPES = (TYPE_MANUAL, TYPE_SCHEDULED)


class DatabaseBackup(Base):
    """One backup artifact on disk plus its metadata."""

    __tablename__ = "database_backups"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    unique_identifier: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    # 'pending' | 'in_progress' | 'completed' | 'failed'
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=STATUS_PENDING)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=TYPE_MANUAL)
    error_message: Mapped[str | None] = mapped_column(Text)
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    # Soft-delete marker; NULL means the backup is active
    trashed_at: Mapped[datetime | None] = mapped_column(DateTime, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)

    @property
    def is_trashed(self) -> bool:
        return self.trashed_at is not None

    @classmethod
    def active(cls):
        return select(cls).where(cls.trashed_at.is_(None))

    @classmethod
    def trashed(cls):
        return select(cls).where(cls.trashed_at.is_not(None))

    @classmethod
    def older_than(cls, days: int, now: datetime | None = None):
        cutoff = (now or datetime.now()) - timedelta(days=days)
        return cls.created_at <= cutoff
