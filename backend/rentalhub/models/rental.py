from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, Numeric, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentalhub.db.database import Base

STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_TERMINATED = "terminated"
STATUS_ENDED = "ended"

RENTAL_STATUSES = (
    STATUS_PENDING,
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_TERMINATED,
    STATUS_ENDED,
)
# No further edits once a rental reaches one of these
LOCKED_STATUSES = (STATUS_TERMINATED, STATUS_ENDED)


class Rental(Base):
    __tablename__ = "rentals"
    __table_args__ = (
        # At most one active rental per property; the application check runs first
        Index(
            "uq_rentals_active_property",
            "property_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id"), nullable=False, index=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False, index=True)
    monthly_rent: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    security_deposit: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)
    # 'pending' | 'active' | 'expired' | 'terminated' | 'ended'
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=STATUS_ACTIVE, index=True)
    terms_conditions: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    # Snapshot taken at write time; see rental_lifecycle.compute_remarks
    remarks: Mapped[str | None] = mapped_column(String(50))
    contract_signed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_locked(self) -> bool:
        return self.status in LOCKED_STATUSES

    @property
    def remaining_days(self) -> int | None:
        if self.end_date is None or self.status != STATUS_ACTIVE:
            return None
        return max((self.end_date - date.today()).days, 0)

    # Declared after the methods above: this attribute shadows the builtin `property`
    client: Mapped["Client"] = relationship("Client", back_populates="rentals")  # noqa: F821
    property: Mapped["Property"] = relationship("Property", back_populates="rentals")  # noqa: F821
