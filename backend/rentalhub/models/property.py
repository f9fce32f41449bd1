from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentalhub.db.database import Base

STATUS_AVAILABLE = "Available"
STATUS_RENTED = "Rented"
STATUS_RENOVATION = "Renovation"
STATUS_SOLD = "Sold"
STATUS_MAINTENANCE = "Under Maintenance"

PROPERTY_STATUSES = (
    STATUS_AVAILABLE,
    STATUS_RENTED,
    STATUS_RENOVATION,
    STATUS_SOLD,
    STATUS_MAINTENANCE,
)


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    property_name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    details: Mapped[str | None] = mapped_column(Text)
    estimated_monthly: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    lot_area: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    floor_area: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    # Derived from rentals unless pinned to Renovation / Sold / Under Maintenance
    status: Mapped[str] = mapped_column(String(30), nullable=False, default=STATUS_AVAILABLE)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    rentals: Mapped[list["Rental"]] = relationship(  # noqa: F821
        "Rental", back_populates="property", cascade="all, delete-orphan"
    )
