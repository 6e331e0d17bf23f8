import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import UUID, Base
from app.schemas.base_schema import BloodComponent, ExpiryBucket, UnitStatus
from app.utils import expiry


class BloodUnit(Base):
    """One separately tracked unit of a blood component with its own expiry."""

    __tablename__ = "blood_units"
    __mapper_args__ = {"eager_defaults": True}

    # --- Columns ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    unit_number: Mapped[str] = mapped_column(String(50), nullable=False)
    blood_type: Mapped[str] = mapped_column(String(5), nullable=False, index=True)
    component: Mapped[BloodComponent] = mapped_column(
        Enum(BloodComponent), nullable=False, index=True
    )
    collection_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[UnitStatus] = mapped_column(
        Enum(UnitStatus), nullable=False, default=UnitStatus.AVAILABLE, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    # --- Relationships ---
    blood_bank_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey("blood_banks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Traceability only: removing a donor must leave the unit in place
    donor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(),
        ForeignKey("donors.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    blood_bank = relationship("BloodBank", back_populates="blood_units")
    donor = relationship("Donor", lazy="joined")

    # --- Derived expiry data ---
    def days_until_expiry(self, today: Optional[date] = None) -> int:
        return expiry.days_until(self.expiry_date, today)

    def hours_until_expiry(self, now: Optional[datetime] = None) -> int:
        return expiry.hours_until_end_of_day(self.expiry_date, now)

    def expiry_bucket(self, today: Optional[date] = None) -> ExpiryBucket:
        return expiry.expiry_bucket(self.expiry_date, today)

    def is_expired(self, today: Optional[date] = None) -> bool:
        return expiry.is_expired(self.expiry_date, today)

    def __str__(self) -> str:
        return f"{self.unit_number} {self.component.value} ({self.blood_type})"

    __table_args__ = (
        UniqueConstraint("blood_bank_id", "unit_number", name="uq_blood_units_bank_unit_number"),
        Index("idx_units_bank_status_expiry", "blood_bank_id", "status", "expiry_date"),
    )
