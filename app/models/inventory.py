import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import UUID, Base
from app.schemas.base_schema import ExpiryBucket
from app.utils import expiry


class BloodInventory(Base):
    """Bank-level running total per blood type, kept apart from unit rows."""

    __tablename__ = "blood_inventory"
    __mapper_args__ = {"eager_defaults": True}

    # --- Columns ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    blood_type: Mapped[str] = mapped_column(String(5), nullable=False, index=True)
    units_available: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, index=True
    )
    collection_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    # --- Relationships ---
    blood_bank_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey("blood_banks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    blood_bank = relationship("BloodBank", back_populates="blood_inventory", lazy="joined")

    # --- Methods ---
    def days_left(self, today: Optional[date] = None) -> Optional[int]:
        if self.expiry_date is None:
            return None
        return expiry.days_until(self.expiry_date, today)

    def expiry_bucket(self, today: Optional[date] = None) -> Optional[ExpiryBucket]:
        if self.expiry_date is None:
            return None
        return expiry.expiry_bucket(self.expiry_date, today)

    def __str__(self) -> str:
        return f"{self.blood_type}: {self.units_available} units"

    __table_args__ = (
        UniqueConstraint("blood_bank_id", "blood_type", name="uq_blood_inventory_bank_type"),
        CheckConstraint("units_available >= 0", name="units_non_negative"),
    )
