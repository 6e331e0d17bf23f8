import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.db.base import UUID, Base
from app.schemas.base_schema import ReservationStatus


class Reservation(Base):
    """A patient-side hold on a bank's stock of one blood type."""

    __tablename__ = "reservations"
    __mapper_args__ = {"eager_defaults": True}

    # --- Columns ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    patient_name: Mapped[str] = mapped_column(String(120), nullable=False)
    contact_number: Mapped[str] = mapped_column(String(20), nullable=False)
    blood_type: Mapped[str] = mapped_column(String(5), nullable=False, index=True)
    units_needed: Mapped[int] = mapped_column(Integer, nullable=False)
    urgency_level: Mapped[str] = mapped_column(String(20), default="normal")
    additional_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(ReservationStatus),
        nullable=False,
        default=ReservationStatus.PENDING,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

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

    blood_bank = relationship("BloodBank", lazy="joined")

    @validates("units_needed")
    def validate_units_needed(self, key, value):
        """Validate that requested quantity is positive."""
        if value <= 0:
            raise ValueError("Units needed must be greater than 0")
        return value
