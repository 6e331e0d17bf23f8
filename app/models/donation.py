import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import UUID, Base


class Donation(Base):
    """A donation event. Pending until its components have been turned into units."""

    __tablename__ = "donations"
    __mapper_args__ = {"eager_defaults": True}

    # --- Columns ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    donation_date: Mapped[date] = mapped_column(Date, nullable=False)
    units: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    # Flipped to True exactly once, by a guarded UPDATE in DonationService
    components_added: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # --- Relationships ---
    donor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey("donors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    blood_bank_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(),
        ForeignKey("blood_banks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    donor = relationship("Donor", lazy="joined")
    blood_bank = relationship("BloodBank", lazy="joined")

    @property
    def is_pending(self) -> bool:
        return not self.components_added

    __table_args__ = (
        Index("idx_donations_bank_pending", "blood_bank_id", "components_added"),
    )
