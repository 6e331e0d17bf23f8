import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import UUID, Base
from app.schemas.base_schema import RequestStatus


class DonorRequest(Base):
    """A time-boxed solicitation from a blood bank to one donor."""

    __tablename__ = "donor_requests"

    # --- Columns ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # --- Relationships ---
    donor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey("donors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    blood_bank_id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        ForeignKey("blood_banks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    donor = relationship("Donor", lazy="joined")
    blood_bank = relationship("BloodBank", lazy="joined")

    # --- Methods ---
    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """A pending request whose response window has closed."""
        now = now or datetime.now()
        return self.status == RequestStatus.PENDING and now > self.expires_at

    __table_args__ = (
        Index("idx_requests_bank_requested", "blood_bank_id", "requested_at"),
        Index("idx_requests_donor_requested", "donor_id", "requested_at"),
    )
