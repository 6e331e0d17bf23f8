import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import UUID, Base
from app.utils import eligibility


class Donor(Base):
    __tablename__ = "donors"
    __mapper_args__ = {"eager_defaults": True}

    # --- Columns ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    blood_type: Mapped[str] = mapped_column(String(5), nullable=False, index=True)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    last_donation_date: Mapped[Optional[date]] = mapped_column(
        Date, nullable=True, index=True
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # NULL and True both mean the donor may be contacted
    is_available_for_contact: Mapped[Optional[bool]] = mapped_column(
        Boolean, nullable=True, default=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    # --- Derived eligibility ---
    def is_eligible(self, today: Optional[date] = None) -> bool:
        return eligibility.is_eligible(self.last_donation_date, today)

    def days_until_eligible(self, today: Optional[date] = None) -> int:
        return eligibility.days_until_eligible(self.last_donation_date, today)

    @property
    def is_contactable(self) -> bool:
        return self.is_available_for_contact is not False

    def __str__(self) -> str:
        return f"{self.name} ({self.blood_type})"
