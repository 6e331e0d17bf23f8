import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import UUID, Base


class BloodBank(Base):
    __tablename__ = "blood_banks"
    __mapper_args__ = {"eager_defaults": True}

    # --- Columns ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(
        String(100), unique=True, index=True, nullable=True
    )
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Last unit number handed out for this bank; only ever incremented atomically
    unit_sequence: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    # --- Relationships ---
    blood_units = relationship(
        "BloodUnit",
        back_populates="blood_bank",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    blood_inventory = relationship(
        "BloodInventory",
        back_populates="blood_bank",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # --- Methods ---
    def __str__(self) -> str:
        return f"{self.name} ({self.city})"
