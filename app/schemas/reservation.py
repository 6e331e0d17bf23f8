from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.schemas.base_schema import BaseSchema, ResponseSchema


class ReservationCreate(BaseSchema):
    patient_name: str = Field(..., min_length=1, max_length=120)
    contact_number: str = Field(..., min_length=1, max_length=20, description="WhatsApp number of the patient")
    blood_type: str = Field(..., min_length=1, max_length=5)
    units_needed: int = Field(..., description="Must not exceed the bank's available units")
    urgency_level: Optional[str] = Field("normal", max_length=20)
    additional_notes: Optional[str] = Field(None, max_length=1000)


class ReservationStatusUpdate(BaseSchema):
    status: str = Field(..., description="pending, confirmed, completed or cancelled")


class ReservationResponse(ResponseSchema):
    id: UUID
    blood_bank_id: UUID
    blood_bank_name: Optional[str] = None
    patient_name: str
    contact_number: str
    blood_type: str
    units_needed: int
    urgency_level: str
    additional_notes: Optional[str] = None
    status: str
    expires_at: datetime
    created_at: Optional[datetime] = None

    @classmethod
    def from_reservation(cls, reservation) -> "ReservationResponse":
        return cls(
            id=reservation.id,
            blood_bank_id=reservation.blood_bank_id,
            blood_bank_name=reservation.blood_bank.name if reservation.blood_bank else None,
            patient_name=reservation.patient_name,
            contact_number=reservation.contact_number,
            blood_type=reservation.blood_type,
            units_needed=reservation.units_needed,
            urgency_level=reservation.urgency_level,
            additional_notes=reservation.additional_notes,
            status=reservation.status.value,
            expires_at=reservation.expires_at,
            created_at=reservation.created_at,
        )
