from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.schemas.base_schema import BaseSchema, ResponseSchema
from app.utils.eligibility import next_eligible_date


class ContactAvailabilityUpdate(BaseSchema):
    available: bool = Field(..., description="False opts the donor out of bank requests")


class DonorResponse(ResponseSchema):
    id: UUID
    name: str
    phone: str
    blood_type: str
    city: str
    date_of_birth: date
    weight: int
    last_donation_date: Optional[date] = None
    is_verified: bool
    is_available_for_contact: Optional[bool] = None
    eligible: bool
    days_until_eligible: int
    next_eligible_date: Optional[date] = None

    @classmethod
    def from_donor(cls, donor, today: Optional[date] = None) -> "DonorResponse":
        today = today or date.today()
        return cls(
            id=donor.id,
            name=donor.name,
            phone=donor.phone,
            blood_type=donor.blood_type,
            city=donor.city,
            date_of_birth=donor.date_of_birth,
            weight=donor.weight,
            last_donation_date=donor.last_donation_date,
            is_verified=donor.is_verified,
            is_available_for_contact=donor.is_available_for_contact,
            eligible=donor.is_eligible(today),
            days_until_eligible=donor.days_until_eligible(today),
            next_eligible_date=next_eligible_date(donor.last_donation_date),
        )


class DonorLookupResponse(ResponseSchema):
    found: bool
    donor: Optional[DonorResponse] = None
