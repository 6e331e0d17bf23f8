from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from app.schemas.base_schema import BaseSchema, ResponseSchema
from app.schemas.blood_unit import BloodUnitResponse


class DonationRecordCreate(BaseSchema):
    """First step: who donated and when. Name, DOB and blood type only matter for new donors."""

    phone: str = Field(..., min_length=1, max_length=20)
    donation_date: date
    blood_type: Optional[str] = Field(None, max_length=5)
    donor_name: Optional[str] = Field(None, max_length=120)
    donor_date_of_birth: Optional[date] = None


class AddComponentsRequest(BaseSchema):
    components: List[str] = Field(default_factory=list, description="Component codes to create units for")


class DonationWithComponentsCreate(DonationRecordCreate):
    components: List[str] = Field(default_factory=list)


class DonationResponse(ResponseSchema):
    id: UUID
    donor_id: UUID
    blood_bank_id: Optional[UUID] = None
    donation_date: date
    units: int
    notes: Optional[str] = None
    components_added: bool
    donor_name: Optional[str] = None
    donor_phone: Optional[str] = None
    blood_type: Optional[str] = None
    blood_bank_name: Optional[str] = None

    @classmethod
    def from_donation(cls, donation) -> "DonationResponse":
        donor = donation.donor
        bank = donation.blood_bank
        return cls(
            id=donation.id,
            donor_id=donation.donor_id,
            blood_bank_id=donation.blood_bank_id,
            donation_date=donation.donation_date,
            units=donation.units,
            notes=donation.notes,
            components_added=donation.components_added,
            donor_name=donor.name if donor else None,
            donor_phone=donor.phone if donor else None,
            blood_type=donor.blood_type if donor else None,
            blood_bank_name=bank.name if bank else "Unknown",
        )


class DonationWithUnitsResponse(ResponseSchema):
    donation: DonationResponse
    units: List[BloodUnitResponse]
