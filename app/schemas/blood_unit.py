from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from app.schemas.base_schema import BaseSchema, ResponseSchema


class BloodUnitCreate(BaseSchema):
    blood_type: str = Field(..., min_length=1, max_length=5, description="Blood type (e.g., A+, O-)")
    component: str = Field(..., min_length=1, max_length=20, description="Component code (e.g., PRBC_SAGM)")
    collection_date: date = Field(..., description="Date the blood was collected")
    donor_id: Optional[UUID] = Field(None, description="Donor the unit came from")
    unit_number: Optional[str] = Field(
        None, max_length=50, description="Leave empty to generate the next number"
    )


class UnitStatusUpdate(BaseSchema):
    status: str = Field(..., description="AVAILABLE, RESERVED, USED, EXPIRED or DISCARDED")


class ComponentResponse(ResponseSchema):
    code: str
    name: str
    shelf_life_days: int


class BloodUnitResponse(ResponseSchema):
    id: UUID
    unit_number: str
    blood_bank_id: UUID
    blood_type: str
    component: str
    component_name: str
    collection_date: date
    expiry_date: date
    status: str
    days_until_expiry: int
    hours_until_expiry: int
    expiry_status: str
    is_expired: bool
    donor_id: Optional[UUID] = None
    donor_name: Optional[str] = None

    @classmethod
    def from_unit(cls, unit, now: Optional[datetime] = None) -> "BloodUnitResponse":
        now = now or datetime.now()
        today = now.date()
        donor = unit.donor if unit.donor_id else None
        return cls(
            id=unit.id,
            unit_number=unit.unit_number,
            blood_bank_id=unit.blood_bank_id,
            blood_type=unit.blood_type,
            component=unit.component.value,
            component_name=unit.component.display_name,
            collection_date=unit.collection_date,
            expiry_date=unit.expiry_date,
            status=unit.status.value,
            days_until_expiry=unit.days_until_expiry(today),
            hours_until_expiry=unit.hours_until_expiry(now),
            expiry_status=unit.expiry_bucket(today).value,
            is_expired=unit.is_expired(today),
            donor_id=unit.donor_id,
            donor_name=donor.name if donor else None,
        )

    @classmethod
    def from_units(cls, units, now: Optional[datetime] = None) -> List["BloodUnitResponse"]:
        now = now or datetime.now()
        return [cls.from_unit(unit, now) for unit in units]


class ExpirySummaryResponse(ResponseSchema):
    totalAvailable: int
    expiringIn3Days: int
    expiringIn7Days: int
    expiringIn14Days: int
    criticalPlatelets: int
