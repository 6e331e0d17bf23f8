from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.schemas.base_schema import BaseSchema, BloodType, ResponseSchema


class InventoryUpdate(BaseSchema):
    blood_type: str = Field(..., min_length=1, max_length=5, description="Blood type (e.g., A+, B-, O+)")
    units: int = Field(..., ge=0, description="Units now available (replaces the current count)")
    collection_date: Optional[date] = Field(None, description="Defaults to today")

    @field_validator("blood_type")
    @classmethod
    def validate_blood_type(cls, v: str) -> str:
        normalized = BloodType.normalize(v)
        if normalized is None:
            raise ValueError(
                f'Blood type must be one of: {", ".join(BloodType.get_values())}'
            )
        return normalized


class InventoryDeduct(BaseSchema):
    blood_type: str = Field(..., min_length=1, max_length=5)
    amount: int = Field(..., gt=0)


class InventoryResponse(ResponseSchema):
    id: UUID
    blood_bank_id: UUID
    blood_bank_name: Optional[str] = None
    blood_type: str
    units_available: int
    collection_date: Optional[date] = None
    expiry_date: Optional[date] = None
    days_left: Optional[int] = None
    expiry_status: Optional[str] = None
    last_updated: Optional[datetime] = None

    @classmethod
    def from_inventory(cls, inventory, today: Optional[date] = None) -> "InventoryResponse":
        bucket = inventory.expiry_bucket(today)
        return cls(
            id=inventory.id,
            blood_bank_id=inventory.blood_bank_id,
            blood_bank_name=inventory.blood_bank.name if inventory.blood_bank else None,
            blood_type=inventory.blood_type,
            units_available=inventory.units_available,
            collection_date=inventory.collection_date,
            expiry_date=inventory.expiry_date,
            days_left=inventory.days_left(today),
            expiry_status=bucket.value if bucket else None,
            last_updated=inventory.last_updated,
        )
