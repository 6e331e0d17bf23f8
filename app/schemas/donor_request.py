from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.schemas.base_schema import BaseSchema, ResponseSchema


class DonorRequestCreate(BaseSchema):
    donor_id: UUID
    message: Optional[str] = Field(None, max_length=500)


class DonorRequestRespond(BaseSchema):
    accept: bool


class DonorRequestResponse(ResponseSchema):
    id: UUID
    donor_id: UUID
    blood_bank_id: UUID
    status: str
    requested_at: datetime
    responded_at: Optional[datetime] = None
    expires_at: datetime
    message: Optional[str] = None
    is_expired: bool = False

    @classmethod
    def from_request(cls, request, now: Optional[datetime] = None) -> "DonorRequestResponse":
        return cls(
            id=request.id,
            donor_id=request.donor_id,
            blood_bank_id=request.blood_bank_id,
            status=request.status.value,
            requested_at=request.requested_at,
            responded_at=request.responded_at,
            expires_at=request.expires_at,
            message=request.message,
            is_expired=request.is_expired(now),
        )


class BankRequestHistoryItem(DonorRequestResponse):
    """A request as the sending bank sees it"""

    donor_name: str
    donor_phone: str
    blood_type: str

    @classmethod
    def from_request(cls, request, now: Optional[datetime] = None) -> "BankRequestHistoryItem":
        base = DonorRequestResponse.from_request(request, now).model_dump()
        return cls(
            **base,
            donor_name=request.donor.name,
            donor_phone=request.donor.phone,
            blood_type=request.donor.blood_type,
        )


class DonorIncomingRequestItem(DonorRequestResponse):
    """A request as the donor sees it"""

    bank_name: str
    bank_address: Optional[str] = None
    bank_city: str
    bank_phone: Optional[str] = None

    @classmethod
    def from_request(cls, request, now: Optional[datetime] = None) -> "DonorIncomingRequestItem":
        base = DonorRequestResponse.from_request(request, now).model_dump()
        bank = request.blood_bank
        return cls(
            **base,
            bank_name=bank.name,
            bank_address=bank.address,
            bank_city=bank.city,
            bank_phone=bank.phone,
        )
