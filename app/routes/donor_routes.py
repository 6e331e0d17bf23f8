from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db
from app.models.donor import Donor
from app.schemas.donation import DonationResponse
from app.schemas.donor import ContactAvailabilityUpdate, DonorResponse
from app.schemas.donor_request import (
    DonorIncomingRequestItem,
    DonorRequestRespond,
    DonorRequestResponse,
)
from app.services.donation_service import DonationService
from app.services.donor_request_service import DonorRequestService
from app.utils.data_wrapper import ResponseWrapper
from app.utils.exceptions import NotFoundError

router = APIRouter(
    prefix="/donors",
    tags=["donors"]
)


@router.get("/{donor_id}/eligibility", response_model=ResponseWrapper[DonorResponse])
async def get_eligibility(donor_id: UUID, db: AsyncSession = Depends(get_db)):
    donor = await db.get(Donor, donor_id)
    if donor is None:
        raise NotFoundError("Donor not found")
    return ResponseWrapper(data=DonorResponse.from_donor(donor))


@router.put("/{donor_id}/contact-availability", response_model=ResponseWrapper[DonorResponse])
async def update_contact_availability(
    donor_id: UUID,
    availability: ContactAvailabilityUpdate,
    db: AsyncSession = Depends(get_db),
):
    donor = await DonorRequestService(db).toggle_contact_availability(
        donor_id, availability.available
    )
    message = (
        "You will now receive donation requests from blood banks"
        if availability.available
        else "You have opted out of donation requests"
    )
    return ResponseWrapper(message=message, data=DonorResponse.from_donor(donor))


@router.get("/{donor_id}/donations", response_model=ResponseWrapper[List[DonationResponse]])
async def get_donation_history(donor_id: UUID, db: AsyncSession = Depends(get_db)):
    donations = await DonationService(db).get_donation_history(donor_id)
    return ResponseWrapper(data=[DonationResponse.from_donation(d) for d in donations])


@router.get("/{donor_id}/requests", response_model=ResponseWrapper[List[DonorIncomingRequestItem]])
async def get_incoming_requests(donor_id: UUID, db: AsyncSession = Depends(get_db)):
    requests = await DonorRequestService(db).get_donor_requests(donor_id)
    return ResponseWrapper(data=[DonorIncomingRequestItem.from_request(r) for r in requests])


@router.post(
    "/{donor_id}/requests/{request_id}/respond",
    response_model=ResponseWrapper[DonorRequestResponse],
)
async def respond_to_request(
    donor_id: UUID,
    request_id: UUID,
    response_data: DonorRequestRespond,
    db: AsyncSession = Depends(get_db),
):
    request = await DonorRequestService(db).respond_to_request(
        request_id, donor_id, response_data.accept
    )
    message = (
        "Request accepted! Please visit the blood bank."
        if response_data.accept
        else "Request declined."
    )
    return ResponseWrapper(message=message, data=DonorRequestResponse.from_request(request))
