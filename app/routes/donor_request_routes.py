from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_notifier
from app.schemas.donor import DonorResponse
from app.schemas.donor_request import (
    BankRequestHistoryItem,
    DonorRequestCreate,
    DonorRequestResponse,
)
from app.services.donor_request_service import DonorRequestService
from app.services.notification_service import NotificationDispatcher
from app.utils.data_wrapper import ResponseWrapper

router = APIRouter(
    prefix="/donor-requests",
    tags=["donor requests"]
)


@router.get("/{bank_id}/search", response_model=ResponseWrapper[List[DonorResponse]])
async def search_donors(
    bank_id: UUID,
    city: str = Query(..., min_length=1),
    blood_type: Optional[str] = Query(None, description="Blood type, or ALL"),
    db: AsyncSession = Depends(get_db),
):
    """Eligible donors in a city who can be contacted right now."""
    donors = await DonorRequestService(db).search_donors(bank_id, city, blood_type)
    return ResponseWrapper(data=[DonorResponse.from_donor(d) for d in donors])


@router.post(
    "/{bank_id}/send",
    response_model=ResponseWrapper[DonorRequestResponse],
    status_code=status.HTTP_201_CREATED,
)
async def send_request(
    bank_id: UUID,
    request_data: DonorRequestCreate,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    request = await DonorRequestService(db, notifier).send_request(
        request_data.donor_id, bank_id, message=request_data.message
    )
    return ResponseWrapper(
        message="Donation request sent",
        data=DonorRequestResponse.from_request(request),
    )


@router.get("/{bank_id}/history", response_model=ResponseWrapper[List[BankRequestHistoryItem]])
async def get_request_history(bank_id: UUID, db: AsyncSession = Depends(get_db)):
    requests = await DonorRequestService(db).get_bank_request_history(bank_id)
    return ResponseWrapper(data=[BankRequestHistoryItem.from_request(r) for r in requests])


@router.post("/{bank_id}/{request_id}/donated", response_model=ResponseWrapper[DonorRequestResponse])
async def mark_donated(
    bank_id: UUID,
    request_id: UUID,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    request = await DonorRequestService(db, notifier).mark_donated(request_id, bank_id)
    return ResponseWrapper(
        message="Request marked as donated",
        data=DonorRequestResponse.from_request(request),
    )
