from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_notifier
from app.schemas.reservation import (
    ReservationCreate,
    ReservationResponse,
    ReservationStatusUpdate,
)
from app.services.notification_service import NotificationDispatcher
from app.services.reservation_service import ReservationService
from app.utils.data_wrapper import ResponseWrapper

router = APIRouter(
    prefix="/reservations",
    tags=["reservations"]
)


@router.post(
    "/{bank_id}",
    response_model=ResponseWrapper[ReservationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_reservation(
    bank_id: UUID,
    reservation_data: ReservationCreate,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    reservation = await ReservationService(db, notifier).create_reservation(
        bank_id=bank_id,
        patient_name=reservation_data.patient_name,
        contact_number=reservation_data.contact_number,
        blood_type=reservation_data.blood_type,
        units_needed=reservation_data.units_needed,
        urgency_level=reservation_data.urgency_level,
        additional_notes=reservation_data.additional_notes,
    )
    return ResponseWrapper(
        message="Reservation created",
        data=ReservationResponse.from_reservation(reservation),
    )


@router.get("/{bank_id}", response_model=ResponseWrapper[List[ReservationResponse]])
async def list_reservations(bank_id: UUID, db: AsyncSession = Depends(get_db)):
    reservations = await ReservationService(db).list_reservations(bank_id)
    return ResponseWrapper(data=[ReservationResponse.from_reservation(r) for r in reservations])


@router.put("/{bank_id}/{reservation_id}/status", response_model=ResponseWrapper[ReservationResponse])
async def update_reservation_status(
    bank_id: UUID,
    reservation_id: UUID,
    status_data: ReservationStatusUpdate,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    reservation = await ReservationService(db, notifier).update_status(
        reservation_id, status_data.status, bank_id
    )
    return ResponseWrapper(
        message="Reservation status updated",
        data=ReservationResponse.from_reservation(reservation),
    )


@router.post("/{bank_id}/{reservation_id}/cancel", response_model=ResponseWrapper[ReservationResponse])
async def cancel_reservation(
    bank_id: UUID,
    reservation_id: UUID,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    reservation = await ReservationService(db, notifier).cancel(reservation_id, bank_id)
    return ResponseWrapper(
        message="Reservation cancelled",
        data=ReservationResponse.from_reservation(reservation),
    )
