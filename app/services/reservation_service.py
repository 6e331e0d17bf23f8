import logging
from datetime import datetime, timedelta
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.blood_bank import BloodBank
from app.models.reservation import Reservation
from app.schemas.base_schema import BloodType, ReservationStatus
from app.services.inventory_service import BloodInventoryService
from app.services.notification_service import NotificationDispatcher, NotificationTemplate
from app.utils.exceptions import IneligibleError, NotFoundError, ValidationError
from app.utils.logging_config import log_audit_event
from app.utils.phone import normalize_phone

logger = logging.getLogger(__name__)

RESERVATION_TTL_HOURS = 24


class ReservationService:
    """Patient-side holds on bank stock. Completing one takes the units out of inventory."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationDispatcher] = None):
        self.db = db
        self.notifier = notifier
        self.inventory_service = BloodInventoryService(db)

    async def create_reservation(
        self,
        bank_id: UUID,
        patient_name: str,
        contact_number: str,
        blood_type: str,
        units_needed: int,
        urgency_level: Optional[str] = None,
        additional_notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Reservation:
        if units_needed is None or units_needed <= 0:
            raise ValidationError("Units needed must be greater than 0")
        if not patient_name or not contact_number:
            raise ValidationError("Patient name and contact number are required")

        normalized_type = BloodType.normalize(blood_type)
        if normalized_type is None:
            raise ValidationError(
                f"Invalid blood type. Must be one of: {', '.join(BloodType.get_values())}"
            )

        bank = await self.db.get(BloodBank, bank_id)
        if bank is None:
            raise NotFoundError("Blood bank not found")

        inventory = await self.inventory_service.get_record(bank_id, normalized_type)
        available = inventory.units_available if inventory else 0
        if units_needed > available:
            raise IneligibleError(
                f"Insufficient blood units. Requested: {units_needed}, Available: {available}",
                requested=units_needed,
                available=available,
            )

        now = now or datetime.now()
        reservation = Reservation(
            blood_bank_id=bank_id,
            patient_name=patient_name,
            contact_number=normalize_phone(contact_number),
            blood_type=normalized_type,
            units_needed=units_needed,
            urgency_level=urgency_level or "normal",
            additional_notes=additional_notes,
            status=ReservationStatus.PENDING,
            expires_at=now + timedelta(hours=RESERVATION_TTL_HOURS),
        )
        self.db.add(reservation)
        await self.db.commit()
        await self.db.refresh(reservation)

        logger.info(f"New reservation created: {reservation.id}")
        log_audit_event(
            action="reservation_created",
            resource_type="reservation",
            resource_id=str(reservation.id),
            new_values={"blood_type": normalized_type, "units_needed": units_needed},
            bank=str(bank_id),
        )

        self._notify(
            NotificationTemplate.RESERVATION_CONFIRMATION,
            {
                "phoneNumber": reservation.contact_number,
                "patientName": reservation.patient_name,
                "bloodType": reservation.blood_type,
                "unitsNeeded": reservation.units_needed,
                "bloodBankName": bank.name,
                "reservationId": str(reservation.id),
            },
        )
        return reservation

    async def update_status(
        self,
        reservation_id: UUID,
        status: Union[str, ReservationStatus],
        bank_id: Optional[UUID] = None,
    ) -> Reservation:
        new_status = self._parse_status(status)
        reservation = await self.get_reservation(reservation_id, bank_id)
        previous = reservation.status

        reservation.status = new_status
        if new_status == ReservationStatus.COMPLETED and previous != ReservationStatus.COMPLETED:
            # deduct_units commits, which also persists the status change
            await self.inventory_service.deduct_units(
                reservation.blood_bank_id, reservation.blood_type, reservation.units_needed
            )
            logger.info(
                f"Deducted {reservation.units_needed} units of {reservation.blood_type} "
                f"from bank {reservation.blood_bank_id}"
            )
        else:
            await self.db.commit()
        await self.db.refresh(reservation)

        log_audit_event(
            action="reservation_status_changed",
            resource_type="reservation",
            resource_id=str(reservation.id),
            old_values={"status": previous.value},
            new_values={"status": new_status.value},
            bank=str(reservation.blood_bank_id),
        )
        self._notify(
            NotificationTemplate.RESERVATION_STATUS,
            {
                "phoneNumber": reservation.contact_number,
                "patientName": reservation.patient_name,
                "status": new_status.value,
                "bloodBankName": reservation.blood_bank.name,
            },
        )
        return reservation

    async def cancel(self, reservation_id: UUID, bank_id: Optional[UUID] = None) -> Reservation:
        return await self.update_status(reservation_id, ReservationStatus.CANCELLED, bank_id)

    async def get_reservation(
        self, reservation_id: UUID, bank_id: Optional[UUID] = None
    ) -> Reservation:
        result = await self.db.execute(select(Reservation).where(Reservation.id == reservation_id))
        reservation = result.scalars().unique().one_or_none()
        if reservation is None or (bank_id is not None and reservation.blood_bank_id != bank_id):
            raise NotFoundError("Reservation not found")
        return reservation

    async def list_reservations(self, bank_id: UUID) -> List[Reservation]:
        result = await self.db.execute(
            select(Reservation)
            .where(Reservation.blood_bank_id == bank_id)
            .order_by(Reservation.created_at.desc())
        )
        return list(result.scalars().unique().all())

    def _parse_status(self, status: Union[str, ReservationStatus]) -> ReservationStatus:
        if isinstance(status, ReservationStatus):
            return status
        try:
            return ReservationStatus((status or "").strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(s.value for s in ReservationStatus)}"
            )

    def _notify(self, template: NotificationTemplate, payload: dict) -> None:
        if self.notifier is not None:
            self.notifier.dispatch(template, payload)
