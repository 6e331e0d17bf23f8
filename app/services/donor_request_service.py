import logging
from datetime import datetime, time, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.blood_bank import BloodBank
from app.models.donor import Donor
from app.models.donor_request import DonorRequest
from app.schemas.base_schema import BloodType, RequestStatus
from app.services.notification_service import NotificationDispatcher, NotificationTemplate
from app.utils.eligibility import eligibility_cutoff
from app.utils.exceptions import (
    ConflictError,
    ExpiredResourceError,
    IneligibleError,
    NotFoundError,
    ValidationError,
)
from app.utils.logging_config import log_audit_event

logger = logging.getLogger(__name__)


class DonorRequestService:
    """
    Blood banks asking individual donors to come in.

    A bank may send a limited number of requests per day, a donor is not
    contacted twice within the cooldown window, and donors who opted out are
    never contacted. Requests go PENDING -> ACCEPTED -> DONATED, or end as
    DECLINED or EXPIRED.
    """

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationDispatcher] = None):
        self.db = db
        self.notifier = notifier

    async def search_donors(
        self,
        bank_id: UUID,
        city: str,
        blood_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[Donor]:
        """Eligible, contactable donors in a city that nobody asked recently."""
        if not city or not city.strip():
            raise ValidationError("City is required")

        now = now or datetime.now()
        if await self.db.get(BloodBank, bank_id) is None:
            raise NotFoundError("Blood bank not found")

        recently_contacted = select(DonorRequest.donor_id).where(
            DonorRequest.requested_at >= now - timedelta(days=settings.CONTACT_COOLDOWN_DAYS)
        )
        cutoff = eligibility_cutoff(now.date())

        query = select(Donor).where(
            func.lower(Donor.city) == city.strip().lower(),
            or_(Donor.last_donation_date.is_(None), Donor.last_donation_date <= cutoff),
            or_(Donor.is_available_for_contact.is_(None), Donor.is_available_for_contact.is_(True)),
            Donor.id.not_in(recently_contacted),
        )

        if blood_type and blood_type.strip().upper() != "ALL":
            normalized_type = BloodType.normalize(blood_type)
            if normalized_type is None:
                raise ValidationError(f"Invalid blood type: {blood_type}")
            query = query.where(Donor.blood_type == normalized_type)

        result = await self.db.execute(query.order_by(Donor.name))
        return list(result.scalars().all())

    async def send_request(
        self,
        donor_id: UUID,
        bank_id: UUID,
        message: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DonorRequest:
        # The counts below and the insert are not serialised against other
        # callers; two concurrent sends may both pass the checks.
        now = now or datetime.now()

        start_of_day = datetime.combine(now.date(), time.min)
        sent_today = await self.db.scalar(
            select(func.count(DonorRequest.id)).where(
                DonorRequest.blood_bank_id == bank_id,
                DonorRequest.requested_at >= start_of_day,
            )
        )
        if (sent_today or 0) >= settings.DAILY_REQUEST_LIMIT:
            raise IneligibleError(
                f"Daily request limit reached ({settings.DAILY_REQUEST_LIMIT}/day)",
                limit=settings.DAILY_REQUEST_LIMIT,
            )

        cooldown_start = now - timedelta(days=settings.CONTACT_COOLDOWN_DAYS)
        recent = await self.db.scalar(
            select(func.count(DonorRequest.id)).where(
                DonorRequest.donor_id == donor_id,
                DonorRequest.requested_at >= cooldown_start,
            )
        )
        if recent:
            raise IneligibleError(
                f"This donor was contacted recently. Please wait {settings.CONTACT_COOLDOWN_DAYS} days.",
                cooldown_days=settings.CONTACT_COOLDOWN_DAYS,
            )

        donor = await self.db.get(Donor, donor_id)
        bank = await self.db.get(BloodBank, bank_id)
        if donor is None or bank is None:
            raise NotFoundError("Donor or blood bank not found")

        if not donor.is_contactable:
            raise IneligibleError("Donor has opted out of direct contact")

        request = DonorRequest(
            donor_id=donor.id,
            blood_bank_id=bank.id,
            status=RequestStatus.PENDING,
            requested_at=now,
            expires_at=now + timedelta(hours=settings.REQUEST_TTL_HOURS),
            message=message,
        )
        self.db.add(request)
        await self.db.commit()
        await self.db.refresh(request)

        logger.info(f"Donation request sent from {bank.name} to donor {donor.name}")
        log_audit_event(
            action="donor_request_sent",
            resource_type="donor_request",
            resource_id=str(request.id),
            new_values={"donor_id": str(donor.id), "status": RequestStatus.PENDING.value},
            bank=str(bank.id),
        )

        self._notify(
            NotificationTemplate.DONATION_REQUEST,
            {
                "phoneNumber": donor.phone,
                "donorName": donor.name,
                "bloodBankName": bank.name,
                "city": bank.city,
                "bankPhone": bank.phone,
                "bankAddress": bank.address,
                "requestId": str(request.id),
            },
        )
        return request

    async def respond_to_request(
        self,
        request_id: UUID,
        donor_id: UUID,
        accept: bool,
        now: Optional[datetime] = None,
    ) -> DonorRequest:
        now = now or datetime.now()
        request = await self.get_request(request_id)

        if request.donor_id != donor_id:
            raise ConflictError("Not authorized to respond to this request")

        if request.status != RequestStatus.PENDING:
            raise ConflictError("Request already responded to", status=request.status.value)

        if request.is_expired(now):
            request.status = RequestStatus.EXPIRED
            await self.db.commit()
            self._audit_transition(request, RequestStatus.PENDING, RequestStatus.EXPIRED)
            raise ExpiredResourceError("Request has expired")

        new_status = RequestStatus.ACCEPTED if accept else RequestStatus.DECLINED
        request.status = new_status
        request.responded_at = now
        await self.db.commit()
        await self.db.refresh(request)

        logger.info(
            f"Donor {donor_id} {'accepted' if accept else 'declined'} request {request_id}"
        )
        self._audit_transition(request, RequestStatus.PENDING, new_status)
        return request

    async def mark_donated(
        self,
        request_id: UUID,
        bank_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> DonorRequest:
        """Close an accepted request once the bank has recorded the donation."""
        now = now or datetime.now()
        request = await self.get_request(request_id)

        if bank_id is not None and request.blood_bank_id != bank_id:
            raise ConflictError("Request belongs to another blood bank")

        if request.status != RequestStatus.ACCEPTED:
            raise ConflictError(
                f"Only accepted requests can be marked as donated (status is {request.status.value})",
                status=request.status.value,
            )

        request.status = RequestStatus.DONATED
        request.responded_at = now
        await self.db.commit()
        await self.db.refresh(request)

        self._audit_transition(request, RequestStatus.ACCEPTED, RequestStatus.DONATED)
        self._notify(
            NotificationTemplate.THANK_YOU,
            {
                "phoneNumber": request.donor.phone,
                "donorName": request.donor.name,
                "bloodBankName": request.blood_bank.name,
            },
        )
        return request

    async def toggle_contact_availability(self, donor_id: UUID, available: bool) -> Donor:
        donor = await self.db.get(Donor, donor_id)
        if donor is None:
            raise NotFoundError("Donor not found")

        old_value = donor.is_available_for_contact
        donor.is_available_for_contact = available
        await self.db.commit()
        await self.db.refresh(donor)

        log_audit_event(
            action="contact_availability_changed",
            resource_type="donor",
            resource_id=str(donor.id),
            old_values={"is_available_for_contact": old_value},
            new_values={"is_available_for_contact": available},
        )
        return donor

    async def get_request(self, request_id: UUID) -> DonorRequest:
        result = await self.db.execute(select(DonorRequest).where(DonorRequest.id == request_id))
        request = result.scalars().unique().one_or_none()
        if request is None:
            raise NotFoundError("Request not found")
        return request

    async def get_bank_request_history(self, bank_id: UUID) -> List[DonorRequest]:
        result = await self.db.execute(
            select(DonorRequest)
            .where(DonorRequest.blood_bank_id == bank_id)
            .order_by(DonorRequest.requested_at.desc())
        )
        return list(result.scalars().unique().all())

    async def get_donor_requests(self, donor_id: UUID) -> List[DonorRequest]:
        result = await self.db.execute(
            select(DonorRequest)
            .where(DonorRequest.donor_id == donor_id)
            .order_by(DonorRequest.requested_at.desc())
        )
        return list(result.scalars().unique().all())

    async def expire_stale_requests(self, now: Optional[datetime] = None) -> int:
        """Close every PENDING request whose response window has passed."""
        now = now or datetime.now()
        result = await self.db.execute(
            update(DonorRequest)
            .where(
                DonorRequest.status == RequestStatus.PENDING,
                DonorRequest.expires_at < now,
            )
            .values(status=RequestStatus.EXPIRED)
        )
        await self.db.commit()

        expired = result.rowcount or 0
        if expired:
            logger.info(f"Expired {expired} stale donor requests")
        return expired

    def _notify(self, template: NotificationTemplate, payload: dict) -> None:
        if self.notifier is None:
            logger.debug(f"No notifier configured, '{template.value}' not sent")
            return
        self.notifier.dispatch(template, payload)

    def _audit_transition(
        self, request: DonorRequest, old: RequestStatus, new: RequestStatus
    ) -> None:
        log_audit_event(
            action="donor_request_status_changed",
            resource_type="donor_request",
            resource_id=str(request.id),
            old_values={"status": old.value},
            new_values={"status": new.value},
            bank=str(request.blood_bank_id),
        )
