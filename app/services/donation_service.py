"""
Two-step donation intake.

Step one records that a donor gave blood on a date and leaves a pending
Donation behind. Step two turns that donation into one blood unit per
processed component and finalises it. A donation is finalised exactly once,
even when two clerks submit its components at the same time.
"""

from datetime import date
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.blood_bank import BloodBank
from app.models.blood_unit import BloodUnit
from app.models.donation import Donation
from app.models.donor import Donor
from app.schemas.base_schema import BloodComponent, BloodType
from app.services.blood_unit_service import BloodUnitService
from app.utils.exceptions import (
    ConflictError,
    IneligibleError,
    NotFoundError,
    ValidationError,
)
from app.utils.logging_config import get_logger, log_audit_event
from app.utils.phone import mask_phone, normalize_phone, phone_lookup_candidates

logger = get_logger(__name__)

DEFAULT_DONOR_WEIGHT = 50


class DonationService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.unit_service = BloodUnitService(db)

    # ------------------------------------------------------------------
    # Step 1
    # ------------------------------------------------------------------

    async def record_donation(
        self,
        bank_id: UUID,
        phone: str,
        donation_date: date,
        blood_type: Optional[str] = None,
        donor_name: Optional[str] = None,
        donor_date_of_birth: Optional[date] = None,
        today: Optional[date] = None,
    ) -> Donation:
        """
        Record a donation without components.

        Known donors must be past their donation gap. Unknown phone numbers
        register a walk-in donor, which needs a name, date of birth and
        blood type.
        """
        donation, _ = await self._create_pending_donation(
            bank_id,
            phone,
            donation_date,
            blood_type=blood_type,
            donor_name=donor_name,
            donor_date_of_birth=donor_date_of_birth,
            today=today,
        )
        await self.db.commit()
        await self.db.refresh(donation)

        log_audit_event(
            action="donation_recorded",
            resource_type="donation",
            resource_id=str(donation.id),
            new_values={
                "donor_id": str(donation.donor_id),
                "donation_date": donation.donation_date.isoformat(),
                "components_added": False,
            },
            bank=str(bank_id),
        )
        return donation

    async def _create_pending_donation(
        self,
        bank_id: UUID,
        phone: str,
        donation_date: date,
        blood_type: Optional[str] = None,
        donor_name: Optional[str] = None,
        donor_date_of_birth: Optional[date] = None,
        today: Optional[date] = None,
    ) -> Tuple[Donation, Donor]:
        if not phone or donation_date is None:
            raise ValidationError("Phone and donation date required")

        today = today or date.today()
        if donation_date > today:
            raise ValidationError("Donation date cannot be in the future")

        normalized_type = None
        if blood_type:
            normalized_type = BloodType.normalize(blood_type)
            if normalized_type is None:
                raise ValidationError(
                    f"Invalid blood type. Must be one of: {', '.join(BloodType.get_values())}"
                )

        bank = await self.db.get(BloodBank, bank_id)
        if bank is None:
            raise NotFoundError("Blood bank not found")

        normalized_phone = normalize_phone(phone)
        result = await self.db.execute(select(Donor).where(Donor.phone == normalized_phone))
        donor = result.scalar_one_or_none()

        if donor is None:
            if not donor_name or donor_date_of_birth is None or normalized_type is None:
                raise ValidationError("New donor requires name, date of birth and blood type")

            donor = Donor(
                name=donor_name,
                phone=normalized_phone,
                blood_type=normalized_type,
                date_of_birth=donor_date_of_birth,
                city=bank.city,
                weight=DEFAULT_DONOR_WEIGHT,
                is_verified=False,
                last_donation_date=donation_date,
            )
            self.db.add(donor)
            await self.db.flush()
            logger.info(f"New walk-in donor registered: {donor_name} ({mask_phone(normalized_phone)})")
        else:
            if not donor.is_eligible(today):
                days_remaining = donor.days_until_eligible(today)
                raise IneligibleError(
                    f"Donor is not eligible to donate yet. {days_remaining} days remaining.",
                    days_remaining=days_remaining,
                )
            # a backdated entry never moves the last donation earlier
            if donor.last_donation_date is None or donation_date > donor.last_donation_date:
                donor.last_donation_date = donation_date
            if normalized_type:
                donor.blood_type = normalized_type

        donation = Donation(
            donor_id=donor.id,
            blood_bank_id=bank_id,
            donation_date=donation_date,
            units=1,
            components_added=False,
        )
        self.db.add(donation)
        await self.db.flush()
        return donation, donor

    # ------------------------------------------------------------------
    # Step 2
    # ------------------------------------------------------------------

    async def add_components(
        self,
        bank_id: UUID,
        donation_id: UUID,
        components: Sequence[str],
    ) -> List[BloodUnit]:
        """Create one unit per component and finalise the donation."""
        parsed_components = self._parse_components(components)

        donation = await self.get_donation(donation_id)
        if donation.blood_bank_id is not None and donation.blood_bank_id != bank_id:
            raise NotFoundError("Donation not found")
        if donation.components_added:
            raise ConflictError("Components already added to this donation")

        units = await self._finalize(bank_id, donation, donation.donor, parsed_components)
        await self.db.commit()
        await self._refresh_all(units)
        await self.db.refresh(donation)

        self._audit_finalized(bank_id, donation, units)
        return units

    async def _finalize(
        self,
        bank_id: UUID,
        donation: Donation,
        donor: Donor,
        components: List[BloodComponent],
    ) -> List[BloodUnit]:
        # Compare-and-set: only the caller that flips the flag may create units
        result = await self.db.execute(
            update(Donation)
            .where(Donation.id == donation.id, Donation.components_added.is_(False))
            .values(components_added=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise ConflictError("Components already added to this donation")

        units = []
        for component in components:
            unit = await self.unit_service.build_unit(
                bank_id=bank_id,
                blood_type=donor.blood_type,
                component=component,
                collection_date=donation.donation_date,
                donor_id=donor.id,
            )
            units.append(unit)
        return units

    # ------------------------------------------------------------------
    # Other entry points
    # ------------------------------------------------------------------

    async def add_unit(
        self,
        bank_id: UUID,
        blood_type: str,
        component: str,
        collection_date: date,
        donor_id: Optional[UUID] = None,
        unit_number: Optional[str] = None,
    ) -> BloodUnit:
        """Single unit entry without a donation record."""
        return await self.unit_service.create_unit(
            bank_id=bank_id,
            blood_type=blood_type,
            component=component,
            collection_date=collection_date,
            donor_id=donor_id,
            unit_number=unit_number,
        )

    async def record_donation_with_components(
        self,
        bank_id: UUID,
        phone: str,
        donation_date: date,
        components: Sequence[str],
        blood_type: Optional[str] = None,
        donor_name: Optional[str] = None,
        donor_date_of_birth: Optional[date] = None,
        today: Optional[date] = None,
    ) -> Tuple[Donation, List[BloodUnit]]:
        """Both steps in one transaction."""
        parsed_components = self._parse_components(components)

        donation, donor = await self._create_pending_donation(
            bank_id,
            phone,
            donation_date,
            blood_type=blood_type,
            donor_name=donor_name,
            donor_date_of_birth=donor_date_of_birth,
            today=today,
        )
        units = await self._finalize(bank_id, donation, donor, parsed_components)
        await self.db.commit()
        await self._refresh_all(units)
        await self.db.refresh(donation)

        self._audit_finalized(bank_id, donation, units)
        return donation, units

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def lookup_donor(self, phone: str) -> Optional[Donor]:
        """Find a donor by phone, whichever format the number was stored in."""
        if not phone:
            raise ValidationError("Phone number is required")

        for candidate in phone_lookup_candidates(phone):
            result = await self.db.execute(select(Donor).where(Donor.phone == candidate))
            donor = result.scalar_one_or_none()
            if donor is not None:
                return donor
        return None

    async def get_donation(self, donation_id: UUID) -> Donation:
        result = await self.db.execute(select(Donation).where(Donation.id == donation_id))
        donation = result.scalars().unique().one_or_none()
        if donation is None:
            raise NotFoundError("Donation not found")
        return donation

    async def list_pending_donations(self, bank_id: UUID) -> List[Donation]:
        result = await self.db.execute(
            select(Donation)
            .where(
                Donation.blood_bank_id == bank_id,
                Donation.components_added.is_(False),
            )
            .order_by(Donation.donation_date.desc(), Donation.created_at.desc())
        )
        return list(result.scalars().unique().all())

    async def get_donation_history(self, donor_id: UUID) -> List[Donation]:
        donor = await self.db.get(Donor, donor_id)
        if donor is None:
            raise NotFoundError("Donor not found")

        result = await self.db.execute(
            select(Donation)
            .where(Donation.donor_id == donor_id)
            .order_by(Donation.donation_date.desc())
        )
        return list(result.scalars().unique().all())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_components(self, components: Optional[Sequence[str]]) -> List[BloodComponent]:
        if not components:
            raise ValidationError("At least one component required")

        parsed = []
        for raw in components:
            component = BloodComponent.parse(raw)
            if component is None:
                raise ValidationError(f"Unknown blood component: {raw}")
            parsed.append(component)
        return parsed

    async def _refresh_all(self, units: List[BloodUnit]) -> None:
        for unit in units:
            await self.db.refresh(unit)

    def _audit_finalized(self, bank_id: UUID, donation: Donation, units: List[BloodUnit]) -> None:
        log_audit_event(
            action="donation_finalized",
            resource_type="donation",
            resource_id=str(donation.id),
            old_values={"components_added": False},
            new_values={
                "components_added": True,
                "unit_numbers": [unit.unit_number for unit in units],
            },
            bank=str(bank_id),
        )
