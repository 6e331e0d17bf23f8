import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.blood_bank import BloodBank
from app.models.blood_unit import BloodUnit
from app.models.donor import Donor
from app.schemas.base_schema import (
    PLATELET_COMPONENTS,
    USABLE_STATUSES,
    BloodComponent,
    BloodType,
    UnitStatus,
)
from app.utils.exceptions import (
    ConflictError,
    ExpiredResourceError,
    NotFoundError,
    ValidationError,
)
from app.utils.logging_config import log_audit_event

logger = logging.getLogger(__name__)


class BloodUnitService:
    """Creation, status changes and expiry tracking of individual blood units."""

    # Generated numbers may collide with numbers typed in by hand
    MAX_NUMBER_ATTEMPTS = 5

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_unit(
        self,
        bank_id: UUID,
        blood_type: str,
        component: Union[str, BloodComponent],
        collection_date: date,
        donor_id: Optional[UUID] = None,
        unit_number: Optional[str] = None,
        today: Optional[date] = None,
    ) -> BloodUnit:
        """Create one AVAILABLE unit and commit it."""
        unit = await self.build_unit(
            bank_id=bank_id,
            blood_type=blood_type,
            component=component,
            collection_date=collection_date,
            donor_id=donor_id,
            unit_number=unit_number,
            today=today,
        )
        await self.db.commit()
        await self.db.refresh(unit)

        log_audit_event(
            action="unit_created",
            resource_type="blood_unit",
            resource_id=str(unit.id),
            new_values={
                "unit_number": unit.unit_number,
                "component": unit.component.value,
                "expiry_date": unit.expiry_date.isoformat(),
            },
            bank=str(bank_id),
        )
        return unit

    async def build_unit(
        self,
        bank_id: UUID,
        blood_type: str,
        component: Union[str, BloodComponent],
        collection_date: date,
        donor_id: Optional[UUID] = None,
        unit_number: Optional[str] = None,
        today: Optional[date] = None,
    ) -> BloodUnit:
        """
        Validate and flush a new unit without committing.

        Used directly by the donation workflow so that the units and the
        donation's finalised flag land in the same transaction.
        """
        normalized_type = BloodType.normalize(blood_type)
        if normalized_type is None:
            raise ValidationError(
                f"Invalid blood type. Must be one of: {', '.join(BloodType.get_values())}"
            )

        parsed_component = BloodComponent.parse(component)
        if parsed_component is None:
            raise ValidationError(f"Unknown blood component: {component}")

        if collection_date is None:
            raise ValidationError("Collection date is required")
        today = today or date.today()
        if collection_date > today:
            raise ValidationError("Collection date cannot be in the future")

        await self._get_bank(bank_id)

        if donor_id is not None and await self.db.get(Donor, donor_id) is None:
            logger.info(f"Donor {donor_id} not found, unit stored without donor link")
            donor_id = None

        if unit_number:
            unit_number = unit_number.strip()
            if await self._unit_number_taken(bank_id, unit_number):
                raise ConflictError(f"Unit number {unit_number} already exists")
        else:
            unit_number = await self._next_unit_number(bank_id)

        unit = BloodUnit(
            blood_bank_id=bank_id,
            unit_number=unit_number,
            blood_type=normalized_type,
            component=parsed_component,
            collection_date=collection_date,
            expiry_date=collection_date + timedelta(days=parsed_component.shelf_life_days),
            status=UnitStatus.AVAILABLE,
            donor_id=donor_id,
        )
        self.db.add(unit)

        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(f"Unit number {unit_number} already exists")

        return unit

    async def _next_unit_number(self, bank_id: UUID) -> str:
        """Take the next value of the bank's counter inside the current transaction."""
        for _ in range(self.MAX_NUMBER_ATTEMPTS):
            result = await self.db.execute(
                update(BloodBank)
                .where(BloodBank.id == bank_id)
                .values(unit_sequence=BloodBank.unit_sequence + 1)
                .returning(BloodBank.unit_sequence)
                .execution_options(synchronize_session=False)
            )
            candidate = f"{result.scalar_one():03d}"
            if not await self._unit_number_taken(bank_id, candidate):
                return candidate
            logger.info(f"Unit number {candidate} already used in bank {bank_id}, retrying")

        raise ConflictError("Could not allocate a free unit number, please retry")

    async def _unit_number_taken(self, bank_id: UUID, unit_number: str) -> bool:
        result = await self.db.execute(
            select(BloodUnit.id).where(
                BloodUnit.blood_bank_id == bank_id,
                BloodUnit.unit_number == unit_number,
            )
        )
        return result.first() is not None

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    async def set_status(
        self,
        bank_id: UUID,
        unit_id: UUID,
        new_status: Union[str, UnitStatus],
        today: Optional[date] = None,
    ) -> BloodUnit:
        """
        Move a unit to ``new_status``.

        A unit past its expiry date cannot be made AVAILABLE, RESERVED or
        USED. The attempt records the unit as EXPIRED before it is rejected.
        """
        status_value = UnitStatus.parse(new_status)
        if status_value is None:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(s.value for s in UnitStatus)}"
            )

        unit = await self.get_unit(bank_id, unit_id)
        today = today or date.today()
        old_status = unit.status

        if unit.is_expired(today) and status_value in USABLE_STATUSES:
            if old_status not in (UnitStatus.EXPIRED, UnitStatus.DISCARDED):
                unit.status = UnitStatus.EXPIRED
                await self.db.commit()
                log_audit_event(
                    action="unit_expired",
                    resource_type="blood_unit",
                    resource_id=str(unit.id),
                    old_values={"status": old_status.value},
                    new_values={"status": UnitStatus.EXPIRED.value},
                    bank=str(bank_id),
                )
            raise ExpiredResourceError(
                f"Unit {unit.unit_number} expired on {unit.expiry_date.isoformat()}",
                expiry_date=unit.expiry_date.isoformat(),
            )

        unit.status = status_value
        await self.db.commit()
        await self.db.refresh(unit)

        log_audit_event(
            action="unit_status_changed",
            resource_type="blood_unit",
            resource_id=str(unit.id),
            old_values={"status": old_status.value},
            new_values={"status": status_value.value},
            bank=str(bank_id),
        )
        return unit

    async def sweep_expired(
        self, bank_id: Optional[UUID] = None, as_of: Optional[date] = None
    ) -> int:
        """Mark AVAILABLE units past their expiry date as EXPIRED. Safe to repeat."""
        as_of = as_of or date.today()
        stmt = update(BloodUnit).where(
            BloodUnit.status == UnitStatus.AVAILABLE,
            BloodUnit.expiry_date < as_of,
        )
        if bank_id is not None:
            stmt = stmt.where(BloodUnit.blood_bank_id == bank_id)

        result = await self.db.execute(stmt.values(status=UnitStatus.EXPIRED))
        await self.db.commit()

        swept = result.rowcount or 0
        if swept:
            logger.info(f"Marked {swept} blood units as expired (as of {as_of})")
            log_audit_event(
                action="units_swept_expired",
                resource_type="blood_unit",
                new_values={"count": swept, "as_of": as_of.isoformat()},
                bank=str(bank_id) if bank_id else None,
            )
        return swept

    async def delete_unit(self, bank_id: UUID, unit_id: UUID) -> None:
        unit = await self.get_unit(bank_id, unit_id)
        await self.db.delete(unit)
        await self.db.commit()

        log_audit_event(
            action="unit_deleted",
            resource_type="blood_unit",
            resource_id=str(unit_id),
            old_values={"unit_number": unit.unit_number, "status": unit.status.value},
            bank=str(bank_id),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_unit(self, bank_id: UUID, unit_id: UUID) -> BloodUnit:
        result = await self.db.execute(
            select(BloodUnit).where(
                BloodUnit.id == unit_id,
                BloodUnit.blood_bank_id == bank_id,
            )
        )
        unit = result.scalar_one_or_none()
        if unit is None:
            raise NotFoundError("Blood unit not found")
        return unit

    async def list_units(
        self,
        bank_id: UUID,
        status: Optional[str] = None,
        blood_type: Optional[str] = None,
        component: Optional[str] = None,
    ) -> List[BloodUnit]:
        """Units of a bank, soonest expiry first."""
        query = select(BloodUnit).where(BloodUnit.blood_bank_id == bank_id)

        if status:
            status_value = UnitStatus.parse(status)
            if status_value is None:
                raise ValidationError(f"Invalid status: {status}")
            query = query.where(BloodUnit.status == status_value)

        if blood_type:
            normalized_type = BloodType.normalize(blood_type)
            if normalized_type is None:
                raise ValidationError(f"Invalid blood type: {blood_type}")
            query = query.where(BloodUnit.blood_type == normalized_type)

        if component:
            parsed_component = BloodComponent.parse(component)
            if parsed_component is None:
                raise ValidationError(f"Unknown blood component: {component}")
            query = query.where(BloodUnit.component == parsed_component)

        result = await self.db.execute(
            query.order_by(BloodUnit.expiry_date.asc(), BloodUnit.unit_number.asc())
        )
        return list(result.scalars().unique().all())

    async def get_expiring_units(
        self, bank_id: UUID, days: int = 7, today: Optional[date] = None
    ) -> List[BloodUnit]:
        """AVAILABLE units whose expiry falls between today and today + days."""
        today = today or date.today()
        result = await self.db.execute(
            select(BloodUnit)
            .where(
                BloodUnit.blood_bank_id == bank_id,
                BloodUnit.status == UnitStatus.AVAILABLE,
                BloodUnit.expiry_date >= today,
                BloodUnit.expiry_date <= today + timedelta(days=days),
            )
            .order_by(BloodUnit.expiry_date.asc())
        )
        return list(result.scalars().unique().all())

    async def get_expiry_summary(
        self, bank_id: UUID, today: Optional[date] = None
    ) -> Dict[str, int]:
        today = today or date.today()

        total_result = await self.db.execute(
            select(func.count(BloodUnit.id)).where(
                BloodUnit.blood_bank_id == bank_id,
                BloodUnit.status == UnitStatus.AVAILABLE,
            )
        )

        summary = {"totalAvailable": total_result.scalar() or 0}
        for days in (3, 7, 14):
            summary[f"expiringIn{days}Days"] = await self._count_expiring_between(
                bank_id, today, today + timedelta(days=days)
            )
        summary["criticalPlatelets"] = await self._count_expiring_between(
            bank_id, today, today + timedelta(days=3), PLATELET_COMPONENTS
        )
        return summary

    async def _count_expiring_between(
        self, bank_id: UUID, start: date, end: date, components=None
    ) -> int:
        query = select(func.count(BloodUnit.id)).where(
            BloodUnit.blood_bank_id == bank_id,
            BloodUnit.status == UnitStatus.AVAILABLE,
            BloodUnit.expiry_date >= start,
            BloodUnit.expiry_date <= end,
        )
        if components:
            query = query.where(BloodUnit.component.in_(list(components)))
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def _get_bank(self, bank_id: UUID) -> BloodBank:
        bank = await self.db.get(BloodBank, bank_id)
        if bank is None:
            raise NotFoundError("Blood bank not found")
        return bank

    # ------------------------------------------------------------------
    # Derived expiry data
    # ------------------------------------------------------------------

    @staticmethod
    def days_until_expiry(unit: BloodUnit, today: Optional[date] = None) -> int:
        return unit.days_until_expiry(today)

    @staticmethod
    def hours_until_expiry(unit: BloodUnit, now: Optional[datetime] = None) -> int:
        return unit.hours_until_expiry(now)

    @staticmethod
    def expiry_bucket(unit: BloodUnit, today: Optional[date] = None):
        return unit.expiry_bucket(today)
