from datetime import date, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.blood_bank import BloodBank
from app.models.inventory import BloodInventory
from app.schemas.base_schema import BloodType, ExpiryBucket
from app.utils.exceptions import NotFoundError, ValidationError
from app.utils.logging_config import get_logger, log_audit_event

logger = get_logger(__name__)


class BloodInventoryService:
    """
    Bank-level running totals per blood type.

    These counters are maintained on their own and are never derived from the
    individual blood unit rows.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def update_inventory(
        self,
        bank_id: UUID,
        blood_type: str,
        units: int,
        collection_date: Optional[date] = None,
    ) -> BloodInventory:
        """Set (not add) the units available for a blood type, creating the row if needed."""
        normalized_type = self._validate_blood_type(blood_type)
        if units is None or units < 0:
            raise ValidationError("Units must be zero or more")

        bank = await self.db.get(BloodBank, bank_id)
        if bank is None:
            raise NotFoundError("Blood bank not found")

        collection = collection_date or date.today()
        expiry = collection + timedelta(days=settings.INVENTORY_SHELF_LIFE_DAYS)

        inventory = await self.get_record(bank_id, normalized_type)
        old_units = inventory.units_available if inventory else None
        if inventory is None:
            inventory = BloodInventory(blood_bank_id=bank_id, blood_type=normalized_type)
            self.db.add(inventory)

        inventory.units_available = units
        inventory.collection_date = collection
        inventory.expiry_date = expiry

        await self.db.commit()
        await self.db.refresh(inventory)

        logger.info(f"Inventory updated: {normalized_type} {units} units at bank {bank_id}")
        log_audit_event(
            action="inventory_set",
            resource_type="blood_inventory",
            resource_id=str(inventory.id),
            old_values={"units_available": old_units},
            new_values={"units_available": units, "expiry_date": expiry.isoformat()},
            bank=str(bank_id),
        )
        return inventory

    async def deduct_units(self, bank_id: UUID, blood_type: str, amount: int) -> int:
        """
        Take ``amount`` units out of stock in one conditional UPDATE.

        The counter is clamped at zero. Returns the number of rows touched,
        0 when the bank has no record for the blood type.
        """
        normalized_type = self._validate_blood_type(blood_type)
        if amount is None or amount <= 0:
            raise ValidationError("Amount to deduct must be greater than 0")

        result = await self.db.execute(
            update(BloodInventory)
            .where(
                BloodInventory.blood_bank_id == bank_id,
                BloodInventory.blood_type == normalized_type,
            )
            .values(
                units_available=case(
                    (
                        BloodInventory.units_available >= amount,
                        BloodInventory.units_available - amount,
                    ),
                    else_=0,
                )
            )
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()

        rows = result.rowcount or 0
        if rows:
            log_audit_event(
                action="inventory_deducted",
                resource_type="blood_inventory",
                new_values={"blood_type": normalized_type, "amount": amount},
                bank=str(bank_id),
            )
        else:
            logger.warning(
                f"No {normalized_type} inventory record at bank {bank_id}, nothing deducted"
            )
        return rows

    async def get_record(self, bank_id: UUID, blood_type: str) -> Optional[BloodInventory]:
        result = await self.db.execute(
            select(BloodInventory)
            .where(
                BloodInventory.blood_bank_id == bank_id,
                BloodInventory.blood_type == blood_type,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().unique().one_or_none()

    async def get_inventory(self, bank_id: UUID) -> List[BloodInventory]:
        result = await self.db.execute(
            select(BloodInventory)
            .where(BloodInventory.blood_bank_id == bank_id)
            .order_by(BloodInventory.blood_type)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().unique().all())

    async def get_all_inventory_grouped(self) -> List[Dict[str, Any]]:
        """Every bank with its per-type unit counts."""
        banks_result = await self.db.execute(select(BloodBank).order_by(BloodBank.name))
        grouped = []
        for bank in banks_result.scalars().all():
            records = await self.get_inventory(bank.id)
            grouped.append(
                {
                    "id": str(bank.id),
                    "name": bank.name,
                    "inventory": [
                        {"bloodType": record.blood_type, "units": record.units_available}
                        for record in records
                    ],
                }
            )
        return grouped

    async def get_low_stock_alerts(self, threshold: Optional[int] = None) -> List[Dict[str, Any]]:
        """Records that are running low but not empty: 0 < units < threshold."""
        threshold = settings.LOW_STOCK_THRESHOLD if threshold is None else threshold
        result = await self.db.execute(
            select(BloodInventory)
            .where(
                BloodInventory.units_available > 0,
                BloodInventory.units_available < threshold,
            )
            .order_by(BloodInventory.units_available.asc())
        )
        return [
            {
                "bloodBankId": str(record.blood_bank_id),
                "bloodBankName": record.blood_bank.name,
                "city": record.blood_bank.city,
                "bloodType": record.blood_type,
                "units": record.units_available,
                "threshold": threshold,
            }
            for record in result.scalars().unique().all()
        ]

    async def get_expiring_summary(
        self,
        bank_id: UUID,
        horizon_days: Optional[int] = None,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Stocked records expiring within the horizon, split by expiry bucket."""
        horizon_days = settings.EXPIRY_HORIZON_DAYS if horizon_days is None else horizon_days
        today = today or date.today()

        result = await self.db.execute(
            select(BloodInventory)
            .where(
                BloodInventory.blood_bank_id == bank_id,
                BloodInventory.units_available > 0,
                BloodInventory.expiry_date.is_not(None),
                BloodInventory.expiry_date <= today + timedelta(days=horizon_days),
            )
            .order_by(BloodInventory.expiry_date.asc())
        )
        records = result.scalars().unique().all()

        summary: Dict[str, Any] = {
            ExpiryBucket.EXPIRED.value: [],
            ExpiryBucket.CRITICAL.value: [],
            ExpiryBucket.WARNING.value: [],
        }
        for record in records:
            bucket = record.expiry_bucket(today)
            if bucket.value not in summary:
                continue
            summary[bucket.value].append(
                {
                    "bloodType": record.blood_type,
                    "units": record.units_available,
                    "expiryDate": record.expiry_date.isoformat(),
                    "daysLeft": record.days_left(today),
                    "status": bucket.value,
                }
            )
        summary["total"] = len(records)
        return summary

    async def get_blood_type_stats(self) -> List[Dict[str, Any]]:
        """Units available per blood type across every bank."""
        result = await self.db.execute(
            select(
                BloodInventory.blood_type,
                func.coalesce(func.sum(BloodInventory.units_available), 0),
            )
            .group_by(BloodInventory.blood_type)
            .order_by(BloodInventory.blood_type)
        )
        return [{"type": blood_type, "units": int(units)} for blood_type, units in result.all()]

    async def get_total_units(self) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.sum(BloodInventory.units_available), 0))
        )
        return int(result.scalar() or 0)

    def _validate_blood_type(self, blood_type: str) -> str:
        normalized_type = BloodType.normalize(blood_type)
        if normalized_type is None:
            raise ValidationError(
                f"Invalid blood type. Must be one of: {', '.join(BloodType.get_values())}"
            )
        return normalized_type
