from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db
from app.schemas.inventory import InventoryDeduct, InventoryResponse, InventoryUpdate
from app.services.inventory_service import BloodInventoryService
from app.utils.data_wrapper import ResponseWrapper

router = APIRouter(
    prefix="/inventory",
    tags=["blood inventory"]
)


@router.get("/stats/blood-types", response_model=ResponseWrapper[List[Dict[str, Any]]])
async def get_blood_type_stats(db: AsyncSession = Depends(get_db)):
    """Total units per blood type across all banks."""
    stats = await BloodInventoryService(db).get_blood_type_stats()
    return ResponseWrapper(data=stats)


@router.get("/stats/total", response_model=ResponseWrapper[Dict[str, int]])
async def get_total_units(db: AsyncSession = Depends(get_db)):
    total = await BloodInventoryService(db).get_total_units()
    return ResponseWrapper(data={"totalUnits": total})


@router.get("/low-stock", response_model=ResponseWrapper[List[Dict[str, Any]]])
async def get_low_stock_alerts(
    threshold: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    alerts = await BloodInventoryService(db).get_low_stock_alerts(threshold)
    return ResponseWrapper(data=alerts)


@router.get("/all", response_model=ResponseWrapper[List[Dict[str, Any]]])
async def get_all_inventory(db: AsyncSession = Depends(get_db)):
    grouped = await BloodInventoryService(db).get_all_inventory_grouped()
    return ResponseWrapper(data=grouped)


@router.get("/{bank_id}", response_model=ResponseWrapper[List[InventoryResponse]])
async def get_bank_inventory(bank_id: UUID, db: AsyncSession = Depends(get_db)):
    records = await BloodInventoryService(db).get_inventory(bank_id)
    return ResponseWrapper(data=[InventoryResponse.from_inventory(r) for r in records])


@router.put("/{bank_id}", response_model=ResponseWrapper[InventoryResponse])
async def update_inventory(
    bank_id: UUID,
    inventory_data: InventoryUpdate,
    db: AsyncSession = Depends(get_db),
):
    record = await BloodInventoryService(db).update_inventory(
        bank_id,
        inventory_data.blood_type,
        inventory_data.units,
        inventory_data.collection_date,
    )
    return ResponseWrapper(
        message="Inventory updated",
        data=InventoryResponse.from_inventory(record),
    )


@router.post("/{bank_id}/deduct", response_model=ResponseWrapper[Dict[str, int]])
async def deduct_units(
    bank_id: UUID,
    deduct_data: InventoryDeduct,
    db: AsyncSession = Depends(get_db),
):
    rows = await BloodInventoryService(db).deduct_units(
        bank_id, deduct_data.blood_type, deduct_data.amount
    )
    return ResponseWrapper(data={"updated": rows})


@router.get("/{bank_id}/expiring", response_model=ResponseWrapper[Dict[str, Any]])
async def get_expiring_inventory(
    bank_id: UUID,
    horizon_days: Optional[int] = Query(None, ge=0, le=365),
    db: AsyncSession = Depends(get_db),
):
    summary = await BloodInventoryService(db).get_expiring_summary(bank_id, horizon_days)
    return ResponseWrapper(data=summary)
