from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db
from app.schemas.base_schema import list_components
from app.schemas.blood_unit import (
    BloodUnitCreate,
    BloodUnitResponse,
    ComponentResponse,
    ExpirySummaryResponse,
    UnitStatusUpdate,
)
from app.schemas.donation import (
    AddComponentsRequest,
    DonationRecordCreate,
    DonationResponse,
    DonationWithComponentsCreate,
    DonationWithUnitsResponse,
)
from app.schemas.donor import DonorLookupResponse, DonorResponse
from app.services.blood_unit_service import BloodUnitService
from app.services.donation_service import DonationService
from app.utils.data_wrapper import ResponseWrapper
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/blood-units",
    tags=["blood units"]
)


@router.get("/components", response_model=ResponseWrapper[List[ComponentResponse]])
async def get_components():
    """Every component kind with its display name and shelf life."""
    return ResponseWrapper(data=list_components())


@router.get("/lookup-donor", response_model=ResponseWrapper[DonorLookupResponse])
async def lookup_donor(
    phone: str = Query(..., min_length=1, description="Phone number in any format"),
    db: AsyncSession = Depends(get_db),
):
    donor = await DonationService(db).lookup_donor(phone)
    if donor is None:
        return ResponseWrapper(data=DonorLookupResponse(found=False))
    return ResponseWrapper(
        data=DonorLookupResponse(found=True, donor=DonorResponse.from_donor(donor))
    )


@router.get("/{bank_id}", response_model=ResponseWrapper[List[BloodUnitResponse]])
async def list_units(
    bank_id: UUID,
    unit_status: Optional[str] = Query(None, alias="status"),
    blood_type: Optional[str] = Query(None),
    component: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    units = await BloodUnitService(db).list_units(
        bank_id, status=unit_status, blood_type=blood_type, component=component
    )
    return ResponseWrapper(data=BloodUnitResponse.from_units(units))


@router.get("/{bank_id}/expiring", response_model=ResponseWrapper[List[BloodUnitResponse]])
async def get_expiring_units(
    bank_id: UUID,
    days: int = Query(7, ge=0, le=365),
    db: AsyncSession = Depends(get_db),
):
    units = await BloodUnitService(db).get_expiring_units(bank_id, days=days)
    return ResponseWrapper(data=BloodUnitResponse.from_units(units))


@router.get("/{bank_id}/expiry-summary", response_model=ResponseWrapper[ExpirySummaryResponse])
async def get_expiry_summary(bank_id: UUID, db: AsyncSession = Depends(get_db)):
    summary = await BloodUnitService(db).get_expiry_summary(bank_id)
    return ResponseWrapper(data=ExpirySummaryResponse(**summary))


@router.post(
    "/{bank_id}",
    response_model=ResponseWrapper[BloodUnitResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_unit(
    bank_id: UUID,
    unit_data: BloodUnitCreate,
    db: AsyncSession = Depends(get_db),
):
    unit = await DonationService(db).add_unit(
        bank_id=bank_id,
        blood_type=unit_data.blood_type,
        component=unit_data.component,
        collection_date=unit_data.collection_date,
        donor_id=unit_data.donor_id,
        unit_number=unit_data.unit_number,
    )
    return ResponseWrapper(
        message="Blood unit added successfully",
        data=BloodUnitResponse.from_unit(unit),
    )


@router.put("/{bank_id}/{unit_id}/status", response_model=ResponseWrapper[BloodUnitResponse])
async def update_unit_status(
    bank_id: UUID,
    unit_id: UUID,
    status_data: UnitStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    unit = await BloodUnitService(db).set_status(bank_id, unit_id, status_data.status)
    return ResponseWrapper(message="Status updated", data=BloodUnitResponse.from_unit(unit))


@router.delete("/{bank_id}/{unit_id}", response_model=ResponseWrapper[Dict[str, Any]])
async def delete_unit(bank_id: UUID, unit_id: UUID, db: AsyncSession = Depends(get_db)):
    await BloodUnitService(db).delete_unit(bank_id, unit_id)
    return ResponseWrapper(message="Unit deleted", data={"id": str(unit_id)})


@router.post("/{bank_id}/mark-expired", response_model=ResponseWrapper[Dict[str, int]])
async def mark_expired_units(bank_id: UUID, db: AsyncSession = Depends(get_db)):
    count = await BloodUnitService(db).sweep_expired(bank_id)
    return ResponseWrapper(message=f"{count} units marked as expired", data={"count": count})


# ==================== DONATION INTAKE ====================


@router.post(
    "/{bank_id}/record-donation",
    response_model=ResponseWrapper[DonationWithUnitsResponse],
    status_code=status.HTTP_201_CREATED,
)
async def record_donation(
    bank_id: UUID,
    donation_data: DonationWithComponentsCreate,
    db: AsyncSession = Depends(get_db),
):
    """Record a donation and create its units in one go."""
    donation, units = await DonationService(db).record_donation_with_components(
        bank_id=bank_id,
        phone=donation_data.phone,
        donation_date=donation_data.donation_date,
        components=donation_data.components,
        blood_type=donation_data.blood_type,
        donor_name=donation_data.donor_name,
        donor_date_of_birth=donation_data.donor_date_of_birth,
    )
    return ResponseWrapper(
        message=f"{len(units)} blood units created from donation",
        data=DonationWithUnitsResponse(
            donation=DonationResponse.from_donation(donation),
            units=BloodUnitResponse.from_units(units),
        ),
    )


@router.post(
    "/{bank_id}/record-donation-step1",
    response_model=ResponseWrapper[DonationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def record_donation_step1(
    bank_id: UUID,
    donation_data: DonationRecordCreate,
    db: AsyncSession = Depends(get_db),
):
    donation = await DonationService(db).record_donation(
        bank_id=bank_id,
        phone=donation_data.phone,
        donation_date=donation_data.donation_date,
        blood_type=donation_data.blood_type,
        donor_name=donation_data.donor_name,
        donor_date_of_birth=donation_data.donor_date_of_birth,
    )
    return ResponseWrapper(
        message="Donation recorded! Add components when ready.",
        data=DonationResponse.from_donation(donation),
    )


@router.post(
    "/{bank_id}/add-components/{donation_id}",
    response_model=ResponseWrapper[List[BloodUnitResponse]],
)
async def add_components(
    bank_id: UUID,
    donation_id: UUID,
    components_data: AddComponentsRequest,
    db: AsyncSession = Depends(get_db),
):
    units = await DonationService(db).add_components(
        bank_id, donation_id, components_data.components
    )
    return ResponseWrapper(
        message=f"Created {len(units)} blood units",
        data=BloodUnitResponse.from_units(units),
    )


@router.get("/{bank_id}/pending-donations", response_model=ResponseWrapper[List[DonationResponse]])
async def get_pending_donations(bank_id: UUID, db: AsyncSession = Depends(get_db)):
    donations = await DonationService(db).list_pending_donations(bank_id)
    return ResponseWrapper(data=[DonationResponse.from_donation(d) for d in donations])
