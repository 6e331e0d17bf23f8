from fastapi import APIRouter, Depends

from app.dependencies import bind_bank_log_context
from .blood_unit_routes import router as blood_unit_router
from .inventory_routes import router as inventory_router
from .donor_routes import router as donor_router
from .donor_request_routes import router as donor_request_router
from .reservation_routes import router as reservation_router


router = APIRouter(dependencies=[Depends(bind_bank_log_context)])

router.include_router(blood_unit_router)
router.include_router(inventory_router)
router.include_router(donor_router)
router.include_router(donor_request_router)
router.include_router(reservation_router)
