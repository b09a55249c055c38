# enrollment/api/v1/endpoints/admin.py
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends

from enrollment.api import deps
from enrollment.schemas.result import Offering, OfferingCancel
from enrollment.schemas.waitlist import WaitlistEntry
from enrollment.services.identity import Subject
from enrollment.services.offering_service import OfferingService
from enrollment.services.waitlist_service import WaitlistService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/offerings/{offering_id}/promote", response_model=Optional[WaitlistEntry])
def promote_next(
    offering_id: str,
    admin: Subject = Depends(deps.require_admin),
    service: WaitlistService = Depends(deps.get_waitlist_service),
):
    """Offer a free seat to the next waiting entry. Returns null when nothing was offered."""
    logger.info(f"Admin {admin.id} triggered promotion on {offering_id}")
    return service.promote_next(offering_id)


@router.post("/offerings/{offering_id}/cancel", response_model=Offering)
def cancel_offering(
    offering_id: str,
    body: Optional[OfferingCancel] = Body(None),
    admin: Subject = Depends(deps.require_admin),
    service: OfferingService = Depends(deps.get_offering_service),
):
    return service.cancel_offering(admin, offering_id, reason=body.reason if body else None)
