# enrollment/api/v1/endpoints/registrations.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from enrollment.api import deps
from enrollment.schemas.registration import Attendee, Checkout, Registration
from enrollment.schemas.result import RegistrationResult
from enrollment.services.identity import Subject
from enrollment.services.registration_service import RegistrationService

router = APIRouter(tags=["Registrations"])


@router.post(
    "/offerings/{offering_id}/registrations",
    response_model=RegistrationResult,
    status_code=status.HTTP_201_CREATED,
)
def register_for_offering(
    offering_id: str,
    subject: Subject = Depends(deps.get_subject),
    service: RegistrationService = Depends(deps.get_registration_service),
):
    """
    Register the current user for an offering.

    The `outcome` field tells the client what happened:
    - **confirmed**: free offering, seat taken
    - **checkout_required**: paid offering, complete payment at `checkout_url`
    - **waitlisted**: offering full, `position` is the place in the queue
    """
    result = service.register(subject, offering_id)
    return RegistrationResult.from_result(result)


@router.delete("/offerings/{offering_id}/registrations/me", response_model=Registration)
def cancel_my_registration(
    offering_id: str,
    reason: Optional[str] = Query(None, max_length=500),
    subject: Subject = Depends(deps.get_subject),
    service: RegistrationService = Depends(deps.get_registration_service),
):
    """Cancel the current user's registration. A freed seat goes to the waitlist."""
    return service.cancel_registration(subject, offering_id, reason=reason)


@router.get("/offerings/{offering_id}/registrations/me", response_model=Registration)
def get_my_registration(
    offering_id: str,
    subject: Subject = Depends(deps.get_subject),
    service: RegistrationService = Depends(deps.get_registration_service),
):
    return service.get_my_registration(subject, offering_id)


@router.get("/offerings/{offering_id}/attendees", response_model=List[Attendee])
def list_attendees(
    offering_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    admin: Subject = Depends(deps.require_admin),
    service: RegistrationService = Depends(deps.get_registration_service),
):
    """Confirmed and completed registrations for an offering (admin only)."""
    return service.list_attendees(offering_id, skip=skip, limit=limit)


@router.post("/registrations/{registration_id}/checkout", response_model=Checkout)
def retry_checkout(
    registration_id: str,
    subject: Subject = Depends(deps.get_subject),
    service: RegistrationService = Depends(deps.get_registration_service),
):
    """Start a fresh checkout for a registration still awaiting payment."""
    handle = service.retry_checkout(subject, registration_id)
    return Checkout(
        registration_id=registration_id,
        checkout_session_id=handle.session_id,
        checkout_url=handle.url,
    )
