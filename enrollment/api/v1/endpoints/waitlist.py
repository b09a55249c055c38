# enrollment/api/v1/endpoints/waitlist.py
from fastapi import APIRouter, Depends

from enrollment.api import deps
from enrollment.schemas.result import RegistrationResult
from enrollment.schemas.waitlist import WaitlistEntry, WaitlistPositionResponse
from enrollment.services.identity import Subject
from enrollment.services.waitlist_service import WaitlistService

router = APIRouter(tags=["Waitlist"])


@router.get("/offerings/{offering_id}/waitlist/me", response_model=WaitlistPositionResponse)
def get_my_waitlist_position(
    offering_id: str,
    subject: Subject = Depends(deps.get_subject),
    service: WaitlistService = Depends(deps.get_waitlist_service),
):
    position = service.get_waitlist_position(subject, offering_id)
    return WaitlistPositionResponse(
        entry_id=position.entry.id,
        position=position.position,
        total_waiting=position.total_live,
        status=position.entry.status,
        response_deadline=position.entry.response_deadline,
    )


@router.post("/waitlist/{entry_id}/accept", response_model=RegistrationResult)
def accept_waitlist_offer(
    entry_id: str,
    subject: Subject = Depends(deps.get_subject),
    service: WaitlistService = Depends(deps.get_waitlist_service),
):
    """
    Accept an outstanding seat offer.

    **Errors**:
    - 403: Entry belongs to someone else
    - 404: Entry not found
    - 409: No active offer, already registered, or no seat left
    - 410: Offer expired (the seat has moved to the next person)
    """
    result = service.accept_offer(subject, entry_id)
    return RegistrationResult.from_result(result)


@router.post("/waitlist/{entry_id}/decline", response_model=WaitlistEntry)
def decline_waitlist_offer(
    entry_id: str,
    subject: Subject = Depends(deps.get_subject),
    service: WaitlistService = Depends(deps.get_waitlist_service),
):
    return service.decline_offer(subject, entry_id)
