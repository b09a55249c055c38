# enrollment/schemas/result.py
from pydantic import BaseModel
from typing import Optional

from enrollment.schemas.registration import Registration
from enrollment.schemas.waitlist import WaitlistEntry
from enrollment.services.results import RegistrationResult as RegistrationResultData


class RegistrationResult(BaseModel):
    """Response for register and accept-offer."""
    outcome: str
    registration: Optional[Registration] = None
    waitlist_entry: Optional[WaitlistEntry] = None
    position: Optional[int] = None
    checkout_url: Optional[str] = None
    checkout_session_id: Optional[str] = None

    @classmethod
    def from_result(cls, result: RegistrationResultData) -> "RegistrationResult":
        return cls(
            outcome=result.outcome,
            registration=Registration.model_validate(result.registration) if result.registration else None,
            waitlist_entry=WaitlistEntry.model_validate(result.waitlist_entry) if result.waitlist_entry else None,
            position=result.position,
            checkout_url=result.checkout.url if result.checkout else None,
            checkout_session_id=result.checkout.session_id if result.checkout else None,
        )


class OfferingCancel(BaseModel):
    reason: Optional[str] = None


class Offering(BaseModel):
    id: str
    title: str
    status: str
    capacity: int
    confirmed_seats: int

    model_config = {"from_attributes": True}
