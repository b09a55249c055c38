# enrollment/services/results.py
from dataclasses import dataclass
from typing import Optional

from enrollment.constants.status import RegistrationOutcome
from enrollment.models.registration import Registration
from enrollment.models.waitlist_entry import WaitlistEntry
from enrollment.services.payment import CheckoutHandle


@dataclass
class RegistrationResult:
    """What ``register`` and ``accept_offer`` hand back to the caller."""
    outcome: str
    registration: Optional[Registration] = None
    waitlist_entry: Optional[WaitlistEntry] = None
    checkout: Optional[CheckoutHandle] = None

    @property
    def position(self) -> Optional[int]:
        if self.outcome == RegistrationOutcome.WAITLISTED and self.waitlist_entry is not None:
            return self.waitlist_entry.position
        return None


@dataclass
class WaitlistPosition:
    entry: WaitlistEntry
    position: int
    total_live: int
