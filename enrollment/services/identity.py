# enrollment/services/identity.py
from dataclasses import dataclass
from typing import Optional

from enrollment.constants.status import Role


@dataclass(frozen=True)
class Subject:
    """The authenticated caller, as asserted by the identity provider."""
    id: str
    role: str = Role.MEMBER
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
