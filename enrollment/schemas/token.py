# enrollment/schemas/token.py
from pydantic import BaseModel
from typing import Optional

from enrollment.constants.status import Role


class TokenPayload(BaseModel):
    sub: str  # "sub" is the standard claim for subject (user ID)
    role: str = Role.MEMBER
    email: Optional[str] = None
    exp: Optional[int] = None

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
    }
