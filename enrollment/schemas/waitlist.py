# enrollment/schemas/waitlist.py
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class WaitlistEntry(BaseModel):
    id: str
    offering_id: str
    subject_id: str
    position: int
    status: str
    joined_at: datetime
    offered_at: Optional[datetime] = None
    response_deadline: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class WaitlistPositionResponse(BaseModel):
    entry_id: str
    position: int
    total_waiting: int
    status: str
    response_deadline: Optional[datetime] = None
