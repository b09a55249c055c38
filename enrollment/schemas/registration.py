# enrollment/schemas/registration.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class Registration(BaseModel):
    id: str
    offering_id: str
    subject_id: str
    status: str
    payment_status: Optional[str] = None
    checkout_url: Optional[str] = None
    registered_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class Attendee(BaseModel):
    registration_id: str = Field(validation_alias="id")
    subject_id: str
    contact_email: Optional[str] = None
    status: str
    confirmed_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "populate_by_name": True}


class Checkout(BaseModel):
    registration_id: str
    checkout_session_id: str
    checkout_url: Optional[str] = None
