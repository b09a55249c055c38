# enrollment/crud/__init__.py

from .crud_offering import offering
from .crud_registration import registration
from .crud_waitlist import waitlist
from .crud_webhook_event import webhook_event
