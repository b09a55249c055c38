# enrollment/models/__init__.py
# Import every model so Base.metadata sees all tables.
from .offering import Offering
from .registration import Registration
from .waitlist_entry import WaitlistEntry
from .payment_webhook_event import PaymentWebhookEvent
