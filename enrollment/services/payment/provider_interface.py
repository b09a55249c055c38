# enrollment/services/payment/provider_interface.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class CheckoutHandle:
    """Reference to a hosted checkout the subject completes with the provider."""
    session_id: str
    url: Optional[str] = None


class PaymentProvider(ABC):
    """
    Checkout side of the payment collaborator.

    Confirmation arrives later and asynchronously through the provider's
    webhook, keyed by ``reference_id`` (the registration id).
    """

    @abstractmethod
    def create_checkout(
        self,
        *,
        amount_cents: int,
        currency: str,
        customer_email: Optional[str],
        reference_id: str,
        description: str,
    ) -> CheckoutHandle:
        """
        Create a checkout for ``amount_cents``.

        Raises ``CheckoutCreationFailed`` when the provider rejects the request
        or cannot be reached.
        """
