# enrollment/services/payment/__init__.py
from typing import Optional

from .provider_interface import CheckoutHandle, PaymentProvider
from .stripe_provider import StripeCheckoutProvider

_provider: Optional[PaymentProvider] = None


def get_payment_provider() -> PaymentProvider:
    """Process-wide payment provider used by the API and the scheduled sweeps."""
    global _provider
    if _provider is None:
        _provider = StripeCheckoutProvider()
    return _provider


__all__ = ["CheckoutHandle", "PaymentProvider", "StripeCheckoutProvider", "get_payment_provider"]
