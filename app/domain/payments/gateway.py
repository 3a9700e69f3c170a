"""Payment gateway adapter - the interface workflows use to take payments"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ... import config
from ...shared.exceptions import GatewayError

logger = logging.getLogger(__name__)

# Currencies the providers bill in whole units rather than cents
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "UGX", "XAF", "XOF", "RWF"}


def to_subunits(amount: float, currency: str) -> int:
    """Convert a major-unit amount to the provider's integer subunit"""
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return int(round(amount))
    return int(round(amount * 100))


def from_subunits(amount: int, currency: str) -> float:
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return float(amount)
    return amount / 100


@dataclass
class CheckoutSession:
    authorization_url: str
    reference: str
    provider: str


@dataclass
class VerifiedTransaction:
    reference: str
    status: str  # success, failed, pending, abandoned
    amount: float
    currency: str
    paid_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)
    customer_email: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class PaymentGateway:
    """
    Base class for payment providers.

    Implementations raise ``GatewayError`` for timeouts, transport failures and
    provider errors. A declined payment is not an error: it is reported as a
    ``VerifiedTransaction`` whose status is not ``success``.
    """

    name = "base"

    async def initialize_transaction(
        self,
        email: str,
        amount: float,
        currency: str,
        reference: str,
        metadata: dict,
        customer_name: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> CheckoutSession:
        raise NotImplementedError

    async def verify_transaction(self, reference: str) -> VerifiedTransaction:
        raise NotImplementedError


def get_payment_gateway() -> PaymentGateway:
    """Dependency injection for the configured payment provider"""
    from .dodo import DodoGateway
    from .paystack import PaystackGateway

    if config.PAYMENT_PROVIDER == "dodo":
        return DodoGateway()
    if config.PAYMENT_PROVIDER == "paystack":
        return PaystackGateway()

    logger.error(f"❌ Unknown PAYMENT_PROVIDER '{config.PAYMENT_PROVIDER}'")
    raise GatewayError("Payment system not configured.", retryable=False)
