"""Dodo Payments gateway - checkout sessions on the adhoc (pay what you want) product"""

import logging
from datetime import datetime
from typing import Any, Optional

import dodopayments
from dodopayments import AsyncDodoPayments

from ... import config
from ...shared.exceptions import GatewayError
from ...shared.expiry import as_naive_utc
from .gateway import CheckoutSession, PaymentGateway, VerifiedTransaction, from_subunits, to_subunits

logger = logging.getLogger(__name__)

DODO_STATUS_MAP = {
    "succeeded": "success",
    "failed": "failed",
    "cancelled": "failed",
    "processing": "pending",
    "requires_customer_action": "pending",
    "requires_merchant_action": "pending",
    "requires_payment_method": "pending",
    "requires_confirmation": "pending",
    "requires_capture": "pending",
    "partially_captured": "pending",
    "partially_captured_and_capturable": "pending",
}


def normalize_dodo_environment(env: Optional[str]) -> str:
    """Normalize Dodo environment value to expected format"""
    value = (env or "test_mode").strip().lower()
    if value in {"live", "production", "prod"}:
        return "live_mode"
    if value in {"test", "sandbox", "staging", "dev", "development"}:
        return "test_mode"
    if value in {"test_mode", "live_mode"}:
        return value
    logger.warning(f"Unknown DODO environment '{env}', defaulting to test_mode")
    return "test_mode"


def _field(obj: Any, name: str, default=None):
    """Read a field from an SDK model or a plain dict"""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class DodoGateway(PaymentGateway):
    """Dodo Payments checkout on the adhoc product with a per-session amount"""

    name = "dodo"

    def __init__(self, client: Optional[AsyncDodoPayments] = None):
        self.product_id = config.DODO_ADHOC_PRODUCT_ID
        self.environment = normalize_dodo_environment(config.DODO_PAYMENTS_ENVIRONMENT)
        self.client = client

        if self.client is None and config.DODO_PAYMENTS_API_KEY:
            self.client = AsyncDodoPayments(
                bearer_token=config.DODO_PAYMENTS_API_KEY,
                environment=self.environment,
                timeout=config.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
            )
            logger.info(f"Dodo Payments client initialized (env={self.environment})")

    def _require_client(self) -> AsyncDodoPayments:
        if self.client is None:
            logger.error("❌ DODO_PAYMENTS_API_KEY not set; payments unavailable")
            raise GatewayError("Payment system not configured.", retryable=False)
        return self.client

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
        client = self._require_client()
        if not self.product_id:
            logger.error("❌ DODO_ADHOC_PRODUCT_ID not configured")
            raise GatewayError("Payment system not configured.", retryable=False)

        session_data = {
            "product_cart": [
                {
                    "product_id": self.product_id,
                    "quantity": 1,
                    # Dynamic amount in lowest currency unit (e.g., cents)
                    "amount": to_subunits(amount, currency),
                }
            ],
            "customer": {"email": email, "name": customer_name or email},
            "metadata": {k: str(v) for k, v in {**metadata, "reference": reference}.items()},
        }
        if callback_url:
            session_data["return_url"] = callback_url

        logger.info(f"💳 Creating Dodo checkout session {reference} for {amount:.2f} {currency}")
        try:
            session = await client.checkout_sessions.create(**session_data)
        except dodopayments.APIConnectionError as e:
            # Includes APITimeoutError
            logger.error(f"❌ Dodo checkout session {reference} failed to connect: {e}")
            raise GatewayError(retryable=True) from e
        except dodopayments.APIStatusError as e:
            logger.error(f"❌ Dodo rejected checkout session {reference}: {e.status_code} {e}")
            raise GatewayError(retryable=e.status_code >= 500) from e

        checkout_url = _field(session, "checkout_url")
        if not checkout_url:
            logger.error(f"❌ Dodo returned no checkout_url for {reference}")
            raise GatewayError(retryable=True)

        return CheckoutSession(authorization_url=checkout_url, reference=reference, provider=self.name)

    async def verify_transaction(self, reference: str) -> VerifiedTransaction:
        """Verify by Dodo payment id"""
        client = self._require_client()
        try:
            payment = await client.payments.retrieve(reference)
        except dodopayments.APIConnectionError as e:
            logger.error(f"❌ Dodo payment lookup {reference} failed to connect: {e}")
            raise GatewayError(retryable=True) from e
        except dodopayments.APIStatusError as e:
            logger.error(f"❌ Dodo payment lookup {reference} failed: {e.status_code} {e}")
            raise GatewayError(retryable=e.status_code >= 500) from e

        currency = str(_field(payment, "currency") or config.DEFAULT_CURRENCY)
        status = str(_field(payment, "status") or "")
        created_at = _field(payment, "created_at")
        customer = _field(payment, "customer") or {}
        return VerifiedTransaction(
            reference=str(_field(payment, "payment_id") or reference),
            status=DODO_STATUS_MAP.get(status, "failed"),
            amount=from_subunits(int(_field(payment, "total_amount") or 0), currency),
            currency=currency,
            paid_at=as_naive_utc(created_at) if isinstance(created_at, datetime) else None,
            metadata=dict(_field(payment, "metadata") or {}),
            customer_email=_field(customer, "email"),
        )
