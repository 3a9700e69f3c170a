"""Paystack gateway - transaction initialize/verify over the REST API"""

import json
import logging
from datetime import datetime
from typing import Optional

import httpx

from ... import config
from ...shared.exceptions import GatewayError
from ...shared.expiry import as_naive_utc
from .gateway import CheckoutSession, PaymentGateway, VerifiedTransaction, from_subunits, to_subunits

logger = logging.getLogger(__name__)


def _parse_paid_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return as_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        logger.warning(f"⚠️ Unparseable Paystack paid_at: {value}")
        return None


def _parse_metadata(value) -> dict:
    """Paystack echoes metadata as an object or, for some clients, a JSON string"""
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value:
        try:
            parsed = json.loads(value)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


class PaystackGateway(PaymentGateway):
    """Paystack checkout; amounts are sent in the currency's subunit"""

    name = "paystack"

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key or config.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or config.PAYSTACK_BASE_URL).rstrip("/")
        self.timeout = timeout or config.PAYMENT_GATEWAY_TIMEOUT_SECONDS
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        if not self.secret_key:
            logger.error("❌ PAYSTACK_SECRET_KEY not configured")
            raise GatewayError("Payment system not configured.", retryable=False)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as http_client:
                response = await http_client.request(
                    method, f"{self.base_url}{path}", headers=self._headers(), json=payload
                )
        except httpx.TimeoutException as e:
            logger.error(f"❌ Paystack {method} {path} timed out after {self.timeout}s")
            raise GatewayError(retryable=True) from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Paystack {method} {path} failed: {e}")
            raise GatewayError(retryable=True) from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 500:
            logger.error(f"❌ Paystack {path} returned {response.status_code}: {response.text[:200]}")
            raise GatewayError(retryable=True)
        if response.status_code >= 400 or not body.get("status"):
            logger.error(f"❌ Paystack {path} rejected request: {body.get('message') or response.text[:200]}")
            raise GatewayError(retryable=False)

        return body.get("data") or {}

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
        payload = {
            "email": email,
            "amount": to_subunits(amount, currency),
            "currency": currency,
            "reference": reference,
            "metadata": {**metadata, "customer_name": customer_name} if customer_name else metadata,
        }
        if callback_url:
            payload["callback_url"] = callback_url

        logger.info(f"💳 Initializing Paystack transaction {reference} for {amount:.2f} {currency}")
        data = await self._request("POST", "/transaction/initialize", payload=payload)

        authorization_url = data.get("authorization_url")
        if not authorization_url:
            logger.error(f"❌ Paystack returned no authorization_url for {reference}")
            raise GatewayError(retryable=True)

        return CheckoutSession(
            authorization_url=authorization_url,
            reference=data.get("reference") or reference,
            provider=self.name,
        )

    async def verify_transaction(self, reference: str) -> VerifiedTransaction:
        data = await self._request("GET", f"/transaction/verify/{reference}")
        currency = data.get("currency") or config.DEFAULT_CURRENCY
        customer = data.get("customer") or {}
        return VerifiedTransaction(
            reference=data.get("reference") or reference,
            status=data.get("status") or "failed",
            amount=from_subunits(int(data.get("amount") or 0), currency),
            currency=currency,
            paid_at=_parse_paid_at(data.get("paid_at") or data.get("paidAt")),
            metadata=_parse_metadata(data.get("metadata")),
            customer_email=customer.get("email"),
        )
