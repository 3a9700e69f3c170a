"""Payment webhook router - provider notifications for bookings and invoices"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ... import config
from ...database import get_db
from ...shared.exceptions import AppError, GatewayError
from ...webhook_security import verify_dodo_webhook, verify_paystack_webhook
from .dodo import DodoGateway
from .gateway import PaymentGateway
from .paystack import PaystackGateway
from .service import PaymentWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments/webhooks", tags=["Payment Webhooks"])

PAYSTACK_SUCCESS_EVENTS = {"charge.success"}
DODO_SUCCESS_EVENTS = {"payment.succeeded"}


def get_paystack_gateway() -> PaymentGateway:
    return PaystackGateway()


def get_dodo_gateway() -> PaymentGateway:
    return DodoGateway()


def _parse_body(raw_body: bytes) -> dict:
    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


async def _process(service: PaymentWebhookService, reference: str) -> dict:
    """
    Apply a payment and acknowledge it.

    Business rejections (slot taken, invoice expired) are acknowledged so the
    provider stops retrying; gateway failures propagate as 502 so it retries.
    """
    try:
        return await service.handle_successful_payment(reference)
    except GatewayError:
        raise
    except AppError as e:
        logger.error(f"❌ Payment {reference} could not be applied: {e.code}: {e.message}")
        return {"status": "rejected", "reason": e.code}


@router.post("/paystack")
async def paystack_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_paystack_gateway),
):
    _, raw_body = await verify_paystack_webhook(request, config.PAYSTACK_WEBHOOK_SECRET)
    payload = _parse_body(raw_body)
    event = payload.get("event")
    reference = (payload.get("data") or {}).get("reference")

    if event not in PAYSTACK_SUCCESS_EVENTS or not reference:
        logger.info(f"ℹ️ Ignoring Paystack event {event}")
        return {"received": True, "status": "ignored"}

    result = await _process(PaymentWebhookService(db, gateway), reference)
    return {"received": True, **result}


@router.post("/dodo")
async def dodo_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_dodo_gateway),
):
    _, raw_body = await verify_dodo_webhook(request, config.DODO_PAYMENTS_WEBHOOK_SECRET)
    payload = _parse_body(raw_body)
    event = payload.get("type")
    payment_id = (payload.get("data") or {}).get("payment_id")

    if event not in DODO_SUCCESS_EVENTS or not payment_id:
        logger.info(f"ℹ️ Ignoring Dodo event {event}")
        return {"received": True, "status": "ignored"}

    result = await _process(PaymentWebhookService(db, gateway), payment_id)
    return {"received": True, **result}
