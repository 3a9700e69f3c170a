"""Payment webhook service - applies verified gateway payments to workflows"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...shared.exceptions import NotFound, ValidationError
from ..bookings.service import BookingService
from ..invoices.service import InvoiceService
from ..reservations.service import ReservationService
from .gateway import PaymentGateway, VerifiedTransaction

logger = logging.getLogger(__name__)


class PaymentWebhookService:
    """
    Turns a provider notification into a workflow transition.

    Notifications are never trusted on their own: the transaction is looked
    up again with the gateway and only that verified result is applied.
    """

    def __init__(self, db: Session, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway

    async def handle_successful_payment(self, reference: str, now: Optional[datetime] = None) -> dict:
        transaction = await self.gateway.verify_transaction(reference)
        if not transaction.succeeded:
            logger.warning(
                f"⚠️ {self.gateway.name} reported {reference} as paid but verification says {transaction.status}"
            )
            return {"status": "ignored", "reason": f"transaction {transaction.status}"}
        return self.apply_verified_payment(transaction, now)

    def apply_verified_payment(self, transaction: VerifiedTransaction, now: Optional[datetime] = None) -> dict:
        payment_type = transaction.metadata.get("payment_type")

        if payment_type == "booking":
            return self._confirm_booking(transaction, now)
        if payment_type == "invoice":
            return self._pay_invoice(transaction, now)

        logger.warning(f"⚠️ Payment {transaction.reference} has unknown payment_type '{payment_type}'")
        return {"status": "ignored", "reason": "unknown payment type"}

    def _confirm_booking(self, transaction: VerifiedTransaction, now: Optional[datetime]) -> dict:
        booking_reference = transaction.metadata.get("booking_reference")
        if not booking_reference:
            logger.error(f"❌ Booking payment {transaction.reference} has no booking_reference")
            return {"status": "ignored", "reason": "missing booking reference"}

        details = dict(transaction.metadata.get("booking") or {})
        reservation = ReservationService(self.db).get_pending_details(booking_reference)
        if reservation is not None:
            details.update(reservation.details or {})
            details.setdefault("date", reservation.date)
            details.setdefault("timeSlot", reservation.time_slot)
        else:
            logger.warning(f"⚠️ No reservation found for {booking_reference}, using payment metadata")

        booking = BookingService(self.db).create_from_payment(
            booking_reference,
            transaction.reference,
            details,
            paid_at=transaction.paid_at,
            now=now,
        )
        logger.info(f"✅ Payment {transaction.reference} confirmed booking {booking.id}")
        return {"status": "processed", "type": "booking", "bookingId": booking.id}

    def _pay_invoice(self, transaction: VerifiedTransaction, now: Optional[datetime]) -> dict:
        try:
            invoice_id = int(transaction.metadata.get("invoice_id"))
        except (TypeError, ValueError) as e:
            logger.error(f"❌ Invoice payment {transaction.reference} has no usable invoice_id")
            raise ValidationError("The payment is not linked to an invoice.") from e

        service = InvoiceService(self.db)
        invoice = service.repo.get_invoice_by_id(self.db, invoice_id)
        if invoice is None:
            raise NotFound("Invoice not found")
        if transaction.currency and invoice.currency and transaction.currency.upper() != invoice.currency.upper():
            logger.error(
                f"❌ Currency mismatch on {transaction.reference}: paid {transaction.currency}, invoice {invoice.currency}"
            )
            raise ValidationError("The payment currency does not match the invoice.")

        invoice = service.mark_paid(
            invoice_id,
            transaction.reference,
            paid_at=transaction.paid_at,
            amount=transaction.amount,
            payment_method=self.gateway.name,
            now=now,
        )
        return {
            "status": "processed",
            "type": "invoice",
            "invoiceId": invoice.public_id,
            "invoiceStatus": invoice.status,
        }
