"""Invoice service - Business logic for invoice operations"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ... import config
from ...database import commit_or_conflict
from ...locks import key_lock
from ...models import Invoice
from ...shared.exceptions import (
    AlreadyPaid,
    Conflict,
    Expired,
    Gone,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from ...shared.expiry import as_naive_utc, invoice_is_expired, invoice_past_expiry, utcnow
from ...shared.policies import remaining_balance, round_money, upfront_amount
from ...shared.validators import validate_uuid
from ...utils.sanitization import clean_text
from ..contracts.service import invoice_expiry_days_for, upfront_percentage_for
from ..payments.gateway import CheckoutSession, PaymentGateway
from .repository import InvoiceRepository

logger = logging.getLogger(__name__)

# Amounts closer than this are treated as equal
MONEY_EPSILON = 0.005

EXPIRED_MESSAGE = "This invoice has expired. Please request a new one."
PAID_MESSAGE = "This invoice has already been paid."
CANCELLED_MESSAGE = "This invoice has been cancelled."


def invoice_key(invoice_id: int) -> str:
    return f"invoice:{invoice_id}"


def contract_invoices_key(contract_id: int) -> str:
    return f"contract-invoices:{contract_id}"


def generate_invoice_number(contract_id: int, sequence: int, year: int) -> str:
    """Generate unique invoice number"""
    return f"INV-{year}-{contract_id:04d}-{sequence:03d}"


def balance_due(invoice: Invoice) -> float:
    return round_money(max(0.0, (invoice.amount or 0) - (invoice.amount_paid or 0)))


class InvoiceService:
    """Service layer for invoice business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = InvoiceRepository()

    # ------------------------------------------------------------------
    # Reads (lazy expiry applies)
    # ------------------------------------------------------------------

    def _expire_if_due(self, invoice: Invoice, now: datetime) -> bool:
        """Persist sent -> expired once the expiry date has passed"""
        if not invoice_is_expired(invoice.status, invoice.expiry_date, now):
            return False
        invoice.status = "expired"
        commit_or_conflict(self.db)
        self.db.refresh(invoice)
        logger.info(f"⏰ Invoice {invoice.invoice_number} expired (expiry {invoice.expiry_date})")
        return True

    def get_invoices(
        self,
        status: Optional[str] = None,
        contract_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[Invoice]:
        now = now or utcnow()
        invoices = self.repo.get_invoices(self.db, status, contract_id)
        for invoice in invoices:
            with key_lock(invoice_key(invoice.id)):
                self._expire_if_due(invoice, now)
        if status:
            invoices = [i for i in invoices if i.status == status]
        return invoices

    def get_invoice(self, invoice_id: int, now: Optional[datetime] = None) -> Invoice:
        invoice = self.repo.get_invoice_by_id(self.db, invoice_id)
        if not invoice:
            raise NotFound("Invoice not found")
        with key_lock(invoice_key(invoice.id)):
            self._expire_if_due(invoice, now or utcnow())
        return invoice

    def resolve_public_invoice(self, identifier: str) -> Invoice:
        """Find an invoice by its public UUID or its invoice number"""
        if validate_uuid(identifier):
            invoice = self.repo.get_invoice_by_public_id(self.db, identifier)
        else:
            invoice = self.repo.get_invoice_by_number(self.db, identifier)
        if not invoice:
            raise NotFound("Invoice not found")
        return invoice

    def check_expired(self, now: Optional[datetime] = None) -> list[Invoice]:
        """
        Sweep sent invoices past their expiry date.

        Returns only the invoices this call expired, so repeated calls return
        an empty list. Paid and cancelled invoices are never touched.
        """
        now = now or utcnow()
        expired = []
        for invoice in self.repo.get_sent_invoices(self.db):
            with key_lock(invoice_key(invoice.id)):
                self.db.refresh(invoice)
                if self._expire_if_due(invoice, now):
                    expired.append(invoice)
        logger.info(f"⏰ Invoice sweep expired {len(expired)} invoice(s)")
        return expired

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_invoice(
        self,
        contract_id: int,
        invoice_type: str = "full",
        amount: Optional[float] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Invoice:
        """
        Create an invoice for a signed contract.

        Without an explicit amount, ``full`` bills whatever is still unpaid,
        ``downpayment`` the agreed upfront share and ``final`` the remaining
        balance. An open invoice of the same type is returned instead of
        creating a duplicate. Open and paid invoices together never bill more
        than the project cost.
        """
        if invoice_type not in ("full", "downpayment", "final"):
            raise ValidationError("Invoice type must be full, downpayment or final")
        now = now or utcnow()

        with key_lock(contract_invoices_key(contract_id)):
            contract = self.repo.get_contract(self.db, contract_id)
            if not contract:
                raise NotFound("Contract not found")
            if contract.status != "signed":
                raise InvalidTransition("Invoices can only be created for a signed contract.")

            already_paid = self.repo.total_paid_for_contract(self.db, contract_id)
            if already_paid >= contract.project_cost - MONEY_EPSILON:
                raise AlreadyPaid("This contract has already been paid in full.")
            if invoice_type != "final" and self.repo.has_paid_invoice(self.db, contract_id, invoice_type):
                raise AlreadyPaid(f"The {invoice_type} invoice for this contract has already been paid.")

            for open_invoice in self.repo.get_open_invoices(self.db, contract_id, invoice_type):
                with key_lock(invoice_key(open_invoice.id)):
                    if self._expire_if_due(open_invoice, now):
                        continue
                    if invoice_past_expiry(open_invoice.expiry_date, now) and not open_invoice.amount_paid:
                        # Stale draft that was never sent
                        open_invoice.status = "cancelled"
                        commit_or_conflict(self.db)
                        logger.info(f"🗑️ Cancelled stale draft {open_invoice.invoice_number}")
                        continue
                logger.info(
                    f"ℹ️ Returning open {invoice_type} invoice {open_invoice.invoice_number} for contract {contract_id}"
                )
                return open_invoice

            upfront_pct = upfront_percentage_for(contract)
            outstanding = round_money(max(0.0, contract.project_cost - already_paid))
            if amount is not None:
                invoice_amount = round_money(amount)
                if invoice_amount > outstanding + MONEY_EPSILON:
                    raise ValidationError(
                        f"Invoice amount exceeds the contract's outstanding balance of {outstanding:.2f}"
                    )
            elif invoice_type == "downpayment":
                invoice_amount = upfront_amount(contract.project_cost, upfront_pct)
            elif invoice_type == "final":
                invoice_amount = remaining_balance(contract.project_cost, already_paid, upfront_pct)
            else:
                invoice_amount = outstanding

            if invoice_amount <= 0:
                raise ValidationError("Invoice amount must be greater than 0")

            already_billed = self.repo.open_balance_for_contract(self.db, contract_id)
            if invoice_amount > outstanding - already_billed + MONEY_EPSILON:
                logger.warning(
                    f"⚠️ Refusing {invoice_type} invoice of {invoice_amount:.2f} for contract {contract_id}: "
                    f"{already_billed:.2f} already open, {outstanding:.2f} unpaid"
                )
                raise Conflict(
                    f"Open invoices already bill {already_billed:.2f} of the {outstanding:.2f} still owed on this contract."
                )

            if description is None:
                description = {
                    "downpayment": f"Upfront payment ({upfront_pct:g}%) for {contract.project_description or 'project'}",
                    "final": f"Final payment for {contract.project_description or 'project'}",
                    "full": f"Payment for {contract.project_description or 'project'}",
                }[invoice_type]

            terms_currency = ((contract.contract_terms or {}).get("paymentTerms") or {}).get("currency")
            expiry_date = now + timedelta(days=invoice_expiry_days_for(contract))
            sequence = self.repo.count_for_contract(self.db, contract_id) + 1

            invoice = Invoice(
                contract_id=contract.id,
                consultation_id=contract.consultation_id,
                client_name=contract.client_name,
                client_email=contract.client_email,
                invoice_number=generate_invoice_number(contract.id, sequence, now.year),
                invoice_type=invoice_type,
                description=clean_text(description, max_length=2000, label="Description"),
                notes=clean_text(notes, max_length=2000, label="Notes"),
                amount=invoice_amount,
                amount_paid=0,
                currency=terms_currency or config.DEFAULT_CURRENCY,
                status="draft",
                issue_date=now,
                due_date=expiry_date,
                expiry_date=expiry_date,
                payments=[],
            )
            self.db.add(invoice)
            commit_or_conflict(self.db)
            self.db.refresh(invoice)

        logger.info(
            f"🧾 Created {invoice_type} invoice {invoice.invoice_number} for {invoice.amount:.2f} {invoice.currency}"
        )
        return invoice

    def create_remaining_balance_invoice(self, invoice_id: int, now: Optional[datetime] = None) -> Invoice:
        """Final invoice for whatever the contract behind ``invoice_id`` still owes"""
        invoice = self.get_invoice(invoice_id, now)
        return self.create_invoice(invoice.contract_id, "final", now=now)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def send_invoice(self, invoice_id: int, now: Optional[datetime] = None) -> Invoice:
        now = now or utcnow()
        with key_lock(invoice_key(invoice_id)):
            invoice = self.repo.get_invoice_by_id(self.db, invoice_id)
            if not invoice:
                raise NotFound("Invoice not found")
            self._expire_if_due(invoice, now)

            if invoice.status == "sent":
                return invoice
            if invoice.status != "draft":
                raise InvalidTransition(f"A {invoice.status} invoice cannot be sent.")
            if invoice_past_expiry(invoice.expiry_date, now):
                raise Expired(EXPIRED_MESSAGE)

            invoice.status = "sent"
            invoice.sent_at = now
            commit_or_conflict(self.db)
            self.db.refresh(invoice)

        logger.info(f"📤 Invoice {invoice.invoice_number} marked as sent")
        return invoice

    def expire_invoice(self, invoice_id: int) -> Invoice:
        """Manually expire an open invoice"""
        with key_lock(invoice_key(invoice_id)):
            invoice = self.repo.get_invoice_by_id(self.db, invoice_id)
            if not invoice:
                raise NotFound("Invoice not found")
            if invoice.status == "paid":
                raise AlreadyPaid("A paid invoice cannot be expired.")
            if invoice.status == "expired":
                return invoice
            if invoice.status == "cancelled":
                raise InvalidTransition("A cancelled invoice cannot be expired.")

            invoice.status = "expired"
            commit_or_conflict(self.db)
            self.db.refresh(invoice)

        logger.info(f"⏰ Invoice {invoice.invoice_number} expired manually")
        return invoice

    def cancel_invoice(self, invoice_id: int) -> Invoice:
        with key_lock(invoice_key(invoice_id)):
            invoice = self.repo.get_invoice_by_id(self.db, invoice_id)
            if not invoice:
                raise NotFound("Invoice not found")
            if invoice.status == "paid":
                raise AlreadyPaid("A paid invoice cannot be cancelled.")
            if invoice.status == "cancelled":
                return invoice
            if invoice.status == "expired":
                raise InvalidTransition("An expired invoice cannot be cancelled.")
            if (invoice.amount_paid or 0) > 0:
                raise InvalidTransition("An invoice with recorded payments cannot be cancelled.")

            invoice.status = "cancelled"
            commit_or_conflict(self.db)
            self.db.refresh(invoice)

        logger.info(f"🚫 Invoice {invoice.invoice_number} cancelled")
        return invoice

    def mark_paid(
        self,
        invoice_id: int,
        payment_reference: str,
        paid_at: Optional[datetime] = None,
        amount: Optional[float] = None,
        payment_method: Optional[str] = None,
        now: Optional[datetime] = None,
        enforce_expiry: bool = False,
    ) -> Invoice:
        """
        Apply a payment to an invoice.

        Each payment reference is applied at most once. Partial amounts
        accumulate and the invoice becomes ``paid`` when nothing is left due.
        With ``enforce_expiry`` a sent invoice past its expiry date is expired
        first, as manual payments are recorded at the time they are entered.
        Gateway payments skip this so a checkout completed in time still
        applies when its webhook arrives late.
        """
        if not payment_reference or not payment_reference.strip():
            raise ValidationError("Payment reference is required")
        payment_reference = payment_reference.strip()
        now = now or utcnow()
        paid_at = as_naive_utc(paid_at) or now

        with key_lock(invoice_key(invoice_id)):
            invoice = self.repo.get_invoice_by_id(self.db, invoice_id)
            if not invoice:
                raise NotFound("Invoice not found")

            ledger = list(invoice.payments or [])
            if any(p.get("reference") == payment_reference for p in ledger):
                logger.info(f"ℹ️ Payment {payment_reference} already applied to {invoice.invoice_number}")
                return invoice

            if enforce_expiry:
                self._expire_if_due(invoice, now)
            if invoice.status == "paid":
                raise AlreadyPaid(PAID_MESSAGE)
            if invoice.status == "cancelled":
                raise InvalidTransition("A cancelled invoice cannot be paid.")
            if invoice.status == "expired":
                raise Expired(EXPIRED_MESSAGE)

            outstanding = balance_due(invoice)
            applied = round_money(amount) if amount is not None else outstanding
            if applied <= 0:
                raise ValidationError("Payment amount must be greater than 0")
            if applied > outstanding + MONEY_EPSILON:
                raise ValidationError(
                    f"Payment amount exceeds the outstanding balance of {outstanding:.2f}"
                )

            invoice.payments = [
                *ledger,
                {"reference": payment_reference, "amount": applied, "paidAt": paid_at.isoformat()},
            ]
            invoice.amount_paid = round_money((invoice.amount_paid or 0) + applied)
            invoice.payment_reference = payment_reference
            if payment_method:
                invoice.payment_method = payment_method

            if invoice.amount_paid >= invoice.amount - MONEY_EPSILON:
                invoice.status = "paid"
                invoice.paid_at = paid_at

            commit_or_conflict(self.db)
            self.db.refresh(invoice)

        if invoice.status == "paid":
            logger.info(f"✅ Invoice {invoice.invoice_number} paid in full ({payment_reference})")
        else:
            logger.info(
                f"💰 Partial payment {applied:.2f} on {invoice.invoice_number}, {balance_due(invoice):.2f} still due"
            )
        return invoice

    # ------------------------------------------------------------------
    # Payment links
    # ------------------------------------------------------------------

    def _ensure_payable(self, invoice: Invoice, now: datetime) -> None:
        if invoice.status == "paid":
            raise AlreadyPaid(PAID_MESSAGE)
        if invoice.status == "cancelled":
            raise Gone(CANCELLED_MESSAGE)
        if invoice.status == "expired" or invoice_past_expiry(invoice.expiry_date, now):
            raise Expired(EXPIRED_MESSAGE)

    async def generate_payment_link(
        self,
        identifier: str,
        gateway: PaymentGateway,
        amount: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> tuple[Invoice, CheckoutSession, float]:
        """
        Open a gateway checkout for an invoice.

        ``amount`` may request a partial payment; it defaults to the balance
        due. The invoice is only touched once the gateway has answered, so a
        gateway failure leaves it exactly as it was.
        """
        now = now or utcnow()
        invoice = self.resolve_public_invoice(identifier)

        with key_lock(invoice_key(invoice.id)):
            self.db.refresh(invoice)
            self._expire_if_due(invoice, now)
            self._ensure_payable(invoice, now)

            outstanding = balance_due(invoice)
            charge = round_money(amount) if amount is not None else outstanding
            if charge <= 0:
                raise ValidationError("Payment amount must be greater than 0")
            if charge > outstanding + MONEY_EPSILON:
                raise ValidationError(
                    f"Payment amount exceeds the outstanding balance of {outstanding:.2f}"
                )

            reference = f"{invoice.invoice_number}-{secrets.token_hex(4)}"
            metadata = {
                "payment_type": "invoice",
                "invoice_id": str(invoice.id),
                "invoice_public_id": invoice.public_id,
                "invoice_number": invoice.invoice_number,
                "contract_id": str(invoice.contract_id),
            }
            email = invoice.client_email
            customer_name = invoice.client_name
            currency = invoice.currency or config.DEFAULT_CURRENCY

        session = await gateway.initialize_transaction(
            email=email,
            amount=charge,
            currency=currency,
            reference=reference,
            metadata=metadata,
            customer_name=customer_name,
            callback_url=config.PAYMENT_CALLBACK_URL,
        )

        with key_lock(invoice_key(invoice.id)):
            self.db.refresh(invoice)
            self._ensure_payable(invoice, now)
            invoice.payment_link = session.authorization_url
            if invoice.status == "draft":
                invoice.status = "sent"
                invoice.sent_at = now
            commit_or_conflict(self.db)
            self.db.refresh(invoice)

        logger.info(f"💳 Payment link for {invoice.invoice_number}: {charge:.2f} {currency} ({reference})")
        return invoice, session, charge
