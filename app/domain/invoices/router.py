"""Invoice router - FastAPI endpoints for invoice operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ...auth import get_current_admin
from ...database import get_db
from ...models import Invoice
from ...rate_limiter import create_rate_limiter
from ..payments.gateway import PaymentGateway, get_payment_gateway
from .schemas import (
    CheckExpiredResponse,
    InvoiceCreate,
    InvoiceResponse,
    InvoiceStatus,
    MarkPaidRequest,
    PaymentLinkResponse,
)
from .service import InvoiceService, balance_due

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])

payment_link_rate_limit = create_rate_limiter(limit=20, window_seconds=60, key_prefix="payment_link")


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    """Dependency injection for InvoiceService"""
    return InvoiceService(db)


def to_invoice_response(inv: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=inv.id,
        public_id=inv.public_id,
        contractId=inv.contract_id,
        consultationId=inv.consultation_id,
        clientName=inv.client_name,
        clientEmail=inv.client_email,
        invoiceNumber=inv.invoice_number,
        invoiceType=inv.invoice_type,
        description=inv.description,
        notes=inv.notes,
        amount=inv.amount,
        amountPaid=inv.amount_paid or 0,
        balanceDue=balance_due(inv),
        currency=inv.currency,
        status=inv.status,
        issueDate=inv.issue_date,
        dueDate=inv.due_date,
        expiryDate=inv.expiry_date,
        sentAt=inv.sent_at,
        paidAt=inv.paid_at,
        paymentMethod=inv.payment_method,
        paymentReference=inv.payment_reference,
        paymentLink=inv.payment_link,
        payments=inv.payments or [],
    )


# ============================================================================
# ADMIN OPERATIONS
# ============================================================================


@router.get("", response_model=list[InvoiceResponse])
async def get_invoices(
    status: Optional[InvoiceStatus] = Query(None),
    contract_id: Optional[int] = Query(None, alias="contractId"),
    _: str = Depends(get_current_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    return [to_invoice_response(i) for i in service.get_invoices(status, contract_id)]


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    _: str = Depends(get_current_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Create an invoice for a signed contract (returns the open one if it exists)"""
    invoice = service.create_invoice(
        data.contractId, data.invoiceType, data.amount, data.description, data.notes
    )
    return to_invoice_response(invoice)


@router.get("/check-expired", response_model=CheckExpiredResponse)
async def check_expired_invoices(
    _: str = Depends(get_current_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Expire every sent invoice past its expiry date; safe to call on a schedule"""
    expired = service.check_expired()
    return CheckExpiredResponse(
        expired=len(expired), expiredInvoices=[to_invoice_response(i) for i in expired]
    )


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    _: str = Depends(get_current_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    return to_invoice_response(service.get_invoice(invoice_id))


@router.post("/{invoice_id}/send", response_model=InvoiceResponse)
async def send_invoice(
    invoice_id: int,
    _: str = Depends(get_current_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    return to_invoice_response(service.send_invoice(invoice_id))


@router.post("/{invoice_id}/expire", response_model=InvoiceResponse)
async def expire_invoice(
    invoice_id: int,
    _: str = Depends(get_current_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    return to_invoice_response(service.expire_invoice(invoice_id))


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    invoice_id: int,
    _: str = Depends(get_current_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    return to_invoice_response(service.cancel_invoice(invoice_id))


@router.post("/{invoice_id}/mark-paid", response_model=InvoiceResponse)
async def mark_invoice_paid(
    invoice_id: int,
    data: MarkPaidRequest,
    _: str = Depends(get_current_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Record a payment made outside the gateway (idempotent per reference)"""
    invoice = service.mark_paid(
        invoice_id,
        data.paymentReference,
        paid_at=data.paidAt,
        amount=data.amount,
        payment_method=data.paymentMethod or "manual",
        enforce_expiry=True,
    )
    return to_invoice_response(invoice)


@router.post("/{invoice_id}/remaining-balance", response_model=InvoiceResponse, status_code=201)
async def create_remaining_balance_invoice(
    invoice_id: int,
    _: str = Depends(get_current_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Final invoice for what the contract still owes"""
    return to_invoice_response(service.create_remaining_balance_invoice(invoice_id))


# ============================================================================
# PUBLIC PAYMENT LINK
# ============================================================================


@router.get("/{identifier}/payment-link")
async def get_payment_link(
    identifier: str,
    amount: Optional[float] = Query(None),
    redirect: bool = Query(True),
    _: None = Depends(payment_link_rate_limit),
    service: InvoiceService = Depends(get_invoice_service),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Redirect the client to the gateway checkout for an invoice"""
    logger.info(f"💳 Payment link requested for invoice {identifier}")
    invoice, session, charge = await service.generate_payment_link(identifier, gateway, amount)

    if redirect:
        return RedirectResponse(url=session.authorization_url, status_code=307)

    return PaymentLinkResponse(
        invoiceId=invoice.public_id,
        invoiceNumber=invoice.invoice_number,
        paymentLink=session.authorization_url,
        reference=session.reference,
        amount=charge,
        currency=invoice.currency,
    )
