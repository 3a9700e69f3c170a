"""Tests for invoices: amounts, absorbing states, payments and payment links"""

from datetime import timedelta

import pytest

from app.domain.consultations.schemas import ConsultationCreate
from app.domain.consultations.service import ConsultationService
from app.domain.contracts.schemas import ContractCreate
from app.domain.contracts.service import ContractService
from app.domain.invoices.service import InvoiceService, generate_invoice_number
from app.models import Invoice
from app.shared.exceptions import (
    AlreadyPaid,
    Conflict,
    Expired,
    GatewayError,
    InvalidTransition,
    ValidationError,
)
from app.shared.expiry import utcnow
from conftest import NOW, make_signed_contract

LATER = NOW + timedelta(hours=2)


def test_invoice_number_format():
    assert generate_invoice_number(7, 2, 2025) == "INV-2025-0007-002"


def test_default_amounts_follow_upfront_share(db):
    contract = make_signed_contract(db)
    service = InvoiceService(db)

    downpayment = service.create_invoice(contract.id, "downpayment", now=LATER)
    final = service.create_invoice(contract.id, "final", now=LATER)

    assert (downpayment.amount, final.amount) == (10000.0, 2500.0)
    assert downpayment.status == "draft"
    assert downpayment.currency == "KES"
    assert downpayment.expiry_date == LATER + timedelta(days=7)
    assert downpayment.invoice_number == f"INV-2025-{contract.id:04d}-001"
    assert final.invoice_number.endswith("-002")

    # The open split already covers the whole project cost
    with pytest.raises(Conflict):
        service.create_invoice(contract.id, "full", now=LATER)


def test_full_invoice_alone_bills_project_cost(db):
    contract = make_signed_contract(db)
    assert InvoiceService(db).create_invoice(contract.id, "full", now=LATER).amount == 12500.0


def test_paid_downpayment_is_not_billed_again(db):
    contract = make_signed_contract(db, project_cost=10000)
    service = InvoiceService(db)
    down = service.create_invoice(contract.id, "downpayment", now=LATER)
    service.mark_paid(down.id, "pay-dp", now=LATER)

    with pytest.raises(AlreadyPaid):
        service.create_invoice(contract.id, "downpayment", now=LATER)

    full = service.create_invoice(contract.id, "full", now=LATER)
    assert full.amount == 2000.0
    with pytest.raises(Conflict):
        service.create_invoice(contract.id, "final", now=LATER)

    billed = sum(i.amount for i in service.get_invoices(contract_id=contract.id, now=LATER))
    assert billed == 10000.0


def test_explicit_amount_is_capped_by_what_is_owed(db):
    contract = make_signed_contract(db, project_cost=10000)
    service = InvoiceService(db)

    with pytest.raises(ValidationError):
        service.create_invoice(contract.id, "final", amount=50000.0, now=LATER)

    first = service.create_invoice(contract.id, "full", amount=4000.0, now=LATER)
    assert first.amount == 4000.0
    with pytest.raises(Conflict):
        service.create_invoice(contract.id, "final", amount=7000.0, now=LATER)
    assert service.create_invoice(contract.id, "final", amount=6000.0, now=LATER).amount == 6000.0


def test_contract_payment_terms_override_defaults(db):
    contract = make_signed_contract(
        db, terms={"paymentTerms": {"upfrontPercentage": 50, "invoiceExpiryDays": 3, "currency": "USD"}}
    )
    invoice = InvoiceService(db).create_invoice(contract.id, "downpayment", now=LATER)

    assert invoice.amount == 6250.0
    assert invoice.currency == "USD"
    assert invoice.expiry_date == LATER + timedelta(days=3)


def test_open_invoice_is_reused(db):
    contract = make_signed_contract(db)
    service = InvoiceService(db)
    first = service.create_invoice(contract.id, "downpayment", now=LATER)
    second = service.create_invoice(contract.id, "downpayment", now=LATER + timedelta(days=1))
    assert second.id == first.id


def test_invoices_need_a_signed_contract(db):
    signed = make_signed_contract(db)
    consultation = ConsultationService(db).create_consultation(
        ConsultationCreate(clientName="Zawadi", clientEmail="zawadi@example.com", consultationDate="2025-05-30")
    )
    ConsultationService(db).record_decision(consultation.id, "proceed", now=NOW)
    pending = ContractService(db).create_contract(consultation.id, ContractCreate(projectCost=500), now=NOW)

    with pytest.raises(InvalidTransition):
        InvoiceService(db).create_invoice(pending.id, "full", now=LATER)
    assert InvoiceService(db).create_invoice(signed.id, "full", now=LATER).status == "draft"


def test_paid_invoice_never_expires(db):
    """Paid before expiry, swept after it: the invoice stays paid"""
    contract = make_signed_contract(db)
    service = InvoiceService(db)
    invoice = service.create_invoice(contract.id, "downpayment", now=LATER)
    service.send_invoice(invoice.id, now=LATER)

    paid = service.mark_paid(invoice.id, "pay-1", now=LATER + timedelta(days=1))
    assert paid.status == "paid"
    assert paid.amount_paid == 10000.0

    swept = service.check_expired(now=LATER + timedelta(days=8))
    assert swept == []
    assert service.get_invoice(invoice.id, now=LATER + timedelta(days=30)).status == "paid"

    with pytest.raises(AlreadyPaid):
        service.expire_invoice(invoice.id)
    with pytest.raises(AlreadyPaid):
        service.cancel_invoice(invoice.id)
    with pytest.raises(AlreadyPaid):
        service.mark_paid(invoice.id, "pay-2", now=LATER + timedelta(days=2))


def test_sent_invoice_expires_lazily_and_once(db):
    contract = make_signed_contract(db)
    service = InvoiceService(db)
    invoice = service.create_invoice(contract.id, "full", now=LATER)
    service.send_invoice(invoice.id, now=LATER)
    after = LATER + timedelta(days=8)

    assert [i.id for i in service.check_expired(now=after)] == [invoice.id]
    assert service.check_expired(now=after) == []
    assert service.get_invoice(invoice.id, now=LATER).status == "expired"

    with pytest.raises(Expired):
        service.mark_paid(invoice.id, "late-pay", now=after)
    with pytest.raises(InvalidTransition):
        service.cancel_invoice(invoice.id)


def test_manual_payment_on_overdue_invoice_expires_it(db):
    contract = make_signed_contract(db)
    service = InvoiceService(db)
    invoice = service.create_invoice(contract.id, "downpayment", now=LATER)
    service.send_invoice(invoice.id, now=LATER)
    after = LATER + timedelta(days=8)

    with pytest.raises(Expired):
        service.mark_paid(invoice.id, "bank-9", now=after, enforce_expiry=True)
    db.expire_all()
    assert db.get(Invoice, invoice.id).status == "expired"


def test_gateway_payment_applies_to_unread_overdue_invoice(db):
    contract = make_signed_contract(db)
    service = InvoiceService(db)
    invoice = service.create_invoice(contract.id, "downpayment", now=LATER)
    service.send_invoice(invoice.id, now=LATER)

    paid = service.mark_paid(invoice.id, "pay-late-webhook", now=LATER + timedelta(days=8))
    assert paid.status == "paid"


def test_draft_invoices_are_not_swept(db):
    contract = make_signed_contract(db)
    service = InvoiceService(db)
    invoice = service.create_invoice(contract.id, "full", now=LATER)

    assert service.check_expired(now=LATER + timedelta(days=30)) == []
    assert service.get_invoice(invoice.id, now=LATER + timedelta(days=30)).status == "draft"


def test_stale_draft_is_replaced(db):
    contract = make_signed_contract(db)
    service = InvoiceService(db)
    stale = service.create_invoice(contract.id, "downpayment", now=LATER)

    fresh = service.create_invoice(contract.id, "downpayment", now=LATER + timedelta(days=9))

    assert fresh.id != stale.id
    db.expire_all()
    assert db.get(Invoice, stale.id).status == "cancelled"


def test_partial_payments_accumulate(db):
    contract = make_signed_contract(db)
    service = InvoiceService(db)
    invoice = service.create_invoice(contract.id, "full", now=LATER)

    partial = service.mark_paid(invoice.id, "pay-1", amount=5000, now=LATER)
    assert partial.status == "draft"
    assert partial.amount_paid == 5000.0

    with pytest.raises(ValidationError):
        service.mark_paid(invoice.id, "pay-2", amount=9000, now=LATER)

    done = service.mark_paid(invoice.id, "pay-3", amount=7500, now=LATER)
    assert done.status == "paid"
    assert [p["reference"] for p in done.payments] == ["pay-1", "pay-3"]


def test_mark_paid_is_idempotent_per_reference(db):
    contract = make_signed_contract(db)
    service = InvoiceService(db)
    invoice = service.create_invoice(contract.id, "full", now=LATER)

    service.mark_paid(invoice.id, "pay-1", amount=2000, now=LATER)
    replay = service.mark_paid(invoice.id, "pay-1", amount=2000, now=LATER)

    assert replay.amount_paid == 2000.0
    assert len(replay.payments) == 1


def test_final_invoice_bills_what_is_left(db):
    contract = make_signed_contract(db)
    service = InvoiceService(db)
    down = service.create_invoice(contract.id, "downpayment", now=LATER)
    service.mark_paid(down.id, "pay-1", now=LATER)

    final = service.create_remaining_balance_invoice(down.id, now=LATER)
    assert final.invoice_type == "final"
    assert final.amount == 2500.0

    service.mark_paid(final.id, "pay-2", now=LATER)
    with pytest.raises(AlreadyPaid):
        service.create_invoice(contract.id, "full", now=LATER)


# ============================================================================
# HTTP
# ============================================================================


def create_invoice_over_http(client, admin_headers, contract_id, invoice_type="downpayment"):
    response = client.post(
        "/invoices",
        json={"contractId": contract_id, "invoiceType": invoice_type},
        headers=admin_headers,
    )
    assert response.status_code == 201
    return response.json()


def test_invoice_admin_routes_require_token(client):
    assert client.get("/invoices").status_code == 401
    assert client.post("/invoices", json={"contractId": 1}).status_code == 401


def test_payment_link_redirects_to_checkout(client, db, admin_headers, fake_gateway):
    contract = make_signed_contract(db)
    invoice = create_invoice_over_http(client, admin_headers, contract.id)

    response = client.get(f"/invoices/{invoice['public_id']}/payment-link", follow_redirects=False)

    assert response.status_code == 307
    session = fake_gateway.sessions[0]
    assert response.headers["location"] == f"https://checkout.test/{session['reference']}"
    assert session["amount"] == 10000.0
    assert session["currency"] == "KES"
    assert session["metadata"]["payment_type"] == "invoice"
    assert session["metadata"]["invoice_id"] == str(invoice["id"])

    refreshed = client.get(f"/invoices/{invoice['id']}", headers=admin_headers).json()
    assert refreshed["status"] == "sent"
    assert refreshed["paymentLink"] == response.headers["location"]


def test_payment_link_by_invoice_number_with_partial_amount(client, db, admin_headers, fake_gateway):
    contract = make_signed_contract(db)
    invoice = create_invoice_over_http(client, admin_headers, contract.id)

    response = client.get(
        f"/invoices/{invoice['invoiceNumber']}/payment-link",
        params={"amount": 4000, "redirect": "false"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["amount"] == 4000.0
    assert body["invoiceNumber"] == invoice["invoiceNumber"]
    assert body["paymentLink"].startswith("https://checkout.test/")

    too_much = client.get(
        f"/invoices/{invoice['public_id']}/payment-link", params={"amount": 20000, "redirect": "false"}
    )
    assert too_much.status_code == 400


def test_payment_link_for_expired_invoice_is_gone(client, db, admin_headers, fake_gateway):
    contract = make_signed_contract(db)
    invoice = create_invoice_over_http(client, admin_headers, contract.id)
    client.post(f"/invoices/{invoice['id']}/send", headers=admin_headers)

    db.expire_all()
    stored = db.get(Invoice, invoice["id"])
    stored.expiry_date = utcnow() - timedelta(days=1)
    db.commit()

    response = client.get(f"/invoices/{invoice['public_id']}/payment-link", follow_redirects=False)
    assert response.status_code == 410
    assert response.json()["code"] == "expired"
    assert fake_gateway.sessions == []

    refreshed = client.get(f"/invoices/{invoice['id']}", headers=admin_headers).json()
    assert refreshed["status"] == "expired"


def test_payment_link_for_paid_invoice_conflicts(client, db, admin_headers):
    contract = make_signed_contract(db)
    invoice = create_invoice_over_http(client, admin_headers, contract.id)
    paid = client.post(
        f"/invoices/{invoice['id']}/mark-paid",
        json={"paymentReference": "bank-123"},
        headers=admin_headers,
    )
    assert paid.json()["status"] == "paid"
    assert paid.json()["paymentMethod"] == "manual"

    response = client.get(f"/invoices/{invoice['public_id']}/payment-link", follow_redirects=False)
    assert response.status_code == 409
    assert response.json()["code"] == "already_paid"


def test_mark_paid_endpoint_rejects_overdue_invoice(client, db, admin_headers):
    contract = make_signed_contract(db)
    invoice = create_invoice_over_http(client, admin_headers, contract.id)
    client.post(f"/invoices/{invoice['id']}/send", headers=admin_headers)

    db.expire_all()
    db.get(Invoice, invoice["id"]).expiry_date = utcnow() - timedelta(minutes=1)
    db.commit()

    response = client.post(
        f"/invoices/{invoice['id']}/mark-paid",
        json={"paymentReference": "bank-456"},
        headers=admin_headers,
    )
    assert response.status_code == 410
    assert response.json()["code"] == "expired"


def test_over_billing_is_rejected_over_http(client, db, admin_headers):
    contract = make_signed_contract(db, project_cost=10000)

    response = client.post(
        "/invoices",
        json={"contractId": contract.id, "invoiceType": "final", "amount": 50000},
        headers=admin_headers,
    )
    assert response.status_code == 400

    create_invoice_over_http(client, admin_headers, contract.id, invoice_type="full")
    again = client.post(
        "/invoices",
        json={"contractId": contract.id, "invoiceType": "downpayment"},
        headers=admin_headers,
    )
    assert again.status_code == 409
    assert again.json()["code"] == "conflict"


def test_gateway_failure_leaves_invoice_untouched(client, db, admin_headers, fake_gateway):
    contract = make_signed_contract(db)
    invoice = create_invoice_over_http(client, admin_headers, contract.id)
    fake_gateway.fail_with = GatewayError("Payment provider timed out")

    response = client.get(f"/invoices/{invoice['public_id']}/payment-link", follow_redirects=False)
    assert response.status_code == 502
    assert response.json()["code"] == "gateway_error"

    refreshed = client.get(f"/invoices/{invoice['id']}", headers=admin_headers).json()
    assert refreshed["status"] == "draft"
    assert refreshed["paymentLink"] is None


def test_unknown_invoice_payment_link_is_not_found(client):
    response = client.get("/invoices/INV-1999-0001-001/payment-link", follow_redirects=False)
    assert response.status_code == 404


def test_check_expired_endpoint(client, db, admin_headers):
    contract = make_signed_contract(db)
    invoice = create_invoice_over_http(client, admin_headers, contract.id)
    client.post(f"/invoices/{invoice['id']}/send", headers=admin_headers)

    db.expire_all()
    db.get(Invoice, invoice["id"]).expiry_date = utcnow() - timedelta(minutes=1)
    db.commit()

    first = client.get("/invoices/check-expired", headers=admin_headers).json()
    assert first["expired"] == 1
    assert first["expiredInvoices"][0]["status"] == "expired"
    assert client.get("/invoices/check-expired", headers=admin_headers).json()["expired"] == 0
