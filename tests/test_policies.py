"""Unit tests for expiry evaluation, business policies and input validators"""

from datetime import datetime, timedelta, timezone

import pytest

from app.shared.exceptions import ValidationError
from app.shared.expiry import (
    as_naive_utc,
    contract_days_remaining,
    contract_is_expired,
    invoice_is_expired,
    reservation_is_active,
)
from app.shared.policies import (
    appointment_start,
    cancellation_cutoff,
    deposit_refund_policy,
    remaining_balance,
    round_money,
    upfront_amount,
)
from app.shared.validators import validate_email, validate_iso_date, validate_phone
from app.utils.sanitization import clean_text, escape_text

NOW = datetime(2025, 6, 1, 8, 0, 0)


def test_reservation_blocks_until_expiry_instant():
    expires_at = NOW + timedelta(minutes=15)
    assert reservation_is_active(expires_at, NOW)
    assert reservation_is_active(expires_at, expires_at - timedelta(seconds=1))
    assert not reservation_is_active(expires_at, expires_at)
    assert not reservation_is_active(None, NOW)


def test_contract_expires_when_window_elapses():
    created = NOW
    assert not contract_is_expired("pending", created, created + timedelta(days=6, hours=23), 7)
    assert contract_is_expired("pending", created, created + timedelta(days=7), 7)
    # Only pending contracts expire
    assert not contract_is_expired("signed", created, created + timedelta(days=30), 7)


def test_contract_days_remaining_counts_down_to_zero():
    assert contract_days_remaining("pending", NOW, NOW, 7) == 7
    assert contract_days_remaining("pending", NOW, NOW + timedelta(days=2, hours=5), 7) == 5
    assert contract_days_remaining("pending", NOW, NOW + timedelta(days=9), 7) == 0
    assert contract_days_remaining("signed", NOW, NOW, 7) is None


def test_only_sent_invoices_expire():
    past = NOW - timedelta(seconds=1)
    assert invoice_is_expired("sent", past, NOW)
    assert not invoice_is_expired("sent", NOW, NOW)
    for status in ("draft", "paid", "cancelled", "expired"):
        assert not invoice_is_expired(status, past, NOW)


def test_as_naive_utc_converts_aware_timestamps():
    aware = datetime(2025, 6, 1, 11, 0, tzinfo=timezone(timedelta(hours=3)))
    assert as_naive_utc(aware) == datetime(2025, 6, 1, 8, 0)
    assert as_naive_utc(NOW) is NOW
    assert as_naive_utc(None) is None


def test_appointment_start_parses_wall_clock_and_iso_slots():
    assert appointment_start("2025-06-10", "10:00") == datetime(2025, 6, 10, 10, 0)
    assert appointment_start("2025-06-10", "2:30 pm") == datetime(2025, 6, 10, 14, 30)
    assert appointment_start("2025-06-10", "2025-06-10T10:00:00+03:00") == datetime(2025, 6, 10, 7, 0)
    assert appointment_start("2025-06-10", "whenever") is None


def test_cancellation_cutoff_is_window_before_start():
    start = datetime(2025, 6, 10, 10, 0)
    assert cancellation_cutoff(start, 72) == datetime(2025, 6, 7, 10, 0)
    assert cancellation_cutoff(None, 72) is None


def test_deposit_refund_policy():
    start = datetime(2025, 6, 10, 10, 0)

    early = deposit_refund_policy(50.0, start, start - timedelta(days=5), 72)
    assert early.status == "pending"
    assert early.amount == 50.0

    late = deposit_refund_policy(50.0, start, start - timedelta(hours=10), 72)
    assert late.status == "retained"
    assert late.amount == 0.0

    assert deposit_refund_policy(0, start, NOW, 72).status == "not_required"
    # Unknown start time counts as late
    assert deposit_refund_policy(50.0, None, NOW, 72).status == "retained"


def test_invoice_amount_policies():
    assert upfront_amount(12500, 80) == 10000.0
    assert upfront_amount(999.99, 80) == 799.99
    assert remaining_balance(12500, 0, 80) == 2500.0
    assert remaining_balance(12500, 10000, 80) == 2500.0
    assert remaining_balance(12500, 11000, 80) == 1500.0
    assert round_money(0.125) == 0.13


def test_validators():
    assert validate_email(" Client@Example.COM ") == "client@example.com"
    assert validate_phone("+254 712-345-678") == "+254712345678"
    assert validate_iso_date("2025-06-10") == "2025-06-10"

    with pytest.raises(ValueError):
        validate_email("not-an-email")
    with pytest.raises(ValueError):
        validate_phone("12")
    with pytest.raises(ValueError):
        validate_iso_date("10/06/2025")


def test_clean_text_escapes_and_limits_length():
    assert clean_text("  ") is None
    assert clean_text("<b>hi</b>\x07") == "&lt;b&gt;hi&lt;/b&gt;"
    assert escape_text(" O'Neil ") == "O&#x27;Neil"
    with pytest.raises(ValidationError):
        clean_text("x" * 11, max_length=10)
