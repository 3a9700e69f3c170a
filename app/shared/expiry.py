"""Lazy expiry evaluation

Nothing in the service expires records on a timer. Every read or write path
asks these functions whether a record has expired and persists the transition
itself; the sweep endpoints call the same functions. Keep them pure.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

CONTRACT_PENDING = "pending"
INVOICE_SENT = "sent"


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the ORM stores DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def reservation_expiry(now: datetime, ttl_minutes: int) -> datetime:
    return now + timedelta(minutes=ttl_minutes)


def reservation_is_active(expires_at: Optional[datetime], now: datetime) -> bool:
    """A reservation blocks its slot until (not including) ``expires_at``"""
    return expires_at is not None and expires_at > now


def contract_is_expired(
    status: str, created_at: Optional[datetime], now: datetime, window_days: int
) -> bool:
    """Pending contracts expire once the signing window has fully elapsed"""
    if status != CONTRACT_PENDING or created_at is None:
        return False
    return now - created_at >= timedelta(days=window_days)


def contract_days_remaining(
    status: str, created_at: Optional[datetime], now: datetime, window_days: int
) -> Optional[int]:
    """Whole days left to sign, None once the contract is no longer pending"""
    if status != CONTRACT_PENDING or created_at is None:
        return None
    elapsed_days = math.floor((now - created_at).total_seconds() / 86400)
    return max(0, window_days - elapsed_days)


def invoice_is_expired(status: str, expiry_date: Optional[datetime], now: datetime) -> bool:
    """Only sent invoices expire; paid and cancelled are absorbing"""
    if status != INVOICE_SENT or expiry_date is None:
        return False
    return now > expiry_date


def invoice_past_expiry(expiry_date: Optional[datetime], now: datetime) -> bool:
    return expiry_date is not None and now > expiry_date


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an incoming timestamp to the naive UTC form stored by the ORM"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
