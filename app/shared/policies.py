"""Business policies

The numbers here used to live as literals inside individual handlers. They
are named, configurable and unit tested instead.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from ..config import CANCELLATION_WINDOW_HOURS, UPFRONT_PERCENTAGE

TIME_ONLY_FORMATS = ("%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M%p", "%I %p")


@dataclass(frozen=True)
class RefundDecision:
    status: str  # not_required, pending, retained
    amount: float = 0.0
    notes: Optional[str] = None


RefundPolicy = Callable[[float, Optional[datetime], datetime], RefundDecision]


def appointment_start(date: str, time_slot: str) -> Optional[datetime]:
    """
    Resolve a booking's start as a naive UTC datetime.

    Time slots are stored as the client sent them: either a full ISO timestamp
    or a wall-clock time for ``date``. Returns None when neither parses.
    """
    if not time_slot:
        return None

    value = time_slot.strip()
    if "T" in value or re.match(r"^\d{4}-\d{2}-\d{2}\s", value):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

    for fmt in TIME_ONLY_FORMATS:
        try:
            return datetime.strptime(f"{date} {value.upper()}", f"%Y-%m-%d {fmt}")
        except ValueError:
            continue
    return None


def cancellation_cutoff(
    appointment_at: Optional[datetime], window_hours: int = CANCELLATION_WINDOW_HOURS
) -> Optional[datetime]:
    if appointment_at is None:
        return None
    return appointment_at - timedelta(hours=max(window_hours, 1))


def is_late_cancellation(
    appointment_at: Optional[datetime],
    now: datetime,
    window_hours: int = CANCELLATION_WINDOW_HOURS,
) -> bool:
    """Unknown appointment times count as late"""
    if appointment_at is None:
        return True
    return (appointment_at - now) < timedelta(hours=window_hours)


def deposit_refund_policy(
    deposit: float,
    appointment_at: Optional[datetime],
    now: datetime,
    window_hours: int = CANCELLATION_WINDOW_HOURS,
) -> RefundDecision:
    """Deposits are refundable only when cancelled outside the notice window"""
    if not deposit or deposit <= 0:
        return RefundDecision(status="not_required")

    if is_late_cancellation(appointment_at, now, window_hours):
        return RefundDecision(
            status="retained",
            notes=f"Cancelled less than {window_hours} hours before the appointment",
        )

    return RefundDecision(status="pending", amount=float(deposit))


def round_money(amount: float) -> float:
    return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def upfront_amount(project_cost: float, percentage: float = UPFRONT_PERCENTAGE) -> float:
    return round_money(project_cost * percentage / 100)


def final_percentage(upfront_percentage: float = UPFRONT_PERCENTAGE) -> float:
    return max(0.0, 100.0 - upfront_percentage)


def remaining_balance(
    project_cost: float,
    already_paid: float,
    upfront_percentage: float = UPFRONT_PERCENTAGE,
) -> float:
    """
    Amount for the final invoice.

    When payments have been recorded the balance is exact; before any payment
    it falls back to the final share of the project cost.
    """
    if already_paid > 0:
        return round_money(max(0.0, project_cost - already_paid))
    return round_money(project_cost * final_percentage(upfront_percentage) / 100)
