"""Shared validation utilities"""

import re
import uuid
from datetime import datetime
from typing import Optional


def validate_uuid(value: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError):
        return False


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a phone number.

    Local numbers are kept as digits; numbers with a leading ``+`` keep it.

    Raises:
        ValueError: If the number has too few or too many digits
    """
    if not phone:
        return phone

    stripped = phone.strip()
    digits = re.sub(r"\D", "", stripped)

    # E.164 allows up to 15 digits; anything under 7 is not dialable
    if len(digits) < 7 or len(digits) > 15:
        raise ValueError("Phone number must have between 7 and 15 digits")

    return f"+{digits}" if stripped.startswith("+") else digits


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_iso_date(value: str) -> str:
    """
    Validate a calendar date in YYYY-MM-DD form.

    Raises:
        ValueError: If the value is not a real date in that form
    """
    value = (value or "").strip()
    if not re.match(r"^\d{4}-\d{2}-\d{2}$", value):
        raise ValueError("Date must use the YYYY-MM-DD format")
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError as e:
        raise ValueError("Date is not a valid calendar date") from e
    return value
