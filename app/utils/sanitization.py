"""Free-text cleanup for notes, reasons and descriptions before storage"""

import html
import re
from typing import Optional

from ..shared.exceptions import ValidationError

NOTES_MAX_LENGTH = 1000
DESCRIPTION_MAX_LENGTH = 10000

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def escape_text(value: Optional[str]) -> Optional[str]:
    """HTML-escape a short value such as a signer name"""
    if value is None:
        return None
    return html.escape(str(value).strip(), quote=True)


def clean_text(
    value: Optional[str], max_length: int = NOTES_MAX_LENGTH, label: str = "Text"
) -> Optional[str]:
    """
    Escape free text and strip control characters.

    Returns None for missing or blank input so optional fields stay empty.

    Raises:
        ValidationError: If the text is longer than ``max_length``
    """
    if value is None:
        return None

    value = str(value).strip()
    if not value:
        return None

    if len(value) > max_length:
        raise ValidationError(f"{label} must be at most {max_length} characters")

    return CONTROL_CHARS.sub("", html.escape(value, quote=True))
