# core/validator.py
"""
Input validation for contact form submissions
"""

import re
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from core.exceptions import ValidationError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

REQUIRED_FIELDS = ('to', 'subject', 'name', 'message')
PHONE_FIELD = 'phone'

MISSING_FIELDS_MESSAGE = "All fields are required: recipient email, subject, name, and message"
MISSING_FIELDS_WITH_PHONE_MESSAGE = "All fields are required: recipient email, subject, name, message, and phone"
INVALID_EMAIL_MESSAGE = "Please provide a valid email address"


@dataclass
class Submission:
    """Contact form payload for a single request"""
    to: str
    subject: str
    name: str
    message: str
    phone: Optional[str] = None


def is_valid_email(value: str) -> bool:
    """Basic local@domain.tld shape check"""
    return EMAIL_PATTERN.fullmatch(value) is not None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == '')


def validate_submission(raw: Mapping[str, Any], require_phone: bool = False) -> Submission:
    """
    Validate a raw field mapping and build a Submission

    Checks run in order (presence, type, email format) and the first
    failing category raises ValidationError.

    Args:
        raw: Field mapping decoded from the request body
        require_phone: Whether the phone field is mandatory

    Returns:
        Validated Submission (not yet sanitized)
    """
    required = REQUIRED_FIELDS + ((PHONE_FIELD,) if require_phone else ())
    missing_message = MISSING_FIELDS_WITH_PHONE_MESSAGE if require_phone else MISSING_FIELDS_MESSAGE

    if not isinstance(raw, Mapping):
        raise ValidationError(missing_message, fields=list(required))

    missing: List[str] = [field for field in required if _is_blank(raw.get(field))]
    if missing:
        logger.debug(f"Submission missing fields: {missing}")
        raise ValidationError(missing_message, fields=missing)

    checked = list(required)
    if not require_phone and raw.get(PHONE_FIELD) is not None:
        checked.append(PHONE_FIELD)

    for field in checked:
        if not isinstance(raw[field], str):
            raise ValidationError(f"Invalid field type: {field} must be a string", fields=[field])

    if not is_valid_email(raw['to']):
        raise ValidationError(INVALID_EMAIL_MESSAGE, fields=['to'])

    phone = raw.get(PHONE_FIELD) or None

    return Submission(
        to=raw['to'],
        subject=raw['subject'],
        name=raw['name'],
        message=raw['message'],
        phone=phone,
    )
