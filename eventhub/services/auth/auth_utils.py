# eventhub/services/auth/auth_utils.py

import logging
import re
from datetime import datetime, timezone
from typing import Optional

from email_validator import validate_email, EmailNotValidError

from eventhub.config import settings
from eventhub.infrastructure.database.models import UserRole

logger = logging.getLogger(__name__)

# Local mobile "03XXXXXXXXX" or international "+92XXXXXXXXXX".
PHONE_REGEX = r"^(?:\+92\d{10}|03\d{9})$"

# At least one letter and one digit; length is checked separately against settings.
PASSWORD_REGEX = r"^(?=.*[A-Za-z])(?=.*\d).+$"

PASSWORD_POLICY_MESSAGE = (
    f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long "
    "and contain letters and numbers"
)


def is_email(value: Optional[str]) -> bool:
    """Syntax-only email check (no DNS/deliverability lookups)."""
    if not value:
        return False
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True

def is_phone_number(value: Optional[str]) -> bool:
    return bool(value) and re.fullmatch(PHONE_REGEX, value) is not None

def is_strong_password(value: Optional[str]) -> bool:
    if not value or len(value) < settings.MIN_PASSWORD_LENGTH:
        return False
    return re.fullmatch(PASSWORD_REGEX, value) is not None

def resolve_signup_role(requested: Optional[str]) -> UserRole:
    """
    Maps a caller-supplied role string onto a UserRole.
    Unknown or missing values fall back to PARTICIPANT. Elevated roles are only
    honoured while ALLOW_SIGNUP_ROLE_SELECTION is enabled.
    """
    if not requested:
        return UserRole.PARTICIPANT
    try:
        role = UserRole(requested)
    except ValueError:
        logger.info(f"Unknown signup role '{requested}' requested. Defaulting to PARTICIPANT.")
        return UserRole.PARTICIPANT

    if role != UserRole.PARTICIPANT and not settings.ALLOW_SIGNUP_ROLE_SELECTION:
        logger.warning(f"Signup requested elevated role '{role.value}' while role selection is disabled. Assigning PARTICIPANT.")
        return UserRole.PARTICIPANT
    return role

def is_token_expired(expiry: Optional[datetime]) -> bool:
    """
    Checks if a given expiry datetime is in the past.
    Ensures both datetimes are timezone-aware (UTC) for proper comparison.
    """
    if expiry is None:
        return True

    now_utc = datetime.now(timezone.utc)

    if expiry.tzinfo is None:
        expiry_aware = expiry.replace(tzinfo=timezone.utc)
    else:
        expiry_aware = expiry.astimezone(timezone.utc)

    return expiry_aware < now_utc
