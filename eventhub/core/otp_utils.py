# eventhub/core/otp_utils.py

import hmac
import secrets
import string
from datetime import datetime, timedelta, timezone
import logging
from typing import Optional

from eventhub.config import settings
from eventhub.core.exceptions import unauthorized

logger = logging.getLogger(__name__)

def generate_numeric_otp(
    length: int = settings.OTP_LENGTH,
    expiration_minutes: int = settings.OTP_EXPIRATION_MINUTES
) -> tuple[str, datetime]:
    """
    Generates a numeric OTP and its expiration time.
    Uses settings from eventhub.config for default length and expiration.
    """
    digits = string.digits
    otp = ''.join(secrets.choice(digits) for _ in range(length))
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=expiration_minutes)
    logger.debug(f"Generated numeric OTP (length {length}, expires at {expires_at})")
    return otp, expires_at

def mask_otp(otp: str) -> str:
    """Returns a log-safe representation of an OTP code."""
    if len(otp) <= 2:
        return "*" * len(otp)
    return f"{otp[:1]}{'*' * (len(otp) - 2)}{otp[-1:]}"

def verify_numeric_otp(
    stored_otp: Optional[str],
    stored_otp_expires_at: Optional[datetime],
    provided_otp: str,
    otp_type: str = "general" # For logging, e.g. "LOGIN"
) -> bool:
    """
    Verifies if the provided numeric OTP matches the stored OTP and is not expired.
    Raises unauthorized if verification fails. Expiry is checked before the code
    itself, so a correct but stale code is still reported as expired.
    """
    if not stored_otp or not stored_otp_expires_at:
        logger.warning(f"Attempted to verify {otp_type} OTP but no stored OTP found or it was already consumed.")
        raise unauthorized("Invalid or expired OTP. Please request a new one.", name="otp_not_found")

    if not isinstance(provided_otp, str):
        logger.warning(f"{otp_type} OTP provided is not a string type: {type(provided_otp)}")
        raise unauthorized("Invalid OTP provided.", name="otp_mismatch")

    # SQLite hands back naive datetimes; every value is written in UTC.
    if stored_otp_expires_at.tzinfo is None:
        stored_otp_expires_at = stored_otp_expires_at.replace(tzinfo=timezone.utc)

    if datetime.now(timezone.utc) > stored_otp_expires_at:
        logger.warning(f"{otp_type} OTP expired at {stored_otp_expires_at}.")
        raise unauthorized("OTP has expired. Please request a new one.", name="otp_expired")

    if not hmac.compare_digest(stored_otp.encode(), provided_otp.strip().encode()):
        logger.warning(f"{otp_type} OTP mismatch. Stored: {mask_otp(stored_otp)}")
        raise unauthorized("Invalid OTP provided.", name="otp_mismatch")

    logger.info(f"Successfully verified {otp_type} OTP.")
    return True
