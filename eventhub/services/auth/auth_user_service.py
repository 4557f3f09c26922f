# eventhub/services/auth/auth_user_service.py

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from eventhub.schemas.auth import SignupResponse
from eventhub.infrastructure.database.repositories import CredentialStore
from eventhub.core.security import get_password_hash
from eventhub.core.exceptions import bad_request, conflict
from eventhub.services.auth.auth_utils import (
    is_email, is_phone_number, is_strong_password, resolve_signup_role, PASSWORD_POLICY_MESSAGE
)

logger = logging.getLogger(__name__)


async def signup(
    store: CredentialStore,
    full_name: str,
    email: str,
    phone: str,
    password: str,
    role: Optional[str] = None
) -> SignupResponse:
    """
    Registers a new account.

    The requested role is honoured only if it names a known role (and role
    selection is enabled in settings); everything else becomes PARTICIPANT.
    """
    email = (email or "").strip()
    logger.debug(f"Signup attempt for: {email}")

    if not is_email(email):
        raise bad_request("Invalid email")
    if not is_phone_number(phone):
        raise bad_request("Phone number must be in format +92XXXXXXXXXX or 03XXXXXXXXX")
    if not is_strong_password(password):
        raise bad_request(PASSWORD_POLICY_MESSAGE)

    if await store.find_user_by_email(email):
        logger.warning(f"Signup failed: email {email} already registered.")
        raise conflict("Email already registered", name="duplicate_email")

    assigned_role = resolve_signup_role(role)
    hashed_password = await get_password_hash(password)

    try:
        new_user = await store.create_user(
            full_name=full_name,
            email=email,
            phone=phone,
            hashed_password=hashed_password,
            role=assigned_role,
        )
    except IntegrityError:
        # Lost a race against a concurrent signup with the same email.
        logger.warning(f"Signup failed: email {email} registered concurrently.")
        raise conflict("Email already registered", name="duplicate_email")

    logger.info(f"User {new_user.id} registered with role {new_user.role.value}.")
    return SignupResponse(
        success=True,
        message="Signup successful. You can now log in.",
        user_id=new_user.id,
        role=new_user.role,
    )
