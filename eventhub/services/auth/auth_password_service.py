# eventhub/services/auth/auth_password_service.py

import logging

from eventhub.infrastructure.database.repositories import CredentialStore
from eventhub.core.security import get_password_hash, create_password_reset_token, decode_password_reset_token
from eventhub.core.exceptions import APIException, bad_request, unauthorized, not_found, server_error
from eventhub.core.email_utils import EmailNotifier, build_password_reset_email
from eventhub.services.auth.auth_utils import is_strong_password, PASSWORD_POLICY_MESSAGE


logger = logging.getLogger(__name__)


async def request_password_reset(store: CredentialStore, notifier: EmailNotifier, email: str) -> dict:
    """
    Emails a password reset link carrying a signed, short-lived reset token.
    """
    email = (email or "").strip()
    if not email:
        raise bad_request("Email is required")

    logger.debug(f"Password reset requested for: {email}")
    user = await store.find_user_by_email(email)
    if not user:
        logger.warning(f"Password reset request failed: user not found for {email}")
        raise not_found("User not found")

    token = await create_password_reset_token(user.id)
    subject, text_body, html_body = build_password_reset_email(user.full_name, token)
    try:
        await notifier.send_email(user.email, subject, text_body, html_body)
    except RuntimeError as e:
        logger.error(f"Could not deliver password reset link to {user.email}: {e}", exc_info=True)
        raise server_error("Could not send the password reset email. Please try again.", name="email_delivery_failed")
    logger.info(f"Password reset link sent to {user.email}.")

    return {"success": True, "message": "Password reset link sent to email"}


async def reset_password(store: CredentialStore, token: str, new_password: str) -> dict:
    """
    Resets the user's password using a valid reset token.

    The token is stateless: it stays usable for its whole lifetime, even after a
    newer reset was requested or the password was already changed with it.
    """
    if not is_strong_password(new_password):
        raise bad_request(PASSWORD_POLICY_MESSAGE)

    logger.debug(f"Reset password attempt with token: {(token or '')[:10]}...")
    try:
        payload = await decode_password_reset_token(token)
    except APIException as e:
        logger.warning(f"Password reset failed: token rejected ({e.name}).")
        raise unauthorized("Invalid or expired password reset token.", name="invalid_or_expired_token")

    try:
        user_id = int(payload.sub)
    except ValueError:
        logger.warning(f"Password reset failed: malformed subject '{payload.sub}'.")
        raise unauthorized("Invalid or expired password reset token.", name="invalid_or_expired_token")

    hashed_password = await get_password_hash(new_password)
    if not await store.update_user_password(user_id, hashed_password):
        logger.warning(f"Password reset failed: user {user_id} no longer exists.")
        raise not_found("User not found")

    logger.info(f"Password successfully reset for user {user_id}.")
    return {"success": True, "message": "Password reset successful"}
