import logging
from datetime import datetime, timedelta, timezone

from eventhub.schemas.auth import MessageResponse, LoginResponse, TokenResponse, UserSummary
from eventhub.infrastructure.database.models import OtpPurpose
from eventhub.infrastructure.database.repositories import CredentialStore
from eventhub.core.security import (
    verify_password, create_access_token, create_refresh_token, decode_refresh_token
)
from eventhub.core.exceptions import APIException, bad_request, not_found, unauthorized
from eventhub.config import settings
from eventhub.services.auth.auth_utils import is_email, is_token_expired
from eventhub.services.otp_service import OtpService


logger = logging.getLogger(__name__)


def _refresh_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)


async def signin_with_password(
    store: CredentialStore,
    otp_service: OtpService,
    email: str,
    password: str
) -> MessageResponse:
    """
    Step one of login: checks the password and emails a LOGIN code.
    No tokens are issued until the code is verified.
    """
    email = (email or "").strip()
    logger.debug(f"Password signin attempt for: {email}")

    if not is_email(email):
        raise bad_request("Invalid email format")
    if not password or len(password) < settings.MIN_PASSWORD_LENGTH:
        raise bad_request(f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long")

    user = await store.find_user_by_email(email)
    if not user:
        logger.warning(f"Signin failed: user not found for {email}")
        raise not_found("User not found")

    if not await verify_password(password, user.hashed_password):
        logger.warning(f"Signin failed: incorrect password for user {user.id}")
        raise unauthorized("Invalid password", name="invalid_credentials")

    await otp_service.create_and_send_otp(user, OtpPurpose.LOGIN)

    return MessageResponse(
        success=True,
        message="OTP sent to your email. Please verify to complete login."
    )


async def verify_login_otp(
    store: CredentialStore,
    otp_service: OtpService,
    email: str,
    otp_code: str
) -> LoginResponse:
    """
    Step two of login: consumes the LOGIN code and issues an access/refresh pair.
    The refresh token replaces whatever refresh token the user held before.
    """
    email = (email or "").strip()
    if not is_email(email):
        raise bad_request("Invalid email format")
    if not otp_code or not otp_code.strip():
        raise bad_request("OTP is required")

    user = await store.find_user_by_email(email)
    if not user:
        logger.warning(f"OTP verification failed: user not found for {email}")
        raise not_found("User not found")

    await otp_service.verify_otp(user.id, otp_code, OtpPurpose.LOGIN)

    access_token = await create_access_token(user.id, user.role.value)
    refresh_token = await create_refresh_token(user.id, user.role.value)
    await store.upsert_refresh_token_by_user(user.id, refresh_token, _refresh_expiry())

    logger.info(f"User {user.id} logged in after OTP verification.")
    return LoginResponse(
        success=True,
        message="Login successful",
        user=UserSummary(id=user.id, email=user.email, full_name=user.full_name, role=user.role),
        access_token=access_token,
        refresh_token=refresh_token,
        token_type="bearer",
    )


async def refresh_access_token(store: CredentialStore, refresh_token: str) -> TokenResponse:
    """
    Obtain a new access token and a new refresh token using a valid refresh token.
    Implements refresh token rotation: the stored row is overwritten in place and
    the presented token stops matching anything.
    """
    if not refresh_token or not refresh_token.strip():
        raise unauthorized("Invalid refresh token", name="invalid_token")

    logger.debug(f"Attempting to refresh token: {refresh_token[:10]}...")

    record = await store.find_refresh_token_by_value(refresh_token)
    if not record:
        logger.warning("Refresh failed: token not found (unknown or already rotated).")
        raise unauthorized("Invalid refresh token", name="invalid_token")

    if record.revoked or is_token_expired(record.expires_at):
        logger.warning(f"Refresh failed: token row {record.id} for user {record.user_id} is expired or revoked.")
        raise unauthorized("Refresh token expired or revoked", name="expired_or_revoked")

    # The stored row and the signed claim must agree.
    try:
        payload = await decode_refresh_token(refresh_token)
    except APIException as e:
        logger.warning(f"Refresh failed: token row {record.id} failed signature/expiry check ({e.name}).")
        raise unauthorized("Invalid refresh token", name="invalid_token")

    if payload.sub != str(record.user_id):
        logger.warning(f"Refresh failed: token subject {payload.sub} does not own row {record.id}.")
        raise unauthorized("Invalid refresh token", name="invalid_token")

    user = await store.find_user_by_id(record.user_id)
    if not user:
        logger.warning(f"Refresh failed: user {record.user_id} no longer exists.")
        raise unauthorized("Invalid refresh token", name="invalid_token")

    new_access_token = await create_access_token(user.id, user.role.value)
    new_refresh_token = await create_refresh_token(user.id, user.role.value)

    rotated = await store.update_refresh_token_by_id(record.id, refresh_token, new_refresh_token, _refresh_expiry())
    if not rotated:
        logger.warning(f"Refresh failed: token row {record.id} was rotated by a concurrent request.")
        raise unauthorized("Invalid refresh token", name="invalid_token")

    logger.info(f"Refresh token row {record.id} rotated for user {user.id}.")
    return TokenResponse(
        success=True,
        message="Token refreshed successfully.",
        access_token=new_access_token,
        refresh_token=new_refresh_token,
        token_type="bearer",
    )


async def logout(store: CredentialStore, user_id: int) -> dict:
    """
    Drops every refresh token of the user. Outstanding access tokens remain
    valid until their own expiry.
    """
    user = await store.find_user_by_id(user_id)
    if not user:
        logger.warning(f"Logout failed: user {user_id} not found.")
        raise not_found("User not found")

    deleted = await store.delete_refresh_tokens_by_user(user.id)
    if deleted > 1:
        # Upsert keeps one row per user; more than one means the constraint was bypassed.
        logger.error(f"Logout removed {deleted} refresh tokens for user {user.id}; expected at most one.")

    logger.info(f"User {user.id} logged out ({deleted} refresh token(s) removed).")
    return {"full_name": user.full_name}
