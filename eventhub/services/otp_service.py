# eventhub/services/otp_service.py

import logging

from eventhub.core.email_utils import EmailNotifier, build_login_otp_email
from eventhub.core.exceptions import unauthorized, server_error
from eventhub.core.otp_utils import generate_numeric_otp, verify_numeric_otp
from eventhub.infrastructure.database.models import User, OtpCode, OtpPurpose
from eventhub.infrastructure.database.repositories import OtpStore

logger = logging.getLogger(__name__)

EMAIL_BUILDERS = {
    OtpPurpose.LOGIN: build_login_otp_email,
}


class OtpService:
    """
    Issues and verifies short-lived numeric codes bound to a user and a purpose.

    At most one code per (user, purpose) is live: issuing a new code consumes the
    previous one, and a successful verification consumes the code it matched.
    """

    def __init__(self, otp_store: OtpStore, notifier: EmailNotifier):
        self.otp_store = otp_store
        self.notifier = notifier

    async def create_and_send_otp(self, user: User, purpose: OtpPurpose) -> OtpCode:
        """
        Stores a fresh code for (user, purpose) and emails it. An unsupported
        purpose is rejected before anything is written.
        """
        build_email = EMAIL_BUILDERS.get(purpose)
        if build_email is None:
            raise ValueError(f"No email template for OTP purpose {purpose}")

        code, expires_at = generate_numeric_otp()
        subject, text_body, html_body = build_email(user.full_name, code)
        otp = await self.otp_store.put_otp(user.id, purpose, code, expires_at)
        logger.info(f"{purpose.value} OTP (ID: {otp.id}) issued for user {user.id}, expires at {expires_at}.")

        try:
            await self.notifier.send_email(user.email, subject, text_body, html_body)
        except RuntimeError as e:
            logger.error(f"Could not deliver {purpose.value} OTP to {user.email}: {e}", exc_info=True)
            raise server_error("Could not send the verification code. Please try again.", name="email_delivery_failed")
        logger.info(f"{purpose.value} OTP email sent to {user.email}.")
        return otp

    async def verify_otp(self, user_id: int, code: str, purpose: OtpPurpose) -> None:
        """
        Raises unauthorized with name "otp_not_found", "otp_expired" or "otp_mismatch".
        On success the code is consumed and can never verify again.
        """
        otp = await self.otp_store.get_live_otp(user_id, purpose)
        if otp is None:
            logger.warning(f"No live {purpose.value} OTP for user {user_id}.")
            raise unauthorized("Invalid or expired OTP. Please request a new one.", name="otp_not_found")

        verify_numeric_otp(otp.code, otp.expires_at, code, otp_type=purpose.value)

        # A concurrent verification may have consumed the row between read and write.
        if not await self.otp_store.mark_consumed(otp.id):
            logger.warning(f"{purpose.value} OTP (ID: {otp.id}) for user {user_id} was consumed concurrently.")
            raise unauthorized("Invalid or expired OTP. Please request a new one.", name="otp_not_found")

        logger.info(f"{purpose.value} OTP (ID: {otp.id}) consumed for user {user_id}.")
