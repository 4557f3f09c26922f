# eventhub/dependencies/stores.py

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.email_utils import EmailNotifier
from eventhub.infrastructure.database.session import get_db
from eventhub.infrastructure.database.repositories import CredentialStore, OtpStore
from eventhub.services.otp_service import OtpService


def get_credential_store(db: Annotated[AsyncSession, Depends(get_db)]) -> CredentialStore:
    return CredentialStore(db)

def get_otp_store(db: Annotated[AsyncSession, Depends(get_db)]) -> OtpStore:
    return OtpStore(db)

def get_notifier() -> EmailNotifier:
    """
    Dependency that provides the SMTP notifier.
    Overridden in tests with an in-memory recorder.
    """
    return EmailNotifier()

def get_otp_service(
    otp_store: Annotated[OtpStore, Depends(get_otp_store)],
    notifier: Annotated[EmailNotifier, Depends(get_notifier)]
) -> OtpService:
    return OtpService(otp_store, notifier)
