from typing import Annotated
from fastapi import APIRouter, Depends, status, Request
import logging

from eventhub.schemas.auth import (
    SignupRequest,
    SignupResponse,
    SigninRequest,
    VerifyLoginOtpRequest,
    LoginResponse,
    RefreshTokenRequest,
    TokenResponse,
    PasswordResetRequest,
    PasswordResetVerifyRequest,
    MessageResponse
)
from eventhub.services import auth_service
from eventhub.services.otp_service import OtpService
from eventhub.dependencies.auth import get_current_user
from eventhub.dependencies.stores import get_credential_store, get_notifier, get_otp_service
from eventhub.infrastructure.database.models import User
from eventhub.infrastructure.database.repositories import CredentialStore
from eventhub.core.email_utils import EmailNotifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

# =========================
# Auth API Endpoints
# =========================

@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup_endpoint(
    data: SignupRequest,
    store: Annotated[CredentialStore, Depends(get_credential_store)]
):
    """
    Register a new account. The password is stored only as a bcrypt hash.
    """
    return await auth_service.signup(
        store,
        full_name=data.full_name,
        email=data.email,
        phone=data.phone,
        password=data.password,
        role=data.role
    )

@router.post("/signin", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def signin_endpoint(
    request: Request,
    data: SigninRequest,
    store: Annotated[CredentialStore, Depends(get_credential_store)],
    otp_service: Annotated[OtpService, Depends(get_otp_service)]
):
    """
    First login step: checks the password and emails a one-time code.
    """
    ip_address = request.client.host if request.client else None
    logger.info(f"Signin request received from {ip_address}")
    return await auth_service.signin_with_password(store, otp_service, data.email, data.password)

@router.post("/login/verify", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def verify_login_endpoint(
    request: Request,
    data: VerifyLoginOtpRequest,
    store: Annotated[CredentialStore, Depends(get_credential_store)],
    otp_service: Annotated[OtpService, Depends(get_otp_service)]
):
    """
    Second login step: verifies the emailed code and issues access/refresh tokens.
    """
    ip_address = request.client.host if request.client else None
    logger.info(f"Login OTP verification request received from {ip_address}")
    return await auth_service.verify_login_otp(store, otp_service, data.email, data.otp_code)

@router.post("/password/reset", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def request_password_reset_endpoint(
    data: PasswordResetRequest,
    store: Annotated[CredentialStore, Depends(get_credential_store)],
    notifier: Annotated[EmailNotifier, Depends(get_notifier)]
):
    return await auth_service.request_password_reset(store, notifier, data.email)

@router.post("/password/verify", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def reset_password_endpoint(
    data: PasswordResetVerifyRequest,
    store: Annotated[CredentialStore, Depends(get_credential_store)]
):
    """
    Sets a new password using the token from the reset email.
    """
    logger.info(f"Password reset confirmation received with token: {data.token[:10]}...")
    return await auth_service.reset_password(store, data.token, data.new_password)

@router.post("/token/refresh", response_model=TokenResponse, status_code=status.HTTP_200_OK)
async def refresh_access_token_endpoint(
    request: Request,
    refresh_request: RefreshTokenRequest,
    store: Annotated[CredentialStore, Depends(get_credential_store)]
):
    """
    Obtain a new access token and a new refresh token using a valid refresh token.
    Implements refresh token rotation.
    """
    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    logger.info(f"Refresh token request received from {ip_address}, User-Agent: {user_agent}")

    return await auth_service.refresh_access_token(store, refresh_request.refresh_token)

@router.post("/logout", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def logout_endpoint(
    current_user: Annotated[User, Depends(get_current_user)],
    store: Annotated[CredentialStore, Depends(get_credential_store)]
):
    """
    Logs the user out by dropping their refresh token.
    """
    result = await auth_service.logout(store, current_user.id)
    return MessageResponse(
        success=True,
        message=f"Goodbye {result['full_name']}, you have been logged out."
    )
