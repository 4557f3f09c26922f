from pydantic import BaseModel, Field
from typing import Literal, Optional

from eventhub.infrastructure.database.models import UserRole

# Request fields are kept as plain strings: format rules (email, phone,
# password policy) are enforced by the auth services so every client gets
# the same messages regardless of transport.

# ============================
# Signup
# ============================

class SignupRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=100, description="User's full name")
    email: str = Field(..., description="Email address, must be unique")
    phone: str = Field(..., description="Mobile number: +92XXXXXXXXXX or 03XXXXXXXXX")
    password: str = Field(..., description="At least 8 characters with letters and numbers")
    role: Optional[str] = Field(None, description="Optional role: SUPER_ADMIN, ORGANIZER or PARTICIPANT")

class MessageResponse(BaseModel):
    success: bool = Field(True)
    message: str = Field(..., description="Human-readable status message")

class SignupResponse(MessageResponse):
    user_id: int = Field(..., description="ID of the newly created user")
    role: UserRole = Field(..., description="Role assigned to the new user")

# ============================
# Two-step signin
# ============================

class SigninRequest(BaseModel):
    email: str = Field(..., description="Registered email address")
    password: str = Field(..., description="Account password")

class VerifyLoginOtpRequest(BaseModel):
    email: str = Field(..., description="Email used in the signin step")
    otp_code: str = Field(..., description="Code received by email")

class UserSummary(BaseModel):
    id: int
    email: str
    full_name: str
    role: UserRole

class LoginResponse(MessageResponse):
    user: UserSummary
    access_token: str = Field(..., description="JWT access token for API authentication")
    refresh_token: str = Field(..., description="JWT refresh token for obtaining new access tokens")
    token_type: Literal["bearer"] = Field("bearer")

# ============================
# Refresh
# ============================

class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., description="The refresh token string to obtain a new access token")

class TokenResponse(MessageResponse):
    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = Field("bearer")

# ============================
# Password reset
# ============================

class PasswordResetRequest(BaseModel):
    email: str = Field(..., description="Email address of the account to reset")

class PasswordResetVerifyRequest(BaseModel):
    token: str = Field(..., description="The password reset token received via email")
    new_password: str = Field(..., description="The new password for the account")
