# eventhub/services/auth_service.py
# Facade over the specialised auth service modules.

from eventhub.services.auth.auth_core_service import (
    signin_with_password,
    verify_login_otp,
    refresh_access_token,
    logout
)

from eventhub.services.auth.auth_user_service import (
    signup
)

from eventhub.services.auth.auth_password_service import (
    request_password_reset,
    reset_password
)

__all__ = [
    "signup",
    "signin_with_password",
    "verify_login_otp",
    "refresh_access_token",
    "logout",
    "request_password_reset",
    "reset_password"
]
