# eventhub/core/exceptions.py

from fastapi import HTTPException, status
from typing import Any, Dict, Optional

class APIException(HTTPException):
    """
    Base custom exception for API errors.
    Inherits from HTTPException for FastAPI compatibility.

    `message` is the human-readable explanation shown to the client,
    `name` is a stable machine-readable tag (e.g. "otp_expired") that lets
    callers and tests tell failures of the same status apart.
    """
    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        message: str = "An unexpected error occurred.",
        name: str = "internal_server_error",
        headers: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.message = message
        self.name = name
        super().__init__(status_code=status_code, detail=message, headers=headers)

class bad_request(APIException):
    """
    Malformed input: email, phone or password failing validation (400).
    """
    def __init__(self, message: str = "Bad request.", name: str = "validation_error"):
        super().__init__(status.HTTP_400_BAD_REQUEST, message, name)

class unauthorized(APIException):
    """
    Bad password, invalid/expired/revoked token, OTP mismatch or expiry (401).
    """
    def __init__(self, message: str = "Authentication required or invalid credentials.", name: str = "unauthorized"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, message, name, headers={"WWW-Authenticate": "Bearer"})

class forbidden(APIException):
    """
    Exception for forbidden access (403).
    """
    def __init__(self, message: str = "You do not have permission to access this resource.", name: str = "forbidden"):
        super().__init__(status.HTTP_403_FORBIDDEN, message, name)

class not_found(APIException):
    """
    Exception for resource not found (404).
    """
    def __init__(self, message: str = "Resource not found.", name: str = "not_found"):
        super().__init__(status.HTTP_404_NOT_FOUND, message, name)

class conflict(APIException):
    """
    Exception for a conflict, typically a resource already existing (409).
    """
    def __init__(self, message: str = "Resource already exists.", name: str = "conflict"):
        super().__init__(status.HTTP_409_CONFLICT, message, name)

class server_error(APIException):
    """
    Exception for internal server error (500).
    """
    def __init__(self, message: str = "An internal server error occurred.", name: str = "internal_server_error"):
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, message, name)
