# eventhub/core/security.py

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
import uuid # For generating JTI

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ValidationError
from fastapi.concurrency import run_in_threadpool # For async synchronous operations

from eventhub.config import settings
from eventhub.core.exceptions import unauthorized


logger = logging.getLogger(__name__)

# =========================
# Password Hashing
# =========================

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)

async def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifies a plain password against a hashed password asynchronously by running
    the synchronous (constant-time) bcrypt verification in a separate thread.
    """
    return await run_in_threadpool(pwd_context.verify, plain_password, hashed_password)

async def get_password_hash(password: str) -> str:
    """
    Hashes a password asynchronously by running the synchronous hashing operation
    in a separate thread to avoid blocking the event loop.
    """
    return await run_in_threadpool(pwd_context.hash, password)

# =========================
# JWT Token Management
# =========================

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"
PASSWORD_RESET_TOKEN = "password_reset"


class TokenPayload(BaseModel):
    """Pydantic model for JWT token payload."""
    sub: str # Subject (user ID)
    role: Optional[str] = None # Present on access and refresh tokens
    jti: Optional[str] = None # Unique per token, two tokens minted in the same second still differ
    type: Optional[str] = None # "access", "refresh" or "password_reset"
    iat: Optional[datetime] = None
    exp: Optional[datetime] = None


def _signing_context(token_type: str) -> Tuple[str, timedelta]:
    """
    Returns the (secret, lifetime) pair of a signing context.
    Each token type has its own secret so a token of one kind never verifies as another.
    """
    if token_type == ACCESS_TOKEN:
        return settings.ACCESS_TOKEN_SECRET, timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    elif token_type == REFRESH_TOKEN:
        return settings.REFRESH_TOKEN_SECRET, timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    elif token_type == PASSWORD_RESET_TOKEN:
        return settings.PASSWORD_RESET_SECRET, timedelta(minutes=settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES)
    raise ValueError(f"Unknown token type: {token_type}")


async def create_token(data: dict, token_type: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Creates a JWT for the given signing context.
    If expires_delta is not provided, the context's default lifetime from settings is used.
    """
    secret, default_lifetime = _signing_context(token_type)
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta if expires_delta is not None else default_lifetime)

    to_encode = data.copy()
    to_encode.update({
        "type": token_type,
        "jti": str(uuid.uuid4()),
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    })
    return jwt.encode(to_encode, secret, algorithm=settings.ALGORITHM)

async def create_access_token(user_id: int, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Creates an access token carrying the user id and role."""
    return await create_token({"sub": str(user_id), "role": role}, ACCESS_TOKEN, expires_delta)

async def create_refresh_token(user_id: int, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Creates a refresh token carrying the user id and role."""
    return await create_token({"sub": str(user_id), "role": role}, REFRESH_TOKEN, expires_delta)

async def create_password_reset_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Creates a self-contained password reset token embedding the user id."""
    return await create_token({"sub": str(user_id)}, PASSWORD_RESET_TOKEN, expires_delta)


async def decode_token(token: str, token_type: str) -> TokenPayload:
    """
    Verifies signature, expiry and type of a token and returns its payload.

    Raises unauthorized with name "token_expired" when the exp claim has elapsed and
    "invalid_token" for anything else (bad signature, wrong context, malformed payload).
    """
    secret, _ = _signing_context(token_type)
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        logger.warning(f"Expired {token_type} token presented.")
        raise unauthorized("Token has expired.", name="token_expired")
    except JWTError as e:
        logger.warning(f"JWTError during {token_type} token decoding: {e}")
        raise unauthorized("Invalid token.", name="invalid_token")

    if payload.get("type") != token_type:
        logger.warning(f"Token type mismatch: expected '{token_type}', got '{payload.get('type')}'.")
        raise unauthorized("Invalid token.", name="invalid_token")

    for claim in ("iat", "exp"):
        if isinstance(payload.get(claim), (int, float)):
            payload[claim] = datetime.fromtimestamp(payload[claim], tz=timezone.utc)

    try:
        return TokenPayload(**payload)
    except ValidationError as e:
        logger.warning(f"Malformed {token_type} token payload: {e}")
        raise unauthorized("Invalid token.", name="invalid_token")

async def decode_access_token(token: str) -> TokenPayload:
    return await decode_token(token, ACCESS_TOKEN)

async def decode_refresh_token(token: str) -> TokenPayload:
    return await decode_token(token, REFRESH_TOKEN)

async def decode_password_reset_token(token: str) -> TokenPayload:
    return await decode_token(token, PASSWORD_RESET_TOKEN)
