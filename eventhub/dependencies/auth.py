# eventhub/dependencies/auth.py

import logging
from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from eventhub.core.security import decode_access_token
from eventhub.core.exceptions import unauthorized, forbidden, APIException
from eventhub.dependencies.stores import get_credential_store
from eventhub.infrastructure.database.models import User, UserRole
from eventhub.infrastructure.database.repositories import CredentialStore

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)

async def get_current_user(
    token: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    store: Annotated[CredentialStore, Depends(get_credential_store)]
) -> User:
    """
    Dependency to get the current authenticated user from an access token.
    Access tokens are stateless: logout does not invalidate them before expiry.
    """
    credentials_exception = unauthorized("Could not validate credentials", name="invalid_token")

    if not token or not token.credentials:
        logger.warning("No token or invalid credentials provided")
        raise credentials_exception

    try:
        payload = await decode_access_token(token.credentials)
    except APIException as e:
        logger.warning(f"Access token rejected: {e.message} ({e.name})")
        raise credentials_exception

    try:
        user_id = int(payload.sub)
    except ValueError:
        logger.warning(f"Access token carries a non-numeric subject: {payload.sub}")
        raise credentials_exception

    user = await store.find_user_by_id(user_id)
    if not user:
        logger.warning(f"Authentication failed: User with ID {user_id} not found.")
        raise credentials_exception

    logger.debug(f"User {user.id} successfully authenticated with access token.")
    return user


def require_roles(*roles: UserRole):
    """
    Builds a dependency that only lets users holding one of `roles` through.
    The role is read from the database, not from the token claim, so a role
    change takes effect immediately.
    """
    async def _role_checker(current_user: Annotated[User, Depends(get_current_user)]) -> User:
        if current_user.role not in roles:
            logger.warning(f"User {current_user.id} with role {current_user.role.value} denied; requires one of {[r.value for r in roles]}.")
            raise forbidden("You do not have permission to perform this action.")
        return current_user

    return _role_checker
