# eventhub/services/user_service.py

import logging
from typing import List, Optional

from eventhub.infrastructure.database.models import User, UserRole
from eventhub.infrastructure.database.repositories import CredentialStore
from eventhub.schemas.user import UserProfileResponse
from eventhub.core.exceptions import not_found, unauthorized, bad_request
from eventhub.core.security import get_password_hash, verify_password
from eventhub.services.auth.auth_utils import is_strong_password, is_phone_number, PASSWORD_POLICY_MESSAGE

logger = logging.getLogger(__name__)


# =========================
# User Service Logic
# =========================

async def get_user_by_id(store: CredentialStore, user_id: int) -> User:
    """
    Retrieves a user by their ID, raising not_found if absent.
    """
    logger.debug(f"Fetching user with ID: {user_id}")
    user = await store.find_user_by_id(user_id)
    if not user:
        logger.warning(f"User with ID {user_id} not found.")
        raise not_found("User not found")
    return user

async def get_user_profile(store: CredentialStore, user_id: int) -> UserProfileResponse:
    user = await get_user_by_id(store, user_id)
    return UserProfileResponse.model_validate(user)

async def update_user_profile(
    store: CredentialStore,
    user_id: int,
    full_name: Optional[str] = None,
    phone: Optional[str] = None
) -> UserProfileResponse:
    """
    Updates the caller's own name and/or phone. Email, role and password
    have dedicated flows and cannot be changed here.
    """
    changes = {}
    if full_name is not None:
        full_name = full_name.strip()
        if not full_name:
            raise bad_request("Full name cannot be empty")
        changes["full_name"] = full_name
    if phone is not None:
        if not is_phone_number(phone):
            raise bad_request("Phone number must be in format +92XXXXXXXXXX or 03XXXXXXXXX")
        changes["phone"] = phone
    if not changes:
        raise bad_request("Nothing to update")

    if not await store.update_user_profile(user_id, **changes):
        logger.warning(f"Profile update failed: user {user_id} not found.")
        raise not_found("User not found")

    logger.info(f"User {user_id} updated profile fields: {sorted(changes)}.")
    return await get_user_profile(store, user_id)

async def list_users(store: CredentialStore) -> List[UserProfileResponse]:
    users = await store.list_users()
    logger.debug(f"Listing {len(users)} users.")
    return [UserProfileResponse.model_validate(u) for u in users]

async def update_password(
    store: CredentialStore,
    user_id: int,
    current_password: str,
    new_password: str
) -> dict:
    """
    Allows a user to change their password after verifying the current one.
    """
    logger.debug(f"Attempting to change password for user ID: {user_id}")
    user = await get_user_by_id(store, user_id)

    if not current_password or not await verify_password(current_password, user.hashed_password):
        logger.warning(f"Password change failed for user {user.id}: incorrect current password.")
        raise unauthorized("Current password is incorrect", name="invalid_credentials")

    if not is_strong_password(new_password):
        raise bad_request(PASSWORD_POLICY_MESSAGE)

    hashed_password = await get_password_hash(new_password)
    if not await store.update_user_password(user.id, hashed_password):
        raise not_found("User not found")

    logger.info(f"Password changed for user {user.id}.")
    return {"success": True, "message": "Password updated successfully"}

async def change_user_role(store: CredentialStore, target_user_id: int, role: str) -> UserProfileResponse:
    """
    Privileged path for assigning roles. Callers must already be authorised as SUPER_ADMIN.
    """
    try:
        new_role = UserRole(role)
    except ValueError:
        raise bad_request(f"Invalid role '{role}'. Allowed roles: {', '.join(r.value for r in UserRole)}")

    if not await store.update_user_role(target_user_id, new_role):
        logger.warning(f"Role change failed: user {target_user_id} not found.")
        raise not_found("User not found")

    user = await get_user_by_id(store, target_user_id)
    logger.info(f"User {user.id} role changed to {new_role.value}.")
    return UserProfileResponse.model_validate(user)
