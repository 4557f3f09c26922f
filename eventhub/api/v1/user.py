# eventhub/api/v1/user.py

from typing import Annotated, List
from fastapi import APIRouter, Depends, status
import logging

from eventhub.schemas.auth import MessageResponse
from eventhub.schemas.user import UserProfileResponse, UpdateProfileRequest, UpdatePasswordRequest, ChangeRoleRequest
from eventhub.services import user_service
from eventhub.dependencies.auth import get_current_user, require_roles
from eventhub.dependencies.stores import get_credential_store
from eventhub.infrastructure.database.models import User, UserRole
from eventhub.infrastructure.database.repositories import CredentialStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["User"])


@router.get("/profile", response_model=UserProfileResponse)
async def get_profile_endpoint(
    current_user: Annotated[User, Depends(get_current_user)],
    store: Annotated[CredentialStore, Depends(get_credential_store)]
):
    return await user_service.get_user_profile(store, current_user.id)

@router.put("/profile", response_model=UserProfileResponse, status_code=status.HTTP_200_OK)
async def update_profile_endpoint(
    data: UpdateProfileRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    store: Annotated[CredentialStore, Depends(get_credential_store)]
):
    """
    Updates the logged-in user's name and/or phone number.
    """
    return await user_service.update_user_profile(store, current_user.id, data.full_name, data.phone)

@router.put("/profile/password", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def update_password_endpoint(
    data: UpdatePasswordRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    store: Annotated[CredentialStore, Depends(get_credential_store)]
):
    """
    Changes the password of the logged-in user after re-checking the current one.
    """
    logger.info(f"User {current_user.id} requesting password change.")
    return await user_service.update_password(
        store,
        current_user.id,
        data.current_password,
        data.new_password
    )

@router.patch("/profile/role", response_model=UserProfileResponse, status_code=status.HTTP_200_OK)
async def change_role_endpoint(
    data: ChangeRoleRequest,
    admin: Annotated[User, Depends(require_roles(UserRole.SUPER_ADMIN))],
    store: Annotated[CredentialStore, Depends(get_credential_store)]
):
    """
    Assigns a role to any user. Restricted to SUPER_ADMIN.
    """
    logger.info(f"Admin {admin.id} changing role of user {data.user_id} to {data.role}.")
    return await user_service.change_user_role(store, data.user_id, data.role)

@router.get("/all", response_model=List[UserProfileResponse])
async def list_users_endpoint(
    admin: Annotated[User, Depends(require_roles(UserRole.SUPER_ADMIN))],
    store: Annotated[CredentialStore, Depends(get_credential_store)]
):
    logger.info(f"Admin {admin.id} listing all users.")
    return await user_service.list_users(store)
