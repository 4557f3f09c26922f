# eventhub/schemas/user.py

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional

from eventhub.infrastructure.database.models import UserRole


class UserProfileResponse(BaseModel):
    id: int
    full_name: str
    email: str
    phone: str
    role: UserRole
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UpdatePasswordRequest(BaseModel):
    current_password: str = Field(..., description="Password currently set on the account")
    new_password: str = Field(..., description="New password, at least 8 characters with letters and numbers")


class ChangeRoleRequest(BaseModel):
    user_id: int = Field(..., description="ID of the user whose role changes")
    role: str = Field(..., description="SUPER_ADMIN, ORGANIZER or PARTICIPANT")


class UpdateProfileRequest(BaseModel):
    full_name: Optional[str] = Field(None, max_length=100, description="New display name")
    phone: Optional[str] = Field(None, description="Mobile number: +92XXXXXXXXXX or 03XXXXXXXXX")
