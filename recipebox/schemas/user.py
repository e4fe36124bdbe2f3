"""
User schemas.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from recipebox.models.user import User
from recipebox.schemas.common import MessageResponse


class UserResponse(BaseModel):
    """Public profile; never carries the password hash."""
    user_id: str
    username: str
    email: str
    bio: str
    first_name: str
    last_name: str
    profile_picture: str
    email_verified: bool
    created_at: datetime
    last_login: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            user_id=user.id,
            username=user.username,
            email=user.email,
            bio=user.bio,
            first_name=user.first_name,
            last_name=user.last_name,
            profile_picture=user.profile_picture,
            email_verified=user.email_verified,
            created_at=user.created_at,
            last_login=user.last_login
        )


class MeResponse(BaseModel):
    user: UserResponse


class UserUpdateRequest(BaseModel):
    """Partial profile update; omitted fields are left unchanged."""
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    bio: Optional[str] = None
    profile_picture: Optional[str] = None


class ProfileUpdateResponse(MessageResponse):
    user: UserResponse


class ChangePasswordRequest(BaseModel):
    """Change password for logged-in user."""
    current_password: str
    new_password: str


class PasswordChangeResponse(MessageResponse):
    sessions_revoked: int
