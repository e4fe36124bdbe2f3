"""
User model.
Root entity for authentication; tokens and one-time codes hang off it.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import SQLModel, Field

from recipebox.core.security import utcnow
from recipebox.models.types import UTCDateTime


def new_user_id() -> str:
    return str(uuid.uuid4())


class User(SQLModel, table=True):
    """
    User model with authentication and profile info.
    Identifiers are random UUID strings so accounts cannot be enumerated.
    """
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        # Usernames are unique regardless of case
        Index("uq_users_username_lower", text("lower(username)"), unique=True),
    )

    id: str = Field(default_factory=new_user_id, primary_key=True, max_length=50)

    # Auth
    username: str = Field(max_length=20)
    email: str = Field(index=True, max_length=255)
    password_hash: str

    # Profile
    bio: str = ""
    first_name: str = ""
    last_name: str = ""
    profile_picture: str = ""

    # Verification status
    email_verified: bool = Field(default=False)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    last_login: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    @property
    def display_name(self) -> str:
        return self.first_name or self.username


class UserProfileChanges(SQLModel):
    """
    Sparse profile update. Only fields explicitly set are written;
    use model_dump(exclude_unset=True) to read the intended changes.
    """
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    bio: Optional[str] = None
    profile_picture: Optional[str] = None
