"""
Authentication schemas.
"""
from typing import Optional

from pydantic import BaseModel, EmailStr

from recipebox.schemas.common import MessageResponse
from recipebox.schemas.user import UserResponse


class RegisterRequest(BaseModel):
    """User registration request."""
    username: str
    email: str
    password: str
    first_name: str = ""
    last_name: str = ""
    bio: str = ""
    profile_picture: str = ""

    class Config:
        json_schema_extra = {
            "example": {
                "username": "alice",
                "email": "alice@example.com",
                "password": "Passw0rd!",
                "first_name": "Alice"
            }
        }


class LoginRequest(BaseModel):
    """User login request."""
    email: str
    password: str

    class Config:
        json_schema_extra = {
            "example": {
                "email": "alice@example.com",
                "password": "Passw0rd!"
            }
        }


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str


class AuthResponse(MessageResponse):
    """Register/login response."""
    tokens: TokenPairResponse
    user: UserResponse


class RefreshRequest(BaseModel):
    """Refresh token request."""
    refresh_token: str = ""


class RefreshResponse(MessageResponse):
    tokens: TokenPairResponse


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class LogoutAllResponse(MessageResponse):
    revoked: int


class PasswordResetRequest(BaseModel):
    """Request (or re-request) a password reset code."""
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    """Confirm password reset with the emailed code."""
    email: EmailStr
    otp: str
    new_password: str


class PasswordResetResponse(MessageResponse):
    sessions_revoked: int
    info: str


class EmailVerificationRequest(BaseModel):
    """Verify email with token."""
    token: str


class ResendVerificationRequest(BaseModel):
    """Resend verification email."""
    email: EmailStr
