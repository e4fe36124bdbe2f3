"""
Token models for authentication and verification.
Separate tables for proper token management and revocation.
"""
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from recipebox.core.security import utcnow
from recipebox.models.types import UTCDateTime


class RefreshToken(SQLModel, table=True):
    """
    Refresh token for obtaining new access tokens.
    Revocation deletes the row; a token is usable while its row exists
    and expires_at is in the future.
    """
    __tablename__ = "refresh_tokens"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)

    token: str = Field(unique=True, index=True)  # Opaque random string

    # Metadata
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    # Timestamps
    issued_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: datetime = Field(index=True, sa_type=UTCDateTime)


class BlacklistedToken(SQLModel, table=True):
    """
    Access token revoked before its natural expiry.
    Keyed by the token's SHA-256 digest; expires together with the token.
    """
    __tablename__ = "blacklisted_tokens"

    id: Optional[int] = Field(default=None, primary_key=True)
    token_digest: str = Field(unique=True, index=True, max_length=64)
    expires_at: datetime = Field(index=True, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class PasswordResetCode(SQLModel, table=True):
    """
    Six-digit OTP for the password reset flow.
    Marked used (not deleted) on success so used codes stay auditable
    until the sweep removes them.
    """
    __tablename__ = "password_reset_codes"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)

    code: str = Field(index=True, max_length=6)

    # Status
    used: bool = Field(default=False)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: datetime = Field(index=True, sa_type=UTCDateTime)


class EmailVerificationToken(SQLModel, table=True):
    """
    Token for email verification.
    Single-use by existence: consumed tokens are deleted.
    """
    __tablename__ = "email_verification_tokens"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)

    code: str = Field(unique=True, index=True)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: datetime = Field(index=True, sa_type=UTCDateTime)
