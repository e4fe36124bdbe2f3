"""
Security utilities for Recipebox.
Password hashing and random credential generation.
"""
from datetime import datetime, timezone
from typing import Optional
import hashlib
import secrets

import bcrypt

from recipebox.config import settings


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        # Malformed digest or over-long input never verifies
        return False


def get_password_hash(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password."""
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def generate_secure_token(length: int = 32) -> str:
    """Generate a URL-safe random token (refresh tokens, email verification)."""
    return secrets.token_urlsafe(length)


def generate_otp() -> str:
    """Uniformly random 6-digit code in 100000-999999."""
    return str(secrets.randbelow(900000) + 100000)


def token_digest(token: str) -> str:
    """Stable fingerprint of a bearer token, so raw tokens are never stored."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()
