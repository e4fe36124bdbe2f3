"""
Input validation for account and credential fields.
All checks run before any store access; failures raise ValidationError.
"""
import re
from typing import Optional
from urllib.parse import urlparse

from email_validator import EmailNotValidError, validate_email

from recipebox.core.exceptions import ValidationError

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
PASSWORD_MIN_LENGTH = 8
# bcrypt only looks at the first 72 bytes
PASSWORD_MAX_BYTES = 72
OTP_LENGTH = 6

PASSWORD_RULE = "password must be at least 8 characters with a number and symbol"
PASSWORD_SYMBOLS = set("!@#$%^&*()-_=+[]{}|;:',.<>?/`~\"\\")

RESERVED_USERNAMES = frozenset({
    "admin", "root", "support", "null", "contact", "api", "system",
})

_username_re = re.compile(r"^[A-Za-z0-9]+(?:_[A-Za-z0-9]+)*$")


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def is_valid_username(username: str) -> bool:
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        return False
    return bool(_username_re.match(username))


def is_reserved_username(username: str) -> bool:
    return username.lower() in RESERVED_USERNAMES


def is_strong_password(password: str) -> bool:
    if len(password) < PASSWORD_MIN_LENGTH:
        return False
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return False
    has_digit = any(ch.isdigit() for ch in password)
    has_symbol = any(ch in PASSWORD_SYMBOLS for ch in password)
    return has_digit and has_symbol


def is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_otp(code: str) -> bool:
    return len(code) == OTP_LENGTH and code.isascii() and code.isdigit()


# Raising variants used by the services
def require_email(email: str) -> str:
    if not email:
        raise ValidationError("email is required")
    if not is_valid_email(email):
        raise ValidationError("invalid email format")
    return email


def require_username(username: str) -> str:
    if not username:
        raise ValidationError("username cannot be empty")
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise ValidationError("username must be between 3 and 20 characters")
    if not is_valid_username(username):
        raise ValidationError("invalid username")
    if is_reserved_username(username):
        raise ValidationError("username not allowed")
    return username


def require_strong_password(password: str) -> str:
    if not is_strong_password(password or ""):
        raise ValidationError(PASSWORD_RULE)
    return password


def require_profile_picture(url: str) -> str:
    if url and not is_valid_url(url):
        raise ValidationError("invalid profile picture URL")
    return url


def require_otp(code: str) -> str:
    if not is_valid_otp(code):
        raise ValidationError("invalid OTP format")
    return code
