# Models package - normalized database models
from recipebox.models.user import User
from recipebox.models.token import (
    RefreshToken, BlacklistedToken, PasswordResetCode, EmailVerificationToken
)
