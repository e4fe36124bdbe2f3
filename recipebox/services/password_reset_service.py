"""
Password reset service - three-step OTP flow (request, confirm, resend).
"""
import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from recipebox.config import Settings, settings as default_settings
from recipebox.core.exceptions import InvalidCodeError, RateLimitedError, UserNotFoundError
from recipebox.core.rate_limit import RateLimiter
from recipebox.core.security import utcnow
from recipebox.core.validation import normalize_email, require_email, require_otp, require_strong_password
from recipebox.repositories.unit_of_work import UnitOfWork
from recipebox.services.email_service import EmailService
from recipebox.services.notification_dispatcher import NotificationDispatcher
from recipebox.services.token_service import TokenService

logger = logging.getLogger(__name__)

REQUEST_MESSAGE = "if your email is registered, we've sent a password reset code"
RESEND_MESSAGE = "if your email is registered, we've sent a new password reset code"
RESET_MESSAGE = "password reset successful"
RESET_INFO = "all active sessions have been logged out, please sign in with your new password"


def reset_rate_key(email: str) -> str:
    return f"password-reset:{email}"


def confirm_rate_key(email: str) -> str:
    return f"password-reset-confirm:{email}"


class PasswordResetService:
    """
    Request and resend are anti-enumeration: the same message comes back
    whether or not the email is registered or the caller is rate limited.
    Confirm rejects every bad code with the same error.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        tokens: TokenService,
        email_service: EmailService,
        dispatcher: NotificationDispatcher,
        email_limiter: RateLimiter,
        settings: Settings = default_settings
    ):
        self.uow = uow
        self.tokens = tokens
        self.email_service = email_service
        self.dispatcher = dispatcher
        self.email_limiter = email_limiter
        self.settings = settings

    @property
    def code_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.PASSWORD_RESET_CODE_EXPIRE_MINUTES)

    async def request(self, email: str) -> str:
        await self._issue_code(email)
        return REQUEST_MESSAGE

    async def resend(self, email: str) -> str:
        # Issuing a code already invalidates the previous one
        await self._issue_code(email)
        return RESEND_MESSAGE

    async def _issue_code(self, email: str) -> None:
        email = require_email(normalize_email(email))

        if not self.email_limiter.allow(reset_rate_key(email)):
            logger.warning(f"Password reset rate limited for {email}")
            return

        async with self.uow:
            user = await self.uow.users.get_by_email(email)
            if user is None:
                logger.info("Password reset requested for unknown email")
                return
            record = await self.uow.reset_codes.create_code(user.id, self.code_ttl)
            name, code = user.display_name, record.code

        self.dispatcher.submit(
            self.email_service.send_password_reset(email, name, code),
            f"password reset email to {email}"
        )

    async def confirm(self, email: str, code: str, new_password: str) -> int:
        """
        Set a new password with a reset code.

        Password update and code consumption commit together. Revoking the
        user's sessions follows in its own transaction and is best-effort.
        Returns the number of sessions revoked.
        """
        email = require_email(normalize_email(email))
        code = require_otp((code or "").strip())
        require_strong_password(new_password)

        if not self.email_limiter.allow(confirm_rate_key(email)):
            raise RateLimitedError("too many password reset attempts, please try again later")

        async with self.uow:
            user = await self.uow.users.get_by_email(email)
            if user is None:
                raise UserNotFoundError()

            record = await self.uow.reset_codes.get_by_code(code, user_id=user.id)
            if record is None or record.used or record.expires_at <= utcnow():
                raise InvalidCodeError()
            if not await self.uow.reset_codes.mark_used(record.id):
                raise InvalidCodeError()

            await self.uow.users.update_password(user.id, new_password)
            user_id, name = user.id, user.display_name

        logger.info(f"Password reset for user {user_id}")

        revoked = 0
        try:
            revoked = await self.tokens.revoke_all_for_user(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to revoke sessions after password reset for user {user_id}: {e}")

        self.dispatcher.submit(
            self.email_service.send_password_changed(email, name),
            f"password changed email to {email}"
        )
        return revoked
