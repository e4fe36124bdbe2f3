"""
Email verification service.
"""
import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import async_sessionmaker

from recipebox.config import Settings, settings as default_settings
from recipebox.core.exceptions import GoneError, NotFoundError, RateLimitedError, UserNotFoundError, ValidationError
from recipebox.core.rate_limit import RateLimiter
from recipebox.core.security import utcnow
from recipebox.core.validation import normalize_email, require_email
from recipebox.repositories.unit_of_work import UnitOfWork
from recipebox.services.email_service import EmailService
from recipebox.services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

RESEND_MESSAGE = "if your email is registered and not verified, a verification email will be sent"
ALREADY_VERIFIED_MESSAGE = "email is already verified"
SENT_MESSAGE = "verification email sent"
VERIFIED_MESSAGE = "email verified successfully"


def verification_rate_key(email: str) -> str:
    return f"verify-email:{email}"


class VerificationService:
    """Issues and consumes email verification tokens."""

    def __init__(
        self,
        uow: UnitOfWork,
        email_service: EmailService,
        dispatcher: NotificationDispatcher,
        email_limiter: RateLimiter,
        settings: Settings = default_settings
    ):
        self.uow = uow
        self.email_service = email_service
        self.dispatcher = dispatcher
        self.email_limiter = email_limiter
        self.settings = settings

    @property
    def token_ttl(self) -> timedelta:
        return timedelta(hours=self.settings.EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS)

    async def confirm(self, token: str) -> str:
        """
        Consume a verification token and mark its owner verified.
        Unknown tokens are NotFound; expired ones are deleted and reported
        as Gone so the client can offer a resend.
        """
        token = (token or "").strip()
        if not token:
            raise ValidationError("verification token is required")

        async with self.uow:
            record = await self.uow.verification_tokens.get_by_code(token)
            if record is None:
                raise NotFoundError("invalid or expired verification token")

            expired = record.expires_at <= utcnow()
            consumed = await self.uow.verification_tokens.consume(record.id)
            if consumed and not expired:
                await self.uow.users.set_email_verified(record.user_id)

        if not consumed:
            # Someone else used it between our read and delete
            raise NotFoundError("invalid or expired verification token")
        if expired:
            raise GoneError("verification link has expired, please request a new one")

        logger.info(f"Email verified for user {record.user_id}")
        return VERIFIED_MESSAGE

    async def resend(self, email: str) -> str:
        """
        Unauthenticated resend. The response never depends on whether the
        email exists, is verified, or was rate limited.
        """
        email = require_email(normalize_email(email))

        if not self.email_limiter.allow(verification_rate_key(email)):
            logger.warning(f"Verification resend rate limited for {email}")
            return RESEND_MESSAGE

        async with self.uow:
            user = await self.uow.users.get_by_email(email)
            if user is None or user.email_verified:
                return RESEND_MESSAGE
            record = await self.uow.verification_tokens.create_code(user.id, self.token_ttl)
            name, token = user.display_name, record.code

        self._notify(email, name, token)
        return RESEND_MESSAGE

    async def request(self, user_id: str) -> str:
        """Authenticated request for a fresh verification email."""
        async with self.uow:
            user = await self.uow.users.get(user_id)
            if user is None:
                raise UserNotFoundError()
            if user.email_verified:
                return ALREADY_VERIFIED_MESSAGE

            email, name = user.email, user.display_name
            if not self.email_limiter.allow(verification_rate_key(email)):
                raise RateLimitedError("too many verification requests, please try again later")

            record = await self.uow.verification_tokens.create_code(user.id, self.token_ttl)
            token = record.code

        self._notify(email, name, token)
        return SENT_MESSAGE

    async def issue_and_send(self, user_id: str, email: str, name: str) -> str:
        """Create a token and send it right away. Used from background jobs."""
        async with self.uow:
            record = await self.uow.verification_tokens.create_code(user_id, self.token_ttl)
            token = record.code
        return await self.email_service.send_verification(email, name, token)

    def _notify(self, email: str, name: str, token: str) -> None:
        self.dispatcher.submit(
            self.email_service.send_verification(email, name, token),
            f"verification email to {email}"
        )


async def send_verification_in_background(
    session_factory: async_sessionmaker,
    email_service: EmailService,
    dispatcher: NotificationDispatcher,
    email_limiter: RateLimiter,
    settings: Settings,
    user_id: str,
    email: str,
    name: str
) -> str:
    """Job body for post-registration verification; owns its own session."""
    async with session_factory() as session:
        service = VerificationService(UnitOfWork(session), email_service, dispatcher, email_limiter, settings)
        return await service.issue_and_send(user_id, email, name)
