"""
Authentication service - register, login, refresh, logout.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from recipebox.config import Settings, settings as default_settings
from recipebox.core.exceptions import (
    InvalidTokenError,
    UnauthorizedError,
    UserNotFoundError,
    ValidationError
)
from recipebox.core.rate_limit import RateLimiter
from recipebox.core.security import get_password_hash, verify_password
from recipebox.core.validation import (
    normalize_email,
    require_email,
    require_profile_picture,
    require_strong_password,
    require_username
)
from recipebox.models.user import User
from recipebox.repositories.unit_of_work import UnitOfWork
from recipebox.services.email_service import EmailService
from recipebox.services.notification_dispatcher import NotificationDispatcher
from recipebox.services.token_service import TokenPair, TokenService, INVALID_REFRESH_TOKEN
from recipebox.services.verification_service import send_verification_in_background

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "invalid email or password"


class AuthService:
    """Service for authentication operations."""

    def __init__(
        self,
        uow: UnitOfWork,
        tokens: TokenService,
        email_service: EmailService,
        dispatcher: NotificationDispatcher,
        session_factory: async_sessionmaker,
        email_limiter: RateLimiter,
        settings: Settings = default_settings
    ):
        self.uow = uow
        self.tokens = tokens
        self.email_service = email_service
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.email_limiter = email_limiter
        self.settings = settings

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        bio: str = "",
        profile_picture: str = "",
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Tuple[User, TokenPair]:
        """
        Create the account and its first session in one transaction.
        The verification (or welcome) email goes out afterwards in the
        background; a failure there leaves the account intact.
        """
        username = require_username((username or "").strip())
        email = require_email(normalize_email(email))
        require_strong_password(password)
        profile_picture = require_profile_picture((profile_picture or "").strip())

        user = User(
            username=username,
            email=email,
            password_hash=get_password_hash(password),
            first_name=(first_name or "").strip(),
            last_name=(last_name or "").strip(),
            bio=(bio or "").strip(),
            profile_picture=profile_picture
        )

        async with self.uow:
            await self.uow.users.create(user)
            tokens = await self.tokens.issue_token_pair(user, ip_address, user_agent)

        logger.info(f"Registered user {user.id}")
        self._after_registration(user.id, user.email, user.display_name)
        return user, tokens

    def _after_registration(self, user_id: str, email: str, name: str) -> None:
        if self.settings.EMAIL_VERIFICATION_ENABLED:
            job = send_verification_in_background(
                self.session_factory,
                self.email_service,
                self.dispatcher,
                self.email_limiter,
                self.settings,
                user_id,
                email,
                name
            )
            self.dispatcher.submit(job, f"verification email to {email}")
        else:
            self.dispatcher.submit(
                self.email_service.send_welcome(email, name),
                f"welcome email to {email}"
            )

    async def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Tuple[User, TokenPair]:
        """Authenticate user and return a fresh token pair."""
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("email and password are required")

        async with self.uow:
            user = await self.uow.users.get_by_email(email)
            if user is None or not verify_password(password, user.password_hash):
                raise UnauthorizedError(INVALID_CREDENTIALS)

            user_id = user.id
            try:
                async with self.uow.savepoint():
                    await self.uow.users.update_last_login(user_id)
            except SQLAlchemyError as e:
                logger.warning(f"Failed to update last login for user {user_id}: {e}")
                # Rolling back the savepoint expired the row
                user = await self.uow.users.get(user_id)

            tokens = await self.tokens.issue_token_pair(user, ip_address, user_agent)

        return user, tokens

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate a refresh token. Any failure is a plain 401."""
        if not refresh_token:
            raise ValidationError("missing refresh token")
        try:
            return await self.tokens.rotate_refresh_token(refresh_token)
        except UserNotFoundError as e:
            raise InvalidTokenError(INVALID_REFRESH_TOKEN) from e

    async def logout(self, refresh_token: Optional[str], access_token: Optional[str] = None) -> str:
        """
        End a session. Always succeeds from the client's point of view:
        an unknown refresh token already means "logged out".
        """
        if access_token and self.settings.TOKEN_BLACKLIST_ENABLED:
            try:
                await self.tokens.blacklist_access_token(access_token)
            except SQLAlchemyError as e:
                logger.error(f"Failed to blacklist access token on logout: {e}")

        if not refresh_token:
            return "no active session"

        try:
            await self.tokens.revoke_refresh_token(refresh_token)
        except InvalidTokenError:
            logger.debug("Logout with unknown or already revoked refresh token")
        return "logout successful"

    async def logout_all(self, user_id: str) -> int:
        """Logout from all devices by revoking all refresh tokens."""
        return await self.tokens.revoke_all_for_user(user_id)

    async def me(self, user_id: str) -> User:
        user = await self.uow.users.get(user_id)
        if user is None:
            raise UserNotFoundError()
        return user
