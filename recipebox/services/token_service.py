"""
Token service - access token minting/validation and refresh token rotation.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from recipebox.config import Settings, HMAC_ALGORITHMS, settings as default_settings
from recipebox.core.exceptions import InvalidTokenError, UserNotFoundError
from recipebox.core.security import token_digest, utcnow
from recipebox.models.user import User
from recipebox.repositories.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

# One message for every rejection so callers cannot tell why a token failed
INVALID_ACCESS_TOKEN = "invalid or expired token"
INVALID_REFRESH_TOKEN = "invalid refresh token"


class AccessTokenClaims(BaseModel):
    """Claims carried by a signed access token."""
    user_id: str
    username: str
    email: str
    iat: int
    nbf: int
    exp: int
    iss: str
    sub: str
    jti: str


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str

    def as_dict(self) -> dict:
        return {"access_token": self.access_token, "refresh_token": self.refresh_token}


class TokenService:
    """
    Issues, validates, rotates and revokes tokens.

    Access tokens are stateless JWTs; refresh tokens are opaque strings that
    exist only as rows in the ledger. Methods that touch the ledger open a
    UnitOfWork scope, so they commit on their own or join the caller's
    transaction when one is already open.
    """

    def __init__(self, uow: UnitOfWork, settings: Settings = default_settings):
        self.uow = uow
        self.settings = settings

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS)

    # Access tokens

    def mint_access_token(self, user: User) -> str:
        """Sign a short-lived access token for user. No store access."""
        now = datetime.now(timezone.utc)
        claims = {
            "user_id": user.id,
            "username": user.username,
            "email": user.email,
            "iat": now,
            "nbf": now,
            "exp": now + self.access_ttl,
            "iss": self.settings.TOKEN_ISSUER,
            "sub": user.id,
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(claims, self.settings.SECRET_KEY, algorithm=self.settings.ALGORITHM)

    def decode_access_token(self, token: str) -> AccessTokenClaims:
        """Verify signature, algorithm, issuer and time claims."""
        try:
            payload = jwt.decode(
                token,
                self.settings.SECRET_KEY,
                algorithms=list(HMAC_ALGORITHMS),
                issuer=self.settings.TOKEN_ISSUER,
                options={"require": ["exp", "iat", "nbf", "iss", "sub"]},
            )
            return AccessTokenClaims.model_validate(payload)
        except (jwt.PyJWTError, PydanticValidationError) as e:
            logger.debug(f"Access token rejected: {e}")
            raise InvalidTokenError(INVALID_ACCESS_TOKEN) from e

    async def validate_access_token(self, token: str) -> AccessTokenClaims:
        """
        Validate a bearer token and return its claims.
        The blacklist (when enabled) is consulted first; if that lookup
        fails the token is judged on its signature and expiry alone.
        """
        if not token:
            raise InvalidTokenError(INVALID_ACCESS_TOKEN)

        if self.settings.TOKEN_BLACKLIST_ENABLED and await self.is_blacklisted(token):
            raise InvalidTokenError(INVALID_ACCESS_TOKEN)

        return self.decode_access_token(token)

    async def is_blacklisted(self, token: str) -> bool:
        try:
            async with self.uow.savepoint():
                return await self.uow.blacklist.is_blacklisted(token_digest(token))
        except SQLAlchemyError as e:
            logger.warning(f"Blacklist lookup failed, continuing without it: {e}")
            return False

    async def blacklist_access_token(self, token: str) -> None:
        """
        Revoke an access token before it expires.
        Tokens that cannot be parsed are blacklisted for a fallback period
        rather than rejecting the logout.
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.SECRET_KEY,
                algorithms=list(HMAC_ALGORITHMS),
                options={"verify_exp": False, "verify_nbf": False, "verify_iat": False},
            )
            expires_at = datetime.fromtimestamp(int(payload["exp"]), timezone.utc)
        except (jwt.PyJWTError, KeyError, TypeError, ValueError):
            expires_at = utcnow() + timedelta(hours=self.settings.BLACKLIST_FALLBACK_TTL_HOURS)

        if expires_at <= utcnow():
            # Already dead; nothing to remember
            return

        async with self.uow:
            await self.uow.blacklist.add_digest(token_digest(token), expires_at)

    # Refresh tokens

    async def issue_token_pair(
        self,
        user: User,
        ip_address: str = None,
        user_agent: str = None
    ) -> TokenPair:
        """Mint an access token and persist a new refresh token for user."""
        access_token = self.mint_access_token(user)
        async with self.uow:
            refresh_token = await self.uow.refresh_tokens.create_token(
                user_id=user.id,
                ttl=self.refresh_ttl,
                ip_address=ip_address,
                user_agent=user_agent
            )
            return TokenPair(access_token=access_token, refresh_token=refresh_token.token)

    async def rotate_refresh_token(self, token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        Consume, user lookup and re-issue share one transaction: the old
        token is locked and deleted, so of two concurrent rotations of the
        same token exactly one succeeds, and a failure after the delete
        restores the old token.
        """
        if not token:
            raise InvalidTokenError(INVALID_REFRESH_TOKEN)

        async with self.uow:
            stored = await self.uow.refresh_tokens.consume(token)
            if stored is None:
                raise InvalidTokenError(INVALID_REFRESH_TOKEN)

            user_id = stored.user_id
            ip_address, user_agent = stored.ip_address, stored.user_agent

            user = await self.uow.users.get(user_id)
            if user is None:
                raise UserNotFoundError()

            return await self.issue_token_pair(user, ip_address, user_agent)

    async def revoke_refresh_token(self, token: str) -> None:
        """Delete a refresh token; raises InvalidTokenError if there was none."""
        async with self.uow:
            deleted = await self.uow.refresh_tokens.delete_by_token(token)
        if not deleted:
            raise InvalidTokenError(INVALID_REFRESH_TOKEN)

    async def revoke_all_for_user(self, user_id: str) -> int:
        async with self.uow:
            count = await self.uow.refresh_tokens.delete_for_user(user_id)
        logger.info(f"Revoked {count} refresh tokens for user {user_id}")
        return count
