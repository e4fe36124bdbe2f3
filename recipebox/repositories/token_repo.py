"""
Token ledger repositories: refresh tokens and the access-token blacklist.
"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from recipebox.core.security import generate_secure_token, utcnow
from recipebox.models.token import RefreshToken, BlacklistedToken
from recipebox.repositories.base import BaseRepository


class RefreshTokenRepository(BaseRepository[RefreshToken]):
    """Repository for RefreshToken operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(RefreshToken, session)

    async def create_token(
        self,
        user_id: str,
        ttl: timedelta,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> RefreshToken:
        """Create a new refresh token."""
        now = utcnow()
        refresh_token = RefreshToken(
            user_id=user_id,
            token=generate_secure_token(),
            issued_at=now,
            expires_at=now + ttl,
            ip_address=ip_address,
            user_agent=user_agent
        )
        return await self.add(refresh_token)

    async def get_valid(self, token: str) -> Optional[RefreshToken]:
        """Get a live refresh token. Expired rows are treated as missing."""
        query = select(RefreshToken).where(
            RefreshToken.token == token,
            RefreshToken.expires_at > utcnow()
        )
        result = await self.session.exec(query)
        return result.first()

    async def consume(self, token: str) -> Optional[RefreshToken]:
        """
        Lock and delete a live token inside the current transaction.

        The row lock makes a concurrent consumer of the same token wait
        until we commit, after which it finds nothing. Returns None when the
        token is missing, expired or already consumed.
        """
        query = select(RefreshToken).where(
            RefreshToken.token == token,
            RefreshToken.expires_at > utcnow()
        ).with_for_update()
        result = await self.session.exec(query)
        stored = result.first()
        if stored is None:
            return None

        deleted = await self.session.exec(
            delete(RefreshToken).where(RefreshToken.id == stored.id)
        )
        if deleted.rowcount != 1:
            return None
        return stored

    async def delete_by_token(self, token: str) -> bool:
        """Revoke a refresh token. False when no such row existed."""
        result = await self.session.exec(
            delete(RefreshToken).where(RefreshToken.token == token)
        )
        return result.rowcount > 0

    async def delete_for_user(self, user_id: str) -> int:
        """Revoke all refresh tokens for a user."""
        result = await self.session.exec(
            delete(RefreshToken).where(RefreshToken.user_id == user_id)
        )
        return result.rowcount

    async def count_for_user(self, user_id: str) -> int:
        query = select(RefreshToken.id).where(
            RefreshToken.user_id == user_id,
            RefreshToken.expires_at > utcnow()
        )
        result = await self.session.exec(query)
        return len(result.all())

    async def delete_expired(self) -> int:
        result = await self.session.exec(
            delete(RefreshToken).where(RefreshToken.expires_at < utcnow())
        )
        return result.rowcount


class TokenBlacklistRepository(BaseRepository[BlacklistedToken]):
    """Repository for revoked access tokens."""

    def __init__(self, session: AsyncSession):
        super().__init__(BlacklistedToken, session)

    async def add_digest(self, token_digest: str, expires_at: datetime) -> None:
        """Blacklist a token digest; re-blacklisting is a no-op."""
        if await self.get_by_field("token_digest", token_digest):
            return
        try:
            async with self.session.begin_nested():
                self.session.add(BlacklistedToken(token_digest=token_digest, expires_at=expires_at))
        except IntegrityError:
            # Lost a race with a concurrent logout of the same token
            pass

    async def is_blacklisted(self, token_digest: str) -> bool:
        query = select(BlacklistedToken.id).where(
            BlacklistedToken.token_digest == token_digest,
            BlacklistedToken.expires_at > utcnow()
        )
        result = await self.session.exec(query)
        return result.first() is not None

    async def delete_expired(self) -> int:
        result = await self.session.exec(
            delete(BlacklistedToken).where(BlacklistedToken.expires_at < utcnow())
        )
        return result.rowcount
