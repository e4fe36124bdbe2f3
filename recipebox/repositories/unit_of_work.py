"""
Unit of work - one transaction shared by all repositories.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlmodel.ext.asyncio.session import AsyncSession

from recipebox.repositories.user_repo import UserRepository
from recipebox.repositories.token_repo import RefreshTokenRepository, TokenBlacklistRepository
from recipebox.repositories.code_repo import (
    PasswordResetCodeRepository,
    EmailVerificationTokenRepository
)


class UnitOfWork:
    """
    Groups repository calls into one atomic transaction.

    Usage:
        async with uow:
            await uow.users.create(user)
            await uow.refresh_tokens.create_token(user.id, ttl)

    Scopes nest: only the outermost `async with` commits (or rolls back on
    error), so a service method can open a scope and still take part in a
    caller's larger transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.refresh_tokens = RefreshTokenRepository(session)
        self.blacklist = TokenBlacklistRepository(session)
        self.reset_codes = PasswordResetCodeRepository(session)
        self.verification_tokens = EmailVerificationTokenRepository(session)
        self._depth = 0

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    async def __aenter__(self) -> "UnitOfWork":
        self._depth += 1
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self._depth -= 1
        if self._depth > 0:
            return False

        if exc_type is not None:
            await self.session.rollback()
            return False

        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return False

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator["UnitOfWork"]:
        """
        Nested scope that can fail on its own.
        An error inside rolls back to the savepoint and is re-raised;
        work done before the savepoint is kept.
        """
        async with self.session.begin_nested():
            yield self
