"""
One-time code ledger: password reset OTPs and email verification tokens.
"""
from datetime import timedelta
from typing import Optional, TypeVar, Type

from sqlalchemy import delete, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from recipebox.core.security import generate_otp, generate_secure_token, utcnow
from recipebox.models.token import PasswordResetCode, EmailVerificationToken
from recipebox.models.user import User
from recipebox.repositories.base import BaseRepository

CodeType = TypeVar("CodeType", PasswordResetCode, EmailVerificationToken)


class OneTimeCodeRepository(BaseRepository[CodeType]):
    """
    Shared lifecycle for single-use codes of one kind.
    At most one live code per user: creating a code locks the owner row,
    then replaces the user's previous codes in the caller's transaction.
    """

    def __init__(self, model: Type[CodeType], session: AsyncSession):
        super().__init__(model, session)

    def generate_code(self) -> str:
        raise NotImplementedError

    async def create_code(self, user_id: str, ttl: timedelta) -> CodeType:
        # Lock the owner so concurrent issuers for one user run one at a time
        await self.session.exec(select(User.id).where(User.id == user_id).with_for_update())
        await self.delete_for_user(user_id)
        now = utcnow()
        record = self.model(
            user_id=user_id,
            code=self.generate_code(),
            created_at=now,
            expires_at=now + ttl
        )
        return await self.add(record)

    async def get_by_code(self, code: str, user_id: Optional[str] = None) -> Optional[CodeType]:
        """Look a code up by its value, optionally narrowed to one owner."""
        query = select(self.model).where(self.model.code == code)
        if user_id is not None:
            query = query.where(self.model.user_id == user_id)
        query = query.order_by(self.model.created_at.desc())
        result = await self.session.exec(query)
        return result.first()

    async def delete_for_user(self, user_id: str) -> int:
        result = await self.session.exec(
            delete(self.model).where(self.model.user_id == user_id)
        )
        return result.rowcount

    async def delete_expired(self) -> int:
        result = await self.session.exec(
            delete(self.model).where(self.model.expires_at < utcnow())
        )
        return result.rowcount


class PasswordResetCodeRepository(OneTimeCodeRepository[PasswordResetCode]):
    """Repository for password reset OTPs."""

    def __init__(self, session: AsyncSession):
        super().__init__(PasswordResetCode, session)

    def generate_code(self) -> str:
        return generate_otp()

    async def mark_used(self, code_id: int) -> bool:
        """Consume an OTP. False if it was already used."""
        result = await self.session.exec(
            update(PasswordResetCode)
            .where(PasswordResetCode.id == code_id, PasswordResetCode.used == False)  # noqa: E712
            .values(used=True)
        )
        return result.rowcount == 1


class EmailVerificationTokenRepository(OneTimeCodeRepository[EmailVerificationToken]):
    """Repository for email verification tokens."""

    def __init__(self, session: AsyncSession):
        super().__init__(EmailVerificationToken, session)

    def generate_code(self) -> str:
        return generate_secure_token(32)

    async def consume(self, token_id: int) -> bool:
        """Consume a verification token by deleting it."""
        result = await self.session.exec(
            delete(EmailVerificationToken).where(EmailVerificationToken.id == token_id)
        )
        return result.rowcount == 1
