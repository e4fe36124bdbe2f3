"""
User repository - the credential store.
"""
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from recipebox.core.exceptions import ConflictError, UserNotFoundError
from recipebox.core.security import get_password_hash, utcnow
from recipebox.models.user import User, UserProfileChanges
from recipebox.repositories.base import BaseRepository

EMAIL_CONSTRAINTS = ("uq_users_email", "users.email")
USERNAME_CONSTRAINTS = ("uq_users_username_lower",)


def conflict_from_integrity_error(exc: IntegrityError) -> Optional[ConflictError]:
    """
    Classify a unique violation by the constraint that fired.
    Returns None for integrity errors that are not uniqueness conflicts.
    """
    detail = str(exc.orig).lower()
    if "unique" not in detail and "duplicate" not in detail:
        return None
    # PostgreSQL names the constraint; SQLite names the index or the column
    if any(name in detail for name in EMAIL_CONSTRAINTS):
        return ConflictError("email already exists", field="email")
    if any(name in detail for name in USERNAME_CONSTRAINTS):
        return ConflictError("username already exists", field="username")
    return ConflictError("username or email already exists")


class UserRepository(BaseRepository[User]):
    """Repository for User operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    async def create(self, user: User) -> User:
        """
        Insert a user whose password_hash is already set.
        Uniqueness is enforced by the store, not by a pre-check.
        """
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            conflict = conflict_from_integrity_error(exc)
            if conflict is None:
                raise
            raise conflict from exc
        return user

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email. None when absent."""
        query = select(User).where(User.email == email)
        result = await self.session.exec(query)
        return result.first()

    async def is_username_taken(self, username: str, excluding_user_id: Optional[str] = None) -> bool:
        query = select(User.id).where(func.lower(User.username) == username.lower())
        if excluding_user_id:
            query = query.where(User.id != excluding_user_id)
        result = await self.session.exec(query)
        return result.first() is not None

    async def update_password(self, user_id: str, new_password: str) -> None:
        """Hash and store a new password. Sessions are left untouched."""
        password_hash = get_password_hash(new_password)
        result = await self.session.exec(
            update(User)
            .where(User.id == user_id)
            .values(password_hash=password_hash, updated_at=utcnow())
        )
        if result.rowcount == 0:
            raise UserNotFoundError()

    async def set_email_verified(self, user_id: str, verified: bool = True) -> None:
        result = await self.session.exec(
            update(User)
            .where(User.id == user_id)
            .values(email_verified=verified, updated_at=utcnow())
        )
        if result.rowcount == 0:
            raise UserNotFoundError()

    async def update_last_login(self, user_id: str) -> None:
        """Update user's last login timestamp."""
        await self.session.exec(
            update(User)
            .where(User.id == user_id)
            .values(last_login=utcnow())
        )

    async def update_profile(self, user_id: str, changes: UserProfileChanges) -> User:
        """Apply only the fields set on changes and return the full row."""
        user = await self.get(user_id)
        if not user:
            raise UserNotFoundError()

        for field, value in changes.model_dump(exclude_unset=True).items():
            setattr(user, field, value)
        user.updated_at = utcnow()

        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            conflict = conflict_from_integrity_error(exc)
            if conflict is None:
                raise
            raise conflict from exc
        await self.session.refresh(user)
        return user
