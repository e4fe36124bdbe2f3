"""
User service - profile updates and password changes for the signed-in user.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from recipebox.config import Settings, settings as default_settings
from recipebox.core.exceptions import ConflictError, UnauthorizedError, UserNotFoundError, ValidationError
from recipebox.core.security import verify_password
from recipebox.core.validation import require_profile_picture, require_strong_password, require_username
from recipebox.models.user import User, UserProfileChanges
from recipebox.repositories.unit_of_work import UnitOfWork
from recipebox.services.email_service import EmailService
from recipebox.services.notification_dispatcher import NotificationDispatcher
from recipebox.services.token_service import TokenService

logger = logging.getLogger(__name__)


class UserService:
    """Service for user operations."""

    def __init__(
        self,
        uow: UnitOfWork,
        tokens: TokenService,
        email_service: EmailService,
        dispatcher: NotificationDispatcher,
        settings: Settings = default_settings
    ):
        self.uow = uow
        self.tokens = tokens
        self.email_service = email_service
        self.dispatcher = dispatcher
        self.settings = settings

    async def update_profile(self, user_id: str, changes: UserProfileChanges) -> User:
        """
        Apply a sparse profile update and return the full updated user.
        Fields left out, or sent as null, are not touched.
        """
        fields = {
            name: value.strip()
            for name, value in changes.model_dump(exclude_unset=True).items()
            if value is not None
        }
        if "username" in fields:
            require_username(fields["username"])
        if "profile_picture" in fields:
            require_profile_picture(fields["profile_picture"])

        async with self.uow:
            user = await self.uow.users.get(user_id)
            if user is None:
                raise UserNotFoundError()

            updates = {name: value for name, value in fields.items() if getattr(user, name) != value}
            if not updates:
                raise ValidationError("no changes to update")

            if "username" in updates and await self.uow.users.is_username_taken(
                updates["username"], excluding_user_id=user.id
            ):
                raise ConflictError("username already taken", field="username")

            user = await self.uow.users.update_profile(user.id, UserProfileChanges(**updates))

        logger.info(f"Updated profile fields {sorted(updates)} for user {user_id}")
        return user

    async def change_password(self, user_id: str, current_password: str, new_password: str) -> int:
        """
        Change password for logged-in user.

        The new password and the revocation of every refresh token commit
        together; if revocation fails the password change still stands.
        Returns the number of sessions revoked.
        """
        if not current_password or not new_password:
            raise ValidationError("current and new password are required")
        require_strong_password(new_password)

        async with self.uow:
            user = await self.uow.users.get(user_id)
            if user is None:
                raise UserNotFoundError()

            if not verify_password(current_password, user.password_hash):
                raise UnauthorizedError("invalid current password")
            if verify_password(new_password, user.password_hash):
                raise ValidationError("new password must be different from current password")

            email, name = user.email, user.display_name
            await self.uow.users.update_password(user_id, new_password)

            revoked = 0
            try:
                async with self.uow.savepoint():
                    revoked = await self.tokens.revoke_all_for_user(user_id)
            except SQLAlchemyError as e:
                logger.error(f"Failed to revoke sessions after password change for user {user_id}: {e}")

        self.dispatcher.submit(
            self.email_service.send_password_changed(email, name),
            f"password changed email to {email}"
        )
        return revoked
