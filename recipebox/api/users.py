"""
User API routes.
"""
from fastapi import APIRouter, Depends

from recipebox.api.deps import get_current_claims, get_user_service
from recipebox.models.user import UserProfileChanges
from recipebox.schemas.common import ErrorResponse
from recipebox.schemas.user import (
    ChangePasswordRequest,
    PasswordChangeResponse,
    ProfileUpdateResponse,
    UserResponse,
    UserUpdateRequest
)
from recipebox.services.token_service import AccessTokenClaims
from recipebox.services.user_service import UserService

router = APIRouter(
    prefix="/users",
    tags=["users"],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}}
)


@router.patch("/me", response_model=ProfileUpdateResponse)
async def update_me(
    body: UserUpdateRequest,
    claims: AccessTokenClaims = Depends(get_current_claims),
    user_service: UserService = Depends(get_user_service)
):
    """Update current user's profile."""
    changes = UserProfileChanges(**body.model_dump(exclude_unset=True))
    user = await user_service.update_profile(claims.user_id, changes)
    return ProfileUpdateResponse(message="profile updated successfully", user=UserResponse.from_user(user))


@router.put("/me/password", response_model=PasswordChangeResponse)
async def change_password(
    body: ChangePasswordRequest,
    claims: AccessTokenClaims = Depends(get_current_claims),
    user_service: UserService = Depends(get_user_service)
):
    """Change password for logged-in user."""
    revoked = await user_service.change_password(
        claims.user_id,
        body.current_password,
        body.new_password
    )
    return PasswordChangeResponse(message="password updated successfully", sessions_revoked=revoked)
