"""
Authentication API routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request, status

from recipebox.api.deps import (
    get_auth_service,
    get_bearer_token,
    get_client_info,
    get_current_claims,
    get_password_reset_service,
    get_verification_service,
    ip_gate
)
from recipebox.schemas.auth import (
    AuthResponse,
    EmailVerificationRequest,
    LoginRequest,
    LogoutAllResponse,
    LogoutRequest,
    PasswordResetConfirm,
    PasswordResetRequest,
    PasswordResetResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    ResendVerificationRequest
)
from recipebox.schemas.common import ErrorResponse, MessageResponse
from recipebox.schemas.user import MeResponse, UserResponse
from recipebox.services.auth_service import AuthService
from recipebox.services.password_reset_service import PasswordResetService, RESET_INFO, RESET_MESSAGE
from recipebox.services.token_service import AccessTokenClaims
from recipebox.services.verification_service import VerificationService

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}}
)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Register a new user and sign them in."""
    client_info = get_client_info(request)
    user, tokens = await auth_service.register(
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        bio=body.bio,
        profile_picture=body.profile_picture,
        **client_info
    )
    return AuthResponse(
        message="user registered successfully",
        tokens=tokens.as_dict(),
        user=UserResponse.from_user(user)
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Login and get access + refresh tokens."""
    client_info = get_client_info(request)
    user, tokens = await auth_service.login(body.email, body.password, **client_info)
    return AuthResponse(
        message="login successful",
        tokens=tokens.as_dict(),
        user=UserResponse.from_user(user)
    )


@router.post("/token/refresh", response_model=RefreshResponse)
async def refresh_token(
    body: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Exchange a refresh token for a new token pair."""
    tokens = await auth_service.refresh(body.refresh_token)
    return RefreshResponse(message="token refreshed successfully", tokens=tokens.as_dict())


@router.post("/logout", response_model=MessageResponse)
async def logout(
    body: Optional[LogoutRequest] = None,
    access_token: Optional[str] = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Logout by revoking the refresh token. Always succeeds."""
    refresh = body.refresh_token if body else None
    message = await auth_service.logout(refresh, access_token)
    return MessageResponse(message=message)


@router.post("/logout-all", response_model=LogoutAllResponse)
async def logout_all(
    claims: AccessTokenClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Logout from all devices."""
    count = await auth_service.logout_all(claims.user_id)
    return LogoutAllResponse(message="logged out from all devices", revoked=count)


@router.get("/me", response_model=MeResponse)
async def me(
    claims: AccessTokenClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Get the signed-in user's profile."""
    user = await auth_service.me(claims.user_id)
    return MeResponse(user=UserResponse.from_user(user))


# Password reset

@router.post("/password-reset/request", response_model=MessageResponse, dependencies=[Depends(ip_gate)])
async def request_password_reset(
    body: PasswordResetRequest,
    reset_service: PasswordResetService = Depends(get_password_reset_service)
):
    """Email a reset code if the address is registered."""
    return MessageResponse(message=await reset_service.request(body.email))


@router.post("/password-reset/confirm", response_model=PasswordResetResponse, dependencies=[Depends(ip_gate)])
async def confirm_password_reset(
    body: PasswordResetConfirm,
    reset_service: PasswordResetService = Depends(get_password_reset_service)
):
    """Set a new password using the emailed code."""
    revoked = await reset_service.confirm(body.email, body.otp, body.new_password)
    return PasswordResetResponse(message=RESET_MESSAGE, sessions_revoked=revoked, info=RESET_INFO)


@router.post("/password-reset/resend", response_model=MessageResponse, dependencies=[Depends(ip_gate)])
async def resend_password_reset(
    body: PasswordResetRequest,
    reset_service: PasswordResetService = Depends(get_password_reset_service)
):
    """Replace any outstanding code with a new one."""
    return MessageResponse(message=await reset_service.resend(body.email))


# Email verification

@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(
    body: EmailVerificationRequest,
    verification_service: VerificationService = Depends(get_verification_service)
):
    """Verify email using token."""
    return MessageResponse(message=await verification_service.confirm(body.token))


@router.post("/verify-email/resend", response_model=MessageResponse, dependencies=[Depends(ip_gate)])
async def resend_verification(
    body: ResendVerificationRequest,
    verification_service: VerificationService = Depends(get_verification_service)
):
    """Resend verification email."""
    return MessageResponse(message=await verification_service.resend(body.email))


@router.post("/verify-email/request", response_model=MessageResponse)
async def request_verification(
    claims: AccessTokenClaims = Depends(get_current_claims),
    verification_service: VerificationService = Depends(get_verification_service)
):
    """Send a verification email to the signed-in user."""
    return MessageResponse(message=await verification_service.request(claims.user_id))
