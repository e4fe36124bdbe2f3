"""
API dependencies - shared across all routes.
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from recipebox.config import Settings
from recipebox.core.exceptions import RateLimitedError, UnauthorizedError
from recipebox.core.rate_limit import RateLimiter
from recipebox.database import get_session
from recipebox.repositories.unit_of_work import UnitOfWork
from recipebox.services.auth_service import AuthService
from recipebox.services.email_service import EmailService
from recipebox.services.notification_dispatcher import NotificationDispatcher
from recipebox.services.password_reset_service import PasswordResetService
from recipebox.services.token_service import AccessTokenClaims, TokenService
from recipebox.services.user_service import UserService
from recipebox.services.verification_service import VerificationService


bearer_scheme = HTTPBearer(auto_error=False)


# Process-wide collaborators built by the app factory

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_factory(request: Request) -> async_sessionmaker:
    return request.app.state.session_factory


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_email_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.email_rate_limiter


def get_ip_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.ip_rate_limiter


# Per-request services

def get_uow(session: AsyncSession = Depends(get_session)) -> UnitOfWork:
    return UnitOfWork(session)


def get_token_service(
    uow: UnitOfWork = Depends(get_uow),
    settings: Settings = Depends(get_settings)
) -> TokenService:
    return TokenService(uow, settings)


def get_auth_service(
    uow: UnitOfWork = Depends(get_uow),
    tokens: TokenService = Depends(get_token_service),
    email_service: EmailService = Depends(get_email_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    email_limiter: RateLimiter = Depends(get_email_rate_limiter),
    settings: Settings = Depends(get_settings)
) -> AuthService:
    return AuthService(uow, tokens, email_service, dispatcher, session_factory, email_limiter, settings)


def get_password_reset_service(
    uow: UnitOfWork = Depends(get_uow),
    tokens: TokenService = Depends(get_token_service),
    email_service: EmailService = Depends(get_email_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    email_limiter: RateLimiter = Depends(get_email_rate_limiter),
    settings: Settings = Depends(get_settings)
) -> PasswordResetService:
    return PasswordResetService(uow, tokens, email_service, dispatcher, email_limiter, settings)


def get_verification_service(
    uow: UnitOfWork = Depends(get_uow),
    email_service: EmailService = Depends(get_email_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    email_limiter: RateLimiter = Depends(get_email_rate_limiter),
    settings: Settings = Depends(get_settings)
) -> VerificationService:
    return VerificationService(uow, email_service, dispatcher, email_limiter, settings)


def get_user_service(
    uow: UnitOfWork = Depends(get_uow),
    tokens: TokenService = Depends(get_token_service),
    email_service: EmailService = Depends(get_email_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings)
) -> UserService:
    return UserService(uow, tokens, email_service, dispatcher, settings)


# Authentication

def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Optional[str]:
    """Raw bearer token if one was sent, else None."""
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


async def get_current_claims(
    token: Optional[str] = Depends(get_bearer_token),
    tokens: TokenService = Depends(get_token_service)
) -> AccessTokenClaims:
    """Validate the bearer access token and return its claims."""
    if token is None:
        raise UnauthorizedError("missing or invalid authorization header")
    return await tokens.validate_access_token(token)


def get_client_info(request: Request) -> dict:
    """Extract client info from request."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent")
    }


def ip_gate(
    request: Request,
    limiter: RateLimiter = Depends(get_ip_rate_limiter)
) -> None:
    """Coarse per-IP admission control for enumeration-sensitive routes."""
    ip_address = get_client_info(request)["ip_address"] or "unknown"
    if not limiter.allow(f"ip:{ip_address}"):
        raise RateLimitedError("too many requests, please try again later")
