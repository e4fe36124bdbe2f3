"""Tests for access token validation and refresh token rotation."""

import asyncio
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from recipebox.core.exceptions import InvalidTokenError, UserNotFoundError
from recipebox.core.security import get_password_hash, token_digest, utcnow
from recipebox.models.token import RefreshToken
from recipebox.models.user import User
from recipebox.repositories.unit_of_work import UnitOfWork
from recipebox.services.token_service import TokenService


async def make_user(uow, username="carol", email="carol@example.com"):
    async with uow:
        user = await uow.users.create(User(
            username=username,
            email=email,
            password_hash=get_password_hash("Passw0rd!", rounds=4),
        ))
    return user


@pytest.mark.integration
class TestAccessTokens:
    async def test_claims_round_trip(self, token_service, uow, settings):
        user = await make_user(uow)
        token = token_service.mint_access_token(user)

        claims = await token_service.validate_access_token(token)

        assert claims.user_id == user.id
        assert claims.sub == user.id
        assert claims.username == "carol"
        assert claims.email == "carol@example.com"
        assert claims.iss == settings.TOKEN_ISSUER
        assert claims.exp - claims.iat == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    async def test_tokens_minted_together_are_distinct(self, token_service, uow):
        user = await make_user(uow)
        assert token_service.mint_access_token(user) != token_service.mint_access_token(user)

    async def test_rejects_token_signed_with_other_secret(self, token_service, uow, settings):
        user = await make_user(uow)
        other = TokenService(uow, settings.model_copy(update={"SECRET_KEY": "another-secret"}))
        forged = other.mint_access_token(user)

        with pytest.raises(InvalidTokenError) as exc:
            await token_service.validate_access_token(forged)
        assert exc.value.message == "invalid or expired token"

    async def test_rejects_expired_token(self, token_service, uow, settings):
        user = await make_user(uow)
        expired = TokenService(uow, settings.model_copy(update={"ACCESS_TOKEN_EXPIRE_MINUTES": -1}))
        token = expired.mint_access_token(user)

        with pytest.raises(InvalidTokenError) as exc:
            await token_service.validate_access_token(token)
        assert exc.value.message == "invalid or expired token"

    async def test_rejects_non_hmac_algorithm(self, token_service, uow, settings):
        user = await make_user(uow)
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "user_id": user.id, "username": user.username, "email": user.email,
                "iat": now, "nbf": now, "exp": now + timedelta(minutes=5),
                "iss": settings.TOKEN_ISSUER, "sub": user.id, "jti": "x",
            },
            key=None,
            algorithm="none",
        )
        with pytest.raises(InvalidTokenError):
            await token_service.validate_access_token(token)

    async def test_rejects_wrong_issuer(self, token_service, uow, settings):
        user = await make_user(uow)
        other = TokenService(uow, settings.model_copy(update={"TOKEN_ISSUER": "someone_else"}))
        with pytest.raises(InvalidTokenError):
            await token_service.validate_access_token(other.mint_access_token(user))

    async def test_rejects_garbage(self, token_service):
        for token in ["", "abc", "a.b.c"]:
            with pytest.raises(InvalidTokenError):
                await token_service.validate_access_token(token)


@pytest.mark.integration
class TestBlacklist:
    async def test_blacklisted_token_is_rejected_with_generic_error(self, uow, settings):
        tokens = TokenService(uow, settings.model_copy(update={"TOKEN_BLACKLIST_ENABLED": True}))
        user = await make_user(uow)
        token = tokens.mint_access_token(user)
        await tokens.validate_access_token(token)

        await tokens.blacklist_access_token(token)

        with pytest.raises(InvalidTokenError) as exc:
            await tokens.validate_access_token(token)
        assert exc.value.message == "invalid or expired token"

    async def test_blacklist_entry_expires_with_token(self, uow, settings):
        tokens = TokenService(uow, settings.model_copy(update={"TOKEN_BLACKLIST_ENABLED": True}))
        user = await make_user(uow)
        token = tokens.mint_access_token(user)
        claims = tokens.decode_access_token(token)

        await tokens.blacklist_access_token(token)

        entry = await uow.blacklist.get_by_field("token_digest", token_digest(token))
        assert entry.expires_at == datetime.fromtimestamp(claims.exp, timezone.utc)

    async def test_unparseable_token_gets_fallback_ttl(self, uow, settings):
        tokens = TokenService(uow, settings.model_copy(update={"TOKEN_BLACKLIST_ENABLED": True}))

        await tokens.blacklist_access_token("not-a-jwt")

        entry = await uow.blacklist.get_by_field("token_digest", token_digest("not-a-jwt"))
        ttl = entry.expires_at - utcnow()
        assert timedelta(hours=23) < ttl <= timedelta(hours=24)

    async def test_blacklisting_twice_is_harmless(self, uow, settings):
        tokens = TokenService(uow, settings.model_copy(update={"TOKEN_BLACKLIST_ENABLED": True}))
        user = await make_user(uow)
        token = tokens.mint_access_token(user)

        await tokens.blacklist_access_token(token)
        await tokens.blacklist_access_token(token)

        assert await uow.blacklist.is_blacklisted(token_digest(token))

    async def test_blacklist_ignored_when_disabled(self, token_service, uow):
        user = await make_user(uow)
        token = token_service.mint_access_token(user)
        await token_service.blacklist_access_token(token)

        claims = await token_service.validate_access_token(token)
        assert claims.user_id == user.id

    async def test_failed_blacklist_lookup_does_not_block_validation(self, uow, settings, monkeypatch):
        from sqlalchemy.exc import OperationalError

        tokens = TokenService(uow, settings.model_copy(update={"TOKEN_BLACKLIST_ENABLED": True}))
        user = await make_user(uow)
        user_id = user.id
        token = tokens.mint_access_token(user)

        async def broken(digest):
            raise OperationalError("SELECT FROM blacklisted_tokens", {}, Exception("connection reset"))

        monkeypatch.setattr(uow.blacklist, "is_blacklisted", broken)
        claims = await tokens.validate_access_token(token)

        assert claims.user_id == user_id


@pytest.mark.integration
class TestRefreshRotation:
    async def test_issue_pair_persists_refresh_token_with_client_info(self, token_service, uow):
        user = await make_user(uow)
        pair = await token_service.issue_token_pair(user, "10.0.0.9", "pytest-agent")

        stored = await uow.refresh_tokens.get_valid(pair.refresh_token)
        assert stored.user_id == user.id
        assert stored.ip_address == "10.0.0.9"
        assert stored.user_agent == "pytest-agent"

    async def test_rotation_replaces_token_and_keeps_client_info(self, token_service, uow):
        user = await make_user(uow)
        first = await token_service.issue_token_pair(user, "10.0.0.9", "pytest-agent")

        second = await token_service.rotate_refresh_token(first.refresh_token)

        assert second.refresh_token != first.refresh_token
        assert second.access_token != first.access_token
        assert await uow.refresh_tokens.get_valid(first.refresh_token) is None
        stored = await uow.refresh_tokens.get_valid(second.refresh_token)
        assert (stored.ip_address, stored.user_agent) == ("10.0.0.9", "pytest-agent")

    async def test_rotated_token_cannot_be_replayed(self, token_service, uow):
        user = await make_user(uow)
        pair = await token_service.issue_token_pair(user)
        await token_service.rotate_refresh_token(pair.refresh_token)

        with pytest.raises(InvalidTokenError):
            await token_service.rotate_refresh_token(pair.refresh_token)

    async def test_expired_token_is_treated_as_missing(self, token_service, uow):
        user = await make_user(uow)
        async with uow:
            await uow.refresh_tokens.add(RefreshToken(
                user_id=user.id,
                token="expired-token",
                issued_at=utcnow() - timedelta(days=8),
                expires_at=utcnow() - timedelta(days=1),
            ))

        with pytest.raises(InvalidTokenError):
            await token_service.rotate_refresh_token("expired-token")

    async def test_unknown_token(self, token_service):
        with pytest.raises(InvalidTokenError):
            await token_service.rotate_refresh_token("never-issued")

    async def test_failed_reissue_restores_old_token(self, token_service, uow, monkeypatch):
        user = await make_user(uow)
        pair = await token_service.issue_token_pair(user)

        async def broken_create(*args, **kwargs):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(uow.refresh_tokens, "create_token", broken_create)
        with pytest.raises(RuntimeError):
            await token_service.rotate_refresh_token(pair.refresh_token)
        monkeypatch.undo()

        assert await uow.refresh_tokens.get_valid(pair.refresh_token) is not None

    async def test_missing_user_fails_rotation(self, token_service, uow, monkeypatch):
        user = await make_user(uow)
        pair = await token_service.issue_token_pair(user)

        async def no_user(user_id):
            return None

        monkeypatch.setattr(uow.users, "get", no_user)
        with pytest.raises(UserNotFoundError):
            await token_service.rotate_refresh_token(pair.refresh_token)

    async def test_concurrent_rotation_has_exactly_one_winner(self, session_factory, settings):
        async with session_factory() as session:
            uow = UnitOfWork(session)
            user = await make_user(uow)
            pair = await TokenService(uow, settings).issue_token_pair(user)

        async def rotate():
            async with session_factory() as session:
                return await TokenService(UnitOfWork(session), settings).rotate_refresh_token(pair.refresh_token)

        results = await asyncio.gather(rotate(), rotate(), return_exceptions=True)

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], InvalidTokenError)

        async with session_factory() as session:
            uow = UnitOfWork(session)
            assert await uow.refresh_tokens.count_for_user(user.id) == 1
            assert await uow.refresh_tokens.get_valid(winners[0].refresh_token) is not None


@pytest.mark.integration
class TestRevocation:
    async def test_revoke_refresh_token(self, token_service, uow):
        user = await make_user(uow)
        pair = await token_service.issue_token_pair(user)

        await token_service.revoke_refresh_token(pair.refresh_token)

        assert await uow.refresh_tokens.get_valid(pair.refresh_token) is None
        with pytest.raises(InvalidTokenError):
            await token_service.revoke_refresh_token(pair.refresh_token)

    async def test_revoke_all_for_user_only_touches_that_user(self, token_service, uow):
        carol = await make_user(uow)
        dave = await make_user(uow, "dave", "dave@example.com")
        for _ in range(3):
            await token_service.issue_token_pair(carol)
        kept = await token_service.issue_token_pair(dave)

        assert await token_service.revoke_all_for_user(carol.id) == 3
        assert await uow.refresh_tokens.count_for_user(carol.id) == 0
        assert await uow.refresh_tokens.get_valid(kept.refresh_token) is not None
