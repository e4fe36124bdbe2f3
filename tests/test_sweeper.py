"""Tests for the periodic expired-record sweeper."""

import asyncio
from datetime import timedelta

import pytest

from recipebox.core.rate_limit import InMemoryRateLimiter
from recipebox.core.security import get_password_hash, token_digest, utcnow
from recipebox.models.token import BlacklistedToken, EmailVerificationToken, PasswordResetCode, RefreshToken
from recipebox.models.user import User
from recipebox.services.sweeper import ExpiredRecordSweeper


async def seed(uow):
    past, future = utcnow() - timedelta(minutes=1), utcnow() + timedelta(hours=1)
    async with uow:
        user = await uow.users.create(User(
            username="grace", email="grace@example.com", password_hash=get_password_hash("Passw0rd!", rounds=4)
        ))
        for suffix, expires_at in (("old", past), ("new", future)):
            uow.session.add(RefreshToken(user_id=user.id, token=f"refresh-{suffix}", expires_at=expires_at))
            uow.session.add(BlacklistedToken(token_digest=token_digest(suffix), expires_at=expires_at))
            uow.session.add(EmailVerificationToken(user_id=user.id, code=f"verify-{suffix}", expires_at=expires_at))
        uow.session.add(PasswordResetCode(user_id=user.id, code="111111", expires_at=past))
        uow.session.add(PasswordResetCode(user_id=user.id, code="222222", expires_at=future))
    return user


@pytest.mark.integration
class TestExpiredRecordSweeper:
    async def test_run_once_removes_only_expired_rows(self, uow, session_factory):
        user = await seed(uow)
        now = [100.0]
        limiter = InMemoryRateLimiter(5, timedelta(seconds=10), clock=lambda: now[0])
        limiter.allow("ip:1.2.3.4")
        now[0] += 60
        sweeper = ExpiredRecordSweeper(session_factory, limiters=[limiter])

        counts = await sweeper.run_once()

        assert counts == {
            "refresh_tokens": 1,
            "blacklisted_tokens": 1,
            "password_reset_codes": 1,
            "email_verification_tokens": 1,
            "limiter_keys": 1,
        }
        assert await uow.refresh_tokens.get_by_field("token", "refresh-new") is not None
        assert await uow.blacklist.is_blacklisted(token_digest("new"))
        assert await uow.reset_codes.get_by_code("222222", user_id=user.id) is not None
        assert await uow.verification_tokens.get_by_code("verify-new") is not None

    async def test_start_and_stop(self, session_factory):
        sweeper = ExpiredRecordSweeper(
            session_factory,
            token_interval=timedelta(hours=6),
            code_interval=timedelta(hours=1),
        )
        sweeper.start()
        assert sweeper.running
        sweeper.start()  # idempotent

        await sweeper.stop()
        assert not sweeper.running

    async def test_loop_survives_a_failed_sweep(self, session_factory):
        sweeper = ExpiredRecordSweeper(
            session_factory,
            token_interval=timedelta(milliseconds=10),
            code_interval=timedelta(hours=1),
        )
        calls = []

        async def flaky_sweep():
            calls.append(1)
            if len(calls) == 1:
                raise ConnectionRefusedError("db down")
            return {}

        sweeper.sweep_tokens = flaky_sweep
        sweeper.start()
        await asyncio.sleep(0.2)
        await sweeper.stop()

        assert len(calls) > 1
