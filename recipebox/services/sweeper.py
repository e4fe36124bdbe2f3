"""
Periodic cleanup of expired ledger rows and stale rate-limiter keys.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Sequence

from sqlalchemy.ext.asyncio import async_sessionmaker

from recipebox.core.rate_limit import RateLimiter
from recipebox.repositories.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class ExpiredRecordSweeper:
    """
    Deletes rows that are already past their usable window, so it can run
    alongside normal traffic. Each sweep uses its own session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        limiters: Sequence[RateLimiter] = (),
        token_interval: timedelta = timedelta(hours=6),
        code_interval: timedelta = timedelta(hours=1)
    ):
        self.session_factory = session_factory
        self.limiters = list(limiters)
        self.token_interval = token_interval
        self.code_interval = code_interval
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def sweep_tokens(self) -> Dict[str, int]:
        """Expired refresh tokens and blacklist entries."""
        async with self.session_factory() as session:
            uow = UnitOfWork(session)
            async with uow:
                refresh_tokens = await uow.refresh_tokens.delete_expired()
                blacklist = await uow.blacklist.delete_expired()
        logger.info(f"Swept {refresh_tokens} refresh tokens and {blacklist} blacklist entries")
        return {"refresh_tokens": refresh_tokens, "blacklisted_tokens": blacklist}

    async def sweep_codes(self) -> Dict[str, int]:
        """Expired reset codes and verification tokens, plus idle limiter keys."""
        async with self.session_factory() as session:
            uow = UnitOfWork(session)
            async with uow:
                reset_codes = await uow.reset_codes.delete_expired()
                verification_tokens = await uow.verification_tokens.delete_expired()

        limiter_keys = sum(limiter.cleanup() for limiter in self.limiters)
        logger.info(
            f"Swept {reset_codes} reset codes, {verification_tokens} verification tokens "
            f"and {limiter_keys} limiter keys"
        )
        return {
            "password_reset_codes": reset_codes,
            "email_verification_tokens": verification_tokens,
            "limiter_keys": limiter_keys,
        }

    async def run_once(self) -> Dict[str, int]:
        counts = await self.sweep_tokens()
        counts.update(await self.sweep_codes())
        return counts

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._loop(self.token_interval, self.sweep_tokens, "token")),
            asyncio.create_task(self._loop(self.code_interval, self.sweep_codes, "code")),
        ]
        logger.info("Expired record sweeper started")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Expired record sweeper stopped")

    async def _loop(
        self,
        interval: timedelta,
        sweep: Callable[[], Awaitable[Dict[str, int]]],
        name: str
    ) -> None:
        while True:
            await asyncio.sleep(interval.total_seconds())
            try:
                await sweep()
            except Exception:
                logger.exception(f"Periodic {name} sweep failed")
