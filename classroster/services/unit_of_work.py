"""
Transaction runner shared by every public engine operation.

An operation is an async callable taking an AsyncSession. The runner executes
it inside one transaction (optionally holding the per-activity lock), and turns
the outcome into a Result:

    - DomainError          -> rollback, failed Result of the error's kind
    - lock/serialization   -> rollback, whole-operation retry, then CONCURRENCY_CONFLICT
    - other SQLAlchemyError -> rollback, logged, UNAVAILABLE

Anything else is a bug and propagates.
"""
import asyncio
import logging
import uuid
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError, DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classroster.config import get_settings
from classroster.database import AsyncSessionLocal
from classroster.services.errors import DomainError, FailureKind
from classroster.services.results import Result

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure / deadlock_detected
CONFLICT_SQLSTATES = {"40001", "40P01"}


def is_concurrency_conflict(exc: SQLAlchemyError) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in CONFLICT_SQLSTATES:
        return True
    return "database is locked" in str(exc).lower()


class ActivityLocks:
    """Per-activity asyncio locks; unrelated activities never wait on each other"""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def hold(self, activity_id: Optional[uuid.UUID]) -> AsyncIterator[None]:
        if activity_id is None:
            yield
            return

        lock = self._locks.get(activity_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[activity_id] = lock
        async with lock:
            yield


class TransactionRunner:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        locks: Optional[ActivityLocks] = None,
        retries: int = 3,
    ):
        self.session_factory = session_factory
        self.locks = locks or ActivityLocks()
        self.retries = retries

    async def read(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run a read-only query in its own session (no Result wrapping)"""
        async with self.session_factory() as session:
            return await work(session)

    async def run(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        activity_id: Optional[uuid.UUID] = None,
    ) -> Result[T]:
        """
        Execute `work` atomically and return its Result.

        Args:
            operation: Name used in log lines
            work: Async callable receiving the transaction's session
            activity_id: Aggregate to serialise on, when the operation mutates one
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.locks.hold(activity_id):
                    async with self.session_factory() as session:
                        async with session.begin():
                            value = await work(session)
                return Result.success(value)

            except DomainError as e:
                # Expected control flow, not an error-level event
                logger.info(f"{operation} rejected: {e.kind.value} - {e.message}")
                return Result.from_error(e)

            except SQLAlchemyError as e:
                if is_concurrency_conflict(e):
                    if attempt <= self.retries:
                        logger.warning(
                            f"{operation} hit a concurrency conflict "
                            f"(attempt {attempt}/{self.retries + 1}), retrying"
                        )
                        continue
                    logger.warning(f"{operation} gave up after {attempt} conflicting attempts")
                    return Result.fail(
                        FailureKind.CONCURRENCY_CONFLICT,
                        "The activity was modified concurrently, please retry",
                    )

                logger.error(f"{operation} failed on storage: {e}", exc_info=True)
                return Result.fail(
                    FailureKind.UNAVAILABLE,
                    "Storage is unavailable, please retry later",
                )


# Global runner instance
_runner: Optional[TransactionRunner] = None


def get_transaction_runner() -> TransactionRunner:
    """Get or create the runner bound to the application's session factory."""
    global _runner
    if _runner is None:
        _runner = TransactionRunner(AsyncSessionLocal, retries=get_settings().concurrency_retries)
    return _runner
