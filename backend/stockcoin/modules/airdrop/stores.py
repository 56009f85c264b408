"""Stores and the cross-process cycle lock consumed by the distribution cycle."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy import select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockcoin.core.logging import get_logger
from stockcoin.db.models import ELIGIBLE_STATUSES, AirdropTask, AirdropUserTask, TaskStatus

logger = get_logger(__name__)

CYCLE_LOCK_KEY = "airdrop_distribution_cycle"


@dataclass(slots=True)
class BulkUpdateResult:
    """Outcome of a bulk proof write; failed rows do not undo written ones."""

    updated_count: int = 0
    stale_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class TaskStore(Protocol):
    async def list_active(self) -> list[AirdropTask]: ...

    async def get_reward_amount(self, task_id: int) -> int: ...


class UserTaskStore(Protocol):
    async def list_by_task_ids(self, task_ids: Sequence[int]) -> list[AirdropUserTask]: ...

    async def bulk_update_proof(self, records: Sequence[AirdropUserTask]) -> BulkUpdateResult: ...


class CycleLock(Protocol):
    def hold(self) -> AbstractAsyncContextManager[bool]: ...


class SqlTaskStore:
    """``TaskStore`` over the ``airdrop_task`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_active(self) -> list[AirdropTask]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AirdropTask)
                .where(AirdropTask.status == TaskStatus.ACTIVE)
                .order_by(AirdropTask.id.asc())
            )
            return list(result.scalars().all())

    async def get_reward_amount(self, task_id: int) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AirdropTask.reward_amount).where(AirdropTask.id == task_id)
            )
            amount = result.scalar_one_or_none()
        if amount is None:
            raise LookupError(f"Airdrop task {task_id} not found")
        return int(amount)


class SqlUserTaskStore:
    """``UserTaskStore`` over the ``airdrop_user_task`` table.

    Each call opens its own session so concurrent task workers never share
    one.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_by_task_ids(self, task_ids: Sequence[int]) -> list[AirdropUserTask]:
        if not task_ids:
            return []
        async with self._session_factory() as session:
            result = await session.execute(
                select(AirdropUserTask)
                .where(AirdropUserTask.task_id.in_(list(task_ids)))
                .order_by(AirdropUserTask.task_id.asc(), AirdropUserTask.id.asc())
            )
            return list(result.scalars().all())

    async def bulk_update_proof(self, records: Sequence[AirdropUserTask]) -> BulkUpdateResult:
        """Write ``proof`` for each record, keyed by ``(address, task_id)``.

        Every row is written inside its own savepoint; a failing row is
        reported and skipped while the others are committed. A row whose
        status left the eligible set since it was read is not touched and
        is counted in ``stale_count``.
        """
        outcome = BulkUpdateResult()
        if not records:
            return outcome

        async with self._session_factory() as session:
            for record in records:
                try:
                    async with session.begin_nested():
                        result = await session.execute(
                            update(AirdropUserTask)
                            .where(
                                AirdropUserTask.address == record.address,
                                AirdropUserTask.task_id == record.task_id,
                                AirdropUserTask.status.in_(ELIGIBLE_STATUSES),
                            )
                            .values(proof=record.proof)
                        )
                except SQLAlchemyError as exc:
                    message = f"{record.address}/{record.task_id}: {exc}"
                    outcome.errors.append(message)
                    logger.warning(
                        "airdrop_proof_write_failed",
                        task_id=record.task_id,
                        address=record.address,
                        error=str(exc),
                    )
                    continue
                if result.rowcount != 1:
                    outcome.stale_count += 1
                    logger.info(
                        "airdrop_proof_write_stale",
                        task_id=record.task_id,
                        address=record.address,
                    )
                    continue
                outcome.updated_count += 1
            await session.commit()
        return outcome

        async with self._session_factory() as session:
            for record in records:
                try:
                    async with session.begin_nested():
                        await session.execute(
                            update(AirdropUserTask)
                            .where(
                                AirdropUserTask.address == record.address,
                                AirdropUserTask.task_id == record.task_id,
                            )
                            .values(proof=record.proof)
                        )
                except SQLAlchemyError as exc:
                    message = f"{record.address}/{record.task_id}: {exc}"
                    outcome.errors.append(message)
                    logger.warning(
                        "airdrop_proof_write_failed",
                        task_id=record.task_id,
                        address=record.address,
                        error=str(exc),
                    )
                    continue
                outcome.updated_count += 1
            await session.commit()
        return outcome


class SqlCycleLock:
    """Cross-process guard that keeps distribution cycles from overlapping.

    Uses a PostgreSQL transaction-level advisory lock held on a dedicated
    session for the duration of ``hold()``. Ending that transaction, or
    losing the connection, releases it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        key: str = CYCLE_LOCK_KEY,
    ) -> None:
        self._session_factory = session_factory
        self._key = key

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[bool]:
        """Yield whether the lock was acquired; never blocks waiting for it."""
        async with self._session_factory() as session:
            result = await session.execute(
                text("SELECT pg_try_advisory_xact_lock(hashtext(:key))"),
                {"key": self._key},
            )
            acquired = bool(result.scalar())
            if not acquired:
                logger.warning("airdrop_cycle_lock_unavailable", key=self._key)
            try:
                yield acquired
            finally:
                await session.rollback()
