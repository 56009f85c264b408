"""Single-flight cycle runner and distributor wiring."""

from __future__ import annotations

import asyncio

from eth_account import Account
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockcoin.core.chain.abi import ContractAbi
from stockcoin.core.chain.client import ChainClient
from stockcoin.core.config import Settings
from stockcoin.core.logging import bind_cycle_id, get_logger
from stockcoin.modules.airdrop.aggregator import CycleReport, TaskAggregator
from stockcoin.modules.airdrop.publisher import RootPublisher
from stockcoin.modules.airdrop.stores import CycleLock, SqlCycleLock, SqlTaskStore, SqlUserTaskStore

logger = get_logger(__name__)


class CycleRunner:
    """Runs at most one distribution cycle at a time.

    A trigger that arrives while a cycle is in flight is dropped, not queued:
    the running cycle already recomputes every active task from current data.
    With a ``CycleLock`` the same holds across processes, so a ``--once`` run
    or the cron tool never overlaps the long-running distributor.
    """

    def __init__(self, aggregator: TaskAggregator, *, lock: CycleLock | None = None) -> None:
        self._aggregator = aggregator
        self._cycle_lock = lock
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def trigger(self, *, cancel: asyncio.Event | None = None) -> CycleReport | None:
        """Run one cycle, or return ``None`` if another is still running."""
        if self._lock.locked():
            logger.info("airdrop_cycle_trigger_skipped", reason="cycle in flight")
            return None
        async with self._lock:
            with bind_cycle_id():
                if self._cycle_lock is None:
                    return await self._aggregator.run_cycle(cancel=cancel)
                async with self._cycle_lock.hold() as acquired:
                    if not acquired:
                        logger.info(
                            "airdrop_cycle_trigger_skipped",
                            reason="cycle held by another process",
                        )
                        return None
                    return await self._aggregator.run_cycle(cancel=cancel)


def build_aggregator(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    chain: ChainClient,
) -> TaskAggregator:
    """Wire stores, ABI, signing account and publisher from ``settings``.

    Raises
    ------
    ValueError
        If the distributor key or contract address is missing or malformed.
    """
    if not settings.airdrop_distributor_private_key:
        raise ValueError("airdrop_distributor_private_key is not configured")
    if not settings.airdrop_contract_address:
        raise ValueError("airdrop_contract_address is not configured")

    account = Account.from_key(settings.airdrop_distributor_private_key)
    publisher = RootPublisher(
        chain,
        ContractAbi.load(settings.airdrop_abi_path),
        account,
        settings.airdrop_contract_address,
        chain_id=settings.chain_id,
        gas_limit=settings.airdrop_publish_gas_limit,
        gas_price=settings.airdrop_gas_price_wei,
    )
    logger.info(
        "airdrop_distributor_configured",
        sender=account.address,
        contract=settings.airdrop_contract_address,
        max_parallel_tasks=settings.airdrop_max_parallel_tasks,
    )
    return TaskAggregator(
        SqlTaskStore(session_factory),
        SqlUserTaskStore(session_factory),
        publisher,
        max_parallel_tasks=settings.airdrop_max_parallel_tasks,
        skip_unchanged=settings.airdrop_skip_unchanged_tasks,
    )


def build_runner(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    chain: ChainClient,
) -> CycleRunner:
    """``build_aggregator`` guarded by the database-wide cycle lock."""
    return CycleRunner(
        build_aggregator(settings, session_factory, chain),
        lock=SqlCycleLock(session_factory),
    )
