"""Tests for single-flight cycle triggering and distributor wiring."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog
from conftest import TEST_CONTRACT_ADDRESS, TEST_PRIVATE_KEY
from eth_account import Account

from stockcoin.distributor.runner import CycleRunner, build_aggregator, build_runner
from stockcoin.modules.airdrop.aggregator import TaskAggregator
from stockcoin.modules.airdrop.stores import SqlCycleLock


def _settings(**overrides: object) -> SimpleNamespace:
    values: dict[str, object] = {
        "airdrop_distributor_private_key": TEST_PRIVATE_KEY,
        "airdrop_contract_address": TEST_CONTRACT_ADDRESS,
        "airdrop_abi_path": None,
        "chain_id": 31337,
        "airdrop_publish_gas_limit": None,
        "airdrop_gas_price_wei": None,
        "airdrop_max_parallel_tasks": 2,
        "airdrop_skip_unchanged_tasks": True,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.mark.asyncio
async def test_trigger_runs_cycle() -> None:
    aggregator = MagicMock()
    report = object()
    aggregator.run_cycle = AsyncMock(return_value=report)
    cancel = asyncio.Event()

    result = await CycleRunner(aggregator).trigger(cancel=cancel)

    assert result is report
    aggregator.run_cycle.assert_awaited_once_with(cancel=cancel)


@pytest.mark.asyncio
async def test_trigger_while_running_is_skipped() -> None:
    started = asyncio.Event()
    release = asyncio.Event()

    async def _slow_cycle(**_: object) -> str:
        started.set()
        await release.wait()
        return "report"

    aggregator = MagicMock()
    aggregator.run_cycle = AsyncMock(side_effect=_slow_cycle)
    runner = CycleRunner(aggregator)

    first = asyncio.create_task(runner.trigger())
    await started.wait()
    assert runner.running

    assert await runner.trigger() is None

    release.set()
    assert await first == "report"
    assert not runner.running
    assert aggregator.run_cycle.await_count == 1


@pytest.mark.asyncio
async def test_trigger_after_failed_cycle_runs_again() -> None:
    aggregator = MagicMock()
    aggregator.run_cycle = AsyncMock(side_effect=[RuntimeError("db down"), "report"])
    runner = CycleRunner(aggregator)

    with pytest.raises(RuntimeError):
        await runner.trigger()

    assert await runner.trigger() == "report"


@pytest.mark.asyncio
async def test_trigger_tags_cycle_logs_with_cycle_id() -> None:
    seen: dict[str, object] = {}

    async def _cycle(**_: object) -> str:
        seen.update(structlog.contextvars.get_contextvars())
        return "report"

    aggregator = MagicMock()
    aggregator.run_cycle = AsyncMock(side_effect=_cycle)

    await CycleRunner(aggregator).trigger()

    assert isinstance(seen.get("cycle_id"), str)
    assert "cycle_id" not in structlog.contextvars.get_contextvars()


class _HeldLock:
    """Cycle lock whose availability is fixed per test."""

    def __init__(self, *, available: bool) -> None:
        self.available = available
        self.holds = 0
        self.released = 0

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[bool]:
        self.holds += 1
        try:
            yield self.available
        finally:
            self.released += 1


@pytest.mark.asyncio
async def test_trigger_holds_cycle_lock_for_the_whole_cycle() -> None:
    lock = _HeldLock(available=True)
    aggregator = MagicMock()

    async def _cycle(**_: object) -> str:
        assert lock.holds == 1 and lock.released == 0
        return "report"

    aggregator.run_cycle = AsyncMock(side_effect=_cycle)

    assert await CycleRunner(aggregator, lock=lock).trigger() == "report"
    assert lock.released == 1


@pytest.mark.asyncio
async def test_trigger_skipped_when_another_process_holds_the_lock() -> None:
    lock = _HeldLock(available=False)
    aggregator = MagicMock()
    aggregator.run_cycle = AsyncMock()

    assert await CycleRunner(aggregator, lock=lock).trigger() is None
    aggregator.run_cycle.assert_not_awaited()
    assert lock.released == 1


@pytest.mark.asyncio
async def test_cycle_lock_released_when_cycle_fails() -> None:
    lock = _HeldLock(available=True)
    aggregator = MagicMock()
    aggregator.run_cycle = AsyncMock(side_effect=RuntimeError("db down"))

    with pytest.raises(RuntimeError):
        await CycleRunner(aggregator, lock=lock).trigger()

    assert lock.released == 1


def test_build_aggregator_wires_publisher() -> None:
    aggregator = build_aggregator(_settings(), MagicMock(), AsyncMock())

    assert isinstance(aggregator, TaskAggregator)
    assert aggregator._publisher.sender == Account.from_key(TEST_PRIVATE_KEY).address
    assert aggregator._max_parallel_tasks == 2
    assert aggregator._skip_unchanged is True


@pytest.mark.parametrize(
    ("field", "message"),
    [
        ("airdrop_distributor_private_key", "private_key"),
        ("airdrop_contract_address", "contract_address"),
    ],
)
def test_build_aggregator_requires_credentials(field: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        build_aggregator(_settings(**{field: ""}), MagicMock(), AsyncMock())


def test_build_runner_guards_with_database_lock() -> None:
    runner = build_runner(_settings(), MagicMock(), AsyncMock())

    assert isinstance(runner._aggregator, TaskAggregator)
    assert isinstance(runner._cycle_lock, SqlCycleLock)
