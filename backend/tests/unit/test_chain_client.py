"""Tests for the web3-backed chain client's timeout and error mapping."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import aiohttp
import pytest
from web3.exceptions import Web3RPCError

from stockcoin.core.chain.client import ChainError, ChainTimeoutError, Web3ChainClient


class _FakeEth:
    def __init__(self) -> None:
        self.get_transaction_count = AsyncMock(return_value=7)
        self.estimate_gas = AsyncMock(return_value=52_000)
        self.send_raw_transaction = AsyncMock(return_value=b"\xaa" * 32)
        self.gas_price_value = 3_000_000_000
        self.chain_id_value = 11155111

    @property
    def gas_price(self) -> Any:
        return self._value(self.gas_price_value)

    @property
    def chain_id(self) -> Any:
        return self._value(self.chain_id_value)

    async def _value(self, value: int) -> int:
        return value


def _client(timeout: float = 5.0) -> tuple[Web3ChainClient, _FakeEth]:
    client = Web3ChainClient("http://127.0.0.1:8545", timeout=timeout)
    eth = _FakeEth()
    client._w3 = SimpleNamespace(eth=eth)  # type: ignore[assignment]
    return client, eth


@pytest.mark.asyncio
async def test_pending_nonce_uses_checksummed_address() -> None:
    client, eth = _client()

    nonce = await client.pending_nonce("0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed")

    assert nonce == 7
    eth.get_transaction_count.assert_awaited_once_with(
        "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed", "pending"
    )


@pytest.mark.asyncio
async def test_gas_price_and_chain_id() -> None:
    client, _ = _client()

    assert await client.suggest_gas_price() == 3_000_000_000
    assert await client.chain_id() == 11155111


@pytest.mark.asyncio
async def test_send_raw_transaction_returns_bytes() -> None:
    client, eth = _client()

    tx_hash = await client.send_raw_transaction(b"\x01\x02")

    assert tx_hash == b"\xaa" * 32
    eth.send_raw_transaction.assert_awaited_once_with(b"\x01\x02")


@pytest.mark.asyncio
async def test_stalled_call_raises_timeout() -> None:
    client, eth = _client(timeout=0.05)

    async def _stall(*_: object) -> int:
        await asyncio.sleep(5)
        return 0

    eth.estimate_gas.side_effect = _stall

    with pytest.raises(ChainTimeoutError, match="estimate_gas timed out"):
        await client.estimate_gas({"to": "0x" + "11" * 20})


def test_timeout_is_a_chain_error() -> None:
    assert issubclass(ChainTimeoutError, ChainError)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        Web3RPCError("nonce too low"),
        aiohttp.ClientConnectionError("connection refused"),
        ValueError("execution reverted"),
        OSError("network unreachable"),
    ],
)
async def test_rpc_failures_are_wrapped(error: Exception) -> None:
    client, eth = _client()
    eth.send_raw_transaction.side_effect = error

    with pytest.raises(ChainError, match="send_raw_transaction failed") as excinfo:
        await client.send_raw_transaction(b"\x00")

    assert excinfo.value.__cause__ is error
