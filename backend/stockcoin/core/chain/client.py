"""
Async chain RPC client used by the root publisher.

Every call is bounded by a timeout so a stalled node fails the publish
step instead of blocking the distribution cycle.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any, Protocol, TypeVar

import aiohttp
from eth_utils import to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import Web3Exception

from stockcoin.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ChainError(Exception):
    """Raised when a chain RPC call fails."""


class ChainTimeoutError(ChainError):
    """Raised when a chain RPC call exceeds its timeout."""


class ChainClient(Protocol):
    """Subset of node RPC the distribution pipeline depends on."""

    async def pending_nonce(self, account: str) -> int: ...

    async def suggest_gas_price(self) -> int: ...

    async def estimate_gas(self, call: dict[str, Any]) -> int: ...

    async def chain_id(self) -> int: ...

    async def send_raw_transaction(self, raw_transaction: bytes) -> bytes: ...


class Web3ChainClient:
    """``ChainClient`` backed by web3.py's async HTTP provider."""

    def __init__(self, rpc_url: str, *, timeout: float = 30.0) -> None:
        self._timeout = timeout
        self._w3 = AsyncWeb3(
            AsyncHTTPProvider(
                rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)},
            )
        )

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except TimeoutError as exc:
            logger.warning("chain_call_timeout", operation=operation, timeout=self._timeout)
            raise ChainTimeoutError(
                f"{operation} timed out after {self._timeout:g}s"
            ) from exc
        except (Web3Exception, aiohttp.ClientError, ValueError, OSError) as exc:
            logger.warning("chain_call_failed", operation=operation, error=str(exc))
            raise ChainError(f"{operation} failed: {exc}") from exc

    async def pending_nonce(self, account: str) -> int:
        return await self._call(
            "pending_nonce",
            self._w3.eth.get_transaction_count(to_checksum_address(account), "pending"),
        )

    async def suggest_gas_price(self) -> int:
        return await self._call("suggest_gas_price", self._w3.eth.gas_price)

    async def estimate_gas(self, call: dict[str, Any]) -> int:
        return await self._call("estimate_gas", self._w3.eth.estimate_gas(call))  # type: ignore[arg-type]

    async def chain_id(self) -> int:
        return await self._call("chain_id", self._w3.eth.chain_id)

    async def send_raw_transaction(self, raw_transaction: bytes) -> bytes:
        tx_hash = await self._call(
            "send_raw_transaction",
            self._w3.eth.send_raw_transaction(raw_transaction),
        )
        return bytes(tx_hash)

    async def close(self) -> None:
        await self._w3.provider.disconnect()
