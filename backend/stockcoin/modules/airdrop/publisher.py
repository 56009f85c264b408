"""Publication of per-task Merkle roots to the airdrop contract."""

from __future__ import annotations

from collections.abc import Sequence

from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address

from stockcoin.core.chain.abi import AbiError, ContractAbi
from stockcoin.core.chain.client import ChainClient, ChainError
from stockcoin.core.crypto.hashing import to_hex
from stockcoin.core.logging import get_logger

logger = get_logger(__name__)

SET_MERKLE_ROOT = "setMerkleRoot"


class SubmissionError(ChainError):
    """Raised when root publication cannot be signed or broadcast."""


class RootPublisher:
    """Sign and submit one ``setMerkleRoot(taskIds, roots)`` transaction per batch.

    Nonce, gas price and chain id are read right before signing. The
    transaction hash is returned as soon as the node accepts it; confirmation
    tracking is left to the chain event monitor.
    """

    def __init__(
        self,
        chain: ChainClient,
        abi: ContractAbi,
        account: LocalAccount,
        contract_address: str,
        *,
        chain_id: int | None = None,
        gas_limit: int | None = None,
        gas_price: int | None = None,
    ) -> None:
        self._chain = chain
        self._abi = abi
        self._account = account
        self._contract_address = to_checksum_address(contract_address)
        self._chain_id = chain_id
        self._gas_limit = gas_limit
        self._gas_price = gas_price

    @property
    def sender(self) -> str:
        return self._account.address

    def build_call_data(self, pairs: Sequence[tuple[int, bytes]]) -> bytes:
        """Pack ``pairs`` into ``setMerkleRoot`` call data, preserving order."""
        if not pairs:
            raise ValueError("No merkle roots to publish")
        task_ids: list[int] = []
        roots: list[bytes] = []
        for task_id, root in pairs:
            if len(root) != 32:
                raise ValueError(f"Merkle root for task {task_id} must be 32 bytes")
            task_ids.append(int(task_id))
            roots.append(bytes(root))
        return self._abi.pack(SET_MERKLE_ROOT, task_ids, roots)

    async def publish(self, pairs: Sequence[tuple[int, bytes]]) -> str:
        """Submit all ``(task_id, root)`` pairs in a single transaction.

        Returns
        -------
        str
            ``0x``-prefixed transaction hash.

        Raises
        ------
        ValueError
            If ``pairs`` is empty or a root is not 32 bytes.
        SubmissionError
            If packing, any chain call, signing or broadcast fails.
        """
        try:
            data = self.build_call_data(pairs)
        except AbiError as exc:
            raise SubmissionError(f"Failed to encode {SET_MERKLE_ROOT}: {exc}") from exc

        try:
            nonce = await self._chain.pending_nonce(self.sender)
            gas_price = self._gas_price
            if gas_price is None:
                gas_price = await self._chain.suggest_gas_price()
            chain_id = self._chain_id
            if chain_id is None:
                chain_id = await self._chain.chain_id()
            gas = self._gas_limit
            if gas is None:
                gas = await self._chain.estimate_gas(
                    {
                        "from": self.sender,
                        "to": self._contract_address,
                        "value": 0,
                        "data": to_hex(data),
                    }
                )
        except ChainError as exc:
            raise SubmissionError(f"Failed to prepare {SET_MERKLE_ROOT} transaction: {exc}") from exc

        transaction = {
            "nonce": nonce,
            "to": self._contract_address,
            "value": 0,
            "gas": gas,
            "gasPrice": gas_price,
            "data": data,
            "chainId": chain_id,
        }
        try:
            signed = self._account.sign_transaction(transaction)
        except (TypeError, ValueError) as exc:
            raise SubmissionError(f"Failed to sign {SET_MERKLE_ROOT} transaction: {exc}") from exc

        try:
            tx_hash = await self._chain.send_raw_transaction(signed.raw_transaction)
        except ChainError as exc:
            raise SubmissionError(f"Failed to broadcast {SET_MERKLE_ROOT} transaction: {exc}") from exc

        tx_hex = to_hex(bytes(tx_hash))
        logger.info(
            "merkle_roots_submitted",
            tx_hash=tx_hex,
            task_ids=[int(task_id) for task_id, _ in pairs],
            nonce=nonce,
            gas=gas,
            gas_price=gas_price,
        )
        return tx_hex
