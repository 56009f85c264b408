"""Chain access: async RPC client and contract ABI packing."""

from stockcoin.core.chain.abi import DEFAULT_AIRDROP_ABI_PATH, AbiError, ContractAbi
from stockcoin.core.chain.client import (
    ChainClient,
    ChainError,
    ChainTimeoutError,
    Web3ChainClient,
)

__all__ = [
    "DEFAULT_AIRDROP_ABI_PATH",
    "AbiError",
    "ContractAbi",
    "ChainClient",
    "ChainError",
    "ChainTimeoutError",
    "Web3ChainClient",
]
