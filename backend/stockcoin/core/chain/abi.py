"""
Contract ABI loading and call-data packing.

Accepts either a bare JSON ABI list or a Hardhat/Foundry artifact with an
``abi`` key. Only function entries are indexed; events and errors are
ignored.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_abi.exceptions import EncodingError as AbiEncodingError
from eth_utils import collapse_if_tuple, function_abi_to_4byte_selector

DEFAULT_AIRDROP_ABI_PATH = Path(__file__).resolve().parents[2] / "contracts" / "Airdrop.abi.json"


class AbiError(ValueError):
    """Raised for unknown functions, bad arguments or undecodable call data."""


class ContractAbi:
    """Function table of one contract ABI."""

    def __init__(self, entries: list[dict[str, Any]]) -> None:
        self._functions: dict[str, dict[str, Any]] = {}
        self._by_selector: dict[bytes, dict[str, Any]] = {}
        for entry in entries:
            if entry.get("type", "function") != "function":
                continue
            # first declaration wins for overloaded names
            self._functions.setdefault(entry["name"], entry)
            self._by_selector[function_abi_to_4byte_selector(entry)] = entry

    @classmethod
    def load(cls, path: str | Path | None = None) -> ContractAbi:
        """Load an ABI file; defaults to the bundled Airdrop contract ABI."""
        abi_path = Path(path) if path else DEFAULT_AIRDROP_ABI_PATH
        try:
            data = json.loads(abi_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise AbiError(f"Failed to read ABI file {abi_path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise AbiError(f"Failed to parse ABI JSON {abi_path}: {exc}") from exc

        if isinstance(data, dict):
            data = data.get("abi")
        if not isinstance(data, list):
            raise AbiError(f"{abi_path} does not contain an ABI list")
        return cls(data)

    @property
    def function_names(self) -> list[str]:
        return sorted(self._functions)

    def _function(self, name: str) -> dict[str, Any]:
        try:
            return self._functions[name]
        except KeyError:
            raise AbiError(f"Function {name!r} is not in the ABI") from None

    def input_types(self, name: str) -> list[str]:
        return [collapse_if_tuple(item) for item in self._function(name).get("inputs", [])]

    def selector(self, name: str) -> bytes:
        return function_abi_to_4byte_selector(self._function(name))

    def pack(self, name: str, *args: Any) -> bytes:
        """Return ``selector || abi.encode(args)`` for function ``name``."""
        types = self.input_types(name)
        if len(args) != len(types):
            raise AbiError(f"{name} expects {len(types)} arguments, got {len(args)}")
        try:
            return self.selector(name) + encode(types, list(args))
        except (AbiEncodingError, TypeError) as exc:
            raise AbiError(f"Failed to encode arguments for {name}: {exc}") from exc

    def unpack(self, data: bytes) -> tuple[str, tuple[Any, ...]]:
        """Decode call data into ``(function name, arguments)``."""
        entry = self._by_selector.get(bytes(data[:4]))
        if entry is None:
            raise AbiError(f"Unknown function selector 0x{bytes(data[:4]).hex()}")
        types = [collapse_if_tuple(item) for item in entry.get("inputs", [])]
        try:
            return entry["name"], tuple(decode(types, bytes(data[4:])))
        except DecodingError as exc:
            raise AbiError(f"Failed to decode call data for {entry['name']}: {exc}") from exc
