"""Tests for settings validation."""

from __future__ import annotations

import pytest
from conftest import TEST_CONTRACT_ADDRESS, TEST_PRIVATE_KEY
from pydantic import ValidationError

from stockcoin.core.config import Settings, get_settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AIRDROP_DISTRIBUTOR_PRIVATE_KEY", TEST_PRIVATE_KEY)

    settings = Settings(_env_file=None)

    assert settings.environment == "development"
    assert settings.chain_timeout_seconds == 30.0
    assert settings.chain_id is None
    assert settings.airdrop_cycle_interval_seconds == 300
    assert settings.airdrop_max_parallel_tasks == 4
    assert settings.airdrop_skip_unchanged_tasks is False
    assert settings.airdrop_publish_gas_limit is None


def test_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AIRDROP_DISTRIBUTOR_PRIVATE_KEY", TEST_PRIVATE_KEY)
    monkeypatch.setenv("CHAIN_ID", "11155111")
    monkeypatch.setenv("AIRDROP_MAX_PARALLEL_TASKS", "8")
    monkeypatch.setenv("AIRDROP_SKIP_UNCHANGED_TASKS", "true")

    settings = get_settings()

    assert settings.chain_id == 11155111
    assert settings.airdrop_max_parallel_tasks == 8
    assert settings.airdrop_skip_unchanged_tasks is True
    assert get_settings() is settings


def test_development_warns_without_key() -> None:
    with pytest.warns(UserWarning, match="airdrop_distributor_private_key is empty"):
        Settings(_env_file=None, airdrop_distributor_private_key="")


def test_production_requires_key() -> None:
    with pytest.raises(ValidationError, match="airdrop_distributor_private_key must be set"):
        Settings(
            _env_file=None,
            environment="production",
            airdrop_contract_address=TEST_CONTRACT_ADDRESS,
        )


def test_production_requires_valid_contract_address() -> None:
    with pytest.raises(ValidationError, match="airdrop_contract_address must be a valid address"):
        Settings(
            _env_file=None,
            environment="staging",
            airdrop_distributor_private_key=TEST_PRIVATE_KEY,
            airdrop_contract_address="0x1234",
        )


def test_production_rejects_mistyped_contract_checksum() -> None:
    with pytest.raises(ValidationError, match="airdrop_contract_address must be a valid address"):
        Settings(
            _env_file=None,
            environment="production",
            airdrop_distributor_private_key=TEST_PRIVATE_KEY,
            airdrop_contract_address="0x5aaeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
        )


def test_production_rejects_debug() -> None:
    with pytest.raises(ValidationError, match="debug must be False"):
        Settings(
            _env_file=None,
            environment="production",
            debug=True,
            airdrop_distributor_private_key=TEST_PRIVATE_KEY,
            airdrop_contract_address=TEST_CONTRACT_ADDRESS,
        )


def test_production_accepts_complete_configuration() -> None:
    settings = Settings(
        _env_file=None,
        environment="production",
        airdrop_distributor_private_key=TEST_PRIVATE_KEY,
        airdrop_contract_address=TEST_CONTRACT_ADDRESS,
    )

    assert settings.environment == "production"


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("airdrop_publish_gas_limit", 20_999),
        ("airdrop_max_parallel_tasks", 0),
        ("chain_timeout_seconds", 0),
        ("airdrop_cycle_interval_seconds", 0),
    ],
)
def test_bounds(field: str, value: int) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, airdrop_distributor_private_key=TEST_PRIVATE_KEY, **{field: value})
