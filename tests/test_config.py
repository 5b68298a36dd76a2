from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

from safe_quorum.config import WorkflowConfig, config_from_env, load_config
from conftest import OWNER_KEYS, SAFE_ADDRESS


def _env(**extra):
    env = {
        "OWNER_1_PRIVATE_KEY": OWNER_KEYS[0],
        "OWNER_2_PRIVATE_KEY": OWNER_KEYS[1],
        "OWNER_3_PRIVATE_KEY": OWNER_KEYS[2],
    }
    env.update(extra)
    return env


def test_env_without_address_selects_deploy():
    config = config_from_env(_env())
    assert config.owner_private_keys == OWNER_KEYS
    assert config.safe_address is None
    assert config.chain == "sepolia"


def test_env_empty_address_counts_as_absent():
    config = config_from_env(_env(SMART_ACCOUNT_ADDRESS=""))
    assert config.safe_address is None


def test_env_with_address_and_overrides():
    config = config_from_env(
        _env(
            SMART_ACCOUNT_ADDRESS=SAFE_ADDRESS,
            SAFE_CHAIN="base",
            RPC_URL="http://localhost:8545",
        )
    )
    assert config.safe_address == SAFE_ADDRESS
    assert config.chain == "base"
    assert config.rpc_url == "http://localhost:8545"
    assert config.tx_service_url is None


def test_defaults_match_polling_policy():
    config = config_from_env(_env())
    assert config.polling.interval_seconds == 0.5
    assert config.polling.max_attempts == 120
    assert config.funding.enabled is False
    assert config.transfer.amount_ether == Decimal("0.005")


def test_needs_a_second_owner():
    with pytest.raises(ValidationError):
        config_from_env({"OWNER_1_PRIVATE_KEY": OWNER_KEYS[0]})


def test_polling_must_be_positive():
    with pytest.raises(ValidationError):
        WorkflowConfig(owner_private_keys=OWNER_KEYS, polling={"interval_seconds": 0})


def test_yaml_expands_placeholders(tmp_path: Path):
    path = tmp_path / "safe.yaml"
    path.write_text(
        "chain: sepolia\n"
        "owner_private_keys:\n"
        "  - ${OWNER_1_PRIVATE_KEY}\n"
        "  - ${OWNER_2_PRIVATE_KEY}\n"
        "safe_address: ${SMART_ACCOUNT_ADDRESS}\n"
        "transfer:\n"
        "  amount_ether: '0.02'\n"
        "polling:\n"
        "  max_attempts: 5\n",
        encoding="utf-8",
    )

    config = load_config(path, environ=_env(SMART_ACCOUNT_ADDRESS=SAFE_ADDRESS))

    assert config.owner_private_keys == OWNER_KEYS[:2]
    assert config.safe_address == SAFE_ADDRESS
    assert config.transfer.amount_ether == Decimal("0.02")
    assert config.polling.max_attempts == 5


def test_yaml_unset_address_placeholder_means_deploy(tmp_path: Path):
    path = tmp_path / "safe.yaml"
    path.write_text(
        "owner_private_keys: ['${OWNER_1_PRIVATE_KEY}', '${OWNER_2_PRIVATE_KEY}']\n"
        "safe_address: ${SMART_ACCOUNT_ADDRESS}\n",
        encoding="utf-8",
    )

    config = load_config(path, environ=_env())

    assert config.safe_address is None


def test_yaml_unset_owner_key_is_rejected(tmp_path: Path):
    path = tmp_path / "safe.yaml"
    path.write_text(
        "owner_private_keys: ['${OWNER_1_PRIVATE_KEY}', '${MISSING_KEY}']\n",
        encoding="utf-8",
    )

    with pytest.raises(ValidationError):
        load_config(path, environ=_env())


def test_env_gap_in_owner_numbering_is_rejected():
    env = _env()
    del env["OWNER_1_PRIVATE_KEY"]

    with pytest.raises(ValueError, match="OWNER_1_PRIVATE_KEY"):
        config_from_env(env)


def test_env_two_owners_is_enough():
    env = _env()
    del env["OWNER_3_PRIVATE_KEY"]

    assert config_from_env(env).owner_private_keys == OWNER_KEYS[:2]


def test_yaml_unquoted_scalars(tmp_path: Path):
    path = tmp_path / "safe.yaml"
    path.write_text(
        "owner_private_keys:\n"
        + "".join(f"  - {key}\n" for key in OWNER_KEYS)
        + f"safe_address: {SAFE_ADDRESS}\n"
        "transfer:\n"
        "  amount_ether: 0.005\n"
        "  destination: 0x0000000000000000000000000000000000000abc\n"
        "funding:\n"
        "  amount_ether: 1\n",
        encoding="utf-8",
    )

    config = load_config(path, environ={})

    assert config.owner_private_keys == OWNER_KEYS
    assert config.safe_address == SAFE_ADDRESS.lower()
    assert config.transfer.amount_ether == Decimal("0.005")
    assert config.transfer.destination == "0x0000000000000000000000000000000000000abc"
    assert config.funding.amount_ether == Decimal("1")
