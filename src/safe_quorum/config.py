"""Configuration for the Safe multisig workflow.

Configuration is built once at process start, either from a YAML file with
``${VAR}`` environment expansion or directly from environment variables, and
then passed explicitly to every stage.
"""

from __future__ import annotations

import os
import re
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str, environ: Mapping[str, str]) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    If the variable is not set the placeholder is left as-is so that
    validation can catch it later.
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        return environ.get(var_name, match.group(0))

    return _ENV_VAR_RE.sub(_replace, value)


def _expand_env_recursive(obj: object, environ: Mapping[str, str]) -> object:
    """Walk an arbitrary nested structure and expand env vars in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj, environ)
    if isinstance(obj, dict):
        return {k: _expand_env_recursive(v, environ) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_recursive(item, environ) for item in obj]
    return obj


def _yaml_hex(value: object, digits: int) -> object:
    """Undo PyYAML reading an unquoted ``0x...`` scalar as an integer."""
    if isinstance(value, int) and not isinstance(value, bool):
        return f"0x{value:0{digits}x}"
    return value


def _float_as_text(value: object) -> object:
    # 0.005 must become Decimal("0.005"), not the binary float's expansion
    if isinstance(value, float):
        return str(value)
    return value


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


class PollingConfig(BaseModel):
    """Fixed-interval polling used while waiting on the relay or the chain."""

    interval_seconds: float = Field(default=0.5, gt=0)
    max_attempts: int = Field(default=120, ge=1)
    deadline_seconds: Optional[float] = Field(default=None, gt=0)


class TransferConfig(BaseModel):
    """The transfer proposed from the Safe."""

    amount_ether: Decimal = Decimal("0.005")
    destination: Optional[str] = None  # None = first Safe owner

    @field_validator("amount_ether", mode="before")
    @classmethod
    def _amount(cls, value: object) -> object:
        return _float_as_text(value)

    @field_validator("destination", mode="before")
    @classmethod
    def _address(cls, value: object) -> object:
        return _yaml_hex(value, 40)


class FundingConfig(BaseModel):
    """Optional top-up of the Safe from an owner's personal address."""

    enabled: bool = False
    amount_ether: Decimal = Decimal("0.01")
    owner_index: int = Field(default=0, ge=0)

    @field_validator("amount_ether", mode="before")
    @classmethod
    def _amount(cls, value: object) -> object:
        return _float_as_text(value)


class WorkflowConfig(BaseModel):
    """Root configuration object for one workflow run."""

    chain: str = "sepolia"
    rpc_url: Optional[str] = None          # Override the chain's public RPC
    tx_service_url: Optional[str] = None   # Override the chain's Safe Transaction Service
    owner_private_keys: list[str] = Field(default_factory=list)
    safe_address: Optional[str] = None     # None = deploy a new Safe
    polling: PollingConfig = Field(default_factory=PollingConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    funding: FundingConfig = Field(default_factory=FundingConfig)

    @field_validator("owner_private_keys", mode="before")
    @classmethod
    def _keys_as_text(cls, keys: object) -> object:
        if isinstance(keys, list):
            return [_yaml_hex(k, 64) for k in keys]
        return keys

    @field_validator("owner_private_keys")
    @classmethod
    def _need_two_owners(cls, keys: list[str]) -> list[str]:
        keys = [k.strip() for k in keys if k and k.strip()]
        unresolved = [k for k in keys if _ENV_VAR_RE.fullmatch(k)]
        if unresolved:
            raise ValueError(f"Unresolved environment placeholders: {unresolved}")
        if len(keys) < 2:
            raise ValueError(
                "At least two owner private keys are required "
                "(one to propose, one to confirm)."
            )
        return keys

    @field_validator("safe_address", "rpc_url", "tx_service_url", mode="before")
    @classmethod
    def _blank_is_none(cls, value: object) -> object:
        value = _yaml_hex(value, 40)
        # An unset ${VAR} counts as absent
        if isinstance(value, str) and (not value.strip() or _ENV_VAR_RE.fullmatch(value.strip())):
            return None
        return value


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

OWNER_KEY_VARS = ("OWNER_1_PRIVATE_KEY", "OWNER_2_PRIVATE_KEY", "OWNER_3_PRIVATE_KEY")


def load_config(path: Path, environ: Mapping[str, str] | None = None) -> WorkflowConfig:
    """Load and validate a workflow configuration from a YAML file.

    Environment variable placeholders (``${VAR}``) are expanded before
    validation.
    """
    if environ is None:
        environ = os.environ
    raw_text = path.read_text(encoding="utf-8")
    raw_data = yaml.safe_load(raw_text) or {}
    expanded = _expand_env_recursive(raw_data, environ)
    return WorkflowConfig.model_validate(expanded)


def config_from_env(environ: Mapping[str, str] | None = None) -> WorkflowConfig:
    """Build a configuration from environment variables.

    Reads ``OWNER_1_PRIVATE_KEY`` .. ``OWNER_3_PRIVATE_KEY``,
    ``SMART_ACCOUNT_ADDRESS``, ``SAFE_CHAIN``, ``RPC_URL`` and
    ``TX_SERVICE_URL``. Owner keys are positional: owner 1 proposes and
    owner 2 confirms, so a gap in the numbering (e.g. only owners 2 and 3
    set) raises ``ValueError``. An empty ``SMART_ACCOUNT_ADDRESS`` selects
    the deploy path.
    """
    if environ is None:
        environ = os.environ
    present = [bool(environ.get(v, "").strip()) for v in OWNER_KEY_VARS]
    count = present.index(False) if False in present else len(present)
    if any(present[count:]):
        raise ValueError(
            f"{OWNER_KEY_VARS[count]} is not set but a later owner key is; "
            "owner keys must be numbered without gaps"
        )
    data: dict = {
        "owner_private_keys": [environ[v] for v in OWNER_KEY_VARS[:count]],
        "safe_address": environ.get("SMART_ACCOUNT_ADDRESS"),
        "rpc_url": environ.get("RPC_URL"),
        "tx_service_url": environ.get("TX_SERVICE_URL"),
    }
    if environ.get("SAFE_CHAIN"):
        data["chain"] = environ["SAFE_CHAIN"]
    return WorkflowConfig.model_validate(data)
