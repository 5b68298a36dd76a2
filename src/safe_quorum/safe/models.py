"""Pydantic models for Safe transactions as the account and the relay see them."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from safe_quorum.safe.contracts import ZERO_ADDRESS

_TX_FIELDS = (
    "to",
    "value",
    "data",
    "operation",
    "safe_tx_gas",
    "base_gas",
    "gas_price",
    "gas_token",
    "refund_receiver",
    "nonce",
)


class SafeTransactionData(BaseModel):
    """The signed-over fields of a Safe transaction.

    Field names are snake_case in Python and camelCase on the wire, matching
    the Safe Transaction Service JSON.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    to: str
    value: int = 0
    data: str = "0x"
    operation: int = 0
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS
    nonce: int = 0

    @field_validator("data", mode="before")
    @classmethod
    def _empty_data(cls, value: object) -> object:
        if value is None or value == "":
            return "0x"
        return value

    @field_validator("gas_token", "refund_receiver", mode="before")
    @classmethod
    def _zero_address(cls, value: object) -> object:
        return ZERO_ADDRESS if value is None else value

    def transaction_data(self) -> SafeTransactionData:
        """Return only the signed-over fields as a plain :class:`SafeTransactionData`."""
        return SafeTransactionData(**{name: getattr(self, name) for name in _TX_FIELDS})

    def same_call(self, other: SafeTransactionData) -> bool:
        """True when destination, value and call data match *other*."""
        return (
            self.to.lower() == other.to.lower()
            and self.value == other.value
            and self.data.lower() == other.data.lower()
        )


class SafeSignature(BaseModel):
    """One owner's ECDSA signature over a Safe transaction hash."""

    model_config = ConfigDict(frozen=True)

    owner: str
    data: str  # 0x-prefixed r || s || v


class SafeConfirmation(BaseModel):
    """A confirmation stored by the relay."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    owner: str
    signature: Optional[str] = None
    signature_type: Optional[str] = None
    submission_date: Optional[str] = None


class SafeMultisigTransaction(SafeTransactionData):
    """A multisig transaction record as returned by the Safe Transaction Service."""

    safe: str
    safe_tx_hash: str
    confirmations: list[SafeConfirmation] = Field(default_factory=list)
    confirmations_required: Optional[int] = None
    is_executed: bool = False
    transaction_hash: Optional[str] = None

    @field_validator("confirmations", mode="before")
    @classmethod
    def _no_confirmations(cls, value: object) -> object:
        return [] if value is None else value
