"""Shared fixtures: well-known dev keys and in-memory stand-ins for the
Safe contract, the proxy factory and the Safe Transaction Service."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

import pytest
from eth_account import Account
from hexbytes import HexBytes
from web3 import Web3

from safe_quorum.config import WorkflowConfig
from safe_quorum.owners import OwnerIdentity, load_owners
from safe_quorum.safe.hashing import safe_tx_hash
from safe_quorum.safe.models import (
    SafeConfirmation,
    SafeMultisigTransaction,
    SafeSignature,
    SafeTransactionData,
)

# Default Hardhat / Anvil development accounts 0..2
OWNER_KEYS = [
    "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80",
    "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d",
    "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a",
]
OWNER_ADDRESSES = [
    "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
    "0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
    "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC",
]
SAFE_ADDRESS = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x2222222222222222222222222222222222222222"
CHAIN_ID = 11155111


# ---------------------------------------------------------------------------
# Safe contract stand-in
# ---------------------------------------------------------------------------


@dataclass
class ChainState:
    """On-chain state of one Safe, shared by every owner's handle."""

    address: str
    owners: list[str]
    threshold: int
    balance: Decimal = Decimal("1")
    nonce: int = 0
    mined: bool = True
    receipt_checks: int = 0
    executed: list[tuple[SafeTransactionData, list[SafeConfirmation]]] = field(default_factory=list)


class StubAccount:
    """Behaves like :class:`safe_quorum.safe.account.SafeAccount` without RPC."""

    def __init__(self, state: ChainState, owner: OwnerIdentity) -> None:
        self.state = state
        self.address = state.address
        self.owner = owner

    def with_owner(self, owner: OwnerIdentity) -> StubAccount:
        return StubAccount(self.state, owner)

    def get_owners(self) -> list[str]:
        return list(self.state.owners)

    def get_threshold(self) -> int:
        return self.state.threshold

    def get_nonce(self) -> int:
        return self.state.nonce

    def get_balance(self) -> Decimal:
        return self.state.balance

    def create_transaction(self, to, value, data="0x", nonce=None) -> SafeTransactionData:
        return SafeTransactionData(
            to=to, value=value, data=data, nonce=self.state.nonce if nonce is None else nonce
        )

    def get_transaction_hash(self, tx: SafeTransactionData) -> str:
        return safe_tx_hash(CHAIN_ID, self.address, tx)

    def sign_transaction_hash(self, tx_hash: str) -> SafeSignature:
        signed = Account.unsafe_sign_hash(HexBytes(tx_hash), self.owner.private_key)
        return SafeSignature(owner=self.owner.address, data=signed.signature.to_0x_hex())

    def execute_transaction(self, tx: SafeTransactionData, confirmations: list[SafeConfirmation]) -> str:
        signed = [c for c in confirmations if c.signature]
        if len(signed) < self.state.threshold:
            raise ValueError(f"There are {self.state.threshold - len(signed)} signatures missing")
        self.state.executed.append((tx, confirmations))
        # Gas is not modelled: only the transferred value leaves the Safe
        self.state.balance -= Decimal(str(Web3.from_wei(tx.value, "ether")))
        self.state.nonce += 1
        return "0x" + "ab" * 32

    def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        self.state.receipt_checks += 1
        if not self.state.mined:
            return None
        return {"status": 1, "blockNumber": 42, "transactionHash": HexBytes(tx_hash)}


class StubFactory:
    """Records deploy/connect calls and hands out :class:`StubAccount` handles."""

    def __init__(self, state: ChainState | None = None) -> None:
        self.state = state
        self.deploy_calls: list[tuple[list[str], int]] = []
        self.connect_calls: list[tuple[str, str]] = []

    def deploy_safe(self, owners: list[str], threshold: int) -> StubAccount:
        self.deploy_calls.append((list(owners), threshold))
        self.state = ChainState(address=SAFE_ADDRESS, owners=list(owners), threshold=threshold)
        owner = next(o for o in load_owners(OWNER_KEYS) if o.address == owners[0])
        return StubAccount(self.state, owner)

    def connect(self, address: str, owner: OwnerIdentity) -> StubAccount:
        self.connect_calls.append((address, owner.address))
        if self.state is None:
            self.state = ChainState(address=address, owners=list(OWNER_ADDRESSES), threshold=2)
        return StubAccount(self.state, owner)


# ---------------------------------------------------------------------------
# Safe Transaction Service stand-in
# ---------------------------------------------------------------------------


class StubRelay:
    """In-memory Safe Transaction Service.

    ``hidden_polls`` makes the first N pending queries come back empty;
    ``never_pending`` hides pending transactions forever.
    """

    def __init__(self, hidden_polls: int = 0, never_pending: bool = False) -> None:
        self.records: dict[str, SafeMultisigTransaction] = {}
        self.order: list[str] = []
        self.hidden_polls = hidden_polls
        self.never_pending = never_pending
        self.pending_calls = 0
        self.confirm_calls: list[tuple[str, str]] = []

    def add(self, record: SafeMultisigTransaction) -> None:
        self.records[record.safe_tx_hash] = record
        self.order.append(record.safe_tx_hash)

    async def propose_transaction(
        self, safe_address, tx, safe_tx_hash, sender_address, sender_signature, origin=None
    ) -> None:
        self.add(
            SafeMultisigTransaction(
                **tx.model_dump(),
                safe=safe_address,
                safe_tx_hash=safe_tx_hash,
                confirmations=[SafeConfirmation(owner=sender_address, signature=sender_signature)],
            )
        )

    async def get_pending_transactions(self, safe_address, current_nonce=None):
        self.pending_calls += 1
        if self.never_pending or self.pending_calls <= self.hidden_polls:
            return []
        return [
            self.records[h]
            for h in self.order
            if not self.records[h].is_executed and self.records[h].safe == safe_address
        ]

    async def confirm_transaction(self, safe_tx_hash, signature) -> str:
        self.confirm_calls.append((safe_tx_hash, signature))
        record = self.records[safe_tx_hash]
        recovered = Account._recover_hash(HexBytes(safe_tx_hash), signature=HexBytes(signature))
        record.confirmations.append(SafeConfirmation(owner=recovered, signature=signature))
        return signature

    async def get_transaction(self, safe_tx_hash) -> SafeMultisigTransaction:
        return self.records[safe_tx_hash]


class SleepRecorder:
    """Replacement for ``asyncio.sleep`` that records intervals without waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def owners() -> list[OwnerIdentity]:
    return load_owners(OWNER_KEYS)


@pytest.fixture
def config() -> WorkflowConfig:
    return WorkflowConfig(owner_private_keys=OWNER_KEYS, safe_address=SAFE_ADDRESS)


@pytest.fixture
def chain_state() -> ChainState:
    return ChainState(address=SAFE_ADDRESS, owners=list(OWNER_ADDRESSES), threshold=2)


@pytest.fixture
def factory(chain_state: ChainState) -> StubFactory:
    return StubFactory(chain_state)


@pytest.fixture
def account(chain_state: ChainState, owners: list[OwnerIdentity]) -> StubAccount:
    return StubAccount(chain_state, owners[0])


@pytest.fixture
def relay() -> StubRelay:
    return StubRelay()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()
