"""The multisig workflow: bootstrap, fund, propose, confirm, execute.

Each stage consumes the previous stage's return value. All mutable shared
state (pending transactions, signatures, execution status) lives in the
Safe Transaction Service and on chain; nothing is persisted locally.

Run-level states::

    BOOTSTRAPPED -> PROPOSED -> CONFIRMED -> EXECUTED
                             -> TIMED_OUT -> SKIPPED
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from web3 import Web3

from safe_quorum.config import PollingConfig, WorkflowConfig
from safe_quorum.owners import OwnerIdentity, load_owners
from safe_quorum.polling import Found, PollResult, TimedOut, poll_until
from safe_quorum.provider import Web3Provider
from safe_quorum.safe.account import SafeAccount
from safe_quorum.safe.factory import SafeFactory, default_threshold
from safe_quorum.safe.models import SafeTransactionData
from safe_quorum.safe.relay import TransactionRelay

logger = logging.getLogger("safe_quorum.workflow")

Sleep = Callable[[float], Awaitable[Any]]


class WorkflowState(str, Enum):
    BOOTSTRAPPED = "bootstrapped"
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    EXECUTED = "executed"
    SKIPPED = "skipped"


@dataclass
class BootstrapResult:
    account: SafeAccount
    owners: list[OwnerIdentity]
    deployed: bool


@dataclass(frozen=True)
class ProposedTransaction:
    safe_tx_hash: str
    data: SafeTransactionData


@dataclass(frozen=True)
class ExecutionResult:
    tx_hash: str
    block_number: Optional[int]
    balance_ether: Decimal


@dataclass
class WorkflowReport:
    """What happened during one :func:`run_workflow` call."""

    safe_address: str
    owners: list[str]
    deployed: bool
    history: list[WorkflowState] = field(default_factory=list)
    funding: Optional[PollResult[dict]] = None
    proposal: Optional[ProposedTransaction] = None
    confirmation: Optional[PollResult[str]] = None
    execution: Optional[ExecutionResult] = None

    @property
    def state(self) -> WorkflowState:
        return self.history[-1]


def _to_wei(amount_ether: str | Decimal) -> int:
    return Web3.to_wei(Decimal(str(amount_ether)), "ether")


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def bootstrap_account(
    config: WorkflowConfig,
    owners: list[OwnerIdentity],
    factory: SafeFactory,
) -> BootstrapResult:
    """Connect to ``config.safe_address`` or deploy a new Safe owned by *owners*.

    A new Safe gets exactly the configured owners and a threshold of
    ``max(1, len(owners) - 1)``. The returned handle signs as the first owner.
    """
    primary = owners[0]
    if config.safe_address:
        account = factory.connect(config.safe_address, primary)
        return BootstrapResult(account=account, owners=owners, deployed=False)

    addresses = [o.address for o in owners]
    threshold = default_threshold(len(addresses))
    logger.info(f"No Safe address configured; deploying a {threshold}-of-{len(addresses)} Safe")
    account = factory.deploy_safe(addresses, threshold)
    return BootstrapResult(account=account, owners=owners, deployed=True)


async def fund_account(
    provider: Web3Provider,
    amount_ether: str | Decimal,
    safe_address: str,
    owner: OwnerIdentity,
    polling: PollingConfig,
    *,
    sleep: Sleep = asyncio.sleep,
) -> PollResult[dict]:
    """Send *amount_ether* from *owner* to the Safe and wait for the receipt.

    Returns ``Found(receipt)`` once mined or ``TimedOut`` when the polling
    bound runs out. A timeout is logged, not raised.
    """
    tx_hash = provider.send_transaction(owner.private_key, safe_address, amount_ether)
    logger.info(f"Funding Safe {safe_address} with {amount_ether} from {owner.address}: {tx_hash}")

    result = await poll_until(
        lambda: provider.get_transaction_receipt(tx_hash),
        lambda receipt: receipt is not None,
        interval=polling.interval_seconds,
        max_attempts=polling.max_attempts,
        deadline=polling.deadline_seconds,
        sleep=sleep,
    )
    if isinstance(result, TimedOut):
        logger.warning(f"Funding tx {tx_hash} not mined after {result.attempts} checks")
    else:
        logger.info(f"Funding tx {tx_hash} confirmed")
    return result


async def propose_transaction(
    account: SafeAccount,
    relay: TransactionRelay,
    amount_ether: str | Decimal,
    destination: str,
    owner: OwnerIdentity,
) -> ProposedTransaction:
    """Create, hash and sign a transfer, then submit it to the relay.

    Nothing is validated locally; relay rejections propagate.
    """
    signer = account if account.owner.address == owner.address else account.with_owner(owner)
    tx = signer.create_transaction(to=destination, value=_to_wei(amount_ether), data="0x")
    tx_hash = signer.get_transaction_hash(tx)
    signature = signer.sign_transaction_hash(tx_hash)

    await relay.propose_transaction(
        safe_address=account.address,
        tx=tx,
        safe_tx_hash=tx_hash,
        sender_address=owner.address,
        sender_signature=signature.data,
    )
    logger.info(f"{owner.address} proposed sending {amount_ether} to {destination} ({tx_hash})")
    return ProposedTransaction(safe_tx_hash=tx_hash, data=tx)


async def confirm_transaction(
    relay: TransactionRelay,
    account: SafeAccount,
    owner: OwnerIdentity,
    polling: PollingConfig,
    *,
    cancel: asyncio.Event | None = None,
    sleep: Sleep = asyncio.sleep,
) -> PollResult[str]:
    """Wait for a pending transaction and add *owner*'s confirmation.

    Always confirms the first entry of the relay's pending list; with more
    than one pending transaction this may not be the one just proposed.
    Returns ``Found(safe_tx_hash)`` or ``TimedOut``.
    """
    result = await poll_until(
        lambda: relay.get_pending_transactions(account.address),
        lambda pending: len(pending) > 0,
        interval=polling.interval_seconds,
        max_attempts=polling.max_attempts,
        deadline=polling.deadline_seconds,
        cancel=cancel,
        sleep=sleep,
    )
    if isinstance(result, TimedOut):
        logger.warning(
            f"No pending transactions for {account.address} after {result.attempts} checks"
        )
        return result

    pending = result.value
    if len(pending) > 1:
        logger.warning(f"{len(pending)} pending transactions; confirming the first one")
    safe_tx_hash = pending[0].safe_tx_hash

    signer = account.with_owner(owner)
    signature = signer.sign_transaction_hash(safe_tx_hash)
    stored = await relay.confirm_transaction(safe_tx_hash, signature.data)
    logger.info(f"{owner.address} confirmed {safe_tx_hash} with signature {stored}")
    return Found(value=safe_tx_hash, attempts=result.attempts)


async def execute_transaction(
    relay: TransactionRelay,
    account: SafeAccount,
    safe_tx_hash: str,
    expected: SafeTransactionData | None = None,
    polling: PollingConfig | None = None,
    *,
    cancel: asyncio.Event | None = None,
    sleep: Sleep = asyncio.sleep,
) -> ExecutionResult:
    """Fetch the assembled transaction, execute it on chain and report the balance.

    The receipt is polled with the same bound as every other wait.

    Raises
    ------
    ValueError
        If the fetched call differs from *expected*, or signatures are missing.
    RuntimeError
        If the chain transaction reverted.
    TimeoutError
        If the receipt did not appear within the polling bound.
    """
    if polling is None:
        polling = PollingConfig()
    stored = await relay.get_transaction(safe_tx_hash)
    if expected is not None and not stored.same_call(expected):
        raise ValueError(
            f"Relay returned {safe_tx_hash} with to/value/data different from the proposal"
        )

    chain_tx = account.execute_transaction(stored.transaction_data(), stored.confirmations)
    mined = await poll_until(
        lambda: account.get_transaction_receipt(chain_tx),
        lambda receipt: receipt is not None,
        interval=polling.interval_seconds,
        max_attempts=polling.max_attempts,
        deadline=polling.deadline_seconds,
        cancel=cancel,
        sleep=sleep,
    )
    if isinstance(mined, TimedOut):
        raise TimeoutError(
            f"execTransaction {chain_tx} not mined after {mined.attempts} checks"
        )
    receipt = mined.value
    if receipt.get("status") == 0:
        raise RuntimeError(f"execTransaction reverted: {chain_tx}")

    balance = account.get_balance()
    logger.info(f"Executed {safe_tx_hash} in {chain_tx}; Safe balance is now {balance}")
    return ExecutionResult(
        tx_hash=chain_tx,
        block_number=receipt.get("blockNumber"),
        balance_ether=balance,
    )


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


async def run_workflow(
    config: WorkflowConfig,
    *,
    provider: Web3Provider,
    relay: TransactionRelay,
    factory: SafeFactory,
    owners: list[OwnerIdentity] | None = None,
    cancel: asyncio.Event | None = None,
    sleep: Sleep = asyncio.sleep,
) -> WorkflowReport:
    """Run every stage in order and return the report.

    A confirmation timeout ends the run in ``SKIPPED`` without raising.
    Failures in any other stage propagate.
    """
    if owners is None:
        owners = load_owners(config.owner_private_keys)

    boot = bootstrap_account(config, owners, factory)
    account = boot.account
    on_chain_owners = account.get_owners()
    report = WorkflowReport(
        safe_address=account.address,
        owners=on_chain_owners,
        deployed=boot.deployed,
        history=[WorkflowState.BOOTSTRAPPED],
    )
    logger.info(f"Safe {account.address} ready; owners: {on_chain_owners}")

    if config.funding.enabled:
        funder = owners[config.funding.owner_index]
        report.funding = await fund_account(
            provider,
            config.funding.amount_ether,
            account.address,
            funder,
            config.polling,
            sleep=sleep,
        )

    destination = config.transfer.destination or on_chain_owners[0]
    report.proposal = await propose_transaction(
        account, relay, config.transfer.amount_ether, destination, owners[0]
    )
    report.history.append(WorkflowState.PROPOSED)

    report.confirmation = await confirm_transaction(
        relay, account, owners[1], config.polling, cancel=cancel, sleep=sleep
    )
    if isinstance(report.confirmation, TimedOut):
        report.history += [WorkflowState.TIMED_OUT, WorkflowState.SKIPPED]
        return report
    report.history.append(WorkflowState.CONFIRMED)

    report.execution = await execute_transaction(
        relay,
        account,
        report.confirmation.value,
        expected=report.proposal.data,
        polling=config.polling,
        cancel=cancel,
        sleep=sleep,
    )
    report.history.append(WorkflowState.EXECUTED)
    return report
