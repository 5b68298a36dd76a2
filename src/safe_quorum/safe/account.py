"""Per-owner handle on a deployed Safe."""

from __future__ import annotations

import logging
from decimal import Decimal

from eth_account import Account
from hexbytes import HexBytes
from web3 import Web3

from safe_quorum.owners import OwnerIdentity
from safe_quorum.provider import Web3Provider
from safe_quorum.safe.contracts import SAFE_ABI
from safe_quorum.safe.hashing import safe_tx_hash
from safe_quorum.safe.models import (
    SafeConfirmation,
    SafeSignature,
    SafeTransactionData,
)

logger = logging.getLogger("safe_quorum.safe.account")


def encode_signatures(confirmations: list[SafeConfirmation]) -> bytes:
    """Concatenate confirmation signatures sorted by ascending owner address.

    Confirmations without a signature are skipped.
    """
    signed = [c for c in confirmations if c.signature]
    return b"".join(
        bytes(HexBytes(c.signature)) for c in sorted(signed, key=lambda c: c.owner.lower())
    )


class SafeAccount:
    """Reads and writes a Safe on behalf of one owner.

    The handle is bound to the owner whose key signs transaction hashes and
    pays for ``execTransaction``. Use :meth:`with_owner` to get the same Safe
    seen through another owner.
    """

    def __init__(self, provider: Web3Provider, address: str, owner: OwnerIdentity) -> None:
        self.provider = provider
        self.address = Web3.to_checksum_address(address)
        self.owner = owner
        self._contract = provider.web3.eth.contract(address=self.address, abi=SAFE_ABI)

    @classmethod
    def connect(cls, provider: Web3Provider, address: str, owner: OwnerIdentity) -> SafeAccount:
        """Resolve *address* to a live Safe.

        Raises ``ValueError`` if there is no contract code at *address*.
        """
        account = cls(provider, address, owner)
        if not provider.get_code(account.address):
            raise ValueError(f"No contract deployed at {account.address} on {provider.chain.name}")
        logger.info(f"Connected to Safe {account.address} as {owner.address}")
        return account

    def with_owner(self, owner: OwnerIdentity) -> SafeAccount:
        return SafeAccount(self.provider, self.address, owner)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_owners(self) -> list[str]:
        return list(self._contract.functions.getOwners().call())

    def get_threshold(self) -> int:
        return int(self._contract.functions.getThreshold().call())

    def get_nonce(self) -> int:
        return int(self._contract.functions.nonce().call())

    def get_version(self) -> str:
        return self._contract.functions.VERSION().call()

    def get_balance(self) -> Decimal:
        """Native balance of the Safe in ether units."""
        return self.provider.get_native_balance(self.address)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def create_transaction(
        self,
        to: str,
        value: int,
        data: str = "0x",
        nonce: int | None = None,
    ) -> SafeTransactionData:
        """Describe a call from the Safe. The nonce defaults to the contract's current one."""
        if nonce is None:
            nonce = self.get_nonce()
        return SafeTransactionData(to=to, value=value, data=data, nonce=nonce)

    def get_transaction_hash(self, tx: SafeTransactionData) -> str:
        return safe_tx_hash(self.provider.chain.chain_id, self.address, tx)

    def sign_transaction_hash(self, tx_hash: str) -> SafeSignature:
        """Sign a Safe transaction hash with this handle's owner key (raw ECDSA, v in {27, 28})."""
        signed = Account.unsafe_sign_hash(HexBytes(tx_hash), self.owner.private_key)
        return SafeSignature(owner=self.owner.address, data=signed.signature.to_0x_hex())

    def execute_transaction(
        self,
        tx: SafeTransactionData,
        confirmations: list[SafeConfirmation],
    ) -> str:
        """Submit ``execTransaction`` with the collected signatures.

        Returns the chain transaction hash.

        Raises
        ------
        ValueError
            If fewer signatures than the Safe threshold were collected.
        """
        signatures = encode_signatures(confirmations)
        collected = len(signatures) // 65
        threshold = self.get_threshold()
        if collected < threshold:
            raise ValueError(
                f"There are {threshold - collected} signatures missing "
                f"({collected} of {threshold} collected)."
            )

        calldata = self._contract.encode_abi(
            "execTransaction",
            args=[
                Web3.to_checksum_address(tx.to),
                tx.value,
                HexBytes(tx.data),
                tx.operation,
                tx.safe_tx_gas,
                tx.base_gas,
                tx.gas_price,
                Web3.to_checksum_address(tx.gas_token),
                Web3.to_checksum_address(tx.refund_receiver),
                signatures,
            ],
        )
        params = {"from": self.owner.address, "to": self.address, "data": calldata}
        tx_hash = self.provider.sign_and_send(params, self.owner.private_key)
        logger.info(f"execTransaction for Safe {self.address} sent by {self.owner.address}: {tx_hash}")
        return tx_hash

    def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        return self.provider.get_transaction_receipt(tx_hash)
